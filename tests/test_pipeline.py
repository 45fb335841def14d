import asyncio
import json

import pytest

from flow_stream_mcp.core.events import AlertsRaised, ConnectionStateChanged, FlowIngested, LoadingFinished
from flow_stream_mcp.core.graph import FilterSpec
from flow_stream_mcp.core.models import AlertType
from flow_stream_mcp.core.pipeline import FlowPipeline
from flow_stream_mcp.core.query import LogFilter
from flow_stream_mcp.core.transport import BackoffPolicy, TransportManager
from tests.conftest import make_flow
from tests.test_transport import FakeStream, wait_for

RAW = {
    "src_ip": "10.0.0.1",
    "src_port": 40000,
    "dst_ip": "8.8.8.8",
    "dst_port": 3389,
    "protocol": 6,
    "total_bytes": 50,
    "total_packets": 1,
    "timestamp": 1000,
}


def test_ingest_stores_flow_and_raises_alert(pipeline):
    events = []
    pipeline.bus.subscribe(events.append)

    flow = pipeline.ingest(RAW)

    assert pipeline.flows.snapshot() == [flow]
    alerts = pipeline.alerts.snapshot()
    assert len(alerts) == 1
    assert alerts[0].type == AlertType.SUSPICIOUS_PORT
    assert [type(e) for e in events] == [FlowIngested, AlertsRaised]
    assert events[1].alerts == tuple(alerts)


def test_ingest_fills_missing_total_bytes(pipeline):
    raw = dict(RAW, dst_port=443)
    del raw["total_bytes"]
    raw["total_fwd_bytes"] = 150_000
    flow = pipeline.ingest(raw)
    assert flow.total_bytes == 150_000
    assert pipeline.alerts.snapshot()[0].type == AlertType.HIGH_VOLUME


def test_ingest_drops_record_without_identity(pipeline):
    assert pipeline.ingest({"src_ip": "10.0.0.1", "protocol": 6}) is None
    assert len(pipeline.flows) == 0
    assert pipeline.status()["dropped"] == 1


def test_ingest_non_finite_counters_still_stores_flow(pipeline):
    raw = json.loads(
        '{"src_ip": "10.0.0.1", "dst_ip": "8.8.8.8", "protocol": 6, "dst_port": 443,'
        ' "total_bytes": NaN, "total_fwd_bytes": Infinity, "timestamp": 1000}'
    )
    flow = pipeline.ingest(raw)
    assert flow is not None
    assert flow.total_bytes == 0
    assert pipeline.flows.snapshot() == [flow]
    assert pipeline.status()["ingested"] == 1
    assert pipeline.status()["dropped"] == 0


def test_quiet_flow_raises_no_alert_event(pipeline):
    events = []
    pipeline.bus.subscribe(events.append, AlertsRaised)
    pipeline.ingest(dict(RAW, dst_port=443))
    assert events == []


def test_ingestion_never_blocks_on_capacity(pipeline):
    for i in range(1200):
        pipeline.ingest(dict(RAW, timestamp=i))
    assert len(pipeline.flows) == 1000
    assert len(pipeline.alerts) == 100
    assert pipeline.flows.snapshot()[0].timestamp == 1199
    assert pipeline.status()["ingested"] == 1200


def test_min_bytes_filter_applies_to_graph_and_log(pipeline):
    pipeline.ingest(dict(RAW, total_bytes=500, dst_port=443))
    pipeline.ingest(dict(RAW, total_bytes=5000, dst_port=443, src_ip="10.0.0.9"))

    graph = pipeline.graph(FilterSpec(min_bytes=1000))
    page = pipeline.query(LogFilter(min_bytes=1000))

    assert graph.metrics.total_traffic_bytes == 5000
    assert {n.id for n in graph.nodes} == {"10.0.0.9", "8.8.8.8"}
    assert page.total_count == 1
    assert page.items[0].total_bytes == 5000


def test_neighbors_and_summary_use_current_flows(pipeline):
    pipeline.ingest(dict(RAW, dst_port=443))
    pipeline.ingest(dict(RAW, src_ip="8.8.8.8", dst_ip="1.1.1.1", dst_port=443))
    hood = pipeline.neighbors("10.0.0.1")
    assert hood.node_ids == {"10.0.0.1", "8.8.8.8"}
    assert pipeline.summary()["flow_count"] == 2


def test_dismiss_and_clear_alerts(pipeline):
    pipeline.ingest(dict(RAW, total_bytes=500_000))
    first, second = pipeline.alerts.snapshot()
    assert pipeline.dismiss_alert(first.id) == 1
    assert pipeline.alerts.snapshot() == [second]
    pipeline.clear_alerts()
    assert len(pipeline.alerts) == 0


class FakeHistory:
    def __init__(self, flows):
        self.flows = flows

    async def recent(self, limit=100):
        return self.flows[:limit]


def test_seed_replaces_flows_without_alerts(pipeline):
    pipeline.ingest(RAW)
    history = FakeHistory([make_flow(dst_port=22, timestamp=float(i)) for i in range(5)])

    loaded = asyncio.run(pipeline.seed(history, limit=3))

    assert loaded == 3
    assert [f.timestamp for f in pipeline.flows.snapshot()] == [0.0, 1.0, 2.0]
    assert len(pipeline.alerts) == 1


def test_seed_failure_keeps_store(pipeline):
    pipeline.ingest(RAW)
    assert asyncio.run(pipeline.seed(FakeHistory([]))) == 0
    assert len(pipeline.flows) == 1


def test_start_without_transport_fails(pipeline):
    with pytest.raises(RuntimeError):
        pipeline.start()


@pytest.mark.asyncio
async def test_stream_records_flow_through_pipeline():
    stream = FakeStream(frames=[json.dumps(RAW)], hold=True)
    transport = TransportManager(lambda: stream, backoff=BackoffPolicy(base=10))
    pipeline = FlowPipeline(transport=transport)
    events = []
    pipeline.bus.subscribe(events.append, ConnectionStateChanged, LoadingFinished)

    assert pipeline.is_loading
    pipeline.start()
    await wait_for(lambda: len(pipeline.flows) == 1)

    assert not pipeline.is_loading
    assert len(pipeline.alerts) == 1
    assert ConnectionStateChanged(state="connected", previous="connecting") in events
    assert LoadingFinished() in events

    pipeline.stop()
    assert pipeline.status()["transport"]["state"] == "disconnected"
