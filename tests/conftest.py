import time
import pytest

from flow_stream_mcp.core.models import FlowRecord
from flow_stream_mcp.core.store import AlertStore, FlowStore
from flow_stream_mcp.core.pipeline import FlowPipeline


def make_flow(
    src="10.0.0.1",
    dst="10.0.0.2",
    dst_port=443,
    protocol=6,
    total_bytes=100,
    timestamp=1000.0,
    src_port=51514,
    packets=1,
):
    return FlowRecord(
        src_ip=src,
        dst_ip=dst,
        protocol=protocol,
        src_port=src_port,
        dst_port=dst_port,
        total_bytes=total_bytes,
        total_packets=packets,
        timestamp=timestamp,
    )


@pytest.fixture
def store():
    return FlowStore(maxlen=1000)

@pytest.fixture
def alert_store():
    return AlertStore(maxlen=100)

@pytest.fixture
def pipeline(store, alert_store):
    return FlowPipeline(flow_store=store, alert_store=alert_store, clock=lambda: 2000.0)

@pytest.fixture
def now_ts():
    return time.time()
