import json

import pytest

from flow_stream_mcp.core.models import FlowRecord
from flow_stream_mcp.core.normalize import InvalidFlowError, normalize, try_normalize


RAW = {
    "src_ip": "10.0.0.1",
    "src_port": 51514,
    "dst_ip": "8.8.8.8",
    "dst_port": 53,
    "protocol": 17,
    "total_packets": 2,
    "timestamp": 1000.5,
}


def test_total_bytes_passed_through_when_numeric():
    flow = normalize({**RAW, "total_bytes": 1234, "total_fwd_bytes": 1, "total_bwd_bytes": 2})
    assert flow.total_bytes == 1234


def test_total_bytes_built_from_directional_counters():
    flow = normalize({**RAW, "total_fwd_bytes": 700, "total_bwd_bytes": "300"})
    assert flow.total_bytes == 1000
    assert flow.total_fwd_bytes == 700
    assert flow.total_bwd_bytes == 300


def test_non_numeric_total_bytes_is_recomputed():
    flow = normalize({**RAW, "total_bytes": "lots", "total_fwd_bytes": 5})
    assert flow.total_bytes == 5


def test_missing_counters_zero_fill():
    flow = normalize(RAW)
    assert flow.total_bytes == 0
    assert flow.flow_duration == 0.0


def test_other_fields_pass_through():
    flow = normalize({**RAW, "total_bytes": 10, "flow_iat_mean": 0.25})
    assert flow.src_port == 51514
    assert flow.timestamp == 1000.5
    assert flow.extra == {"flow_iat_mean": 0.25}
    assert flow.to_dict()["flow_iat_mean"] == 0.25


def test_normalize_is_idempotent():
    once = normalize({**RAW, "total_fwd_bytes": 10, "total_bwd_bytes": 20, "label": "x"})
    assert normalize(once) == once
    assert normalize(once.to_dict()) == once


def test_missing_timestamp_uses_receive_time():
    raw = {k: v for k, v in RAW.items() if k != "timestamp"}
    assert normalize(raw, received_at=42.0).timestamp == 42.0
    assert normalize(raw).timestamp == 0.0


def test_bad_port_falls_back_to_zero():
    flow = normalize({**RAW, "dst_port": 70000, "src_port": "abc"})
    assert flow.dst_port == 0
    assert flow.src_port == 0


@pytest.mark.parametrize("missing", ["src_ip", "dst_ip", "protocol"])
def test_missing_identity_raises(missing):
    raw = {k: v for k, v in RAW.items() if k != missing}
    with pytest.raises(InvalidFlowError):
        normalize(raw)
    assert try_normalize(raw) is None


def test_non_object_rejected():
    assert try_normalize(["not", "a", "flow"]) is None
    assert try_normalize({**RAW, "protocol": "tcp"}) is None


def test_flow_record_is_hashable_and_frozen():
    flow = normalize(RAW)
    assert isinstance(flow, FlowRecord)
    hash(flow)
    with pytest.raises(AttributeError):
        flow.total_bytes = 5


def test_non_finite_total_bytes_is_recomputed():
    raw = json.loads(json.dumps(RAW)[:-1] + ', "total_bytes": NaN, "total_fwd_bytes": 40, "total_bwd_bytes": 2}')
    assert normalize(raw).total_bytes == 42
    assert normalize({**RAW, "total_bytes": float("inf"), "total_fwd_bytes": 5}).total_bytes == 5


@pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf"), "Infinity"])
@pytest.mark.parametrize(
    "name", ["total_fwd_bytes", "total_bwd_bytes", "total_packets", "src_port", "dst_port"]
)
def test_non_finite_counters_and_ports_zero_fill(name, value):
    flow = try_normalize({**RAW, name: value})
    assert flow is not None
    assert getattr(flow, name) == 0


def test_non_finite_timestamp_and_duration_zero_fill():
    flow = normalize({**RAW, "timestamp": float("nan"), "flow_duration": float("inf")})
    assert flow.timestamp == 0.0
    assert flow.flow_duration == 0.0


def test_infinite_protocol_rejected():
    assert try_normalize({**RAW, "protocol": float("inf")}) is None
