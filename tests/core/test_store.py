import pytest

from flow_stream_mcp.core.models import AlertType, Severity
from flow_stream_mcp.core.rules import detect
from flow_stream_mcp.core.store import AlertStore, BoundedStore, FlowStore
from tests.conftest import make_flow


def test_flow_store_caps_at_capacity_and_evicts_oldest():
    store = FlowStore()
    for i in range(1005):
        store.push(make_flow(timestamp=float(i)))

    snap = store.snapshot()
    assert len(snap) == 1000
    # newest first, the five oldest are gone
    assert snap[0].timestamp == 1004.0
    assert snap[-1].timestamp == 5.0


def test_alert_store_caps_at_one_hundred():
    store = AlertStore()
    for i in range(130):
        store.push_many(detect(make_flow(dst_port=22, timestamp=float(i))))

    snap = store.snapshot()
    assert len(snap) == 100
    assert snap[0].flow.timestamp == 129.0
    assert snap[-1].flow.timestamp == 30.0


def test_push_many_keeps_batch_order_at_front():
    store = BoundedStore(maxlen=5)
    store.push("old")
    store.push_many(["a", "b"])
    assert store.snapshot() == ["a", "b", "old"]


def test_replace_truncates_to_capacity():
    store = BoundedStore(maxlen=3)
    store.replace([1, 2, 3, 4, 5])
    assert store.snapshot() == [1, 2, 3]
    store.push(0)
    assert store.snapshot() == [0, 1, 2]


def test_zero_capacity_rejected():
    with pytest.raises(ValueError):
        BoundedStore(maxlen=0)


def test_alert_dismiss_by_id_and_predicate():
    store = AlertStore()
    alerts = detect(make_flow(dst_port=3389, total_bytes=500_000))
    store.push_many(alerts)
    assert len(store) == 2

    assert store.remove(alerts[0].id) == 1
    assert store.remove("no-such-id") == 0
    assert [a.id for a in store.snapshot()] == [alerts[1].id]

    assert store.remove(lambda a: a.severity == Severity.ERROR) == 1
    assert len(store) == 0


def test_alert_filter_by_type_and_severity():
    store = AlertStore()
    store.push_many(detect(make_flow(dst_port=22, total_bytes=200_000)))
    store.push_many(detect(make_flow(dst_port=80, total_bytes=300_000)))

    assert len(store.filter()) == 3
    assert len(store.filter(alert_type=AlertType.HIGH_VOLUME)) == 2
    assert len(store.filter(severity=Severity.ERROR)) == 1
    assert store.filter(alert_type=AlertType.SUSPICIOUS_PORT, severity=Severity.WARNING) == []


def test_clear_empties_store():
    store = AlertStore()
    store.push_many(detect(make_flow(dst_port=23)))
    store.clear()
    assert store.snapshot() == []
