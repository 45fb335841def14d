import pytest

from flow_stream_mcp.core.config import Settings


def test_defaults_without_env():
    s = Settings.from_env({})
    assert s.flow_capacity == 1000
    assert s.alert_capacity == 100
    assert s.backoff_base_seconds == 1.0
    assert s.backoff_max_seconds == 30.0
    assert s.stream_url.startswith("ws://")


def test_env_overrides():
    s = Settings.from_env(
        {
            "FLOW_STREAM_URL": "ws://collector:9000/ws",
            "FLOW_CAPACITY": "50",
            "FLOW_BACKOFF_BASE": "0.5",
            "FLOW_LOG_LEVEL": "debug",
            "FLOW_SEED_LIMIT": " ",
        }
    )
    assert s.stream_url == "ws://collector:9000/ws"
    assert s.flow_capacity == 50
    assert s.backoff_base_seconds == 0.5
    assert s.log_level == "DEBUG"
    assert s.seed_limit == 100


def test_bad_number_names_variable():
    with pytest.raises(ValueError, match="FLOW_ALERT_CAPACITY"):
        Settings.from_env({"FLOW_ALERT_CAPACITY": "many"})


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        Settings.from_env({"FLOW_CAPACITY": "0"})
