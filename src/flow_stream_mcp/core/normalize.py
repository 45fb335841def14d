from __future__ import annotations
import logging
import math
from typing import Any, Mapping, Optional

from .models import FlowRecord

log = logging.getLogger(__name__)

IDENTITY_FIELDS = ("src_ip", "dst_ip", "protocol")

_KNOWN_FIELDS = {
    "src_ip",
    "src_port",
    "dst_ip",
    "dst_port",
    "protocol",
    "total_bytes",
    "total_packets",
    "total_fwd_bytes",
    "total_bwd_bytes",
    "flow_duration",
    "timestamp",
}


class InvalidFlowError(ValueError):
    """Raised when a record has no usable identity (endpoints or protocol)."""


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _to_int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default


def _to_float(value: Any, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return default
    return number if math.isfinite(number) else default


def _to_port(value: Any) -> int:
    port = _to_int(value)
    if 0 <= port <= 65535:
        return port
    return 0


def normalize(raw: Any, received_at: Optional[float] = None) -> FlowRecord:
    """
    Turn a raw inbound flow into a FlowRecord.

    Counters degrade gracefully: missing or junk values become zero, and
    total_bytes is rebuilt from the forward and backward counters whenever
    it is absent or not numeric. Only a missing identity raises.

    A FlowRecord is returned as is, so normalize(normalize(x)) == normalize(x).

    received_at fills in the timestamp when the source did not send one.
    """
    if isinstance(raw, FlowRecord):
        return raw
    if not isinstance(raw, Mapping):
        raise InvalidFlowError(f"flow must be an object, got {type(raw).__name__}")

    missing = [name for name in IDENTITY_FIELDS if raw.get(name) in (None, "")]
    if missing:
        raise InvalidFlowError(f"flow missing {', '.join(missing)}")

    try:
        protocol = int(raw["protocol"])
    except (TypeError, ValueError, OverflowError):
        raise InvalidFlowError(f"protocol is not an integer: {raw['protocol']!r}") from None

    fwd = _to_int(raw.get("total_fwd_bytes"))
    bwd = _to_int(raw.get("total_bwd_bytes"))
    total = raw.get("total_bytes")
    total_bytes = int(total) if _is_number(total) else fwd + bwd

    timestamp = raw.get("timestamp")
    if timestamp is None:
        ts = float(received_at) if received_at is not None else 0.0
    else:
        ts = _to_float(timestamp)

    return FlowRecord(
        src_ip=str(raw["src_ip"]),
        dst_ip=str(raw["dst_ip"]),
        protocol=protocol,
        src_port=_to_port(raw.get("src_port")),
        dst_port=_to_port(raw.get("dst_port")),
        total_bytes=total_bytes,
        total_packets=_to_int(raw.get("total_packets")),
        total_fwd_bytes=fwd,
        total_bwd_bytes=bwd,
        flow_duration=_to_float(raw.get("flow_duration")),
        timestamp=ts,
        extra={k: v for k, v in raw.items() if k not in _KNOWN_FIELDS},
    )


def try_normalize(raw: Any, received_at: Optional[float] = None) -> Optional[FlowRecord]:
    """
    Same as normalize but returns None for records without identity.
    The caller counts those as dropped.
    """
    try:
        return normalize(raw, received_at=received_at)
    except InvalidFlowError as exc:
        log.warning("dropping flow record: %s", exc)
        return None
