from __future__ import annotations
import time
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from .models import PROTOCOL_NAMES, FlowRecord, protocol_name


def traffic_summary(
    flows: Iterable[FlowRecord],
    now: Optional[float] = None,
    timeline_minutes: int = 30,
    known_protocols_only: bool = True,
    top_n: int = 10,
) -> Dict[str, Any]:
    """
    Dashboard numbers over a flow snapshot.

    known_protocols_only keeps ICMP, TCP and UDP and drops the rest.
    The timeline buckets flows per UTC minute and only covers the last
    timeline_minutes.
    """
    now = time.time() if now is None else now
    active = [
        f for f in flows if not known_protocols_only or f.protocol in PROTOCOL_NAMES
    ]

    protocols: Counter = Counter(f.protocol for f in active)
    sources: Counter = Counter(f.src_ip for f in active)

    timeline: Dict[str, Dict[str, Any]] = {}
    window = timeline_minutes * 60
    for f in active:
        if now - f.timestamp > window:
            continue
        minute = datetime.fromtimestamp(f.timestamp, tz=timezone.utc).strftime("%H:%M")
        bucket = timeline.setdefault(minute, {"time": minute, "bytes": 0, "packets": 0, "flows": 0})
        bucket["bytes"] += f.total_bytes
        bucket["packets"] += f.total_packets
        bucket["flows"] += 1

    protocol_breakdown: List[Dict[str, Any]] = [
        {"name": protocol_name(proto), "protocol": proto, "value": count}
        for proto, count in protocols.items()
    ]

    return {
        "flow_count": len(active),
        "total_bytes": sum(f.total_bytes for f in active),
        "total_packets": sum(f.total_packets for f in active),
        "protocols": protocol_breakdown,
        "top_sources": [{"name": ip, "value": n} for ip, n in sources.most_common(top_n)],
        "timeline": [timeline[k] for k in sorted(timeline)],
    }
