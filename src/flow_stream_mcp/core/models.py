from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict


PROTOCOL_NAMES: Dict[int, str] = {1: "ICMP", 6: "TCP", 17: "UDP"}


def protocol_name(protocol: int) -> str:
    return PROTOCOL_NAMES.get(protocol, f"Protocol {protocol}")


@dataclass(frozen=True)
class FlowRecord:
    """
    Normalized flow record produced at the stream edge.

    Everything downstream (stores, rules, graph, log queries) works on this
    type only, never on the raw JSON shape.

    Fields:
      src_ip, dst_ip
        Endpoint addresses as strings.

      src_port, dst_port
        Transport layer ports, 0 if unknown.

      protocol
        IANA protocol number (1 ICMP, 6 TCP, 17 UDP).

      total_bytes
        Sum of forward and backward bytes when the source did not send it.

      total_packets
        Packet counter, 0 if unknown.

      flow_duration
        Seconds. Zero or negative when the exporter did not report it.

      timestamp
        Unix time in seconds. Not unique, use it for sorting and display only.

      extra
        Any other fields the source sent, passed through untouched.
    """

    src_ip: str
    dst_ip: str
    protocol: int
    src_port: int = 0
    dst_port: int = 0
    total_bytes: int = 0
    total_packets: int = 0
    total_fwd_bytes: int = 0
    total_bwd_bytes: int = 0
    flow_duration: float = 0.0
    timestamp: float = 0.0
    extra: Dict[str, Any] = field(default_factory=dict, hash=False)

    def get(self, name: str, default: Any = None) -> Any:
        """
        Field lookup by name, falling back to pass-through fields.
        Used by the log query layer for sorting on arbitrary keys.
        """
        if name != "extra" and name in self.__dataclass_fields__:
            return getattr(self, name)
        return self.extra.get(name, default)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = dict(self.extra)
        out.update(
            {
                "src_ip": self.src_ip,
                "src_port": self.src_port,
                "dst_ip": self.dst_ip,
                "dst_port": self.dst_port,
                "protocol": self.protocol,
                "total_bytes": self.total_bytes,
                "total_packets": self.total_packets,
                "total_fwd_bytes": self.total_fwd_bytes,
                "total_bwd_bytes": self.total_bwd_bytes,
                "flow_duration": self.flow_duration,
                "timestamp": self.timestamp,
            }
        )
        return out


class AlertType(str, Enum):
    HIGH_VOLUME = "high-volume"
    SUSPICIOUS_PORT = "suspicious-port"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Alert:
    """
    One alert raised by a detection rule for one flow.

    id is unique for the lifetime of the process. timestamp is the
    creation time in Unix seconds, not the flow's own timestamp.
    """

    id: str
    type: AlertType
    severity: Severity
    message: str
    flow: FlowRecord
    timestamp: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "severity": self.severity.value,
            "message": self.message,
            "flow": self.flow.to_dict(),
            "timestamp": self.timestamp,
        }
