from __future__ import annotations
import time
import uuid
from dataclasses import dataclass
from typing import Callable, FrozenSet, List, Sequence

from .models import Alert, AlertType, FlowRecord, Severity


HIGH_VOLUME_BYTES = 100_000
SUSPICIOUS_PORTS: FrozenSet[int] = frozenset({22, 23, 3389, 445, 135, 139})


def new_alert_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class AlertRule:
    """
    One detection rule: a predicate plus the message it produces.

    Rules are independent. A flow that matches several rules gets one
    alert per rule, in the order the rules are listed.
    """

    alert_type: AlertType
    severity: Severity
    predicate: Callable[[FlowRecord], bool]
    formatter: Callable[[FlowRecord], str]


def _is_high_volume(flow: FlowRecord) -> bool:
    return flow.total_bytes > HIGH_VOLUME_BYTES


def _high_volume_message(flow: FlowRecord) -> str:
    return (
        f"High volume traffic detected: {flow.total_bytes} bytes "
        f"from {flow.src_ip} to {flow.dst_ip}"
    )


def _is_suspicious_port(flow: FlowRecord) -> bool:
    return flow.dst_port in SUSPICIOUS_PORTS


def _suspicious_port_message(flow: FlowRecord) -> str:
    return f"Suspicious port {flow.dst_port} accessed from {flow.src_ip} to {flow.dst_ip}"


DEFAULT_RULES: Sequence[AlertRule] = (
    AlertRule(AlertType.HIGH_VOLUME, Severity.WARNING, _is_high_volume, _high_volume_message),
    AlertRule(AlertType.SUSPICIOUS_PORT, Severity.ERROR, _is_suspicious_port, _suspicious_port_message),
)


class AlertDetector:
    """
    Runs every rule against a single flow.

    No state is kept between flows. The clock and id factory are only
    used to stamp alerts, so content is deterministic for a given flow.
    """

    def __init__(
        self,
        rules: Sequence[AlertRule] = DEFAULT_RULES,
        clock: Callable[[], float] = time.time,
        id_factory: Callable[[], str] = new_alert_id,
    ):
        self.rules = tuple(rules)
        self._clock = clock
        self._id_factory = id_factory

    def with_rule(self, rule: AlertRule) -> "AlertDetector":
        return AlertDetector(rules=self.rules + (rule,), clock=self._clock, id_factory=self._id_factory)

    def detect(self, flow: FlowRecord) -> List[Alert]:
        alerts: List[Alert] = []
        for rule in self.rules:
            if not rule.predicate(flow):
                continue
            alerts.append(
                Alert(
                    id=self._id_factory(),
                    type=rule.alert_type,
                    severity=rule.severity,
                    message=rule.formatter(flow),
                    flow=flow,
                    timestamp=self._clock(),
                )
            )
        return alerts


_default_detector = AlertDetector()


def detect(flow: FlowRecord) -> List[Alert]:
    return _default_detector.detect(flow)
