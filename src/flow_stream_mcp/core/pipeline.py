from __future__ import annotations
import logging
import time
from typing import Any, Callable, Dict, Optional

from .events import AlertsRaised, ConnectionStateChanged, EventBus, FlowIngested, LoadingFinished
from .graph import FilterSpec, GraphResult, Neighborhood, aggregate, neighbors
from .lookup import HistoryClient
from .models import FlowRecord
from .normalize import try_normalize
from .query import LogFilter, QueryPage, SortSpec, query
from .rules import AlertDetector
from .store import AlertStore, FlowStore
from .summary import traffic_summary
from .transport import TransportManager, TransportState

log = logging.getLogger(__name__)


class FlowPipeline:
    """
    Wires the stream to the derived views.

    Push side, per inbound record:
      normalize -> flow store -> FlowIngested
                -> rules -> alert store -> AlertsRaised

    Pull side, on demand against a store snapshot:
      graph, neighbors, log queries, summary

    Everything runs on one event loop. ingest() never raises and never
    blocks, overflow is shed by the stores.
    """

    def __init__(
        self,
        transport: Optional[TransportManager] = None,
        flow_store: Optional[FlowStore] = None,
        alert_store: Optional[AlertStore] = None,
        detector: Optional[AlertDetector] = None,
        bus: Optional[EventBus] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.transport = transport
        self.flows = flow_store if flow_store is not None else FlowStore()
        self.alerts = alert_store if alert_store is not None else AlertStore()
        self.detector = detector or AlertDetector()
        self.bus = bus or EventBus()
        self._clock = clock

        self.is_loading = True
        self._ingested = 0
        self._dropped = 0
        self._alerts_raised = 0

        if transport is not None:
            transport.add_state_listener(self._on_state_change)
            transport.add_connected_listener(self._on_connected)

    def start(self) -> None:
        if self.transport is None:
            raise RuntimeError("pipeline has no transport")
        self.transport.connect(self.ingest)

    def stop(self) -> None:
        if self.transport is not None:
            self.transport.close()

    def ingest(self, raw: Any) -> Optional[FlowRecord]:
        flow = try_normalize(raw, received_at=self._clock())
        if flow is None:
            self._dropped += 1
            return None

        self.flows.push(flow)
        self._ingested += 1
        self.bus.publish(FlowIngested(flow=flow))

        new_alerts = self.detector.detect(flow)
        if new_alerts:
            self.alerts.push_many(new_alerts)
            self._alerts_raised += len(new_alerts)
            self.bus.publish(AlertsRaised(alerts=tuple(new_alerts)))
        return flow

    async def seed(self, history: HistoryClient, limit: int = 100) -> int:
        """
        Replace the flow log with the history service's recent flows.
        Seeded flows do not raise alerts. Returns how many were loaded.
        """
        flows = await history.recent(limit=limit)
        if not flows:
            return 0
        self.flows.replace(flows)
        return min(len(flows), self.flows.capacity)

    def graph(self, spec: Optional[FilterSpec] = None) -> GraphResult:
        return aggregate(self.flows.snapshot(), spec, now=self._clock())

    def neighbors(self, node_id: str, spec: Optional[FilterSpec] = None) -> Neighborhood:
        return neighbors(self.graph(spec), node_id)

    def query(
        self,
        filters: Optional[LogFilter] = None,
        sort: Optional[SortSpec] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> QueryPage:
        return query(self.flows.snapshot(), filters, sort, page, page_size)

    def summary(self, **kwargs: Any) -> Dict[str, Any]:
        return traffic_summary(self.flows.snapshot(), now=self._clock(), **kwargs)

    def dismiss_alert(self, alert_id: str) -> int:
        return self.alerts.remove(alert_id)

    def clear_alerts(self) -> None:
        self.alerts.clear()

    def status(self) -> Dict[str, Any]:
        return {
            "loading": self.is_loading,
            "flows": len(self.flows),
            "alerts": len(self.alerts),
            "ingested": self._ingested,
            "dropped": self._dropped,
            "alerts_raised": self._alerts_raised,
            "transport": self.transport.status() if self.transport is not None else None,
        }

    def _on_state_change(self, state: TransportState, previous: TransportState) -> None:
        self.bus.publish(ConnectionStateChanged(state=state.value, previous=previous.value))

    def _on_connected(self) -> None:
        if self.is_loading:
            log.info("flow stream connected, loading finished")
        self.is_loading = False
        self.bus.publish(LoadingFinished())
