from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Tuple, Type

from .models import Alert, FlowRecord

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class FlowIngested:
    flow: FlowRecord


@dataclass(frozen=True)
class AlertsRaised:
    alerts: Tuple[Alert, ...]


@dataclass(frozen=True)
class ConnectionStateChanged:
    state: str
    previous: str


@dataclass(frozen=True)
class LoadingFinished:
    pass


Handler = Callable[[Any], None]


class EventBus:
    """
    Typed event fan-out between the ingestion core and its consumers.

    Two ways to listen:
      subscribe(handler, *types)
        handler is called inline, in publish order
      channel(maxsize)
        an asyncio.Queue that receives every event

    A failing handler is logged and skipped, other subscribers still run.
    A full channel drops its oldest event, publishing never blocks.
    """

    def __init__(self) -> None:
        self._handlers: List[Tuple[Handler, Tuple[Type, ...]]] = []
        self._queues: List[asyncio.Queue] = []

    def subscribe(self, handler: Handler, *event_types: Type) -> Callable[[], None]:
        entry = (handler, tuple(event_types))
        self._handlers.append(entry)

        def unsubscribe() -> None:
            if entry in self._handlers:
                self._handlers.remove(entry)

        return unsubscribe

    def channel(self, maxsize: int = 1000) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._queues.append(queue)
        return queue

    def close_channel(self, queue: asyncio.Queue) -> None:
        if queue in self._queues:
            self._queues.remove(queue)

    def publish(self, event: Any) -> None:
        for handler, types in list(self._handlers):
            if types and not isinstance(event, types):
                continue
            try:
                handler(event)
            except Exception:
                log.exception("event handler failed for %s", type(event).__name__)

        for queue in self._queues:
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(event)

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers) + len(self._queues)

