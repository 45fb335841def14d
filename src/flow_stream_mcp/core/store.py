from __future__ import annotations
from collections import deque
from typing import Callable, Deque, Generic, Iterable, List, Optional, TypeVar, Union
from .models import Alert, AlertType, FlowRecord, Severity

T = TypeVar("T")

FLOW_CAPACITY = 1000
ALERT_CAPACITY = 100


class BoundedStore(Generic[T]):
    """
    Fixed capacity, newest first collection.

    Why a deque:
      appendleft is O(1)
      maxlen drops from the right end, so the oldest item goes first

    Eviction is not an error and is not reported. New items are never
    rejected, the store sheds from the back instead.
    """

    def __init__(self, maxlen: int):
        if maxlen <= 0:
            raise ValueError("maxlen must be positive")
        self._items: Deque[T] = deque(maxlen=maxlen)

    @property
    def capacity(self) -> int:
        return self._items.maxlen or 0

    def __len__(self) -> int:
        return len(self._items)

    def push(self, item: T) -> None:
        self._items.appendleft(item)

    def push_many(self, items: Iterable[T]) -> None:
        """
        Prepend a batch, keeping the batch's own order at the front.
        """
        for item in reversed(list(items)):
            self._items.appendleft(item)

    def replace(self, items: Iterable[T]) -> None:
        """
        Swap the whole content for items given newest first.
        Anything past capacity is cut from the end.
        """
        self._items = deque(list(items)[: self.capacity], maxlen=self.capacity)

    def clear(self) -> None:
        self._items.clear()

    def snapshot(self) -> List[T]:
        return list(self._items)


class FlowStore(BoundedStore[FlowRecord]):
    """
    Recent flow log. Holds the last FLOW_CAPACITY records, newest first.
    """

    def __init__(self, maxlen: int = FLOW_CAPACITY):
        super().__init__(maxlen)


class AlertStore(BoundedStore[Alert]):
    """
    Recent alert feed. Alerts leave by capacity or by dismissal.
    """

    def __init__(self, maxlen: int = ALERT_CAPACITY):
        super().__init__(maxlen)

    def remove(self, target: Union[str, Callable[[Alert], bool]]) -> int:
        """
        Dismiss by alert id or by predicate. Returns how many were removed.
        """
        def match(a: Alert) -> bool:
            return target(a) if callable(target) else a.id == target

        kept = [a for a in self._items if not match(a)]
        removed = len(self._items) - len(kept)
        if removed:
            self._items = deque(kept, maxlen=self.capacity)
        return removed

    def filter(
        self,
        alert_type: Optional[AlertType] = None,
        severity: Optional[Severity] = None,
    ) -> List[Alert]:
        return [
            a
            for a in self._items
            if (alert_type is None or a.type == alert_type)
            and (severity is None or a.severity == severity)
        ]
