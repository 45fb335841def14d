from __future__ import annotations
import math
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .models import FlowRecord

DEFAULT_PAGE_SIZE = 10

SORTABLE_FIELDS = frozenset(
    name for name in FlowRecord.__dataclass_fields__ if name != "extra"
)


@dataclass(frozen=True)
class LogFilter:
    """
    Log view filter. All set fields must match.

      src_ip, dst_ip   substring match
      protocol         exact match
      min_bytes        total_bytes >= min_bytes
      max_bytes        total_bytes <= max_bytes
      port             exact match on either src_port or dst_port
    """

    src_ip: str = ""
    dst_ip: str = ""
    protocol: Optional[int] = None
    min_bytes: Optional[int] = None
    max_bytes: Optional[int] = None
    port: Optional[int] = None

    def matches(self, flow: FlowRecord) -> bool:
        if self.src_ip and self.src_ip not in flow.src_ip:
            return False
        if self.dst_ip and self.dst_ip not in flow.dst_ip:
            return False
        if self.protocol is not None and flow.protocol != self.protocol:
            return False
        if self.min_bytes is not None and flow.total_bytes < self.min_bytes:
            return False
        if self.max_bytes is not None and flow.total_bytes > self.max_bytes:
            return False
        if self.port is not None and self.port not in (flow.src_port, flow.dst_port):
            return False
        return True


@dataclass(frozen=True)
class SortSpec:
    key: str = "timestamp"
    descending: bool = True

    def __post_init__(self) -> None:
        if self.key not in SORTABLE_FIELDS:
            raise ValueError(f"cannot sort flows by {self.key!r}")

    def toggled(self, key: str) -> "SortSpec":
        """
        Same key flips direction, a new key starts ascending.
        """
        if key == self.key:
            return replace(self, descending=not self.descending)
        return SortSpec(key=key, descending=False)


@dataclass
class QueryPage:
    items: List[FlowRecord]
    total_count: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.page_size)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [f.to_dict() for f in self.items],
            "total_count": self.total_count,
            "page": self.page,
            "page_size": self.page_size,
            "total_pages": self.total_pages,
        }


def _sort_value(flow: FlowRecord, key: str) -> Tuple[int, float, str]:
    # numbers before text so mixed columns still order
    value = flow.get(key)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, value, "")
    return (1, 0.0, "" if value is None else str(value))


def query(
    flows: Iterable[FlowRecord],
    filters: Optional[LogFilter] = None,
    sort: Optional[SortSpec] = None,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> QueryPage:
    """
    Filter, sort and slice a flow snapshot.

    Sorting is stable, so flows with equal keys keep their original
    (newest first) order in both directions.
    """
    if page_size <= 0:
        raise ValueError("page_size must be positive")
    if page < 1:
        raise ValueError("page starts at 1")

    filters = filters or LogFilter()
    sort = sort or SortSpec()

    result = [f for f in flows if filters.matches(f)]
    result.sort(key=lambda f: _sort_value(f, sort.key), reverse=sort.descending)

    start = (page - 1) * page_size
    return QueryPage(
        items=result[start : start + page_size],
        total_count=len(result),
        page=page,
        page_size=page_size,
    )


class LogView:
    """
    Consumer side state for a paged log table.

    Any change to filters, sort or page size sends the view back to page 1.
    """

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE):
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self.filters = LogFilter()
        self.sort = SortSpec()
        self.page_size = page_size
        self.page = 1

    def set_filters(self, filters: LogFilter) -> None:
        self.filters = filters
        self.page = 1

    def sort_by(self, key: str) -> None:
        self.sort = self.sort.toggled(key)
        self.page = 1

    def set_page_size(self, page_size: int) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self.page_size = page_size
        self.page = 1

    def go_to(self, page: int, flows: Iterable[FlowRecord]) -> bool:
        """
        Move to page if it exists for the current flows. Out of range
        requests leave the view where it is.
        """
        total = self.render(flows).total_pages
        if page < 1 or page > total:
            return False
        self.page = page
        return True

    def render(self, flows: Iterable[FlowRecord]) -> QueryPage:
        return query(flows, self.filters, self.sort, self.page, self.page_size)
