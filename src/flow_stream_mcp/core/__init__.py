"""
Core ingestion and aggregation modules.

Keep presentation concerns out of this package. Consumers read the views
through FlowPipeline or subscribe to its EventBus.
"""

from .models import Alert, AlertType, FlowRecord, Severity
from .normalize import InvalidFlowError, normalize
from .rules import AlertDetector, detect
from .store import AlertStore, FlowStore
from .graph import FilterSpec, aggregate, neighbors
from .query import LogFilter, LogView, SortSpec, query
from .transport import BackoffPolicy, TransportManager, TransportState
from .pipeline import FlowPipeline

__all__ = [
    "Alert",
    "AlertType",
    "FlowRecord",
    "Severity",
    "InvalidFlowError",
    "normalize",
    "AlertDetector",
    "detect",
    "AlertStore",
    "FlowStore",
    "FilterSpec",
    "aggregate",
    "neighbors",
    "LogFilter",
    "LogView",
    "SortSpec",
    "query",
    "BackoffPolicy",
    "TransportManager",
    "TransportState",
    "FlowPipeline",
]
