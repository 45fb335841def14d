from __future__ import annotations
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from .models import FlowRecord, protocol_name

EdgeKey = Tuple[str, str, int, int]


@dataclass(frozen=True)
class FilterSpec:
    """
    Graph view filter. Every field is a predicate, none of them mutate data.

    protocol
      IANA number, None for any protocol.

    min_bytes, max_bytes
      Inclusive byte range. max_bytes None means unbounded.

    window_minutes
      Keep flows no older than this many minutes before "now".
      None means all time.

    host
      Substring that must appear in either endpoint. Empty disables it.
    """

    protocol: Optional[int] = None
    min_bytes: int = 0
    max_bytes: Optional[int] = None
    window_minutes: Optional[int] = None
    host: str = ""

    def matches(self, flow: FlowRecord, now: float) -> bool:
        if self.protocol is not None and flow.protocol != self.protocol:
            return False
        if flow.total_bytes < self.min_bytes:
            return False
        if self.max_bytes is not None and flow.total_bytes > self.max_bytes:
            return False
        if self.window_minutes is not None:
            # Compared in milliseconds, the unit the timestamps are shown in.
            age_ms = now * 1000 - flow.timestamp * 1000
            if age_ms > self.window_minutes * 60 * 1000:
                return False
        if self.host and self.host not in flow.src_ip and self.host not in flow.dst_ip:
            return False
        return True


class NodeRole(str, Enum):
    SOURCE = "source"
    DESTINATION = "destination"
    BOTH = "both"


@dataclass
class GraphNode:
    id: str
    bytes_in: int = 0
    bytes_out: int = 0
    connection_count: int = 0
    flows: List[FlowRecord] = field(default_factory=list)
    seen_as_source: bool = False
    seen_as_destination: bool = False

    @property
    def role(self) -> NodeRole:
        if self.seen_as_source and self.seen_as_destination:
            return NodeRole.BOTH
        if self.seen_as_source:
            return NodeRole.SOURCE
        return NodeRole.DESTINATION

    def to_dict(self, include_flows: bool = False) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "role": self.role.value,
            "bytes_in": self.bytes_in,
            "bytes_out": self.bytes_out,
            "connection_count": self.connection_count,
            "val": self.connection_count,
        }
        if include_flows:
            out["flows"] = [f.to_dict() for f in self.flows]
        return out


@dataclass
class GraphEdge:
    source: str
    target: str
    port: int
    protocol: int
    bytes: int = 0
    flow_count: int = 0
    flows: List[FlowRecord] = field(default_factory=list)

    @property
    def key(self) -> EdgeKey:
        return (self.source, self.target, self.port, self.protocol)

    def to_dict(self, include_flows: bool = False) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "source": self.source,
            "target": self.target,
            "port": self.port,
            "protocol": self.protocol,
            "protocol_name": protocol_name(self.protocol),
            "bytes": self.bytes,
            "flow_count": self.flow_count,
        }
        if include_flows:
            out["flows"] = [f.to_dict() for f in self.flows]
        return out


@dataclass
class GraphMetrics:
    node_count: int = 0
    edge_count: int = 0
    total_traffic_bytes: int = 0


@dataclass
class GraphResult:
    nodes: List[GraphNode]
    edges: List[GraphEdge]
    metrics: GraphMetrics

    def node(self, node_id: str) -> Optional[GraphNode]:
        for n in self.nodes:
            if n.id == node_id:
                return n
        return None

    def to_dict(self, include_flows: bool = False) -> Dict[str, Any]:
        return {
            "nodes": [n.to_dict(include_flows) for n in self.nodes],
            "edges": [e.to_dict(include_flows) for e in self.edges],
            "metrics": {
                "node_count": self.metrics.node_count,
                "edge_count": self.metrics.edge_count,
                "total_traffic_bytes": self.metrics.total_traffic_bytes,
            },
        }


@dataclass
class Neighborhood:
    """
    One-hop view around a selected node. The consumer dims everything
    outside it, the graph model itself is left whole.
    """

    node_id: str
    node_ids: Set[str]
    edge_keys: Set[EdgeKey]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_id": self.node_id,
            "node_ids": sorted(self.node_ids),
            "edges": [list(k) for k in sorted(self.edge_keys)],
        }


def filter_flows(
    flows: Iterable[FlowRecord],
    spec: Optional[FilterSpec] = None,
    now: Optional[float] = None,
) -> List[FlowRecord]:
    spec = spec or FilterSpec()
    now = time.time() if now is None else now
    return [f for f in flows if spec.matches(f, now)]


def aggregate(
    flows: Iterable[FlowRecord],
    spec: Optional[FilterSpec] = None,
    now: Optional[float] = None,
) -> GraphResult:
    """
    Build the host graph from scratch.

    Steps:
      drop flows the FilterSpec rejects
      upsert one node per host, a host seen on both sides is still one node
      upsert one edge per (src, dst, dst_port, protocol)
      sum metrics over the filtered set

    Lookups are dict based so a pass is linear in the number of flows.
    Nothing is kept between calls.
    """
    nodes: Dict[str, GraphNode] = {}
    edges: Dict[EdgeKey, GraphEdge] = {}
    total_bytes = 0

    for flow in filter_flows(flows, spec, now):
        total_bytes += flow.total_bytes

        src = nodes.get(flow.src_ip)
        if src is None:
            src = nodes[flow.src_ip] = GraphNode(id=flow.src_ip)
        src.seen_as_source = True
        src.bytes_out += flow.total_bytes
        src.connection_count += 1
        src.flows.append(flow)

        dst = nodes.get(flow.dst_ip)
        if dst is None:
            dst = nodes[flow.dst_ip] = GraphNode(id=flow.dst_ip)
        dst.seen_as_destination = True
        dst.bytes_in += flow.total_bytes
        # self traffic touches the host once
        if dst is not src:
            dst.connection_count += 1
            dst.flows.append(flow)

        key: EdgeKey = (flow.src_ip, flow.dst_ip, flow.dst_port, flow.protocol)
        edge = edges.get(key)
        if edge is None:
            edge = edges[key] = GraphEdge(
                source=flow.src_ip,
                target=flow.dst_ip,
                port=flow.dst_port,
                protocol=flow.protocol,
            )
        edge.bytes += flow.total_bytes
        edge.flow_count += 1
        edge.flows.append(flow)

    return GraphResult(
        nodes=list(nodes.values()),
        edges=list(edges.values()),
        metrics=GraphMetrics(
            node_count=len(nodes),
            edge_count=len(edges),
            total_traffic_bytes=total_bytes,
        ),
    )


def neighbors(result: GraphResult, node_id: str) -> Neighborhood:
    node_ids: Set[str] = set()
    edge_keys: Set[EdgeKey] = set()

    if result.node(node_id) is not None:
        node_ids.add(node_id)

    for edge in result.edges:
        if edge.source == node_id or edge.target == node_id:
            edge_keys.add(edge.key)
            node_ids.add(edge.source)
            node_ids.add(edge.target)

    return Neighborhood(node_id=node_id, node_ids=node_ids, edge_keys=edge_keys)
