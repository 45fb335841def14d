from __future__ import annotations
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from .config import Settings
from .graph import FilterSpec, neighbors
from .lookup import GeoIpClient, HistoryClient
from .models import AlertType, Severity
from .normalize import try_normalize
from .pipeline import FlowPipeline
from .query import LogFilter, SortSpec
from .store import AlertStore, FlowStore
from .transport import BackoffPolicy, TransportManager, WebSocketStream


def build_pipeline(settings: Settings) -> FlowPipeline:
    transport = TransportManager(
        stream_factory=lambda: WebSocketStream(settings.stream_url),
        backoff=BackoffPolicy(
            base=settings.backoff_base_seconds,
            maximum=settings.backoff_max_seconds,
        ),
        name=settings.stream_url,
    )
    return FlowPipeline(
        transport=transport,
        flow_store=FlowStore(maxlen=settings.flow_capacity),
        alert_store=AlertStore(maxlen=settings.alert_capacity),
    )


def _graph_filter(
    protocol: Optional[int],
    min_bytes: int,
    max_bytes: Optional[int],
    window_minutes: Optional[int],
    host: str,
) -> FilterSpec:
    return FilterSpec(
        protocol=protocol,
        min_bytes=min_bytes,
        max_bytes=max_bytes,
        window_minutes=window_minutes,
        host=host,
    )


class FlowMCPServer:
    """
    MCP front end over the flow pipeline.

    Responsibilities:
      Own the pipeline and the external service clients
      Expose the flow log, alert feed and host graph as tools
      Start and stop the stream on request
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        pipeline: Optional[FlowPipeline] = None,
        history: Optional[HistoryClient] = None,
        geoip: Optional[GeoIpClient] = None,
    ):
        self.settings = settings or Settings()
        self.pipeline = pipeline or build_pipeline(self.settings)
        timeout = self.settings.request_timeout_seconds
        self.history = history or HistoryClient(self.settings.api_url, timeout=timeout)
        self.geoip = geoip or GeoIpClient(self.settings.api_url, timeout=timeout)
        self.mcp = FastMCP("flow_stream_mcp")

        self._register_stream_tools()
        self._register_view_tools()
        self._register_alert_tools()
        self._register_lookup_tools()

    def _register_stream_tools(self) -> None:
        @self.mcp.tool()
        def stream_status() -> Dict[str, Any]:
            return self.pipeline.status()

        @self.mcp.tool()
        async def start_stream() -> str:
            self.pipeline.start()
            return f"streaming from {self.settings.stream_url}"

        @self.mcp.tool()
        async def stop_stream() -> str:
            self.pipeline.stop()
            return "stopped"

        @self.mcp.tool()
        async def seed_flows(limit: Optional[int] = None) -> Dict[str, Any]:
            n = limit if limit is not None else self.settings.seed_limit
            loaded = await self.pipeline.seed(self.history, limit=n)
            return {"loaded": loaded, "flows": len(self.pipeline.flows)}

    def _register_view_tools(self) -> None:
        @self.mcp.tool()
        def recent_flows(limit: int = 50) -> List[Dict[str, Any]]:
            return [f.to_dict() for f in self.pipeline.flows.snapshot()[: max(limit, 0)]]

        @self.mcp.tool()
        def search_log(
            src_ip: str = "",
            dst_ip: str = "",
            protocol: Optional[int] = None,
            min_bytes: Optional[int] = None,
            max_bytes: Optional[int] = None,
            port: Optional[int] = None,
            sort_key: str = "timestamp",
            descending: bool = True,
            page: int = 1,
            page_size: int = 10,
        ) -> Dict[str, Any]:
            filters = LogFilter(
                src_ip=src_ip,
                dst_ip=dst_ip,
                protocol=protocol,
                min_bytes=min_bytes,
                max_bytes=max_bytes,
                port=port,
            )
            sort = SortSpec(key=sort_key, descending=descending)
            return self.pipeline.query(filters, sort, page, page_size).to_dict()

        @self.mcp.tool()
        def network_graph(
            protocol: Optional[int] = None,
            min_bytes: int = 0,
            max_bytes: Optional[int] = None,
            window_minutes: Optional[int] = None,
            host: str = "",
        ) -> Dict[str, Any]:
            spec = _graph_filter(protocol, min_bytes, max_bytes, window_minutes, host)
            return self.pipeline.graph(spec).to_dict()

        @self.mcp.tool()
        def node_neighbors(
            node_id: str,
            protocol: Optional[int] = None,
            min_bytes: int = 0,
            max_bytes: Optional[int] = None,
            window_minutes: Optional[int] = None,
            host: str = "",
        ) -> Dict[str, Any]:
            spec = _graph_filter(protocol, min_bytes, max_bytes, window_minutes, host)
            graph = self.pipeline.graph(spec)
            node = graph.node(node_id)
            out = neighbors(graph, node_id).to_dict()
            out["node"] = node.to_dict(include_flows=True) if node is not None else None
            return out

        @self.mcp.tool()
        def traffic_summary(all_protocols: bool = False) -> Dict[str, Any]:
            return self.pipeline.summary(known_protocols_only=not all_protocols)

    def _register_alert_tools(self) -> None:
        @self.mcp.tool()
        def list_alerts(alert_type: Optional[str] = None, severity: Optional[str] = None) -> List[Dict[str, Any]]:
            t = AlertType(alert_type) if alert_type else None
            s = Severity(severity) if severity else None
            return [a.to_dict() for a in self.pipeline.alerts.filter(alert_type=t, severity=s)]

        @self.mcp.tool()
        def dismiss_alert(alert_id: str) -> Dict[str, Any]:
            return {"removed": self.pipeline.dismiss_alert(alert_id)}

        @self.mcp.tool()
        def clear_alerts() -> Dict[str, Any]:
            n = len(self.pipeline.alerts)
            self.pipeline.clear_alerts()
            return {"removed": n}

    def _register_lookup_tools(self) -> None:
        @self.mcp.tool()
        async def related_flows(flow: Dict[str, Any], limit: int = 20) -> List[Dict[str, Any]]:
            record = try_normalize(flow)
            if record is None:
                return []
            related = await self.history.related(record)
            return [f.to_dict() for f in related[: max(limit, 0)]]

        @self.mcp.tool()
        async def latest_flow() -> Optional[Dict[str, Any]]:
            flow = await self.history.latest()
            return flow.to_dict() if flow is not None else None

        @self.mcp.tool()
        async def geo_locate(ip: str) -> Optional[Dict[str, Any]]:
            loc = await self.geoip.lookup(ip)
            return loc.to_dict() if loc is not None else None

        @self.mcp.tool()
        async def locate_flow(flow: Dict[str, Any]) -> List[Dict[str, Any]]:
            record = try_normalize(flow)
            if record is None:
                return []
            return [loc.to_dict() for loc in await self.geoip.locate(record)]

    async def aclose(self) -> None:
        self.pipeline.stop()
        await self.history.close()
        await self.geoip.close()

    def run(self) -> None:
        self.mcp.run()
