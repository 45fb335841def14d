"""
flow_stream_mcp

Real time flow ingestion with an MCP front end.

Core ideas
1. One reconnecting stream delivers raw flow records
2. Records are normalized into FlowRecord at the edge
3. Bounded stores keep the recent flow log and alert feed
4. Graph and log views are rebuilt on demand from a store snapshot
"""

__all__ = ["core", "cli", "logging_config"]
