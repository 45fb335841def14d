from __future__ import annotations
from flow_stream_mcp.core.config import Settings
from flow_stream_mcp.core.server import FlowMCPServer
from flow_stream_mcp.logging_config import setup_logging


def main() -> None:
    """
    Read FLOW_* settings from the environment and serve the MCP tools.

    Example:
      export FLOW_STREAM_URL=ws://127.0.0.1:8888/flows/ws
      export FLOW_API_URL=http://127.0.0.1:8888
      python -m flow_stream_mcp.cli.run_server

    The stream is started with the start_stream tool.
    """
    settings = Settings.from_env()
    setup_logging(settings.log_level)

    server = FlowMCPServer(settings=settings)
    server.run()


if __name__ == "__main__":
    main()
