"""MCP server exposing the discovery reconciler."""

import argparse
import logging
import os

from fastmcp import FastMCP

from tidb_discovery_tool.tools import register_discovery_tools

logger = logging.getLogger("tidb-discovery")


def create_server(non_destructive: bool = False) -> FastMCP:
    server = FastMCP(name="tidb-discovery")
    register_discovery_tools(server, non_destructive)
    return server


def main():
    parser = argparse.ArgumentParser(description="TiDB discovery reconciler MCP server")
    parser.add_argument(
        "--non-destructive",
        action="store_true",
        default=os.environ.get("MCP_NON_DESTRUCTIVE", "").lower() in ("1", "true", "yes"),
        help="Disable tools that write to the cluster",
    )
    parser.add_argument("--log-level", default=os.environ.get("MCP_LOG_LEVEL", "INFO"))
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    logger.info(f"Starting tidb-discovery MCP server (non_destructive={args.non_destructive})")
    create_server(args.non_destructive).run()


if __name__ == "__main__":
    main()
