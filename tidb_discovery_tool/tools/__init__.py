from tidb_discovery_tool.tools.discovery import register_discovery_tools

__all__ = ["register_discovery_tools"]
