"""Discovery service reconciliation for TiDB clusters."""

from tidb_discovery_tool.manager import DiscoveryManager, FakeDiscoveryManager

__version__ = "0.1.0"

__all__ = ["DiscoveryManager", "FakeDiscoveryManager", "__version__"]
