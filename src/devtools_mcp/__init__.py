"""devtools-mcp - namespaced result cache and dev file change tracking."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("devtools-mcp")
except PackageNotFoundError:
    # Package not installed (development mode without editable install)
    __version__ = "0.3.0"

from devtools_mcp.core.cache import CacheManager, CacheNamespace, get_cache_manager
from devtools_mcp.core.checksum import ChecksumTracker, create_dev_file_tracker

__all__ = [
    "__version__",
    "CacheManager",
    "CacheNamespace",
    "ChecksumTracker",
    "create_dev_file_tracker",
    "get_cache_manager",
]
