"""Core cache and checksum tracking for devtools-mcp."""

from devtools_mcp.core.cache import (
    CacheEntry,
    CacheManager,
    CacheNamespace,
    CacheStats,
    NamespacedCache,
    get_cache_manager,
    reset_cache_manager,
)

from devtools_mcp.core.cache_keys import (
    build_cache_key,
    build_command_key,
    build_project_key,
    is_cache_key_valid,
)

from devtools_mcp.core.checksum import (
    CallbackHandle,
    ChecksumAlgorithm,
    ChecksumTracker,
    DEV_FILE_NAMESPACES,
    FileChecksum,
    create_dev_file_tracker,
)

__all__ = [
    "CacheEntry",
    "CacheManager",
    "CacheNamespace",
    "CacheStats",
    "NamespacedCache",
    "get_cache_manager",
    "reset_cache_manager",
    "build_cache_key",
    "build_command_key",
    "build_project_key",
    "is_cache_key_valid",
    "CallbackHandle",
    "ChecksumAlgorithm",
    "ChecksumTracker",
    "DEV_FILE_NAMESPACES",
    "FileChecksum",
    "create_dev_file_tracker",
]
