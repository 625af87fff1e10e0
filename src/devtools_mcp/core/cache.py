"""In-process namespaced cache for expensive tool results.

Each namespace is an independent LRU store with its own capacity and TTL,
so that e.g. command availability (rarely changes) and git status (changes
constantly) can share one manager with very different freshness rules.

Example:
    from devtools_mcp.core.cache import CacheNamespace, get_cache_manager

    cache = get_cache_manager()
    info = cache.get(CacheNamespace.PROJECT_DETECTION, key)
    if info is None:
        info = detect_project(root)
        cache.set(CacheNamespace.PROJECT_DETECTION, key, info)
"""

import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar, Union

from devtools_mcp.config import CacheConfig, NamespaceConfig, copy_cache_config

logger = logging.getLogger(__name__)

V = TypeVar("V")

# Entries sampled when estimating memory usage of a namespace
_MEMORY_SAMPLE_SIZE = 10
_ENTRY_OVERHEAD_BYTES = 100
_UNSERIALIZABLE_ENTRY_BYTES = 1024


class CacheNamespace(str, Enum):
    """Known cache namespaces.

    Plain strings are still accepted anywhere a namespace is expected; they are
    created on first use with the default namespace settings.
    """

    PROJECT_DETECTION = "projectDetection"
    GIT_OPERATIONS = "gitOperations"
    GO_MODULES = "goModules"
    FILE_LISTS = "fileLists"
    COMMAND_AVAILABILITY = "commandAvailability"
    TEST_RESULTS = "testResults"
    NODE_MODULES = "nodeModules"


NamespaceName = Union[CacheNamespace, str]


def _namespace_name(namespace: NamespaceName) -> str:
    if isinstance(namespace, CacheNamespace):
        return namespace.value
    return str(namespace)


@dataclass
class CacheEntry(Generic[V]):
    """A cached value and its timing metadata (monotonic seconds)."""

    key: str
    value: V
    inserted_at: float
    expires_at: float
    last_accessed_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class CacheStats:
    """Point-in-time statistics for one namespace."""

    namespace: str
    hits: int
    misses: int
    hit_rate: float
    size: int
    max_size: int
    memory_estimate_mb: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class NamespacedCache(Generic[V]):
    """Bounded, TTL-aware LRU store for a single namespace.

    Entries are kept in access order; the first entry of the ordered map is
    always the least recently used one. Expired entries are dropped lazily when
    they are next looked up.

    All operations take an internal lock, so a single namespace may be shared
    between threads.
    """

    def __init__(
        self,
        name: str,
        capacity: int,
        ttl_ms: int,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the namespace store.

        Args:
            name: Namespace name (used in logs and stats)
            capacity: Maximum number of entries; 0 turns ``set`` into a no-op
            ttl_ms: Entry lifetime in milliseconds; 0 makes every entry stale
            clock: Monotonic time source in seconds
        """
        self.name = name
        self.capacity = capacity
        self.ttl_ms = ttl_ms
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry[V]]" = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str) -> Optional[V]:
        """Look up ``key``, promoting it to most recently used on a hit.

        Returns:
            The cached value, or None when missing or expired
        """
        return self.lookup(key)[1]

    def lookup(self, key: str) -> Tuple[bool, Optional[V]]:
        """Like ``get``, but also report whether the lookup was a hit.

        Distinguishes a cached None from a miss.
        """
        with self._lock:
            entry = self._entries.get(key)
            now = self._clock()

            if entry is None:
                self._misses += 1
                return False, None

            if entry.is_expired(now):
                del self._entries[key]
                self._misses += 1
                logger.debug(
                    f"Cache eviction in {self.name}",
                    extra={"key": key, "reason": "expire"},
                )
                return False, None

            entry.last_accessed_at = now
            self._entries.move_to_end(key)
            self._hits += 1
            return True, entry.value

    def set(self, key: str, value: V) -> None:
        """Store ``value`` under ``key`` with a fresh TTL."""
        if self.capacity <= 0:
            return

        with self._lock:
            now = self._clock()
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.capacity:
                evicted_key, evicted = self._entries.popitem(last=False)
                logger.debug(
                    f"Cache eviction in {self.name}",
                    extra={
                        "key": evicted_key,
                        "reason": "evict",
                        "inserted_at": evicted.inserted_at,
                    },
                )

            self._entries[key] = CacheEntry(
                key=key,
                value=value,
                inserted_at=now,
                expires_at=now + self.ttl_ms / 1000.0,
                last_accessed_at=now,
            )

    def has(self, key: str) -> bool:
        """Check for a live entry without touching recency or hit counters."""
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired(self._clock())

    def invalidate(self, key: Optional[str] = None) -> None:
        """Remove one entry, or every entry when ``key`` is None."""
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def memory_estimate_mb(self) -> float:
        """Estimate memory held by this namespace from a sample of entries."""
        with self._lock:
            size = len(self._entries)
            sample = [
                entry
                for _, entry in zip(range(_MEMORY_SAMPLE_SIZE), self._entries.values())
            ]

        total_bytes = 0
        for entry in sample:
            try:
                value_bytes = len(json.dumps(entry.value).encode("utf-8"))
                total_bytes += (
                    len(entry.key.encode("utf-8")) + value_bytes + _ENTRY_OVERHEAD_BYTES
                )
            except (TypeError, ValueError):
                total_bytes += _UNSERIALIZABLE_ENTRY_BYTES

        avg_entry_size = (
            total_bytes / len(sample) if sample else _UNSERIALIZABLE_ENTRY_BYTES
        )
        return (size * avg_entry_size) / (1024 * 1024)

    def hit_rate(self) -> float:
        with self._lock:
            total = self._hits + self._misses
            return 0.0 if total == 0 else self._hits / total

    def stats(self) -> CacheStats:
        """Snapshot hit/miss counters and size."""
        memory = self.memory_estimate_mb()
        with self._lock:
            total = self._hits + self._misses
            return CacheStats(
                namespace=self.name,
                hits=self._hits,
                misses=self._misses,
                hit_rate=0.0 if total == 0 else self._hits / total,
                size=len(self._entries),
                max_size=self.capacity,
                memory_estimate_mb=memory,
            )


class CacheManager:
    """Entry point over all cache namespaces.

    Configuration is fixed at construction. Most code uses the process-wide
    instance from ``get_cache_manager()``; tests and embedders can construct
    their own and pass it where needed.

    Example:
        >>> manager = CacheManager(CacheConfig.with_overrides(
        ...     {"fileLists": NamespaceConfig(max_items=2, ttl_ms=1000)}))
        >>> manager.set("fileLists", "a", 1)
        >>> manager.get("fileLists", "a")
        1
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the manager and its configured namespaces.

        Args:
            config: Cache configuration (defaults to built-in namespaces)
            clock: Monotonic time source shared by every namespace

        Raises:
            ConfigurationError: If any configured value is invalid
        """
        self._config = copy_cache_config(config) if config is not None else CacheConfig()
        self._config.validate()
        self._clock = clock
        self._caches: Dict[str, NamespacedCache[Any]] = {}
        self._lock = threading.Lock()

        if not self._config.enabled:
            logger.info("CacheManager: Caching disabled via configuration")
            return

        for name, ns_config in self._config.namespaces.items():
            self._caches[name] = self._build_namespace(name, ns_config)
            logger.debug(
                f"CacheManager: Initialized namespace '{name}'",
                extra={"max_items": ns_config.max_items, "ttl_ms": ns_config.ttl_ms},
            )

        logger.info(
            "CacheManager: Initialized",
            extra={
                "max_memory_mb": self._config.max_memory_mb,
                "namespaces": list(self._caches),
            },
        )

    def _build_namespace(self, name: str, ns_config: NamespaceConfig) -> NamespacedCache[Any]:
        return NamespacedCache(
            name, ns_config.max_items, ns_config.ttl_ms, clock=self._clock
        )

    def _namespace(self, namespace: NamespaceName, create: bool = True) -> Optional[NamespacedCache[Any]]:
        name = _namespace_name(namespace)
        cache = self._caches.get(name)
        if cache is not None or not create:
            return cache

        with self._lock:
            cache = self._caches.get(name)
            if cache is None:
                ns_config = self._config.namespace_config(name)
                cache = self._build_namespace(name, ns_config)
                self._caches[name] = cache
                logger.debug(
                    f"CacheManager: Created namespace '{name}' on first use",
                    extra={"max_items": ns_config.max_items, "ttl_ms": ns_config.ttl_ms},
                )
        return cache

    def get(self, namespace: NamespaceName, key: str) -> Optional[Any]:
        """Get a value from a namespace.

        Returns:
            The cached value, or None on a miss (or when caching is disabled)
        """
        if not self._config.enabled:
            return None

        cache = self._namespace(namespace)
        hit, value = cache.lookup(key)
        logger.debug(
            f"Cache {'HIT' if hit else 'MISS'}: {cache.name}:{key}",
            extra={"hit_rate": cache.hit_rate()},
        )
        return value

    def set(self, namespace: NamespaceName, key: str, value: Any) -> None:
        """Store a value in a namespace."""
        if not self._config.enabled:
            return

        cache = self._namespace(namespace)
        cache.set(key, value)
        logger.debug(
            f"Cache SET: {cache.name}:{key}",
            extra={"size": len(cache), "max_size": cache.capacity},
        )

    def has(self, namespace: NamespaceName, key: str) -> bool:
        """Check whether a live entry exists, without counting a hit or miss."""
        if not self._config.enabled:
            return False

        cache = self._namespace(namespace, create=False)
        return cache is not None and cache.has(key)

    def invalidate(self, namespace: NamespaceName, key: Optional[str] = None) -> None:
        """Drop one key, or every entry of ``namespace`` when ``key`` is None."""
        if not self._config.enabled:
            return

        cache = self._namespace(namespace, create=False)
        if cache is None:
            logger.debug(
                f"CacheManager: Nothing to invalidate in unused namespace "
                f"'{_namespace_name(namespace)}'"
            )
            return

        cache.invalidate(key)
        if key is None:
            logger.debug(f"Cache INVALIDATE ALL: {cache.name}")
        else:
            logger.debug(f"Cache INVALIDATE: {cache.name}:{key}")

    def clear(self, namespace: NamespaceName) -> None:
        """Clear every entry in a namespace."""
        self.invalidate(namespace)

    def clear_all(self) -> None:
        """Clear every known namespace."""
        if not self._config.enabled:
            return

        for cache in list(self._caches.values()):
            cache.invalidate()
        logger.info("CacheManager: Cleared all caches")

    def get_stats(self, namespace: NamespaceName) -> Optional[CacheStats]:
        """Get statistics for a namespace, or None if it has never been used."""
        if not self._config.enabled:
            return None

        cache = self._namespace(namespace, create=False)
        return cache.stats() if cache is not None else None

    def get_all_stats(self) -> List[CacheStats]:
        """Get statistics for every known namespace."""
        if not self._config.enabled:
            return []
        return [cache.stats() for cache in list(self._caches.values())]

    def get_total_memory_usage(self) -> float:
        """Estimated memory used by all namespaces, in MB."""
        if not self._config.enabled:
            return 0.0
        return sum(cache.memory_estimate_mb() for cache in list(self._caches.values()))

    def is_over_memory_budget(self) -> bool:
        """Compare the memory estimate with the advisory ``max_memory_mb``.

        Nothing is evicted on this basis; callers decide what to do.
        """
        usage = self.get_total_memory_usage()
        if usage > self._config.max_memory_mb:
            logger.warning(
                "CacheManager: Estimated memory above budget",
                extra={
                    "usage_mb": round(usage, 3),
                    "max_memory_mb": self._config.max_memory_mb,
                },
            )
            return True
        return False

    def namespaces(self) -> List[str]:
        """Names of every namespace created so far."""
        return list(self._caches)

    def is_enabled(self) -> bool:
        return self._config.enabled

    def get_config(self) -> CacheConfig:
        """Get a copy of the configuration this manager was built with."""
        return copy_cache_config(self._config)


# Process-wide instance
_instance: Optional[CacheManager] = None
_instance_lock = threading.Lock()


def get_cache_manager(config: Optional[CacheConfig] = None) -> CacheManager:
    """Get the process-wide cache manager, creating it on first call.

    Only the first call's ``config`` is used; later calls return the existing
    instance unchanged.

    Args:
        config: Configuration for the first construction

    Returns:
        The shared CacheManager

    Raises:
        ConfigurationError: If the first construction receives invalid config
    """
    global _instance

    if _instance is not None:
        if config is not None:
            logger.debug("CacheManager already initialized; ignoring new config")
        return _instance

    with _instance_lock:
        if _instance is None:
            _instance = CacheManager(config)
    return _instance


def reset_cache_manager() -> None:
    """Discard the process-wide cache manager and everything it holds.

    The next ``get_cache_manager()`` call builds a fresh instance.
    """
    global _instance

    with _instance_lock:
        if _instance is not None:
            _instance.clear_all()
        _instance = None


__all__ = [
    "CacheEntry",
    "CacheManager",
    "CacheNamespace",
    "CacheStats",
    "NamespacedCache",
    "get_cache_manager",
    "reset_cache_manager",
]
