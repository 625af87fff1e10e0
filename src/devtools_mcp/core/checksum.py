"""
Content-based change detection for development files.

A ChecksumTracker remembers the digest, mtime and size of a set of files and
fires registered callbacks when a file's content actually changes. The usual
consumer wires a callback to ``CacheManager.invalidate`` so that results
derived from the file (project detection, git state, ...) are dropped.

Example:
    from devtools_mcp.core.cache import CacheNamespace, get_cache_manager
    from devtools_mcp.core.checksum import ChecksumTracker

    cache = get_cache_manager()
    tracker = ChecksumTracker()
    await tracker.track(
        "go.mod", lambda path: cache.invalidate(CacheNamespace.GO_MODULES)
    )
    tracker.start_watching()
"""

import asyncio
import hashlib
import inspect
import itertools
import logging
import os
from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Set,
    Tuple,
    Union,
)

from devtools_mcp.config import ChecksumConfig

if TYPE_CHECKING:
    from devtools_mcp.core.cache import CacheManager

logger = logging.getLogger(__name__)

# Read size for streaming digests
CHUNK_SIZE = 64 * 1024

PathLike = Union[str, "os.PathLike[str]"]
ChangeCallback = Callable[[str], Union[None, Awaitable[None]]]


class ChecksumAlgorithm(str, Enum):
    """Supported digest algorithms."""

    SHA256 = "sha256"
    MD5 = "md5"


@dataclass(frozen=True)
class FileChecksum:
    """Last confirmed state of a tracked file.

    Attributes:
        path: Path as given to ``track``
        checksum: Hex digest of the file content
        mtime_ms: Modification time in milliseconds
        size: Size in bytes
    """

    path: str
    checksum: str
    mtime_ms: float
    size: int

    def matches_stat(self, stat: os.stat_result) -> bool:
        return _mtime_ms(stat) == self.mtime_ms and stat.st_size == self.size

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CallbackHandle:
    """Identifies one registered callback, for ``unregister``."""

    path: str
    id: int


def _mtime_ms(stat: os.stat_result) -> float:
    return stat.st_mtime_ns / 1_000_000


def compute_digest(path: PathLike, algorithm: str = "sha256") -> str:
    """Hash a file's content in fixed-size chunks.

    Args:
        path: File to hash
        algorithm: "sha256" or "md5"

    Returns:
        Hex digest string

    Raises:
        OSError: If the file cannot be read
    """
    hasher = hashlib.new(ChecksumAlgorithm(algorithm).value, usedforsecurity=False)
    with open(path, "rb") as f:
        while chunk := f.read(CHUNK_SIZE):
            hasher.update(chunk)
    return hasher.hexdigest()


def compute_file_checksum(path: PathLike, algorithm: str = "sha256") -> FileChecksum:
    """Stat and hash a file.

    The stat is taken before the content is read, so a write that races with
    hashing leaves a stale mtime/size behind and is picked up by the next check.

    Raises:
        OSError: If the file cannot be stat'ed or read
    """
    key = os.fspath(path)
    stat = os.stat(key)
    return FileChecksum(
        path=key,
        checksum=compute_digest(key, algorithm),
        mtime_ms=_mtime_ms(stat),
        size=stat.st_size,
    )


def _probe(path: str, stored: FileChecksum, algorithm: str) -> Optional[FileChecksum]:
    """Return fresh state for ``path``, or None when mtime and size are unchanged."""
    if stored.matches_stat(os.stat(path)):
        return None
    return compute_file_checksum(path, algorithm)


class ChecksumTracker:
    """Tracks file digests and notifies callbacks on content changes.

    Filesystem work runs in worker threads (``asyncio.to_thread``); the
    tracker's own state is only touched from the event loop.

    A change found by a direct ``has_changed()`` call is remembered and its
    callbacks are fired by the next ``check_all()``, so every change is
    delivered exactly once whichever call detected it.
    """

    def __init__(
        self,
        config: Optional[ChecksumConfig] = None,
        *,
        algorithm: Optional[str] = None,
        watch_interval_ms: Optional[int] = None,
    ):
        """Initialize the tracker.

        Args:
            config: Checksum settings (defaults to ChecksumConfig())
            algorithm: Overrides ``config.algorithm``
            watch_interval_ms: Overrides ``config.watch_interval_ms``

        Raises:
            ConfigurationError: If the resulting settings are invalid
        """
        config = config or ChecksumConfig()
        overrides: Dict[str, Any] = {}
        if algorithm is not None:
            overrides["algorithm"] = (
                algorithm.value
                if isinstance(algorithm, ChecksumAlgorithm)
                else str(algorithm).lower()
            )
        if watch_interval_ms is not None:
            overrides["watch_interval_ms"] = watch_interval_ms
        self._config = replace(config, **overrides)
        self._config.validate()

        self._checksums: Dict[str, FileChecksum] = {}
        self._callbacks: Dict[str, Dict[CallbackHandle, ChangeCallback]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._pending: Set[str] = set()
        self._handle_ids = itertools.count(1)
        self._checking = False
        self._watch_task: Optional["asyncio.Task[None]"] = None
        # Every watch loop not yet finished, including stopped ones mid-tick
        self._watch_tasks: Set["asyncio.Task[None]"] = set()
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def algorithm(self) -> str:
        return self._config.algorithm

    @property
    def config(self) -> ChecksumConfig:
        return replace(self._config)

    # =========================================================================
    # Tracking
    # =========================================================================

    async def track(
        self, path: PathLike, callback: ChangeCallback
    ) -> Optional[CallbackHandle]:
        """Start tracking a file and register a change callback.

        Tracking an already tracked file only adds the callback; its stored
        checksum is kept as is.

        Args:
            path: File to track
            callback: Called with the path when its content changes (may be async)

        Returns:
            Handle for ``unregister``, or None if the file could not be read
        """
        key = os.fspath(path)

        if key not in self._checksums:
            try:
                record = await asyncio.to_thread(
                    compute_file_checksum, key, self.algorithm
                )
            except OSError as e:
                logger.warning(
                    f"Failed to track file {key}: {e}",
                    extra={"path": key},
                )
                return None
            self._checksums.setdefault(key, record)
            logger.debug(
                f"Tracking file {key}",
                extra={"checksum": record.checksum[:12], "size": record.size},
            )

        handle = CallbackHandle(path=key, id=next(self._handle_ids))
        self._callbacks.setdefault(key, {})[handle] = callback
        return handle

    def untrack(self, path: PathLike) -> None:
        """Stop tracking a file and drop its callbacks. No-op if not tracked."""
        key = os.fspath(path)
        self._checksums.pop(key, None)
        self._callbacks.pop(key, None)
        self._locks.pop(key, None)
        self._pending.discard(key)

    def unregister(self, handle: CallbackHandle) -> bool:
        """Remove a single callback.

        Returns:
            True if the callback was registered
        """
        callbacks = self._callbacks.get(handle.path)
        if not callbacks or handle not in callbacks:
            return False
        del callbacks[handle]
        return True

    # =========================================================================
    # Change detection
    # =========================================================================

    async def _probe_with_retry(
        self, path: str, stored: FileChecksum
    ) -> Optional[FileChecksum]:
        attempts = self._config.io_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return await asyncio.to_thread(_probe, path, stored, self.algorithm)
            except OSError as e:
                if attempt >= attempts:
                    raise
                logger.debug(
                    f"Retrying checksum of {path} after error: {e}",
                    extra={"attempt": attempt},
                )
                await asyncio.sleep(self._config.io_retry_delay_ms / 1000.0)
        return None

    async def has_changed(self, path: PathLike) -> bool:
        """Check whether a file's content differs from the stored checksum.

        Untracked files always count as changed. When mtime and size match the
        stored values the file is not read. A detected change updates the
        stored checksum, so a second call returns False.

        Args:
            path: File to check

        Returns:
            True if the content changed (or the file is untracked)
        """
        key = os.fspath(path)
        if key not in self._checksums:
            return True

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            stored = self._checksums.get(key)
            if stored is None:
                return True

            try:
                current = await self._probe_with_retry(key, stored)
            except OSError as e:
                logger.warning(
                    f"Failed to check file {key}: {e}",
                    extra={"path": key},
                )
                return False

            if current is None:
                return False

            if key not in self._checksums:
                # Untracked while we were reading
                return True

            self._checksums[key] = current
            if current.checksum == stored.checksum:
                logger.debug(f"File touched without content change: {key}")
                return False

            self._pending.add(key)
            logger.info(
                f"File changed: {key}",
                extra={
                    "path": key,
                    "old_checksum": stored.checksum[:12],
                    "new_checksum": current.checksum[:12],
                },
            )
            return True

    async def check_all(self) -> List[str]:
        """Check every tracked file and fire callbacks for changed ones.

        Returns immediately with an empty list if another ``check_all`` is
        already running on this tracker.

        Returns:
            Paths whose callbacks were dispatched
        """
        if self._checking:
            logger.debug("check_all already in progress, skipping")
            return []

        self._checking = True
        try:
            paths = list(self._checksums)
            semaphore = asyncio.Semaphore(self._config.max_concurrent_checks)

            async def _bounded(path: str) -> bool:
                async with semaphore:
                    return await self.has_changed(path)

            results = await asyncio.gather(
                *(_bounded(path) for path in paths), return_exceptions=True
            )
            for path, result in zip(paths, results):
                if isinstance(result, BaseException):
                    logger.error(
                        f"Unexpected error checking {path}: {result}",
                        exc_info=result,
                    )

            changed = [path for path in self._pending if path in self._checksums]
            self._pending.clear()

            if changed:
                await asyncio.gather(*(self._trigger_callbacks(p) for p in changed))
            return changed
        finally:
            self._checking = False

    async def _trigger_callbacks(self, path: str) -> None:
        callbacks = list(self._callbacks.get(path, {}).values())
        await asyncio.gather(*(self._run_callback(path, cb) for cb in callbacks))

    async def _run_callback(self, path: str, callback: ChangeCallback) -> None:
        try:
            result = callback(path)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(
                f"Change callback failed for {path}",
                extra={"path": path},
            )

    # =========================================================================
    # Watching
    # =========================================================================

    @property
    def is_watching(self) -> bool:
        return (
            self._stop_event is not None
            and not self._stop_event.is_set()
            and self._watch_task is not None
            and not self._watch_task.done()
        )

    def start_watching(self, interval_ms: Optional[int] = None) -> None:
        """Run ``check_all`` periodically on the running event loop.

        Args:
            interval_ms: Overrides the configured watch interval

        Raises:
            RuntimeError: If called outside a running event loop
        """
        if self.is_watching:
            logger.warning("Checksum watcher already running")
            return

        loop = asyncio.get_running_loop()
        interval = interval_ms if interval_ms is not None else self._config.watch_interval_ms
        self._stop_event = asyncio.Event()
        self._watch_task = loop.create_task(
            self._watch_loop(interval / 1000.0, self._stop_event)
        )
        self._watch_tasks.add(self._watch_task)
        self._watch_task.add_done_callback(self._watch_tasks.discard)
        logger.info(
            "Started checksum watcher",
            extra={"interval_ms": interval, "tracked_files": len(self._checksums)},
        )

    async def _watch_loop(self, interval_s: float, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_s)
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self.check_all()
            except Exception:
                logger.exception("Checksum watch tick failed")

    def stop_watching(self) -> None:
        """Stop the periodic check. An in-flight ``check_all`` runs to completion."""
        if self._stop_event is None:
            return
        self._stop_event.set()
        self._stop_event = None
        logger.info("Stopped checksum watcher")

    async def aclose(self) -> None:
        """Stop watching and wait for every watch task to finish.

        This includes loops stopped earlier that are still inside a tick.
        """
        self.stop_watching()
        self._watch_task = None
        tasks = list(self._watch_tasks)
        if tasks:
            await asyncio.gather(*tasks)

    def clear(self) -> None:
        """Stop watching and forget every tracked file."""
        self.stop_watching()
        self._checksums.clear()
        self._callbacks.clear()
        self._locks.clear()
        self._pending.clear()

    # =========================================================================
    # Introspection
    # =========================================================================

    def get_tracked_files(self) -> List[str]:
        return list(self._checksums)

    def get_checksum(self, path: PathLike) -> Optional[FileChecksum]:
        return self._checksums.get(os.fspath(path))


# =============================================================================
# Dev file wiring
# =============================================================================

# File (relative to the project root) -> namespaces derived from it
DEV_FILE_NAMESPACES: Dict[str, Tuple[str, ...]] = {
    "package.json": ("projectDetection",),
    "package-lock.json": ("projectDetection",),
    "Makefile": ("projectDetection",),
    "pyproject.toml": ("projectDetection",),
    "setup.py": ("projectDetection",),
    "setup.cfg": ("projectDetection",),
    "requirements.txt": ("projectDetection",),
    "go.mod": ("projectDetection", "goModules"),
    "go.sum": ("goModules",),
    os.path.join(".git", "HEAD"): ("gitOperations",),
}


def _invalidate_namespaces(
    cache_manager: "CacheManager", namespaces: Iterable[str]
) -> ChangeCallback:
    names = tuple(namespaces)

    def _invalidate(path: str) -> None:
        for namespace in names:
            cache_manager.invalidate(namespace)
        logger.info(
            f"Invalidated cache after change to {path}",
            extra={"namespaces": list(names)},
        )

    return _invalidate


async def create_dev_file_tracker(
    cache_manager: "CacheManager",
    root: PathLike = ".",
    config: Optional[ChecksumConfig] = None,
) -> ChecksumTracker:
    """Track the common project files under ``root`` and wire them to the cache.

    Files that do not exist are skipped. The tracker is returned without
    starting the watcher.

    Args:
        cache_manager: CacheManager whose namespaces are invalidated
        root: Project root directory
        config: Checksum settings for the tracker

    Returns:
        The configured ChecksumTracker
    """
    tracker = ChecksumTracker(config)
    root_path = os.fspath(root)

    if not tracker.config.enabled:
        logger.info("Checksum tracking disabled via configuration")
        return tracker

    for relative, namespaces in DEV_FILE_NAMESPACES.items():
        path = os.path.join(root_path, relative)
        if not os.path.isfile(path):
            continue
        await tracker.track(path, _invalidate_namespaces(cache_manager, namespaces))

    logger.info(
        "Dev file tracker ready",
        extra={
            "root": os.path.abspath(root_path),
            "tracked_files": len(tracker.get_tracked_files()),
        },
    )
    return tracker


__all__ = [
    "CHUNK_SIZE",
    "CallbackHandle",
    "ChangeCallback",
    "ChecksumAlgorithm",
    "ChecksumTracker",
    "DEV_FILE_NAMESPACES",
    "FileChecksum",
    "compute_digest",
    "compute_file_checksum",
    "create_dev_file_tracker",
]
