"""Checksum commands for the devtools-mcp CLI.

Computes file digests and watches files for content changes, reusing the
same ChecksumTracker that drives cache invalidation in the server.
"""

import asyncio
import logging
import os
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

import click

from devtools_mcp.cli.logging import cli_command
from devtools_mcp.cli.output import emit, emit_error, emit_success
from devtools_mcp.cli.registry import get_server_config
from devtools_mcp.config import ChecksumConfig, ConfigurationError
from devtools_mcp.core.cache import get_cache_manager
from devtools_mcp.core.checksum import (
    DEV_FILE_NAMESPACES,
    ChecksumAlgorithm,
    ChecksumTracker,
    compute_file_checksum,
    create_dev_file_tracker,
)

logger = logging.getLogger(__name__)

ALGORITHM_CHOICES = [algorithm.value for algorithm in ChecksumAlgorithm]


@click.group("checksum")
def checksum() -> None:
    """File checksum tracking."""
    pass


@checksum.command("compute")
@click.argument("paths", nargs=-1, required=True, type=click.Path())
@click.option(
    "--algorithm",
    type=click.Choice(ALGORITHM_CHOICES, case_sensitive=False),
    help="Digest algorithm (defaults to the configured one).",
)
@click.pass_context
@cli_command("compute")
def checksum_compute_cmd(
    ctx: click.Context, paths: Tuple[str, ...], algorithm: Optional[str]
) -> None:
    """Compute checksum, mtime and size for each PATH."""
    algorithm = (algorithm or get_server_config(ctx).checksum.algorithm).lower()

    files = []
    errors: Dict[str, str] = {}
    for path in paths:
        try:
            files.append(compute_file_checksum(path, algorithm).to_dict())
        except OSError as e:
            errors[path] = str(e)

    if not files:
        emit_error(
            "None of the given files could be read",
            "FILE_UNREADABLE",
            error_type="not_found",
            details={"errors": errors},
        )

    emit_success(
        {"algorithm": algorithm, "files": files, "errors": errors},
        warnings=[f"Could not read {path}" for path in errors] or None,
    )


async def _watch(
    paths: Tuple[str, ...],
    config: ChecksumConfig,
    duration: Optional[float],
) -> Tuple[List[str], List[str]]:
    tracker = ChecksumTracker(config)
    changes: List[str] = []

    def _on_change(path: str) -> None:
        record = tracker.get_checksum(path)
        changes.append(path)
        emit(
            {
                "event": "changed",
                "path": path,
                "checksum": record.checksum if record else None,
            }
        )

    tracked = [path for path in paths if await tracker.track(path, _on_change)]
    if not tracked:
        return tracked, changes

    tracker.start_watching()
    try:
        if duration is None:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(duration)
    finally:
        await tracker.aclose()
    return tracked, changes


@checksum.command("watch")
@click.argument("paths", nargs=-1, required=True, type=click.Path())
@click.option(
    "--interval-ms",
    type=click.IntRange(min=1),
    help="Check interval in milliseconds (defaults to the configured one).",
)
@click.option(
    "--duration",
    type=click.FloatRange(min=0),
    help="Stop after this many seconds (default: run until interrupted).",
)
@click.pass_context
@cli_command("watch")
def checksum_watch_cmd(
    ctx: click.Context,
    paths: Tuple[str, ...],
    interval_ms: Optional[int],
    duration: Optional[float],
) -> None:
    """Watch PATHs and print one JSON line per content change."""
    config = get_server_config(ctx).checksum
    if interval_ms is not None:
        config = replace(config, watch_interval_ms=interval_ms)

    try:
        tracked, changes = asyncio.run(_watch(paths, config, duration))
    except KeyboardInterrupt:
        logger.info("Checksum watch interrupted")
        return
    except ConfigurationError as e:
        emit_error(str(e), "INVALID_CONFIG", error_type="validation")

    if not tracked:
        emit_error(
            "None of the given files could be tracked",
            "FILE_UNREADABLE",
            error_type="not_found",
            details={"paths": list(paths)},
        )

    emit_success(
        {
            "tracked": tracked,
            "changes": changes,
            "change_count": len(changes),
            "interval_ms": config.watch_interval_ms,
        }
    )


@checksum.command("dev-files")
@click.option(
    "--root",
    default=".",
    type=click.Path(exists=True, file_okay=False),
    help="Project root to scan.",
)
@click.pass_context
@cli_command("dev-files")
def checksum_dev_files_cmd(ctx: click.Context, root: str) -> None:
    """Show which project files would drive cache invalidation under ROOT."""
    config = get_server_config(ctx)

    async def _collect() -> List[dict]:
        tracker = await create_dev_file_tracker(
            get_cache_manager(config.cache), root, config.checksum
        )
        tracked = set(tracker.get_tracked_files())
        tracker.clear()
        return [
            {
                "file": relative,
                "namespaces": list(namespaces),
                "tracked": os.path.join(root, relative) in tracked,
            }
            for relative, namespaces in DEV_FILE_NAMESPACES.items()
        ]

    files = asyncio.run(_collect())
    emit_success(
        {
            "root": root,
            "enabled": config.checksum.enabled,
            "files": files,
        }
    )
