"""Cache inspection commands for the devtools-mcp CLI."""

from typing import Optional

import click

from devtools_mcp.cli.logging import cli_command
from devtools_mcp.cli.output import emit_error, emit_success
from devtools_mcp.cli.registry import get_server_config
from devtools_mcp.core.cache import get_cache_manager


@click.group("cache")
def cache() -> None:
    """Namespaced result cache."""
    pass


@cache.command("namespaces")
@click.pass_context
@cli_command("namespaces")
def cache_namespaces_cmd(ctx: click.Context) -> None:
    """List configured namespaces with their capacity and TTL."""
    cache_config = get_server_config(ctx).cache

    namespaces = [
        {"namespace": name, "max_items": ns.max_items, "ttl_ms": ns.ttl_ms}
        for name, ns in sorted(cache_config.namespaces.items())
    ]
    emit_success(
        {
            "enabled": cache_config.enabled,
            "max_memory_mb": cache_config.max_memory_mb,
            "namespaces": namespaces,
            "default_namespace": {
                "max_items": cache_config.default_namespace.max_items,
                "ttl_ms": cache_config.default_namespace.ttl_ms,
            },
        }
    )


@cache.command("stats")
@click.option("--namespace", help="Only report this namespace.")
@click.pass_context
@cli_command("stats")
def cache_stats_cmd(ctx: click.Context, namespace: Optional[str]) -> None:
    """Show hit/miss statistics for the process cache manager.

    Statistics belong to this CLI process, which starts with an empty cache,
    so hit and miss counts are always zero. They do not reflect a running
    server.
    """
    manager = get_cache_manager(get_server_config(ctx).cache)

    if not manager.is_enabled():
        emit_success(
            {
                "enabled": False,
                "message": "Cache is disabled",
                "hint": "Set DEVTOOLS_MCP_CACHE_ENABLED=true to enable caching",
            }
        )
        return

    if namespace is not None:
        stats = manager.get_stats(namespace)
        if stats is None:
            emit_error(
                f"Unknown cache namespace: {namespace}",
                "NOT_FOUND",
                error_type="not_found",
                remediation="Run `devtools-mcp cache namespaces` to list namespaces",
            )
        emit_success({"enabled": True, "stats": [stats.to_dict()]})
        return

    emit_success(
        {
            "enabled": True,
            "stats": [stats.to_dict() for stats in manager.get_all_stats()],
            "total_memory_mb": manager.get_total_memory_usage(),
            "over_memory_budget": manager.is_over_memory_budget(),
        }
    )
