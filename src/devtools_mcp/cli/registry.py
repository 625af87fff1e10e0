"""Command registry for the devtools-mcp CLI."""

from typing import Optional

import click

from devtools_mcp.config import ServerConfig, get_config


def get_server_config(ctx: Optional[click.Context] = None) -> ServerConfig:
    """Get the ServerConfig stored by the root group, or the process config."""
    if ctx is not None and ctx.obj and "config" in ctx.obj:
        return ctx.obj["config"]
    return get_config()


def register_all_commands(cli: click.Group) -> None:
    """Register all command groups with the CLI.

    Command groups are imported lazily to avoid circular imports.
    """
    from devtools_mcp.cli.commands import cache, checksum

    cli.add_command(cache)
    cli.add_command(checksum)
