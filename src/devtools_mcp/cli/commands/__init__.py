"""CLI command groups."""

from devtools_mcp.cli.commands.cache import cache
from devtools_mcp.cli.commands.checksum import checksum

__all__ = [
    "cache",
    "checksum",
]
