"""devtools-mcp CLI - inspect the result cache and dev file checksums.

All commands emit structured JSON to stdout for reliable parsing.
"""

from devtools_mcp.cli.logging import (
    CLILogContext,
    cli_command,
    get_request_id,
    set_request_id,
)
from devtools_mcp.cli.main import cli
from devtools_mcp.cli.output import emit, emit_error, emit_success

__all__ = [
    # Entry point
    "cli",
    # Output
    "emit",
    "emit_error",
    "emit_success",
    # Logging
    "CLILogContext",
    "cli_command",
    "get_request_id",
    "set_request_id",
]
