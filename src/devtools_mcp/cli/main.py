"""devtools-mcp CLI entry point.

JSON-only output; logs go to stderr.
"""

from typing import Optional

import click

from devtools_mcp import __version__
from devtools_mcp.cli.output import emit_error
from devtools_mcp.cli.registry import register_all_commands
from devtools_mcp.config import ConfigurationError, ServerConfig, set_config


@click.group()
@click.option(
    "--config",
    "config_file",
    envvar="DEVTOOLS_MCP_CONFIG_FILE",
    type=click.Path(exists=False, dir_okay=False),
    help="Path to a devtools-mcp TOML config file",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Override the configured log level",
)
@click.version_option(__version__, prog_name="devtools-mcp")
@click.pass_context
def cli(ctx: click.Context, config_file: Optional[str], log_level: Optional[str]) -> None:
    """devtools-mcp - result cache and dev file change tracking.

    All commands output JSON for reliable parsing by AI coding tools.
    """
    ctx.ensure_object(dict)

    config = ServerConfig.from_env(config_file)
    if log_level:
        config.log_level = log_level.upper()

    try:
        config.validate()
    except ConfigurationError as e:
        emit_error(
            str(e),
            "INVALID_CONFIG",
            error_type="validation",
            remediation="Fix the [cache] / [checksum] settings or DEVTOOLS_MCP_* variables",
        )

    config.setup_logging()
    set_config(config)
    ctx.obj["config"] = config


# Register all command groups
register_all_commands(cli)


if __name__ == "__main__":
    cli()
