"""CLI module entry point.

Enables running the CLI via: python -m devtools_mcp.cli
"""

from devtools_mcp.cli.main import cli

if __name__ == "__main__":
    cli()
