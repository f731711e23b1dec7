"""
API server command for MCP Merger CLI.
"""

from typing import Optional

import click
from rich.console import Console

from mcp_merger.cli.helpers import handle_errors
from mcp_merger.utils.logging import setup_logging

console = Console(stderr=True)


def serve_commands(cli_context):
    """Add the serve command to the CLI."""

    @click.command("serve")
    @click.option("--host", "-h", help="API server host (defaults to config)")
    @click.option("--port", "-p", type=int, help="API server port (defaults to config)")
    @handle_errors
    def serve(host: Optional[str], port: Optional[int]):
        """Run the REST API used by the desktop viewer."""
        from mcp_merger.api.server import create_api_server

        config = cli_context.get_config()
        host = host or config.api.host
        port = port or config.api.port

        setup_logging(
            enabled=config.logging.enabled,
            level=config.logging.level,
            console_level=config.logging.console_level,
            log_file=config.get_log_file(),
            format_type=config.logging.format_type,
            enable_rich=config.logging.enable_rich,
            max_bytes=config.logging.max_bytes,
            backup_count=config.logging.backup_count,
            suppress_http=config.logging.suppress_http,
            force=True,
        )

        console.print("[blue]🚀 Starting MCP Merger API server...[/blue]")
        console.print(f"   Host: [cyan]{host}[/cyan]")
        console.print(f"   Port: [cyan]{port}[/cyan]")
        console.print(f"   Docs: [cyan]http://{host}:{port}/docs[/cyan]")
        console.print("[dim]Press Ctrl+C to stop[/dim]")

        create_api_server(config).run(host=host, port=port)

    return [serve]
