"""
Extension commands for MCP Merger CLI.

Lists installed desktop extensions and converts them into MCP server
entries that can be merged into a configuration.
"""

import json
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from mcp_merger.cli.helpers import handle_errors, write_json_file
from mcp_merger.core.models import ServerConfigSet

console = Console(stderr=True)


def extension_commands(cli_context):
    """Add extension commands to the CLI."""

    @click.group("extensions")
    def extensions():
        """Inspect and convert installed extensions."""
        pass

    @extensions.command("list")
    @click.option(
        "--dir", "directory",
        type=click.Path(file_okay=False),
        help="Extensions directory (defaults to the configured one)"
    )
    @handle_errors
    def list_extensions(directory: Optional[str]):
        """List installed extensions."""
        manifests = cli_context.get_extension_scanner(directory).scan()

        if not manifests:
            console.print("[yellow]No extensions found[/yellow]")
            return

        table = Table(
            title=f"Extensions ({len(manifests)} total)",
            show_header=True,
            header_style="bold cyan",
            title_style="bold cyan",
        )
        table.add_column("Name", style="green")
        table.add_column("Version", style="blue")
        table.add_column("Server", style="white")
        table.add_column("User config", style="yellow")

        for manifest in manifests:
            template = manifest.server.mcp_config if manifest.server else None
            has_server = bool(template and template.command)
            table.add_row(
                manifest.display_name or manifest.name,
                manifest.version or "-",
                "✅" if has_server else "❌",
                ", ".join(manifest.user_config) or "-",
            )

        console.print(table)

    @extensions.command("convert")
    @click.option(
        "--dir", "directory",
        type=click.Path(file_okay=False),
        help="Extensions directory (defaults to the configured one)"
    )
    @click.option("--id", "ids", multiple=True, help="Only convert these extension ids or names")
    @click.option(
        "--share-credentials",
        is_flag=True,
        help="Point converted servers at the shared Google credentials directory"
    )
    @click.option(
        "--output", "-o",
        type=click.Path(dir_okay=False, path_type=Path),
        help="Write the generated config to a file instead of stdout"
    )
    @handle_errors
    def convert(directory: Optional[str], ids: Tuple[str, ...], share_credentials: bool, output: Optional[Path]):
        """Convert installed extensions into an mcpServers config."""
        manifests = cli_context.get_extension_scanner(directory).scan()
        if ids:
            wanted = set(ids)
            manifests = [m for m in manifests if m.id in wanted or m.name in wanted]

        servers, converted = cli_context.get_converter().convert_all(manifests, share_credentials)
        payload = ServerConfigSet(wrapped=True, servers=servers.servers).to_payload()

        if output:
            write_json_file(output, payload)
            console.print(f"[green]✓[/green] Wrote {len(converted)} servers to [cyan]{output}[/cyan]")
        else:
            click.echo(json.dumps(payload, indent=2, ensure_ascii=False))

        for item in converted:
            if item.user_config_fields:
                fields = ", ".join(item.user_config_fields)
                console.print(
                    f"[yellow]⚠[/yellow] {item.name}: fill in {fields} before use",
                    highlight=False,
                )

    return [extensions]
