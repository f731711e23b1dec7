"""
Configuration merge commands for MCP Merger CLI.
"""

import json
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from mcp_merger.cli.helpers import (
    handle_errors, parse_rename_options, read_config_set, write_json_file
)

console = Console(stderr=True)


def merge_commands(cli_context):
    """Add merge commands to the CLI."""

    @click.command("merge")
    @click.argument("existing", type=click.Path(exists=True, dir_okay=False, path_type=Path))
    @click.argument("incoming", type=click.Path(exists=True, dir_okay=False, path_type=Path))
    @click.option(
        "--rename", "-r",
        multiple=True,
        help="Rename an incoming server as OLD=NEW (can be used multiple times)"
    )
    @click.option(
        "--output", "-o",
        type=click.Path(dir_okay=False, path_type=Path),
        help="Write the merged config to a file instead of stdout"
    )
    @click.option("--in-place", is_flag=True, help="Overwrite EXISTING with the result")
    @handle_errors
    def merge(
        existing: Path,
        incoming: Path,
        rename: Tuple[str, ...],
        output: Optional[Path],
        in_place: bool,
    ):
        """Merge the servers of INCOMING into EXISTING.

        The result keeps the shape of EXISTING: if it wraps its servers in
        "mcpServers", so does the output.
        """
        engine = cli_context.get_engine()
        result = engine.merge(
            read_config_set(existing),
            read_config_set(incoming),
            parse_rename_options(rename),
        )

        payload = result.merged.to_payload()
        target = existing if in_place else output
        if target:
            write_json_file(target, payload)
            console.print(f"[green]✓[/green] Wrote merged config to [cyan]{target}[/cyan]")
        else:
            click.echo(json.dumps(payload, indent=2, ensure_ascii=False))

        added = ", ".join(result.added_names) or "none"
        console.print(
            f"[dim]Added: {added} | Total servers: {result.total_servers}[/dim]",
            highlight=False,
        )

    @click.command("conflicts")
    @click.argument("existing", type=click.Path(exists=True, dir_okay=False, path_type=Path))
    @click.argument("incoming", type=click.Path(exists=True, dir_okay=False, path_type=Path))
    @click.option("--rename", "-r", multiple=True, help="Rename an incoming server as OLD=NEW")
    @handle_errors
    def conflicts(existing: Path, incoming: Path, rename: Tuple[str, ...]):
        """Show INCOMING servers that would overwrite servers in EXISTING."""
        engine = cli_context.get_engine()
        existing_set = read_config_set(existing)
        names = engine.find_conflicts(
            existing_set,
            read_config_set(incoming),
            parse_rename_options(rename),
        )

        if not names:
            console.print("[green]No conflicting server names[/green]")
            return

        table = Table(
            title=f"Conflicting servers ({len(names)})",
            show_header=True,
            header_style="bold cyan",
        )
        table.add_column("Name", style="yellow")
        table.add_column("Existing command", style="dim")
        for name in names:
            table.add_row(name, existing_set.servers[name].command)

        console.print(table)
        console.print("[dim]💡 Use --rename OLD=NEW with 'merge' to keep both[/dim]")

    return [merge, conflicts]
