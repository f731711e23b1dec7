"""
Google authentication commands for MCP Merger CLI.
"""

from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from mcp_merger.cli.helpers import handle_errors, read_config_set, read_json_file
from mcp_merger.core.models import ClientSecret

console = Console(stderr=True)


def auth_commands(cli_context):
    """Add auth commands to the CLI."""

    @click.group("auth")
    def auth():
        """Manage Google OAuth credentials."""
        pass

    @auth.command("status")
    @click.argument("config_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
    @handle_errors
    def status(config_file: Path):
        """Show Google auth status for servers in CONFIG_FILE."""
        statuses = cli_context.get_status_scanner().scan(read_config_set(config_file))

        if not statuses:
            console.print("[dim]No Google Workspace servers in this config[/dim]")
            return

        table = Table(
            title="Google authentication",
            show_header=True,
            header_style="bold cyan",
            title_style="bold cyan",
        )
        table.add_column("Server", style="green")
        table.add_column("Email", style="blue")
        table.add_column("Status", style="white")

        for name, entry in statuses.items():
            if entry.needs_email_configuration:
                state = "⚠️ Set USER_GOOGLE_EMAIL"
            elif entry.authenticated:
                state = "✅ Authenticated"
            else:
                state = "❌ Not authenticated"
            table.add_row(name, entry.email or "-", state)

        console.print(table)

    @auth.command("start")
    @click.argument("email")
    @click.argument("server_name")
    @handle_errors
    def start(email: str, server_name: str):
        """Print the authorization URL for EMAIL."""
        url = cli_context.get_oauth().start_authorization(email, server_name)
        console.print("Open this URL to authorize:")
        click.echo(url)

    @auth.command("exchange")
    @click.argument("code")
    @click.argument("email")
    @click.option("--redirect-uri", help="Redirect URI used during authorization")
    @handle_errors
    def exchange(code: str, email: str, redirect_uri: Optional[str]):
        """Exchange an authorization CODE for EMAIL's tokens."""
        path = cli_context.get_oauth().exchange_code(code, email, redirect_uri)
        console.print(f"[green]✓[/green] Authenticated {email}", highlight=False)
        console.print(f"[dim]Token stored at {path}[/dim]", highlight=False)

    @auth.command("revoke")
    @click.argument("email")
    @handle_errors
    def revoke(email: str):
        """Forget the stored token for EMAIL."""
        if cli_context.get_oauth().revoke(email):
            console.print(f"[green]✓[/green] Revoked {email}", highlight=False)
        else:
            console.print(f"[dim]No token stored for {email}[/dim]", highlight=False)

    @auth.command("accounts")
    @handle_errors
    def accounts():
        """List accounts with stored tokens."""
        emails = cli_context.get_store().list_accounts()
        if not emails:
            console.print("[dim]No stored accounts[/dim]")
            return

        oauth = cli_context.get_oauth()
        for email in emails:
            console.print(f"{email}  [dim]{oauth.state(email).value}[/dim]", highlight=False)

    @auth.command("install-secret")
    @click.argument("secret_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
    @click.option("--account", help="Store as an account-scoped secret instead")
    @handle_errors
    def install_secret(secret_file: Path, account: Optional[str]):
        """Install an OAuth client secret downloaded from Google Cloud."""
        payload = read_json_file(secret_file)
        ClientSecret.from_payload(payload)

        store = cli_context.get_store()
        if account:
            path = store.save_client_secret(account, payload)
        else:
            path = store.save_installation_client_secret(payload)
        console.print(f"[green]✓[/green] Client secret saved to {path}", highlight=False)

    return [auth]
