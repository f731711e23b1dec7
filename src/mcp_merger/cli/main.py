"""
Main CLI interface for MCP Merger.

Provides the command-line interface using Click with Rich output:
merging configurations, converting installed extensions and managing
Google OAuth credentials.
"""

from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from mcp_merger import __version__
from mcp_merger.cli.commands.auth import auth_commands
from mcp_merger.cli.commands.extensions import extension_commands
from mcp_merger.cli.commands.merge import merge_commands
from mcp_merger.cli.commands.serve import serve_commands
from mcp_merger.core.auth_status import AuthStatusScanner
from mcp_merger.core.extensions import ExtensionConverter, ExtensionScanner
from mcp_merger.core.merge import ConfigMergeEngine
from mcp_merger.credentials.oauth import OAuthFlowManager
from mcp_merger.credentials.store import CredentialStore
from mcp_merger.utils.config import Config, get_config, reload_config
from mcp_merger.utils.logging import get_logger, setup_logging

console = Console()
logger = get_logger(__name__)


class CLIContext:
    """CLI context for passing state between commands."""

    def __init__(self):
        self.config: Optional[Config] = None
        self.store: Optional[CredentialStore] = None
        self.oauth: Optional[OAuthFlowManager] = None

    def get_config(self) -> Config:
        """Get loaded configuration."""
        if self.config is None:
            self.config = get_config()
        return self.config

    def get_store(self) -> CredentialStore:
        """Get credential store instance."""
        if self.store is None:
            self.store = CredentialStore(self.get_config().get_credentials_dir())
        return self.store

    def get_oauth(self) -> OAuthFlowManager:
        """Get OAuth flow manager instance."""
        if self.oauth is None:
            self.oauth = OAuthFlowManager.from_config(self.get_store(), self.get_config())
        return self.oauth

    def get_engine(self) -> ConfigMergeEngine:
        """Get merge engine."""
        return ConfigMergeEngine()

    def get_converter(self) -> ExtensionConverter:
        """Get extension converter."""
        return ExtensionConverter(self.get_config().get_shared_credentials_dir())

    def get_extension_scanner(self, directory: Optional[str] = None) -> ExtensionScanner:
        """Get extension scanner for a directory, defaulting to the configured one."""
        return ExtensionScanner(directory or self.get_config().get_extensions_dir())

    def get_status_scanner(self) -> AuthStatusScanner:
        """Get auth status scanner."""
        return AuthStatusScanner(self.get_store())

    def reset(self) -> None:
        """Drop cached services."""
        self.config = None
        self.store = None
        self.oauth = None


# Global CLI context
cli_context = CLIContext()


@click.group()
@click.option(
    "--debug", "-d",
    is_flag=True,
    help="Enable debug logging"
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Enable verbose output"
)
@click.option(
    "--config", "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Configuration file (TOML)"
)
@click.version_option(version=__version__, prog_name="MCP Merger")
def cli(debug: bool, verbose: bool, config_file: Optional[Path]):
    """
    Merge MCP server configurations and manage Google credentials.

    Combine hand-written MCP configs with installed extensions, resolve
    name collisions by renaming, and authorize Google Workspace servers.
    """
    cli_context.reset()
    if config_file:
        cli_context.config = reload_config(config_files=[config_file])

    config = cli_context.get_config()
    console_level = "DEBUG" if debug else "INFO" if verbose else config.logging.console_level
    setup_logging(
        enabled=config.logging.enabled,
        level="DEBUG" if debug else config.logging.level,
        console_level=console_level,
        format_type=config.logging.format_type,
        enable_rich=config.logging.enable_rich,
        suppress_http=config.logging.suppress_http,
        force=True,
    )


def register_commands() -> None:
    """Register command groups with the main CLI."""
    for cmd in merge_commands(cli_context):
        cli.add_command(cmd)

    for cmd in extension_commands(cli_context):
        cli.add_command(cmd)

    for cmd in auth_commands(cli_context):
        cli.add_command(cmd)

    for cmd in serve_commands(cli_context):
        cli.add_command(cmd)


register_commands()


def main():
    """Main CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
