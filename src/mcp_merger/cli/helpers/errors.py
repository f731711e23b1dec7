"""
Error handling utilities for CLI commands.
"""

import functools
import sys

from rich.console import Console
from rich.markup import escape

from mcp_merger.core.exceptions import MCPMergerError
from mcp_merger.utils.logging import get_logger

console = Console(stderr=True)
logger = get_logger(__name__)


def handle_errors(func):
    """Decorator to handle common CLI errors."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            console.print("\n[yellow]Operation cancelled by user[/yellow]")
            sys.exit(1)
        except MCPMergerError as e:
            console.print(f"[red]Error: {escape(e.message)}[/red]", highlight=False)
            if e.error_code:
                console.print(f"[dim]{e.error_code}[/dim]")
            sys.exit(1)
        except Exception as e:
            logger.debug("Unexpected CLI error", exc_info=True)
            console.print(f"[red]Error: {escape(str(e))}[/red]", highlight=False)
            console.print("[dim]Use --debug for more details[/dim]")
            sys.exit(1)

    return wrapper
