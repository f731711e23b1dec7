"""
MCP Merger - MCP server configuration merging and Google credential management.

Combines MCP server configuration fragments from hand-authored configs and
installed extensions, and manages the per-account OAuth credentials that
Google Workspace servers need.
"""

__version__ = "1.0.0"
__description__ = "MCP server configuration merger with Google OAuth credential management"

# Public API
from mcp_merger.core.exceptions import MCPMergerError
from mcp_merger.core.models import ServerConfigSet, ServerEntry

__all__ = [
    "__version__",
    "__description__",
    "MCPMergerError",
    "ServerConfigSet",
    "ServerEntry",
]
