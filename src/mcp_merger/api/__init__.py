"""
API module for MCP Merger.

Provides REST endpoints used by the desktop viewer for merging
configurations and running the Google OAuth flow.
"""

from .endpoints import MergerEndpoints
from .server import APIServer, create_api_server

__all__ = [
    "MergerEndpoints",
    "APIServer",
    "create_api_server",
]
