"""OAuth credential persistence and flow management."""

from mcp_merger.credentials.oauth import OAuthFlowManager
from mcp_merger.credentials.store import CredentialStore

__all__ = [
    "CredentialStore",
    "OAuthFlowManager",
]
