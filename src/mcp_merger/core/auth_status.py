"""
Google authentication status of configured servers.

Servers whose name mentions a Google Workspace product are checked against
the credential store; all other servers are left out of the result.
"""

from typing import Dict, Optional, Sequence

from mcp_merger.core.models import AuthStatusEntry, ServerConfigSet, ServerEntry
from mcp_merger.credentials.store import CredentialStore
from mcp_merger.utils.logging import get_logger

logger = get_logger(__name__)

GOOGLE_KEYWORDS = ("workspace", "google", "gmail", "drive", "sheets", "docs", "calendar")

EMAIL_ENV_KEYS = ("USER_GOOGLE_EMAIL", "GOOGLE_ACCOUNT_EMAIL")


class AuthStatusScanner:
    """Reports which servers need Google auth and whether they have it."""

    def __init__(self, store: CredentialStore, keywords: Sequence[str] = GOOGLE_KEYWORDS):
        self.store = store
        self.keywords = tuple(k.lower() for k in keywords)

    def requires_google_auth(self, server_name: str) -> bool:
        """Check a server name against the Google keyword set."""
        lowered = server_name.lower()
        return any(keyword in lowered for keyword in self.keywords)

    def scan(self, servers: ServerConfigSet) -> Dict[str, AuthStatusEntry]:
        """
        Derive the auth status of every Google-related server.

        Args:
            servers: Configuration to inspect

        Returns:
            Mapping of server name to status, Google-related servers only

        Raises:
            TokenCorrupt: If a referenced token file is malformed
        """
        statuses: Dict[str, AuthStatusEntry] = {}

        for name, entry in servers.servers.items():
            if not self.requires_google_auth(name):
                continue

            email = self._account_email(entry)
            if email is None:
                statuses[name] = AuthStatusEntry(
                    server_name=name,
                    needs_email_configuration=True,
                )
                continue

            token = self.store.load_token(email)
            statuses[name] = AuthStatusEntry(
                server_name=name,
                email=email,
                authenticated=token is not None and token.authenticated,
            )

        logger.debug(f"Auth status computed for {len(statuses)} of {len(servers)} servers")
        return statuses

    def _account_email(self, entry: ServerEntry) -> Optional[str]:
        env = entry.env or {}
        for key in EMAIL_ENV_KEYS:
            value = env.get(key)
            if value and value.strip():
                return value.strip()
        return None
