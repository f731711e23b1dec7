"""
REST API endpoint handlers for MCP Merger.

Handlers are synchronous; FastAPI runs them in its worker thread pool.
Domain errors propagate as MCPMergerError and are turned into JSON error
responses by the server's exception handlers.
"""

import json
import time
from typing import Any, List, Optional

from mcp_merger import __version__
from mcp_merger.api.models import (
    AccountInfo, AccountListResponse, APIResponse, AuthStartRequest, AuthStartResponse,
    AuthStatusInfo, AuthStatusRequest, AuthStatusResponse, ConflictResponse,
    ConvertedExtensionInfo, ConvertExtensionsRequest, ConvertExtensionsResponse,
    ExtensionInfo, ExtensionListResponse, HealthCheckResponse, MergeRequest,
    MergeResponse, RevokeRequest, RevokeResponse, TokenExchangeRequest,
    TokenExchangeResponse,
)
from mcp_merger.core.auth_status import AuthStatusScanner
from mcp_merger.core.exceptions import InvalidInput
from mcp_merger.core.extensions import ExtensionConverter, ExtensionScanner
from mcp_merger.core.merge import ConfigMergeEngine
from mcp_merger.core.models import ClientSecret, ServerConfigSet
from mcp_merger.credentials.oauth import OAuthFlowManager
from mcp_merger.credentials.store import CredentialStore
from mcp_merger.utils.config import Config, get_config
from mcp_merger.utils.logging import get_logger

logger = get_logger(__name__)


def parse_config_payload(value: Any, label: str) -> ServerConfigSet:
    """
    Resolve a request value (object or JSON text) into a ServerConfigSet.

    Raises:
        InvalidInput: If the value is missing, not JSON, or malformed
    """
    if value is None or value == "":
        raise InvalidInput(f"{label} is required")

    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            raise InvalidInput(f"{label} is not valid JSON: {e.msg}") from e

    return ServerConfigSet.from_payload(value)


class MergerEndpoints:
    """API endpoints controller."""

    def __init__(
        self,
        config: Optional[Config] = None,
        store: Optional[CredentialStore] = None,
        oauth: Optional[OAuthFlowManager] = None,
    ):
        """Initialize API endpoints."""
        self.config = config or get_config()
        self.store = store or CredentialStore(self.config.get_credentials_dir())
        self.oauth = oauth or OAuthFlowManager.from_config(self.store, self.config)

        self.engine = ConfigMergeEngine()
        self.converter = ExtensionConverter(self.config.get_shared_credentials_dir())
        self.scanner = AuthStatusScanner(self.store)
        self.extension_scanner = ExtensionScanner(self.config.get_extensions_dir())

        self._start_time = time.time()
        logger.info("API endpoints initialized")

    def health_check(self) -> HealthCheckResponse:
        """Health check endpoint."""
        return HealthCheckResponse(
            message="API is healthy",
            status="healthy",
            version=__version__,
            uptime_seconds=time.time() - self._start_time,
            client_secret_configured=self.store.has_client_secret(),
        )

    def merge(self, request: MergeRequest) -> MergeResponse:
        """Merge new servers into an existing configuration."""
        existing = parse_config_payload(request.existing_config, "existingConfig")
        incoming = parse_config_payload(request.new_servers, "newServers")

        result = self.engine.merge(existing, incoming, request.server_name_map)

        return MergeResponse(
            message=f"Added {len(result.added_names)} servers",
            data=result.merged.to_payload(),
            added_servers=result.added_names,
            total_servers=result.total_servers,
        )

    def conflicts(self, request: MergeRequest) -> ConflictResponse:
        """List incoming names that would overwrite existing servers."""
        existing = parse_config_payload(request.existing_config, "existingConfig")
        incoming = parse_config_payload(request.new_servers, "newServers")

        conflicts = self.engine.find_conflicts(existing, incoming, request.server_name_map)
        return ConflictResponse(
            message=f"{len(conflicts)} conflicting servers",
            conflicts=conflicts,
        )

    def list_extensions(self) -> ExtensionListResponse:
        """List installed extensions."""
        manifests = self.extension_scanner.scan()
        extensions = [
            ExtensionInfo(
                id=m.id,
                name=m.name,
                display_name=m.display_name,
                version=m.version,
                description=m.description,
                path=m.path,
                has_server=bool(m.server and m.server.mcp_config and m.server.mcp_config.command),
            )
            for m in manifests
        ]
        return ExtensionListResponse(
            message=f"Found {len(extensions)} extensions",
            extensions=extensions,
        )

    def convert_extensions(self, request: ConvertExtensionsRequest) -> ConvertExtensionsResponse:
        """Convert installed extensions into an mcpServers config."""
        manifests = self.extension_scanner.scan()
        if request.extension_ids:
            wanted = set(request.extension_ids)
            manifests = [m for m in manifests if m.id in wanted or m.name in wanted]

        servers, converted = self.converter.convert_all(manifests, request.share_credentials)
        servers = ServerConfigSet(wrapped=True, servers=servers.servers)

        return ConvertExtensionsResponse(
            message=f"Converted {len(converted)} extensions",
            data=servers.to_payload(),
            extensions=[
                ConvertedExtensionInfo(
                    name=c.name,
                    requires_user_config=c.requires_user_config,
                    user_config_fields=c.user_config_fields,
                    credentials_dir=c.credentials_dir,
                )
                for c in converted
            ],
        )

    def auth_status(self, request: AuthStatusRequest) -> AuthStatusResponse:
        """Report Google auth status for the servers of a config."""
        servers = parse_config_payload(request.config, "config")
        statuses = self.scanner.scan(servers)

        return AuthStatusResponse(
            message=f"{len(statuses)} servers use Google authentication",
            servers={
                name: AuthStatusInfo(**status.model_dump())
                for name, status in statuses.items()
            },
        )

    def start_authorization(self, request: AuthStartRequest) -> AuthStartResponse:
        """Begin the OAuth flow for an account."""
        url = self.oauth.start_authorization(request.email, request.server_name)
        return AuthStartResponse(message="Open the URL to authorize", auth_url=url)

    def exchange_code(self, request: TokenExchangeRequest) -> TokenExchangeResponse:
        """Exchange an authorization code for tokens."""
        path = self.oauth.exchange_code(request.code, request.email, request.redirect_uri)
        return TokenExchangeResponse(
            message=f"Authenticated {request.email}",
            email=request.email,
            token_path=str(path),
        )

    def oauth_callback(self, code: str, state: str) -> TokenExchangeResponse:
        """Complete a flow from the provider redirect."""
        email, server_name, path = self.oauth.complete_authorization(code, state)
        return TokenExchangeResponse(
            message=f"Authenticated {email} for {server_name}",
            email=email,
            token_path=str(path),
        )

    def revoke(self, request: RevokeRequest) -> RevokeResponse:
        """Revoke the stored token of an account."""
        revoked = self.oauth.revoke(request.email)
        message = f"Revoked {request.email}" if revoked else f"No token stored for {request.email}"
        return RevokeResponse(message=message, revoked=revoked)

    def list_accounts(self) -> AccountListResponse:
        """List accounts with stored tokens."""
        accounts: List[AccountInfo] = [
            AccountInfo(email=email, state=self.oauth.state(email).value)
            for email in self.store.list_accounts()
        ]
        return AccountListResponse(message=f"{len(accounts)} accounts", accounts=accounts)

    def save_client_secret(self, payload: Any, account_id: Optional[str] = None) -> APIResponse:
        """Store a client secret for an account, or for the installation."""
        if not isinstance(payload, dict):
            raise InvalidInput("Client secret must be a JSON object")

        if account_id is None:
            ClientSecret.from_payload(payload)
            path = self.store.save_installation_client_secret(payload)
        else:
            path = self.store.save_client_secret(account_id, payload)

        return APIResponse(message="Client secret saved", data={"path": str(path)})
