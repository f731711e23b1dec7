"""
API models for MCP Merger REST endpoints.

Request bodies use the camelCase keys of the web UI; response models are
serialized by alias.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class APIModel(BaseModel):
    """Base model accepting both field names and camelCase aliases."""

    model_config = ConfigDict(populate_by_name=True)


class APIResponse(APIModel):
    """Base API response model."""

    success: bool = Field(default=True, description="Request success status")
    message: str = Field(default="", description="Response message")
    data: Optional[Any] = Field(default=None, description="Response data")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Response timestamp"
    )


class ErrorResponse(APIModel):
    """API error response model."""

    success: bool = Field(default=False, description="Always false for errors")
    error: str = Field(description="Human-readable error message")
    error_code: Optional[str] = Field(default=None, alias="errorCode", description="Error code identifier")
    details: Optional[Dict[str, Any]] = Field(default=None, description="Error details")


class MergeRequest(APIModel):
    """Request model for merging MCP server configurations."""

    existing_config: Any = Field(alias="existingConfig", description="Config object or JSON text")
    new_servers: Any = Field(alias="newServers", description="Servers to add, object or JSON text")
    server_name_map: Optional[Dict[str, str]] = Field(
        default=None, alias="serverNameMap", description="Incoming name to new name"
    )


class MergeResponse(APIResponse):
    """Response model for a merge."""

    added_servers: List[str] = Field(alias="addedServers", description="Names new to the config")
    total_servers: int = Field(alias="totalServers", description="Servers in the merged config")


class ConflictResponse(APIResponse):
    """Response model listing names a merge would overwrite."""

    conflicts: List[str] = Field(default_factory=list, description="Colliding server names")


class ExtensionInfo(APIModel):
    """Summary of an installed extension."""

    id: Optional[str] = None
    name: str
    display_name: Optional[str] = Field(default=None, alias="displayName")
    version: Optional[str] = None
    description: Optional[str] = None
    path: str
    has_server: bool = Field(alias="hasServer")


class ExtensionListResponse(APIResponse):
    """Response model for extension listing."""

    extensions: List[ExtensionInfo] = Field(default_factory=list)


class ConvertExtensionsRequest(APIModel):
    """Request model for converting installed extensions."""

    extension_ids: Optional[List[str]] = Field(
        default=None, alias="extensionIds", description="Restrict to these ids or names"
    )
    share_credentials: bool = Field(default=False, alias="shareCredentials")


class ConvertedExtensionInfo(APIModel):
    """Metadata about one converted extension."""

    name: str
    requires_user_config: bool = Field(alias="requiresUserConfig")
    user_config_fields: Dict[str, Any] = Field(default_factory=dict, alias="userConfigFields")
    credentials_dir: Optional[str] = Field(default=None, alias="credentialsDir")


class ConvertExtensionsResponse(APIResponse):
    """Response model for extension conversion."""

    extensions: List[ConvertedExtensionInfo] = Field(default_factory=list)


class AuthStatusRequest(APIModel):
    """Request model for auth status scanning."""

    config: Any = Field(description="Config object or JSON text")


class AuthStatusInfo(APIModel):
    """Auth status of one server."""

    server_name: str = Field(alias="serverName")
    requires_google_auth: bool = Field(alias="requiresGoogleAuth")
    email: Optional[str] = None
    authenticated: bool
    needs_email_configuration: bool = Field(alias="needsEmailConfiguration")


class AuthStatusResponse(APIResponse):
    """Response model for auth status."""

    servers: Dict[str, AuthStatusInfo] = Field(default_factory=dict)


class AuthStartRequest(APIModel):
    """Request model for starting an authorization."""

    email: str
    server_name: str = Field(alias="serverName")


class AuthStartResponse(APIResponse):
    """Response model with the authorization URL."""

    auth_url: str = Field(alias="authUrl")


class TokenExchangeRequest(APIModel):
    """Request model for exchanging an authorization code."""

    code: str
    email: str
    redirect_uri: Optional[str] = Field(default=None, alias="redirectUri")


class TokenExchangeResponse(APIResponse):
    """Response model for a successful exchange."""

    email: str
    token_path: str = Field(alias="tokenPath")


class RevokeRequest(APIModel):
    """Request model for revocation."""

    email: str


class RevokeResponse(APIResponse):
    """Response model for revocation."""

    revoked: bool


class AccountInfo(APIModel):
    """Stored account and its flow state."""

    email: str
    state: str


class AccountListResponse(APIResponse):
    """Response model for account listing."""

    accounts: List[AccountInfo] = Field(default_factory=list)


class HealthCheckResponse(APIResponse):
    """Response model for health check."""

    status: str = Field(description="Health status")
    version: str = Field(description="API version")
    uptime_seconds: float = Field(alias="uptimeSeconds", description="API uptime in seconds")
    client_secret_configured: bool = Field(alias="clientSecretConfigured")
