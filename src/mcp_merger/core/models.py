"""
Data models for MCP Merger.

Defines Pydantic models for MCP server entries, server configuration sets,
extension manifests and OAuth credential records.
"""

import copy
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from mcp_merger.core.exceptions import ClientSecretInvalid, InvalidInput

# Container key used by Claude-style configuration files
MCP_SERVERS_KEY = "mcpServers"


class ServerEntry(BaseModel):
    """A runnable MCP server descriptor.

    Keys beyond ``command``/``args``/``env`` (``cwd``, ``type`` ...) are kept
    as extra fields so that merging never drops information from a config.
    """

    model_config = ConfigDict(extra="allow")

    command: str = Field(description="Command to run the server")
    args: List[Any] = Field(default_factory=list, description="Command arguments")
    env: Optional[Dict[str, str]] = Field(default=None, description="Environment variables")

    @field_validator("command")
    @classmethod
    def validate_command(cls, v: str) -> str:
        """Validate server command."""
        if not v.strip():
            raise ValueError("Server command cannot be empty")
        return v

    def to_config(self) -> Dict[str, Any]:
        """Convert to MCP configuration format."""
        config: Dict[str, Any] = {
            "command": self.command,
            "args": list(self.args),
        }

        if self.env is not None:
            config["env"] = dict(self.env)

        for key, value in (self.model_extra or {}).items():
            config[key] = copy.deepcopy(value)

        return config


class ServerConfigSet(BaseModel):
    """Named MCP server entries, optionally wrapped in ``mcpServers``.

    ``wrapped`` is resolved once when a payload enters the system and is
    re-emitted by :meth:`to_payload`, so the output mirrors the input shape.
    """

    wrapped: bool = Field(default=False, description="Payload used the mcpServers container key")
    servers: Dict[str, ServerEntry] = Field(default_factory=dict, description="Server name to entry")

    @classmethod
    def from_payload(cls, data: Any) -> "ServerConfigSet":
        """
        Build a config set from a decoded JSON payload.

        Args:
            data: Either ``{"mcpServers": {...}}`` or a bare name to entry mapping

        Returns:
            Parsed configuration set

        Raises:
            InvalidInput: If the payload is not a mapping of name to entry
        """
        if not isinstance(data, Mapping):
            raise InvalidInput(
                f"Server configuration must be an object, got {type(data).__name__}"
            )

        wrapped = isinstance(data.get(MCP_SERVERS_KEY), Mapping)
        raw_servers = data[MCP_SERVERS_KEY] if wrapped else data

        servers: Dict[str, ServerEntry] = {}
        for name, entry in raw_servers.items():
            if not isinstance(name, str) or not name:
                raise InvalidInput(f"Invalid server name: {name!r}")
            if not isinstance(entry, Mapping):
                raise InvalidInput(
                    f"Server '{name}' must be an object, got {type(entry).__name__}",
                    details={"server": name},
                )
            try:
                servers[name] = ServerEntry.model_validate(copy.deepcopy(dict(entry)))
            except ValidationError as e:
                raise InvalidInput(
                    f"Server '{name}' is malformed: {e.errors()[0]['msg']}",
                    details={"server": name, "errors": e.errors(include_url=False)},
                ) from e

        return cls(wrapped=wrapped, servers=servers)

    def to_payload(self) -> Dict[str, Any]:
        """Serialize back to the shape this set was read from."""
        servers = {name: entry.to_config() for name, entry in self.servers.items()}
        if self.wrapped:
            return {MCP_SERVERS_KEY: servers}
        return servers

    def names(self) -> List[str]:
        """Server names in insertion order."""
        return list(self.servers)

    def __len__(self) -> int:
        return len(self.servers)


class MergeResult(BaseModel):
    """Outcome of merging two configuration sets."""

    merged: ServerConfigSet
    added_names: List[str] = Field(default_factory=list, description="Names new to the existing set")

    @property
    def total_servers(self) -> int:
        """Number of servers in the merged set."""
        return len(self.merged)


class McpConfigTemplate(BaseModel):
    """The ``server.mcp_config`` block of an extension manifest."""

    model_config = ConfigDict(extra="allow")

    command: Optional[str] = None
    args: List[Any] = Field(default_factory=list)
    env: Dict[str, Any] = Field(default_factory=dict)


class ExtensionServerSpec(BaseModel):
    """The ``server`` block of an extension manifest."""

    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    entry_point: Optional[str] = None
    mcp_config: Optional[McpConfigTemplate] = None


class ExtensionManifest(BaseModel):
    """Installed desktop extension manifest (``manifest.json``)."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Optional[str] = None
    name: str = Field(description="Extension name")
    display_name: Optional[str] = Field(default=None, alias="displayName")
    version: Optional[str] = None
    description: Optional[str] = None
    author: Any = None
    path: str = Field(default="", description="Directory the extension is installed in")
    server: Optional[ExtensionServerSpec] = None
    tools: List[Any] = Field(default_factory=list)
    user_config: Dict[str, Any] = Field(default_factory=dict)


class ConvertedExtension(BaseModel):
    """A server entry produced from an extension manifest, with metadata."""

    name: str
    entry: ServerEntry
    requires_user_config: bool = False
    user_config_fields: Dict[str, Any] = Field(default_factory=dict)
    credentials_dir: Optional[str] = None


class ClientSecret(BaseModel):
    """OAuth2 application credential shared by all accounts."""

    client_id: str
    client_secret: str = ""
    redirect_uris: List[str]

    @classmethod
    def from_payload(cls, data: Any) -> "ClientSecret":
        """
        Parse a client secret record.

        Accepts the Google Cloud Console download format (``installed`` or
        ``web`` wrapper) as well as a flat object.

        Raises:
            ClientSecretInvalid: If client id or redirect URIs are missing
        """
        if not isinstance(data, Mapping):
            raise ClientSecretInvalid("Client secret must be a JSON object")

        client = data.get("installed") or data.get("web") or data
        if not isinstance(client, Mapping):
            raise ClientSecretInvalid("Client secret must be a JSON object")

        client_id = client.get("client_id")
        redirect_uris = client.get("redirect_uris") or []
        if not client_id or not isinstance(client_id, str):
            raise ClientSecretInvalid("Client secret is missing client_id")
        if not isinstance(redirect_uris, list) or not redirect_uris:
            raise ClientSecretInvalid("Client secret has no redirect_uris")

        try:
            return cls(
                client_id=client_id,
                client_secret=client.get("client_secret") or "",
                redirect_uris=redirect_uris,
            )
        except ValidationError as e:
            raise ClientSecretInvalid(f"Client secret is malformed: {e.errors()[0]['msg']}") from e


class TokenRecord(BaseModel):
    """Per-account OAuth2 token payload."""

    account_email: str
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict, description="Full provider response")

    @classmethod
    def from_payload(cls, email: str, data: Dict[str, Any]) -> "TokenRecord":
        """Build a record from a stored provider response."""
        return cls(
            account_email=email,
            access_token=data.get("access_token") or data.get("token"),
            refresh_token=data.get("refresh_token"),
            raw=data,
        )

    @property
    def authenticated(self) -> bool:
        """True if the record carries a usable access or refresh token."""
        return bool(self.access_token or self.refresh_token)


class AuthStatusEntry(BaseModel):
    """Derived Google authentication status of one configured server."""

    server_name: str
    requires_google_auth: bool = True
    email: Optional[str] = None
    authenticated: bool = False
    needs_email_configuration: bool = False


class AuthState(str, Enum):
    """Per-account OAuth flow state."""

    NO_CLIENT_SECRET = "no_client_secret"
    READY = "ready"
    AUTHORIZATION_REQUESTED = "authorization_requested"
    CODE_EXCHANGE_PENDING = "code_exchange_pending"
    AUTHENTICATED = "authenticated"
    REVOKED = "revoked"
