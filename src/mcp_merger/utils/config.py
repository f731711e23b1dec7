"""
Configuration management for MCP Merger.

Provides hierarchical configuration loading with validation using Pydantic.
Supports TOML configuration files and environment variable overrides
(``MCP_MERGER_`` prefix, ``__`` as the nested delimiter).
"""

import os
from pathlib import Path
from typing import Any, List, Optional, Union

import toml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from mcp_merger.utils.logging import get_logger

logger = get_logger(__name__)

GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"

GOOGLE_WORKSPACE_SCOPES = [
    "https://www.googleapis.com/auth/drive.readonly",
    "https://www.googleapis.com/auth/drive.file",
    "https://www.googleapis.com/auth/forms",
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/documents",
    "https://www.googleapis.com/auth/presentations",
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/gmail.readonly",
]


class LoggingConfig(BaseModel):
    """Logging configuration."""

    enabled: bool = Field(default=True, description="Enable logging completely")
    level: str = Field(default="INFO", description="File logging level")
    console_level: str = Field(default="WARNING", description="Console logging level")
    format_type: str = Field(default="text", description="Log format (text/json)")
    file: Optional[str] = Field(default="mcp-merger.log", description="Log file path")
    enable_rich: bool = Field(default=True, description="Enable Rich console output")
    max_bytes: int = Field(default=10 * 1024 * 1024, description="Max log file size")
    backup_count: int = Field(default=5, description="Number of backup files")
    suppress_http: bool = Field(default=True, description="Suppress HTTP request logging")

    @field_validator("level", "console_level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate logging level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    @field_validator("format_type")
    @classmethod
    def validate_format_type(cls, v: str) -> str:
        """Validate format type."""
        if v not in ["text", "json"]:
            raise ValueError(f"Invalid format type: {v}")
        return v


class CredentialsConfig(BaseModel):
    """Credential storage locations."""

    root_dir: str = Field(
        default="~/.config/mcp-merger/credentials",
        description="Directory holding the client secret and account tokens"
    )
    shared_dir: str = Field(
        default="~/.google_workspace_mcp/credentials",
        description="Credential directory shared with converted extensions"
    )


class OAuthConfig(BaseModel):
    """Google OAuth endpoints and request settings."""

    auth_uri: str = Field(default=GOOGLE_AUTH_URI, description="Authorization endpoint")
    token_uri: str = Field(default=GOOGLE_TOKEN_URI, description="Token endpoint")
    timeout: float = Field(default=30.0, description="Token exchange timeout in seconds")
    scopes: List[str] = Field(
        default_factory=lambda: list(GOOGLE_WORKSPACE_SCOPES),
        description="Scopes requested on every authorization"
    )

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate timeout."""
        if v <= 0:
            raise ValueError("Timeout must be positive")
        return v


class ExtensionsConfig(BaseModel):
    """Extension discovery configuration."""

    directory: str = Field(
        default="~/Library/Application Support/Claude/Claude Extensions",
        description="Directory containing installed extensions"
    )


class APIConfig(BaseModel):
    """REST API server configuration."""

    host: str = Field(default="127.0.0.1", description="Bind address")
    port: int = Field(default=3000, description="Bind port")
    allowed_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"],
        description="CORS origins"
    )


class Config(BaseSettings):
    """Main configuration class."""

    debug: bool = Field(default=False, description="Enable debug mode")
    verbose: bool = Field(default=False, description="Enable verbose output")
    config_dir: str = Field(
        default="~/.config/mcp-merger",
        description="Configuration directory"
    )

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    credentials: CredentialsConfig = Field(default_factory=CredentialsConfig)
    oauth: OAuthConfig = Field(default_factory=OAuthConfig)
    extensions: ExtensionsConfig = Field(default_factory=ExtensionsConfig)
    api: APIConfig = Field(default_factory=APIConfig)

    model_config = SettingsConfigDict(
        env_prefix="MCP_MERGER_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    def get_config_dir(self) -> Path:
        """Get configuration directory path."""
        return Path(os.path.expanduser(self.config_dir))

    def get_log_file(self) -> Optional[Path]:
        """Get log file path."""
        if self.logging.file:
            log_path = Path(os.path.expanduser(self.logging.file))
            if not log_path.is_absolute():
                log_path = self.get_config_dir() / log_path
            return log_path
        return None

    def get_credentials_dir(self) -> Path:
        """Get credential store root."""
        return Path(os.path.expanduser(self.credentials.root_dir))

    def get_shared_credentials_dir(self) -> Path:
        """Get the credential directory handed to converted extensions."""
        return Path(os.path.expanduser(self.credentials.shared_dir))

    def get_extensions_dir(self) -> Path:
        """Get installed extensions directory."""
        return Path(os.path.expanduser(self.extensions.directory))


class ConfigManager:
    """Configuration manager with hierarchical loading."""

    def __init__(self):
        self._config: Optional[Config] = None

    def load_config(
        self,
        config_files: Optional[List[Union[str, Path]]] = None,
        **overrides: Any,
    ) -> Config:
        """
        Load configuration from multiple sources.

        Later files override earlier ones; keyword overrides win over files.

        Args:
            config_files: List of configuration files to load
            **overrides: Configuration overrides

        Returns:
            Loaded configuration
        """
        if self._config is not None:
            return self._config

        if config_files is None:
            config_files = [
                "/etc/mcp-merger/config.toml",
                "~/.config/mcp-merger/config.toml",
                "./.mcp-merger.toml",
            ]

        config_data: dict = {}

        for config_file in config_files:
            file_path = Path(os.path.expanduser(str(config_file)))
            if file_path.exists():
                try:
                    file_data = toml.load(file_path)
                    _deep_update(config_data, file_data)
                    logger.debug(f"Loaded configuration from {file_path}")
                except (OSError, toml.TomlDecodeError) as e:
                    logger.warning(f"Failed to load config from {file_path}: {e}")

        _deep_update(config_data, overrides)

        self._config = Config(**config_data)

        return self._config

    def get_config(self) -> Config:
        """Get current configuration."""
        if self._config is None:
            return self.load_config()
        return self._config

    def reload_config(self, **overrides: Any) -> Config:
        """Reload configuration."""
        self._config = None
        return self.load_config(**overrides)


def _deep_update(target: dict, source: dict) -> None:
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_update(target[key], value)
        else:
            target[key] = value


# Global configuration manager
_config_manager = ConfigManager()

# Convenience functions
load_config = _config_manager.load_config
get_config = _config_manager.get_config
reload_config = _config_manager.reload_config
