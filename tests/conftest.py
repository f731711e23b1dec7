"""
Pytest configuration and fixtures for MCP Merger tests.

Every test gets an isolated environment: credential store, shared
credentials directory, extensions directory and a TOML config file that
points at them, all under a temporary directory.
"""

import json
import logging
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
import toml

from mcp_merger.credentials.oauth import OAuthFlowManager
from mcp_merger.credentials.store import CredentialStore
from mcp_merger.utils.config import Config

TOKEN_URI = "https://oauth2.example.test/token"
AUTH_URI = "https://accounts.example.test/o/oauth2/v2/auth"


class TestEnvironment:
    """Isolated filesystem layout for a single test."""

    __test__ = False

    def __init__(self, temp_dir: str):
        self.root = Path(temp_dir)
        self.credentials_dir = self.root / "credentials"
        self.shared_dir = self.root / "shared-credentials"
        self.extensions_dir = self.root / "extensions"
        self.config_dir = self.root / "config"

        self.extensions_dir.mkdir(parents=True)
        self.config_dir.mkdir(parents=True)

        self.config_file = self.config_dir / "config.toml"
        self._write_config_file()

    def _write_config_file(self) -> None:
        data = {
            "config_dir": str(self.config_dir),
            "logging": {"file": "", "enable_rich": False, "console_level": "ERROR"},
            "credentials": {
                "root_dir": str(self.credentials_dir),
                "shared_dir": str(self.shared_dir),
            },
            "extensions": {"directory": str(self.extensions_dir)},
            "oauth": {"auth_uri": AUTH_URI, "token_uri": TOKEN_URI, "timeout": 5},
        }
        with open(self.config_file, "w") as f:
            toml.dump(data, f)

    def config(self) -> Config:
        """Config object equivalent to the TOML file."""
        return Config(**toml.load(self.config_file))

    def write_json(self, name: str, data: Any) -> Path:
        """Write a JSON document under the environment root."""
        path = self.root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2))
        return path

    def read_json(self, path: Path) -> Any:
        return json.loads(Path(path).read_text())

    def add_extension(self, dirname: str, manifest: Dict[str, Any]) -> Path:
        """Install an extension directory with the given manifest."""
        ext_dir = self.extensions_dir / dirname
        ext_dir.mkdir(parents=True)
        (ext_dir / "manifest.json").write_text(json.dumps(manifest))
        return ext_dir


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop root handlers installed during the test."""
    yield
    logging.getLogger().handlers.clear()


@pytest.fixture(scope="function")
def isolated_environment():
    """Provide completely isolated test environment."""
    with tempfile.TemporaryDirectory(prefix="mcp_merger_test_") as temp_dir:
        yield TestEnvironment(temp_dir)


@pytest.fixture
def test_config(isolated_environment) -> Config:
    """Configuration pointing at the isolated environment."""
    return isolated_environment.config()


@pytest.fixture
def store(isolated_environment) -> CredentialStore:
    """Empty credential store."""
    return CredentialStore(isolated_environment.credentials_dir)


@pytest.fixture
def client_secret_payload() -> Dict[str, Any]:
    """Client secret in the Google Cloud Console download format."""
    return {
        "installed": {
            "client_id": "test-client.apps.googleusercontent.com",
            "client_secret": "test-secret",
            "redirect_uris": ["http://localhost:3000/oauth2callback"],
            "auth_uri": AUTH_URI,
            "token_uri": TOKEN_URI,
        }
    }


@pytest.fixture
def store_with_secret(store, client_secret_payload) -> CredentialStore:
    """Credential store with an installation client secret."""
    store.save_installation_client_secret(client_secret_payload)
    return store


class TokenEndpoint:
    """Scripted token endpoint backed by httpx.MockTransport."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.handler: Optional[Callable[[httpx.Request], httpx.Response]] = None
        self.status_code = 200
        self.payload: Any = {
            "access_token": "ya29.access",
            "refresh_token": "1//refresh",
            "expires_in": 3599,
            "token_type": "Bearer",
        }

    def form(self, index: int = -1) -> Dict[str, str]:
        """Decoded form body of a recorded request."""
        return dict(httpx.QueryParams(self.requests[index].content.decode()))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.handler is not None:
            return self.handler(request)
        return httpx.Response(self.status_code, json=self.payload)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def token_endpoint() -> TokenEndpoint:
    """Token endpoint double; set ``payload``, ``status_code`` or ``handler``."""
    return TokenEndpoint()


@pytest.fixture
def oauth(store_with_secret, token_endpoint) -> OAuthFlowManager:
    """OAuth flow manager talking to the scripted token endpoint."""
    return OAuthFlowManager(
        store_with_secret,
        scopes=["scope.a", "scope.b"],
        auth_uri=AUTH_URI,
        token_uri=TOKEN_URI,
        timeout=5,
        transport=token_endpoint.transport,
    )


@pytest.fixture
def wrapped_config() -> Dict[str, Any]:
    """Configuration using the mcpServers container."""
    return {
        "mcpServers": {
            "filesystem": {
                "command": "npx",
                "args": ["-y", "@modelcontextprotocol/server-filesystem", "/tmp"],
            },
            "sqlite": {
                "command": "uvx",
                "args": ["mcp-server-sqlite", "--db-path", "test.db"],
                "env": {"DEBUG": "1"},
            },
        }
    }


@pytest.fixture
def bare_servers() -> Dict[str, Any]:
    """Bare name to entry mapping."""
    return {
        "fetch": {"command": "uvx", "args": ["mcp-server-fetch"]},
        "google-workspace": {
            "command": "uvx",
            "args": ["workspace-mcp"],
            "env": {"USER_GOOGLE_EMAIL": "user@example.com"},
        },
    }


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow running tests")
