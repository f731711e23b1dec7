"""
Test the Google OAuth2 authorization-code flow.

The token endpoint is replaced with an httpx.MockTransport so no request
leaves the process.
"""

import threading
import time
from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from mcp_merger.core.exceptions import (
    ClientSecretMissing, InvalidInput, TokenExchangeFailed, TokenExchangeTimeout
)
from mcp_merger.core.models import AuthState
from mcp_merger.credentials.oauth import OAuthFlowManager


def query(url):
    return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}


class TestStartAuthorization:
    """Test building the authorization URL."""

    def test_authorization_url(self, oauth):
        """The URL carries client, scopes, offline access and the login hint."""
        url = oauth.start_authorization("user@example.com", "google-workspace")

        assert url.startswith(oauth.auth_uri + "?")
        params = query(url)
        assert params["client_id"] == "test-client.apps.googleusercontent.com"
        assert params["redirect_uri"] == "http://localhost:3000/oauth2callback"
        assert params["response_type"] == "code"
        assert params["scope"] == "scope.a scope.b"
        assert params["access_type"] == "offline"
        assert params["prompt"] == "consent"
        assert params["login_hint"] == "user@example.com"
        assert params["state"]

    def test_state_is_unique(self, oauth):
        """Each authorization gets its own state value."""
        first = query(oauth.start_authorization("user@example.com", "gmail"))["state"]
        second = query(oauth.start_authorization("user@example.com", "gmail"))["state"]

        assert first != second

    def test_default_scopes(self, store_with_secret):
        """Without explicit scopes the Workspace scope set is requested."""
        manager = OAuthFlowManager(store_with_secret)

        params = query(manager.start_authorization("user@example.com", "gmail"))

        assert "https://www.googleapis.com/auth/gmail.readonly" in params["scope"].split()

    def test_requires_client_secret(self, store):
        """Without a client secret no URL is produced."""
        manager = OAuthFlowManager(store)

        with pytest.raises(ClientSecretMissing):
            manager.start_authorization("user@example.com", "gmail")
        assert manager.state("user@example.com") == AuthState.NO_CLIENT_SECRET

    @pytest.mark.parametrize("email", ["", "not-an-email", "../x@example.com"])
    def test_invalid_email(self, oauth, email):
        """Emails that cannot name an account are rejected."""
        with pytest.raises(InvalidInput):
            oauth.start_authorization(email, "gmail")

    def test_state_after_start(self, oauth):
        """Starting a flow moves the account to authorization_requested."""
        assert oauth.state("user@example.com") == AuthState.READY

        oauth.start_authorization("user@example.com", "gmail")

        assert oauth.state("user@example.com") == AuthState.AUTHORIZATION_REQUESTED


class TestExchangeCode:
    """Test exchanging authorization codes for tokens."""

    def test_successful_exchange(self, oauth, store_with_secret, token_endpoint):
        """A successful exchange stores the provider response."""
        path = oauth.exchange_code("4/0Acode", "user@example.com")

        assert path == store_with_secret.token_path("user@example.com")
        token = store_with_secret.load_token("user@example.com")
        assert token.access_token == "ya29.access"
        assert token.refresh_token == "1//refresh"
        assert oauth.state("user@example.com") == AuthState.AUTHENTICATED

        request = token_endpoint.requests[0]
        assert str(request.url) == oauth.token_uri
        assert request.method == "POST"
        form = token_endpoint.form()
        assert form == {
            "code": "4/0Acode",
            "client_id": "test-client.apps.googleusercontent.com",
            "client_secret": "test-secret",
            "redirect_uri": "http://localhost:3000/oauth2callback",
            "grant_type": "authorization_code",
        }

    def test_explicit_redirect_uri(self, oauth, token_endpoint):
        """A caller-supplied redirect URI is sent instead of the default."""
        oauth.exchange_code("code", "user@example.com", redirect_uri="http://127.0.0.1:9999/cb")

        assert token_endpoint.form()["redirect_uri"] == "http://127.0.0.1:9999/cb"

    def test_rejected_code_writes_nothing(self, oauth, store_with_secret, token_endpoint):
        """A provider error raises TokenExchangeFailed and stores no token."""
        token_endpoint.status_code = 400
        token_endpoint.payload = {"error": "invalid_grant"}

        with pytest.raises(TokenExchangeFailed) as exc_info:
            oauth.exchange_code("bad", "user@example.com")

        assert exc_info.value.status_code == 400
        assert "invalid_grant" in exc_info.value.body
        assert store_with_secret.load_token("user@example.com") is None
        assert oauth.state("user@example.com") == AuthState.READY

    def test_error_payload_with_ok_status(self, oauth, store_with_secret, token_endpoint):
        """An error document is a failure even with a 200 status."""
        token_endpoint.payload = {"error": "invalid_request"}

        with pytest.raises(TokenExchangeFailed):
            oauth.exchange_code("code", "user@example.com")
        assert store_with_secret.load_token("user@example.com") is None

    def test_non_json_response(self, oauth, store_with_secret, token_endpoint):
        """A non-JSON body is a failed exchange."""
        token_endpoint.handler = lambda request: httpx.Response(200, text="<html>oops</html>")

        with pytest.raises(TokenExchangeFailed):
            oauth.exchange_code("code", "user@example.com")
        assert store_with_secret.load_token("user@example.com") is None

    def test_timeout(self, oauth, store_with_secret, token_endpoint):
        """A timeout raises TokenExchangeTimeout and stores no token."""
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        token_endpoint.handler = handler

        with pytest.raises(TokenExchangeTimeout):
            oauth.exchange_code("code", "user@example.com")
        assert store_with_secret.load_token("user@example.com") is None
        assert oauth.state("user@example.com") == AuthState.READY

    def test_connection_error(self, oauth, token_endpoint):
        """Transport errors surface as TokenExchangeFailed."""
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        token_endpoint.handler = handler

        with pytest.raises(TokenExchangeFailed):
            oauth.exchange_code("code", "user@example.com")

    def test_blank_code(self, oauth, token_endpoint):
        """An empty code is rejected before any request."""
        with pytest.raises(InvalidInput):
            oauth.exchange_code("  ", "user@example.com")
        assert token_endpoint.requests == []

    def test_reexchange_overwrites(self, oauth, store_with_secret, token_endpoint):
        """A second exchange replaces the stored token."""
        oauth.exchange_code("first", "user@example.com")
        token_endpoint.payload = {"access_token": "second-token"}

        oauth.exchange_code("second", "user@example.com")

        token = store_with_secret.load_token("user@example.com")
        assert token.access_token == "second-token"
        assert token.refresh_token is None

    def test_failed_save_resets_state(self, oauth, store_with_secret):
        """A storage failure after a good response leaves the account ready."""
        with patch.object(store_with_secret, "save_token", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                oauth.exchange_code("code", "user@example.com")

        assert store_with_secret.load_token("user@example.com") is None
        assert oauth.state("user@example.com") == AuthState.READY

    def test_slow_body_hits_overall_deadline(self, store_with_secret, token_endpoint):
        """A response trickling in past the timeout is a timeout, not a token."""
        def trickle():
            yield b'{"access_token": '
            time.sleep(0.15)
            yield b'"ya29.slow", '
            time.sleep(0.15)
            yield b'"expires_in": 3599}'

        token_endpoint.handler = lambda request: httpx.Response(200, content=trickle())
        manager = OAuthFlowManager(
            store_with_secret, timeout=0.2, transport=token_endpoint.transport
        )

        with pytest.raises(TokenExchangeTimeout):
            manager.exchange_code("code", "user@example.com")
        assert store_with_secret.load_token("user@example.com") is None
        assert manager.state("user@example.com") == AuthState.READY

    def test_streamed_body_within_deadline(self, oauth, store_with_secret, token_endpoint):
        """A body sent in several chunks is reassembled before parsing."""
        def chunks():
            yield b'{"access_token": "ya29.'
            yield b'chunked", "refresh_token": "1//r"}'

        token_endpoint.handler = lambda request: httpx.Response(
            200, headers={"Content-Type": "application/json"}, content=chunks()
        )

        oauth.exchange_code("code", "user@example.com")

        assert store_with_secret.load_token("user@example.com").access_token == "ya29.chunked"


class TestCompleteAuthorization:
    """Test finishing a flow from the provider redirect."""

    def test_complete_with_issued_state(self, oauth, store_with_secret):
        """The state from start_authorization identifies the account."""
        url = oauth.start_authorization("user@example.com", "google-workspace")

        email, server_name, path = oauth.complete_authorization("code", query(url)["state"])

        assert email == "user@example.com"
        assert server_name == "google-workspace"
        assert path.exists()
        assert store_with_secret.load_token("user@example.com").authenticated

    def test_state_used_once(self, oauth):
        """A state cannot be replayed."""
        state = query(oauth.start_authorization("user@example.com", "gmail"))["state"]
        oauth.complete_authorization("code", state)

        with pytest.raises(InvalidInput):
            oauth.complete_authorization("code", state)

    def test_unknown_state(self, oauth, token_endpoint):
        """Unknown states are rejected without contacting the provider."""
        with pytest.raises(InvalidInput):
            oauth.complete_authorization("code", "forged")
        assert token_endpoint.requests == []

    def test_restart_replaces_pending_state(self, oauth):
        """Starting again for an account invalidates the earlier state."""
        states = [
            query(oauth.start_authorization("user@example.com", "google-workspace"))["state"]
            for _ in range(500)
        ]

        assert len(oauth._pending) == 1
        with pytest.raises(InvalidInput):
            oauth.complete_authorization("code", states[0])
        email, _, _ = oauth.complete_authorization("code", states[-1])
        assert email == "user@example.com"
        assert oauth._pending == {}

    def test_pending_states_are_per_account(self, oauth):
        """Flows for different accounts do not displace each other."""
        first = query(oauth.start_authorization("one@example.com", "gmail"))["state"]
        second = query(oauth.start_authorization("two@example.com", "gmail"))["state"]

        assert oauth.complete_authorization("code", first)[0] == "one@example.com"
        assert oauth.complete_authorization("code", second)[0] == "two@example.com"

    def test_expired_state_rejected(self, oauth, token_endpoint):
        """States older than pending_ttl are dropped without contacting the provider."""
        clock = "mcp_merger.credentials.oauth.time.monotonic"
        with patch(clock, return_value=1000.0):
            state = query(oauth.start_authorization("user@example.com", "gmail"))["state"]

        with patch(clock, return_value=1000.0 + oauth.pending_ttl + 1):
            with pytest.raises(InvalidInput):
                oauth.complete_authorization("code", state)

        assert oauth._pending == {}
        assert token_endpoint.requests == []


class TestRevoke:
    """Test revocation."""

    def test_revoke_removes_token(self, oauth, store_with_secret):
        """After revoke the token is gone."""
        oauth.exchange_code("code", "user@example.com")

        assert oauth.revoke("user@example.com") is True
        assert store_with_secret.load_token("user@example.com") is None
        assert oauth.state("user@example.com") == AuthState.REVOKED

    def test_revoke_without_token(self, oauth):
        """Revoking an unknown account reports False."""
        assert oauth.revoke("x@y.com") is False

    def test_authorize_again_after_revoke(self, oauth):
        """A revoked account can start a new flow."""
        oauth.exchange_code("code", "user@example.com")
        oauth.revoke("user@example.com")

        oauth.start_authorization("user@example.com", "gmail")

        assert oauth.state("user@example.com") == AuthState.AUTHORIZATION_REQUESTED

    def test_revoke_waits_for_exchange_in_flight(self, oauth, store_with_secret, token_endpoint):
        """Revoke of an account blocks until its running exchange has stored the token."""
        in_flight = threading.Event()
        release = threading.Event()

        def blocking(request):
            in_flight.set()
            release.wait(5)
            return httpx.Response(200, json={"access_token": "ya29.late"})

        token_endpoint.handler = blocking
        results = {}

        exchange = threading.Thread(
            target=lambda: results.setdefault("path", oauth.exchange_code("code", "user@example.com"))
        )
        revoke = threading.Thread(
            target=lambda: results.setdefault("revoked", oauth.revoke("user@example.com"))
        )

        exchange.start()
        assert in_flight.wait(5)
        revoke.start()
        revoke.join(0.2)
        assert revoke.is_alive()

        release.set()
        exchange.join(5)
        revoke.join(5)

        assert results["revoked"] is True
        assert store_with_secret.load_token("user@example.com") is None
        assert oauth.state("user@example.com") == AuthState.REVOKED
        assert sorted(p.name for p in store_with_secret.tokens_dir.iterdir()) == []


class TestFromConfig:
    """Test building a manager from configuration."""

    def test_from_config(self, test_config, store):
        """Endpoints, timeout and scopes come from the oauth section."""
        manager = OAuthFlowManager.from_config(store, test_config)

        assert manager.auth_uri == "https://accounts.example.test/o/oauth2/v2/auth"
        assert manager.token_uri == "https://oauth2.example.test/token"
        assert manager.timeout == 5
        assert manager.scopes == test_config.oauth.scopes
