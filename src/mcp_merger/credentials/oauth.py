"""
Google OAuth2 authorization-code flow.

Each account moves through::

    no_client_secret -> ready -> authorization_requested
        -> code_exchange_pending -> authenticated -> revoked

``start_authorization`` only builds a URL; ``exchange_code`` performs the one
network round trip and persists the token; ``revoke`` removes it. A failed
exchange writes nothing and leaves the account ready for a fresh start.
"""

import secrets
import threading
import time
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple

import httpx

from mcp_merger.core.exceptions import (
    InvalidInput, TokenExchangeFailed, TokenExchangeTimeout
)
from mcp_merger.core.models import AuthState
from mcp_merger.credentials.store import CredentialStore
from mcp_merger.utils.config import GOOGLE_AUTH_URI, GOOGLE_TOKEN_URI, GOOGLE_WORKSPACE_SCOPES
from mcp_merger.utils.logging import get_logger

logger = get_logger(__name__)

PENDING_STATE_TTL = 600.0


class OAuthFlowManager:
    """Drives authorization, code exchange and revocation per account."""

    def __init__(
        self,
        store: CredentialStore,
        scopes: Optional[Iterable[str]] = None,
        auth_uri: str = GOOGLE_AUTH_URI,
        token_uri: str = GOOGLE_TOKEN_URI,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
        pending_ttl: float = PENDING_STATE_TTL,
    ):
        """
        Initialize OAuth flow manager.

        Args:
            store: Credential store holding the client secret and tokens
            scopes: Scopes requested on every authorization
            auth_uri: Provider authorization endpoint
            token_uri: Provider token endpoint
            timeout: Overall deadline in seconds for one token exchange
            transport: Optional httpx transport (used by tests)
            pending_ttl: Seconds an issued authorization state stays valid
        """
        self.store = store
        self.scopes = list(scopes) if scopes is not None else list(GOOGLE_WORKSPACE_SCOPES)
        self.auth_uri = auth_uri
        self.token_uri = token_uri
        self.timeout = timeout
        self._transport = transport
        self.pending_ttl = pending_ttl

        self._states: Dict[str, AuthState] = {}
        # state -> (email, server name, issued at); at most one per email
        self._pending: Dict[str, Tuple[str, str, float]] = {}
        self._pending_by_email: Dict[str, str] = {}
        self._states_lock = threading.Lock()

    @classmethod
    def from_config(cls, store: CredentialStore, config: Any) -> "OAuthFlowManager":
        """Create a manager from the ``oauth`` section of a Config."""
        return cls(
            store,
            scopes=config.oauth.scopes,
            auth_uri=config.oauth.auth_uri,
            token_uri=config.oauth.token_uri,
            timeout=config.oauth.timeout,
        )

    def state(self, email: str) -> AuthState:
        """Current flow state of an account."""
        token = self.store.load_token(email)
        if token is not None and token.authenticated:
            return AuthState.AUTHENTICATED
        if not self.store.has_client_secret():
            return AuthState.NO_CLIENT_SECRET

        with self._states_lock:
            state = self._states.get(email, AuthState.READY)
        if state == AuthState.AUTHENTICATED:
            # Token was removed outside of revoke()
            return AuthState.READY
        return state

    def start_authorization(self, email: str, server_name: str) -> str:
        """
        Build the provider authorization URL for an account.

        Args:
            email: Account email, sent as the login hint
            server_name: Server the authorization is for

        Returns:
            Authorization URL for the user to open

        Raises:
            ClientSecretMissing: If no client secret is installed
            ClientSecretInvalid: If the client secret lacks required fields
        """
        self._validate_email(email)
        secret = self.store.load_client_secret()

        state = secrets.token_urlsafe(16)
        params = {
            "client_id": secret.client_id,
            "redirect_uri": secret.redirect_uris[0],
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "access_type": "offline",
            "prompt": "consent",
            "login_hint": email,
            "state": state,
        }
        url = str(httpx.URL(self.auth_uri, params=params))

        now = time.monotonic()
        with self._states_lock:
            self._prune_pending(now)
            previous = self._pending_by_email.pop(email, None)
            if previous is not None:
                self._pending.pop(previous, None)
            self._pending[state] = (email, server_name, now)
            self._pending_by_email[email] = state
            self._states[email] = AuthState.AUTHORIZATION_REQUESTED
        logger.info(f"Authorization requested for {email} (server '{server_name}')")
        return url

    def complete_authorization(self, code: str, state: str) -> Tuple[str, str, Path]:
        """
        Finish a flow from the provider redirect.

        Only the most recent authorization of an account can be completed,
        and only within ``pending_ttl`` seconds of being issued.

        Args:
            code: Authorization code from the redirect
            state: ``state`` parameter issued by :meth:`start_authorization`

        Returns:
            Tuple of (email, server name, token path)

        Raises:
            InvalidInput: If the state does not match a pending authorization
        """
        with self._states_lock:
            self._prune_pending(time.monotonic())
            pending = self._pending.pop(state, None)
            if pending is not None:
                self._pending_by_email.pop(pending[0], None)
        if pending is None:
            raise InvalidInput("Unknown or expired authorization state")

        email, server_name, _ = pending
        path = self.exchange_code(code, email)
        return email, server_name, path

    def exchange_code(self, code: str, email: str, redirect_uri: Optional[str] = None) -> Path:
        """
        Exchange an authorization code for tokens and store them.

        Args:
            code: Authorization code returned by the provider
            email: Account the tokens belong to
            redirect_uri: Redirect URI used for the authorization; defaults to
                the first one in the client secret

        Returns:
            Path of the stored token file

        Raises:
            ClientSecretMissing: If no client secret is installed
            TokenExchangeFailed: If the provider rejects the request
            TokenExchangeTimeout: If the provider does not answer in time
        """
        self._validate_email(email)
        if not code or not code.strip():
            raise InvalidInput("Authorization code is required")

        secret = self.store.load_client_secret()
        data = {
            "code": code,
            "client_id": secret.client_id,
            "client_secret": secret.client_secret,
            "redirect_uri": redirect_uri or secret.redirect_uris[0],
            "grant_type": "authorization_code",
        }

        with self.store.locked(email):
            self._set_state(email, AuthState.CODE_EXCHANGE_PENDING)
            try:
                payload = self._request_token(data)
                path = self.store.save_token(email, payload)
            except Exception:
                self._set_state(email, AuthState.READY)
                raise
            self._set_state(email, AuthState.AUTHENTICATED)

        logger.info(
            f"Stored token for {email}",
            extra={"has_refresh_token": "refresh_token" in payload},
        )
        return path

    def revoke(self, email: str) -> bool:
        """
        Forget the stored token of an account.

        Returns:
            True if a token was removed, False if there was none
        """
        self._validate_email(email)
        with self.store.locked(email):
            removed = self.store.delete_token(email)
            self._set_state(email, AuthState.REVOKED)
        return removed

    def _request_token(self, data: Dict[str, str]) -> Dict[str, Any]:
        """
        POST the form to the token endpoint and return the JSON payload.

        httpx applies ``timeout`` to each connect, write and read separately;
        the body is streamed so the exchange as a whole is also cut off once
        ``timeout`` seconds have passed.
        """
        deadline = time.monotonic() + self.timeout
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                with client.stream(
                    "POST",
                    self.token_uri,
                    data=data,
                    headers={"Accept": "application/json"},
                ) as streamed:
                    body = self._read_before(streamed, deadline)
                    response = httpx.Response(
                        streamed.status_code,
                        headers={"Content-Type": streamed.headers.get("Content-Type", "")},
                        content=body,
                        request=streamed.request,
                    )
        except httpx.TimeoutException as e:
            logger.error(f"Token exchange timed out after {self.timeout}s")
            raise TokenExchangeTimeout(
                f"Token endpoint did not respond within {self.timeout} seconds",
                details={"token_uri": self.token_uri},
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Token exchange request failed: {e}")
            raise TokenExchangeFailed(f"Token request failed: {e}") from e

        if not response.is_success:
            logger.error(f"Token endpoint returned HTTP {response.status_code}")
            raise TokenExchangeFailed(
                f"Token exchange failed with HTTP {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise TokenExchangeFailed(
                "Token endpoint returned a non-JSON response",
                status_code=response.status_code,
                body=response.text,
            ) from e

        if not isinstance(payload, dict) or "error" in payload:
            raise TokenExchangeFailed(
                "Token endpoint returned an error payload",
                status_code=response.status_code,
                body=response.text,
            )

        return payload

    def _read_before(self, response: httpx.Response, deadline: float) -> bytes:
        chunks = []
        if time.monotonic() > deadline:
            raise httpx.ReadTimeout("Token exchange deadline exceeded", request=response.request)
        for chunk in response.iter_bytes():
            chunks.append(chunk)
            if time.monotonic() > deadline:
                raise httpx.ReadTimeout("Token exchange deadline exceeded", request=response.request)
        return b"".join(chunks)

    def _prune_pending(self, now: float) -> None:
        """Drop issued states older than ``pending_ttl``. Caller holds the lock."""
        expired = [
            s for s, (_, _, issued) in self._pending.items() if now - issued > self.pending_ttl
        ]
        for state in expired:
            email = self._pending.pop(state)[0]
            if self._pending_by_email.get(email) == state:
                del self._pending_by_email[email]

    def _set_state(self, email: str, state: AuthState) -> None:
        with self._states_lock:
            self._states[email] = state

    def _validate_email(self, email: str) -> None:
        # token_path rejects values that cannot address a token file
        self.store.token_path(email)
        if "@" not in email:
            raise InvalidInput(f"Invalid account email: {email!r}")
