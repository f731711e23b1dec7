"""
Filesystem-backed credential storage.

Layout under the store root::

    client_secret.json                      installation client secret
    accounts/<account_id>/client_secret.json account-scoped client secrets
    tokens/<email>.json                     per-account OAuth tokens

Every write goes to a temporary file in the target directory and is then
moved into place with ``os.replace``, so readers never see a partial file.
Mutations for the same key are serialized with a per-key reentrant lock,
which callers may also hold across a longer sequence of operations.
"""

import json
import os
import tempfile
import threading
import weakref
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from pydantic import ValidationError

from mcp_merger.core.exceptions import (
    ClientSecretInvalid, ClientSecretMissing, InvalidInput, TokenCorrupt
)
from mcp_merger.core.models import ClientSecret, TokenRecord
from mcp_merger.utils.logging import get_logger

logger = get_logger(__name__)

CLIENT_SECRET_FILENAME = "client_secret.json"
ACCOUNTS_DIRNAME = "accounts"
TOKENS_DIRNAME = "tokens"


class CredentialStore:
    """Owns the on-disk client secret and per-account token files."""

    def __init__(self, root_dir: Union[str, Path]):
        """
        Initialize credential store.

        Args:
            root_dir: Directory holding all credential files
        """
        self.root_dir = Path(os.path.expanduser(str(root_dir)))
        self._locks: "weakref.WeakValueDictionary[str, threading.RLock]" = (
            weakref.WeakValueDictionary()
        )
        self._locks_guard = threading.Lock()

        logger.debug(f"CredentialStore initialized at {self.root_dir}")

    @property
    def client_secret_path(self) -> Path:
        """Path of the installation client secret."""
        return self.root_dir / CLIENT_SECRET_FILENAME

    @property
    def tokens_dir(self) -> Path:
        """Directory of per-account token files."""
        return self.root_dir / TOKENS_DIRNAME

    def lock_for(self, key: str) -> threading.RLock:
        """
        Get the mutation lock for a credential key.

        Locks are held weakly; an entry lives only while some caller holds it.
        """
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            return lock

    @contextmanager
    def locked(self, key: str) -> Iterator[None]:
        """Hold the mutation lock for a credential key."""
        with self.lock_for(key):
            yield

    # Client secret

    def load_client_secret(self) -> ClientSecret:
        """
        Load the installation client secret.

        Raises:
            ClientSecretMissing: If no client secret file exists
            ClientSecretInvalid: If the file is unreadable or lacks required fields
        """
        path = self.client_secret_path
        if not path.exists():
            raise ClientSecretMissing(
                f"No OAuth client secret found at {path}",
                details={"path": str(path)},
            )

        try:
            data = self._read_json(path)
        except (OSError, ValueError) as e:
            raise ClientSecretInvalid(f"Client secret at {path} is not valid JSON: {e}") from e

        return ClientSecret.from_payload(data)

    def has_client_secret(self) -> bool:
        """Check whether an installation client secret is present."""
        return self.client_secret_path.exists()

    def save_client_secret(self, account_id: str, payload: Dict[str, Any]) -> Path:
        """
        Store a client secret in an account-scoped directory.

        Args:
            account_id: Opaque account identifier
            payload: Client secret document, written verbatim

        Returns:
            Path the secret was written to
        """
        account_dir = self.root_dir / ACCOUNTS_DIRNAME / self._safe_component(account_id, "account id")
        path = account_dir / CLIENT_SECRET_FILENAME

        with self.locked(f"secret:{account_id}"):
            account_dir.mkdir(parents=True, exist_ok=True)
            self._write_json_atomic(path, payload)

        logger.info(f"Saved client secret for account '{account_id}'")
        return path

    def save_installation_client_secret(self, payload: Dict[str, Any]) -> Path:
        """Store the installation-wide client secret, written verbatim."""
        path = self.client_secret_path
        with self.locked("secret:"):
            self._write_json_atomic(path, payload)

        logger.info("Saved installation client secret")
        return path

    # Tokens

    def token_path(self, email: str) -> Path:
        """Path of the token file for an account email."""
        return self.tokens_dir / f"{self._safe_component(email, 'email')}.json"

    def load_token(self, email: str) -> Optional[TokenRecord]:
        """
        Load the token stored for an account.

        Returns:
            TokenRecord, or None if the account has no token

        Raises:
            TokenCorrupt: If the token file exists but is not a well-formed
                token object
        """
        path = self.token_path(email)
        try:
            data = self._read_json(path)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            raise TokenCorrupt(
                f"Token file for {email} is unreadable: {e}",
                details={"path": str(path)},
            ) from e

        if not isinstance(data, dict):
            raise TokenCorrupt(
                f"Token file for {email} is not a JSON object",
                details={"path": str(path)},
            )

        try:
            return TokenRecord.from_payload(email, data)
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            raise TokenCorrupt(
                f"Token file for {email} has invalid fields: {fields}",
                details={"path": str(path)},
            ) from e

    def save_token(self, email: str, payload: Dict[str, Any]) -> Path:
        """
        Store (overwrite) the token for an account.

        Returns:
            Path the token was written to
        """
        path = self.token_path(email)
        with self.locked(email):
            self._write_token(path, payload)

        logger.info(f"Saved token for {email}")
        return path

    def delete_token(self, email: str) -> bool:
        """
        Remove the token for an account.

        Returns:
            True if a token existed and was removed, False if there was none
        """
        path = self.token_path(email)
        with self.locked(email):
            removed = self._remove_token(path)

        if removed:
            logger.info(f"Deleted token for {email}")
        else:
            logger.debug(f"No token to delete for {email}")
        return removed

    def list_accounts(self) -> List[str]:
        """Emails that currently have a stored token."""
        if not self.tokens_dir.is_dir():
            return []
        return sorted(p.stem for p in self.tokens_dir.glob("*.json") if p.is_file())

    # Helpers

    def _write_token(self, path: Path, payload: Dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        self._write_json_atomic(path, payload)

    def _remove_token(self, path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def _read_json(self, path: Path) -> Any:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write_json_atomic(self, path: Path, payload: Any) -> None:
        """Write JSON to a temp file in the same directory, then replace."""
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(
            dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(temp_name, 0o600)
            os.replace(temp_name, path)
        except BaseException:
            try:
                os.unlink(temp_name)
            except FileNotFoundError:
                pass
            raise

    def _safe_component(self, value: str, label: str) -> str:
        if (
            not isinstance(value, str)
            or not value.strip()
            or value in (".", "..")
            or "/" in value
            or "\\" in value
            or "\x00" in value
        ):
            raise InvalidInput(f"Invalid {label}: {value!r}")
        return value
