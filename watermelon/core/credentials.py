"""
Credential persistence for watermelon.

The OAuth credential (access token, refresh token, expiry) outlives a
single run, so it is kept in a small key-value store under fixed keys:

    spotify_token           access token
    spotify_refresh_token   refresh token (may be absent)
    spotify_token_expiry    expiry as epoch milliseconds

Two stores are provided:
    - MemoryStore: a dict, for tests and for embedding applications
      that persist state themselves
    - JsonFileStore: a JSON file with owner-only permissions

CredentialStore sits on top of either and converts between the raw
keys and the Credential dataclass. Only SpotifyAuth writes to it.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Protocol

from watermelon.core.exceptions import StorageError
from watermelon.core.logger import get_logger


logger = get_logger(__name__)


TOKEN_KEY = "spotify_token"
REFRESH_TOKEN_KEY = "spotify_refresh_token"
EXPIRY_KEY = "spotify_token_expiry"

CREDENTIAL_KEYS = (TOKEN_KEY, REFRESH_TOKEN_KEY, EXPIRY_KEY)


@dataclass(frozen=True)
class Credential:
    """
    Immutable OAuth credential.

    Attributes:
        access_token: Bearer token for Web API calls.
        refresh_token: Token used to obtain a new access token, if Spotify issued one.
        expires_at_epoch_ms: When the access token stops being usable, already
                             reduced by the safety margin applied at issue time.

    The token fields are excluded from repr so a credential never ends
    up in a log line by accident.
    """
    access_token: str = field(repr=False)
    refresh_token: str | None = field(default=None, repr=False)
    expires_at_epoch_ms: int = 0

    def is_expired(self, now_ms: int) -> bool:
        """True once now_ms has reached the stored expiry."""
        return now_ms >= self.expires_at_epoch_ms


class KeyValueStore(Protocol):
    """
    Minimal persistent key-value contract.

    - get() returns None for unknown keys
    - set() writes several keys at once
    - remove() ignores keys that are not present
    """

    def get(self, key: str) -> Any: ...

    def set(self, values: dict[str, Any]) -> None: ...

    def remove(self, keys: Iterable[str]) -> None: ...


class MemoryStore:
    """In-process key-value store backed by a dict."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Any:
        return self._data.get(key)

    def set(self, values: dict[str, Any]) -> None:
        self._data.update(values)

    def remove(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._data.pop(key, None)

    def snapshot(self) -> dict[str, Any]:
        """Copy of the current contents."""
        return dict(self._data)


class JsonFileStore:
    """
    Key-value store persisted as a single JSON object on disk.

    The whole file is rewritten on every change; it only ever holds a
    handful of keys.

    Security:
        The file is chmod'ed to 0600 (owner read/write only) after each
        write. On platforms without POSIX permissions this is skipped.

    Failure Behavior:
        - Missing file: empty store
        - Unreadable or corrupt file: empty store, with a warning, so the
          user is asked to log in again instead of crashing
        - Write failure: StorageError
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def _read(self) -> dict[str, Any]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to read token file {self.path}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.warning(f"Ignoring token file {self.path}: not a JSON object")
            return {}

        return data

    def _write(self, data: dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            raise StorageError(
                f"Failed to write token file: {e}",
                details={"file_path": str(self.path), "original_error": str(e)}
            ) from e

        try:
            self.path.chmod(0o600)
        except (OSError, NotImplementedError):
            # Windows doesn't support POSIX permissions
            pass

    def get(self, key: str) -> Any:
        return self._read().get(key)

    def set(self, values: dict[str, Any]) -> None:
        data = self._read()
        data.update(values)
        self._write(data)

    def remove(self, keys: Iterable[str]) -> None:
        data = self._read()
        changed = False
        for key in keys:
            if key in data:
                del data[key]
                changed = True
        if changed:
            self._write(data)


class CredentialStore:
    """
    Reads and writes the Credential under the fixed keys.

    Attributes:
        backend: The KeyValueStore holding the raw keys.

    Example:
        store = CredentialStore(JsonFileStore(config.storage.token_file))
        credential = store.get()
        if credential is None:
            print("Not logged in")
    """

    def __init__(self, backend: KeyValueStore) -> None:
        self.backend = backend

    def get(self) -> Credential | None:
        """
        Return the stored credential, or None if there is no usable one.

        An access token only counts together with a numeric expiry. When
        just a refresh token is stored, an already expired Credential with
        an empty access token is returned so the caller still refreshes.
        """
        access_token = self.backend.get(TOKEN_KEY)
        expiry = self.backend.get(EXPIRY_KEY)
        refresh_token = self.backend.get(REFRESH_TOKEN_KEY)

        if not isinstance(refresh_token, str) or not refresh_token:
            refresh_token = None

        has_expiry = isinstance(expiry, (int, float)) and not isinstance(expiry, bool)

        if isinstance(access_token, str) and access_token and has_expiry:
            return Credential(
                access_token=access_token,
                refresh_token=refresh_token,
                expires_at_epoch_ms=int(expiry)
            )

        if refresh_token is not None:
            return Credential(access_token="", refresh_token=refresh_token, expires_at_epoch_ms=0)

        return None

    def set(self, credential: Credential) -> None:
        values: dict[str, Any] = {
            TOKEN_KEY: credential.access_token,
            EXPIRY_KEY: credential.expires_at_epoch_ms,
        }
        if credential.refresh_token:
            values[REFRESH_TOKEN_KEY] = credential.refresh_token
        self.backend.set(values)
        if not credential.refresh_token:
            self.backend.remove([REFRESH_TOKEN_KEY])

    def drop_access_token(self) -> None:
        """Forget the access token and expiry, keeping any refresh token."""
        self.backend.remove([TOKEN_KEY, EXPIRY_KEY])

    def clear(self) -> None:
        self.backend.remove(CREDENTIAL_KEYS)
