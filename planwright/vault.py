"""
Encrypted persistence for the assistant configuration and the action log.

Values are JSON-serialised, encrypted with a key derived from the user's
secret, and stored as opaque strings under fixed keys in a blob store.
The store itself never sees plaintext.
"""

from __future__ import annotations

import base64
import json
import os
import re
from pathlib import Path
from typing import Any, Protocol

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from loguru import logger
from pydantic import ValidationError

from planwright.config_loader import AssistantConfig
from planwright.errors import ActionNotFoundError, VaultError
from planwright.models import ActionHistoryEntry

CONFIG_KEY = "assistant-config"
HISTORY_KEY = "action-history"
SALT_KEY = "kdf-salt"

DEFAULT_MAX_ENTRIES = 50
PBKDF2_ITERATIONS = 480_000

_VAULT_ERRORS = (InvalidToken, ValueError, ValidationError, OSError)


# ---------------------------------------------------------------------------
# Cipher
# ---------------------------------------------------------------------------

class Cipher(Protocol):
    def encrypt(self, value: Any, key: str) -> str: ...

    def decrypt(self, opaque: str, key: str) -> Any: ...


class FernetCipher:
    """
    Fernet with a PBKDF2-HMAC-SHA256 key derived from the secret.

    Derivation is deliberately slow, so derived keys are cached per secret
    for the lifetime of the cipher.
    """

    def __init__(self, salt: bytes, iterations: int = PBKDF2_ITERATIONS):
        self.salt = salt
        self.iterations = iterations
        self._fernets: dict[str, Fernet] = {}

    def _fernet(self, secret: str) -> Fernet:
        if secret not in self._fernets:
            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=32,
                salt=self.salt,
                iterations=self.iterations,
            )
            key = kdf.derive(secret.encode("utf-8"))
            self._fernets[secret] = Fernet(base64.urlsafe_b64encode(key))
        return self._fernets[secret]

    def encrypt(self, value: Any, key: str) -> str:
        plaintext = json.dumps(value).encode("utf-8")
        return self._fernet(key).encrypt(plaintext).decode("ascii")

    def decrypt(self, opaque: str, key: str) -> Any:
        plaintext = self._fernet(key).decrypt(opaque.encode("ascii"))
        return json.loads(plaintext.decode("utf-8"))


# ---------------------------------------------------------------------------
# Blob stores
# ---------------------------------------------------------------------------

class BlobStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def put(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryBlobStore:
    def __init__(self):
        self.blobs: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self.blobs.get(key)

    def put(self, key: str, value: str) -> None:
        self.blobs[key] = value

    def delete(self, key: str) -> None:
        self.blobs.pop(key, None)


_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class FileBlobStore:
    """One file per key inside ``directory``."""

    def __init__(self, directory: Path | str):
        self.directory = Path(directory).expanduser()

    def _path(self, key: str) -> Path:
        if not _KEY_RE.match(key):
            raise ValueError(f"Invalid blob key: {key!r}")
        return self.directory / f"{key}.blob"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def put(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


# ---------------------------------------------------------------------------
# Vault
# ---------------------------------------------------------------------------

def _get_or_create_salt(store: BlobStore) -> bytes:
    stored = store.get(SALT_KEY)
    if stored:
        return base64.b64decode(stored)
    salt = os.urandom(16)
    store.put(SALT_KEY, base64.b64encode(salt).decode("ascii"))
    logger.debug("[VAULT] Created new key-derivation salt")
    return salt


class Vault:
    """Encrypted config and action-log storage on top of a BlobStore."""

    def __init__(
        self,
        store: BlobStore,
        secret: str,
        cipher: Cipher | None = None,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ):
        self.store = store
        self._secret = secret
        self.cipher = cipher or FernetCipher(_get_or_create_salt(store))
        self.max_entries = max_entries

    def _read(self, key: str) -> Any:
        opaque = self.store.get(key)
        if opaque is None:
            return None
        return self.cipher.decrypt(opaque, self._secret)

    def _write(self, key: str, value: Any) -> None:
        self.store.put(key, self.cipher.encrypt(value, self._secret))

    # --- Config -------------------------------------------------------------

    def save_config(self, config: AssistantConfig) -> None:
        self._write(CONFIG_KEY, config.model_dump())
        logger.info(f"[VAULT] Saved assistant config ({config.provider}/{config.model})")

    def load_config(self) -> AssistantConfig | None:
        try:
            data = self._read(CONFIG_KEY)
            return AssistantConfig(**data) if data is not None else None
        except _VAULT_ERRORS as e:
            logger.error(f"[VAULT] Failed to load assistant config: {e!r}")
            return None

    def clear_config(self) -> None:
        """Remove the config and, with it, the action log."""
        self.store.delete(CONFIG_KEY)
        self.clear_history()
        logger.info("[VAULT] Cleared assistant config and history")

    def is_configured(self) -> bool:
        config = self.load_config()
        return bool(config and config.enabled and config.api_key)

    # --- History ------------------------------------------------------------

    def _read_history(self) -> list[ActionHistoryEntry]:
        """The action log; raises VaultError when a stored log cannot be read."""
        try:
            data = self._read(HISTORY_KEY) or []
            return [ActionHistoryEntry(**item) for item in data]
        except (*_VAULT_ERRORS, TypeError) as e:
            raise VaultError(f"Action history cannot be read: {e!r}") from e

    def load_history(self) -> list[ActionHistoryEntry]:
        try:
            return self._read_history()
        except VaultError as e:
            logger.error(f"[VAULT] {e}")
            return []

    def _write_history(self, entries: list[ActionHistoryEntry]) -> None:
        self._write(HISTORY_KEY, [entry.model_dump(mode="json") for entry in entries])

    def save_action(self, entry: ActionHistoryEntry) -> None:
        """
        Append ``entry``, keeping only the newest entries. Never raises.

        A log that exists but cannot be read is left as it is and the entry
        is dropped.
        """
        try:
            entries = self._read_history()
            entries.append(entry)
            self._write_history(entries[-self.max_entries:])
            logger.debug(f"[VAULT] Saved action {entry.id} ({len(entries)} in log)")
        except (*_VAULT_ERRORS, VaultError) as e:
            logger.error(f"[VAULT] Failed to save action {entry.id}: {e!r}")

    def get_action(self, action_id: str) -> ActionHistoryEntry | None:
        return next((e for e in self.load_history() if e.id == action_id), None)

    def update_action(self, action_id: str, **updates: Any) -> ActionHistoryEntry:
        entries = self._read_history()
        for index, entry in enumerate(entries):
            if entry.id == action_id:
                entries[index] = entry.model_copy(update=updates)
                self._write_history(entries)
                return entries[index]
        raise ActionNotFoundError(f"Action not found: {action_id}")

    def clear_history(self) -> None:
        self.store.delete(HISTORY_KEY)
