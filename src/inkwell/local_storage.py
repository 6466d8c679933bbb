"""On-device key-value persistence.

``LocalStorage`` keeps store snapshots and provider caches, one JSON blob per
namespaced key. ``SecureStore`` is the same capability in a separate,
owner-only database file and holds credentials through ``ApiKeyVault``.
"""

import asyncio
import json
import logging
import os
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Optional

from .database import get_db_connection, init_db
from .defaults import SECURE_STORE_KEYS, data_dir
from .errors import StorageError

logger = logging.getLogger(__name__)


class LocalStorage:
    """Repository for key-value reads and writes.

    Opens one connection per call so the async wrappers can run each
    operation on a worker thread.
    """

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize storage, creating the database if needed.

        Args:
            db_path: Optional custom database path for testing.
                     Defaults to $XDG_DATA_HOME/inkwell/inkwell.db
        """
        self.db_path = init_db(db_path)

    def get_item(self, key: str) -> Optional[str]:
        """Return the stored value for ``key`` or None."""
        try:
            with closing(get_db_connection(self.db_path)) as conn:
                row = conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?", (key,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read {key}: {e}") from e
        return row["value"] if row else None

    def set_item(self, key: str, value: str) -> None:
        """Insert or replace the value stored under ``key``."""
        try:
            with closing(get_db_connection(self.db_path)) as conn, conn:
                conn.execute(
                    """
                    INSERT INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    (key, value),
                )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to write {key}: {e}") from e

    def remove_item(self, key: str) -> None:
        """Delete ``key``; missing keys are ignored."""
        try:
            with closing(get_db_connection(self.db_path)) as conn, conn:
                conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise StorageError(f"Failed to remove {key}: {e}") from e

    def keys(self, prefix: str = "") -> list[str]:
        """List stored keys starting with ``prefix``."""
        try:
            with closing(get_db_connection(self.db_path)) as conn:
                rows = conn.execute(
                    "SELECT key FROM kv_store WHERE substr(key, 1, ?) = ? ORDER BY key",
                    (len(prefix), prefix),
                ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to list keys: {e}") from e
        return [row["key"] for row in rows]

    async def aget_item(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self.get_item, key)

    async def aset_item(self, key: str, value: str) -> None:
        await asyncio.to_thread(self.set_item, key, value)

    async def aremove_item(self, key: str) -> None:
        await asyncio.to_thread(self.remove_item, key)


class SecureStore(LocalStorage):
    """Credential storage in its own file, readable only by the owner."""

    def __init__(self, db_path: Optional[Path] = None):
        if db_path is None:
            db_path = data_dir() / "secure.db"
        super().__init__(db_path)
        os.chmod(self.db_path, 0o600)


class ApiKeyVault:
    """Per-provider API keys kept as one JSON object in the secure store."""

    PROVIDERS = ("anthropic", "openai", "elevenlabs")

    def __init__(self, store: SecureStore):
        self.store = store
        self.key = SECURE_STORE_KEYS["api_keys"]

    def _load(self) -> dict[str, str]:
        raw = self.store.get_item(self.key)
        if not raw:
            return {}
        try:
            keys = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Stored API keys are unreadable, ignoring them")
            return {}
        return keys if isinstance(keys, dict) else {}

    def _check_provider(self, provider: str) -> None:
        if provider not in self.PROVIDERS:
            raise ValueError(
                f"Unknown provider '{provider}'. Expected one of: {', '.join(self.PROVIDERS)}"
            )

    def get_keys(self) -> dict[str, str]:
        return self._load()

    def get_key(self, provider: str) -> Optional[str]:
        self._check_provider(provider)
        return self._load().get(provider) or None

    def set_key(self, provider: str, api_key: str) -> None:
        self._check_provider(provider)
        api_key = api_key.strip()
        if not api_key:
            raise ValueError("API key cannot be empty")
        keys = self._load()
        keys[provider] = api_key
        self.store.set_item(self.key, json.dumps(keys))

    def clear_key(self, provider: str) -> None:
        self._check_provider(provider)
        keys = self._load()
        if keys.pop(provider, None) is not None:
            self.store.set_item(self.key, json.dumps(keys))

    def clear_all(self) -> None:
        self.store.remove_item(self.key)


def mask_key(api_key: str) -> str:
    """Render a key for display, keeping only its last four characters."""
    if len(api_key) <= 4:
        return "****"
    return f"{'*' * 8}{api_key[-4:]}"
