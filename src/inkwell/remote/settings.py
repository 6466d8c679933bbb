"""Remote operations for per-user settings."""

from enum import Enum
from typing import Any, Optional

from ..defaults import ALL_POEMS_COLLECTION_ID
from ..models import AppSettings
from .backend import BackendClient


def row_to_settings(row: dict[str, Any]) -> AppSettings:
    values = {name: row[name] for name in AppSettings.FIELDS if row.get(name) is not None}
    if not values.get("default_collection_id"):
        values["default_collection_id"] = ALL_POEMS_COLLECTION_ID
    return AppSettings.from_dict(values)


def settings_to_row(changes: dict[str, Any]) -> dict[str, Any]:
    """Column values for the given fields; an empty default collection is stored as null."""
    row = {}
    for name in AppSettings.FIELDS:
        if name not in changes:
            continue
        value = changes[name]
        row[name] = value.value if isinstance(value, Enum) else value
    if "default_collection_id" in row and not row["default_collection_id"]:
        row["default_collection_id"] = None
    return row


class SettingsService:
    """The ``user_settings`` row of one user."""

    def __init__(self, client: BackendClient):
        self.client = client

    async def fetch(self, user_id: str) -> Optional[AppSettings]:
        """Return the user's settings, or None when no row exists yet."""
        row = await self.client.select_one("user_settings", filters={"user_id": user_id})
        return row_to_settings(row) if row else None

    async def update(self, user_id: str, changes: dict[str, Any]) -> None:
        row = settings_to_row(changes)
        if not row:
            return
        await self.client.upsert(
            "user_settings", {"user_id": user_id, **row}, on_conflict="user_id"
        )

    async def reset(self, user_id: str) -> None:
        """Write the default settings; the default collection goes back to null."""
        row = settings_to_row(AppSettings().to_dict())
        row["default_collection_id"] = None
        await self.client.upsert(
            "user_settings", {"user_id": user_id, **row}, on_conflict="user_id"
        )
