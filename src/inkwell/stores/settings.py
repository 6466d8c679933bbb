"""Settings store: one AppSettings object per user."""

import logging
from dataclasses import replace
from enum import Enum
from typing import Any, Optional

from ..defaults import STORAGE_KEYS, TTS_RATE_MAX, TTS_RATE_MIN
from ..local_storage import LocalStorage
from ..models import (
    AppSettings,
    EditorFontFamily,
    EditorFontSize,
    RecitationPace,
    ReviewTone,
    ThemePreference,
)
from ..remote.ports import SettingsPort
from ..sync import BackgroundSync
from .base import LocalStore

logger = logging.getLogger(__name__)


def clamp_tts_rate(rate: float) -> float:
    return max(TTS_RATE_MIN, min(TTS_RATE_MAX, float(rate)))


class SettingsStore(LocalStore):
    """Optimistic settings with a background upsert of the changed fields.

    Remote calls are only made when a ``user_id`` is given; every call for
    one user shares a queue, so the last write issued is the last to land.
    """

    storage_key = STORAGE_KEYS["settings"]
    label = "settings"

    def __init__(
        self,
        storage: Optional[LocalStorage] = None,
        remote: Optional[SettingsPort] = None,
        sync: Optional[BackgroundSync] = None,
    ):
        super().__init__(storage, sync)
        self.remote = remote
        self.settings = AppSettings()

    def snapshot(self) -> dict[str, Any]:
        return {"settings": self.settings.to_dict()}

    def restore(self, data: dict[str, Any]) -> None:
        self.settings = AppSettings.from_dict(data.get("settings", {}))

    def _queue_key(self, user_id: str) -> str:
        return f"{self.label}:{user_id}"

    async def fetch_from_server(self, user_id: Optional[str] = None) -> bool:
        """Replace local settings with the user's row; a missing row keeps local values."""
        if self.remote is None or not user_id:
            return self._remote_missing()
        remote = self.remote

        def apply(settings: Optional[AppSettings]) -> None:
            if settings is None:
                logger.info("No remote settings yet, keeping local values")
                return
            self.settings = settings

        return await self._refresh(lambda: remote.fetch(user_id), apply)

    def update_settings(self, user_id: Optional[str] = None, **changes: Any) -> AppSettings:
        """Apply a partial update.

        Raises:
            ValueError: On an unknown field or an invalid enum value; nothing
                is changed in that case
        """
        unknown = set(changes) - set(AppSettings.FIELDS)
        if unknown:
            raise ValueError(f"Unknown settings fields: {', '.join(sorted(unknown))}")

        coerced = {}
        for name, value in changes.items():
            enum_type = AppSettings.ENUM_FIELDS.get(name)
            if enum_type is not None:
                value = enum_type(value)
            elif name == "tts_rate":
                value = clamp_tts_rate(value)
            coerced[name] = value

        self.settings = replace(self.settings, **coerced)
        self.persist()

        if user_id and coerced and self.remote is not None:
            remote = self.remote
            row = {
                name: value.value if isinstance(value, Enum) else value
                for name, value in coerced.items()
            }
            self.sync.submit(
                self._queue_key(user_id),
                "update settings",
                lambda: remote.update(user_id, row),
            )
        return self.settings

    def set_theme(self, theme: ThemePreference | str, user_id: Optional[str] = None) -> None:
        self.update_settings(user_id, theme=theme)

    def set_editor_font_family(
        self, family: EditorFontFamily | str, user_id: Optional[str] = None
    ) -> None:
        self.update_settings(user_id, editor_font_family=family)

    def set_editor_font_size(
        self, size: EditorFontSize | str, user_id: Optional[str] = None
    ) -> None:
        self.update_settings(user_id, editor_font_size=size)

    def set_tts_rate(self, rate: float, user_id: Optional[str] = None) -> float:
        """Set the speech rate, clamped to the supported range. Returns the stored rate."""
        return self.update_settings(user_id, tts_rate=rate).tts_rate

    def set_recitation_pace(
        self, pace: RecitationPace | str, user_id: Optional[str] = None
    ) -> None:
        self.update_settings(user_id, recitation_pace=pace)

    def set_review_tone(self, tone: ReviewTone | str, user_id: Optional[str] = None) -> None:
        self.update_settings(user_id, review_tone=tone)

    def toggle_syllable_counter(self, user_id: Optional[str] = None) -> bool:
        value = not self.settings.show_syllable_counter
        self.update_settings(user_id, show_syllable_counter=value)
        return value

    def toggle_line_numbers(self, user_id: Optional[str] = None) -> bool:
        value = not self.settings.show_line_numbers
        self.update_settings(user_id, show_line_numbers=value)
        return value

    def toggle_share_watermark(self, user_id: Optional[str] = None) -> bool:
        value = not self.settings.share_watermark
        self.update_settings(user_id, share_watermark=value)
        return value

    def reset_to_defaults(self, user_id: Optional[str] = None) -> AppSettings:
        """Restore every field to its default and mirror the defaults remotely."""
        self.settings = AppSettings()
        self.persist()
        if user_id and self.remote is not None:
            remote = self.remote
            self.sync.submit(
                self._queue_key(user_id), "reset settings", lambda: remote.reset(user_id)
            )
        return self.settings
