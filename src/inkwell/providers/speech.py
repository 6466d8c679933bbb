"""Text-to-speech recitations through the ElevenLabs HTTP API."""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import httpx

from ..defaults import API_TIMEOUTS, API_URLS
from ..errors import ProviderError
from ..models import AudioRecitation, RecitationPace, new_id
from ..observability import log as obs_log

logger = logging.getLogger(__name__)

DEFAULT_MODEL_ID = "eleven_monolingual_v1"

# Approximate bitrate of the returned MP3 stream, used to estimate duration
MP3_BITRATE_BPS = 128_000

PACE_SETTINGS = {
    RecitationPace.SLOW: {"stability": 0.85, "similarity_boost": 0.75, "style": 0.3},
    RecitationPace.NORMAL: {"stability": 0.65, "similarity_boost": 0.75, "style": 0.45},
    RecitationPace.DRAMATIC: {"stability": 0.4, "similarity_boost": 0.8, "style": 0.7},
}

_STANZA_BREAK = re.compile(r"\n\n+")


@dataclass
class Voice:
    voice_id: str
    name: str
    category: str = ""
    description: Optional[str] = None
    preview_url: Optional[str] = None


def format_text_for_pace(text: str, pace: RecitationPace) -> str:
    """Lengthen stanza pauses with ellipsis markers; slow and dramatic pause longer."""
    pace = RecitationPace(pace)
    if pace == RecitationPace.SLOW:
        marker = "\n\n...\n\n"
    elif pace == RecitationPace.DRAMATIC:
        marker = "\n\n..\n\n"
    else:
        marker = "\n\n"
    return _STANZA_BREAK.sub(marker, text)


def estimate_duration(size_bytes: int) -> float:
    return round(size_bytes * 8 / MP3_BITRATE_BPS, 2)


class SpeechClient:
    """Minimal ElevenLabs client: list voices, synthesize, check a key."""

    def __init__(
        self,
        model_id: str = DEFAULT_MODEL_ID,
        base_url: str = API_URLS["elevenlabs"],
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.model_id = model_id
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            transport=self._transport,
        )

    async def list_voices(self, api_key: str) -> list[Voice]:
        """Return the voices available to ``api_key``.

        Raises:
            ProviderError: On HTTP or network failure
        """
        try:
            async with self._client(10.0) as client:
                response = await client.get("/voices", headers={"xi-api-key": api_key})
        except httpx.RequestError as e:
            raise ProviderError(f"ElevenLabs: Network error: {e}") from e

        if response.status_code >= 400:
            raise ProviderError(
                f"ElevenLabs: HTTP {response.status_code} - Failed to fetch voices"
            )

        return [
            Voice(
                voice_id=v["voice_id"],
                name=v.get("name", ""),
                category=v.get("category") or "",
                description=v.get("description"),
                preview_url=v.get("preview_url"),
            )
            for v in response.json().get("voices", [])
        ]

    async def generate_speech(
        self,
        api_key: str,
        voice_id: str,
        text: str,
        pace: RecitationPace = RecitationPace.NORMAL,
    ) -> bytes:
        """Synthesize ``text`` and return MP3 bytes.

        Raises:
            ProviderError: On HTTP or network failure, with the provider's
                ``detail.message`` when it sends one
        """
        pace = RecitationPace(pace)
        body = {
            "text": format_text_for_pace(text, pace),
            "model_id": self.model_id,
            "voice_settings": {**PACE_SETTINGS[pace], "use_speaker_boost": True},
        }
        headers = {"xi-api-key": api_key, "Accept": "audio/mpeg"}

        try:
            async with self._client(API_TIMEOUTS["elevenlabs"]) as client:
                response = await client.post(
                    f"/text-to-speech/{voice_id}", json=body, headers=headers
                )
        except httpx.RequestError as e:
            raise ProviderError(f"ElevenLabs: Network error: {e}") from e

        if response.status_code >= 400:
            message = f"HTTP {response.status_code}"
            try:
                data: Any = response.json()
            except ValueError:
                data = None
            if isinstance(data, dict) and isinstance(data.get("detail"), dict):
                message = data["detail"].get("message") or message
            raise ProviderError(f"ElevenLabs: {message}")

        return response.content

    async def validate_api_key(self, api_key: str) -> bool:
        try:
            async with self._client(5.0) as client:
                response = await client.get("/voices", headers={"xi-api-key": api_key})
        except httpx.RequestError as e:
            logger.debug(f"ElevenLabs key check failed: {e}")
            return False
        return response.status_code < 400

    async def save_recitation(
        self,
        api_key: str,
        poem_id: str,
        text: str,
        voice: Voice,
        output_dir: Path,
        pace: RecitationPace = RecitationPace.NORMAL,
    ) -> AudioRecitation:
        """Synthesize a poem, write the MP3 under ``output_dir`` and describe it."""
        audio = await self.generate_speech(api_key, voice.voice_id, text, pace)

        recitation_id = new_id()
        output_dir.mkdir(parents=True, exist_ok=True)
        path = output_dir / f"{poem_id}-{recitation_id}.mp3"
        path.write_bytes(audio)

        duration = estimate_duration(len(audio))
        obs_log(
            "speech.generated",
            poem_id=poem_id,
            voice_id=voice.voice_id,
            bytes=len(audio),
            duration_seconds=duration,
        )
        logger.info(f"Recitation saved: {path}")

        return AudioRecitation(
            id=recitation_id,
            poem_id=poem_id,
            file_uri=path.as_uri(),
            voice_id=voice.voice_id,
            voice_name=voice.name,
            duration_seconds=duration,
            file_size_bytes=len(audio),
            pace=RecitationPace(pace),
        )
