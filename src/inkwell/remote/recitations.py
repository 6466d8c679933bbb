"""Remote metadata rows for audio recitations. The audio stays on the device."""

from typing import Any

from ..models import AudioRecitation, RecitationPace, now_iso
from .backend import BackendClient


def row_to_recitation(row: dict[str, Any]) -> AudioRecitation:
    return AudioRecitation(
        id=row["id"],
        poem_id=row["poem_id"],
        file_uri=row.get("file_uri") or "",
        video_uri=row.get("video_uri"),
        voice_id=row.get("voice_id") or "",
        voice_name=row.get("voice_name") or "",
        pace=RecitationPace(row.get("pace") or "normal"),
        background_track=row.get("background_track"),
        duration_seconds=float(row.get("duration_seconds") or 0),
        file_size_bytes=int(row.get("file_size_bytes") or 0),
        generated_at=row.get("generated_at") or now_iso(),
    )


class RecitationService:
    def __init__(self, client: BackendClient):
        self.client = client

    async def fetch_for_poem(self, poem_id: str) -> list[AudioRecitation]:
        rows = await self.client.select(
            "audio_recitations",
            filters={"poem_id": poem_id},
            order="generated_at",
            descending=True,
        )
        return [row_to_recitation(row) for row in rows]

    async def fetch_all(self) -> list[AudioRecitation]:
        rows = await self.client.select(
            "audio_recitations", order="generated_at", descending=True
        )
        return [row_to_recitation(row) for row in rows]

    async def create(self, user_id: str, recitation: AudioRecitation) -> AudioRecitation:
        row = await self.client.insert_one(
            "audio_recitations",
            {
                "poem_id": recitation.poem_id,
                "user_id": user_id,
                "file_uri": recitation.file_uri,
                "video_uri": recitation.video_uri,
                "voice_id": recitation.voice_id,
                "voice_name": recitation.voice_name,
                "pace": recitation.pace.value,
                "background_track": recitation.background_track,
                "duration_seconds": recitation.duration_seconds,
                "file_size_bytes": recitation.file_size_bytes,
            },
        )
        return row_to_recitation(row)

    async def delete(self, recitation_id: str) -> None:
        await self.client.delete("audio_recitations", filters={"id": recitation_id})
