"""Remote operations for poem reviews."""

from typing import Any, Optional

from ..models import LiteraryDevice, PoemReview, ReviewTheme, ReviewTone, now_iso
from .backend import BackendClient


def row_to_review(row: dict[str, Any]) -> PoemReview:
    return PoemReview(
        id=row["id"],
        poem_id=row["poem_id"],
        summary=row.get("summary") or "",
        themes=[
            ReviewTheme(name=t.get("name", ""), explanation=t.get("explanation", ""))
            for t in row.get("themes") or []
        ],
        literary_devices=[
            LiteraryDevice(
                device=d.get("device", ""),
                example=d.get("example", ""),
                explanation=d.get("explanation", ""),
            )
            for d in row.get("literary_devices") or []
        ],
        structure_analysis=row.get("structure_analysis") or "",
        interpretation=row.get("interpretation") or "",
        tone=ReviewTone(row.get("tone") or "encouraging"),
        personal_notes=row.get("personal_notes") or "",
        generated_at=row.get("generated_at") or now_iso(),
        poem_body_hash=row.get("poem_body_hash") or "",
    )


class ReviewService:
    """Reviews live in ``poem_reviews``; the newest one is the poem's current review."""

    def __init__(self, client: BackendClient):
        self.client = client

    async def fetch_latest(self, poem_id: str) -> Optional[PoemReview]:
        row = await self.client.select_one(
            "poem_reviews",
            filters={"poem_id": poem_id},
            order="generated_at",
            descending=True,
        )
        return row_to_review(row) if row else None

    async def fetch_history(self, poem_id: str) -> list[PoemReview]:
        rows = await self.client.select(
            "poem_reviews",
            filters={"poem_id": poem_id},
            order="generated_at",
            descending=True,
        )
        return [row_to_review(row) for row in rows]

    async def create(self, user_id: str, review: PoemReview) -> PoemReview:
        row = await self.client.insert_one(
            "poem_reviews",
            {
                "poem_id": review.poem_id,
                "user_id": user_id,
                "summary": review.summary,
                "themes": [theme.to_dict() for theme in review.themes],
                "literary_devices": [d.to_dict() for d in review.literary_devices],
                "structure_analysis": review.structure_analysis,
                "interpretation": review.interpretation,
                "tone": review.tone.value,
                "poem_body_hash": review.poem_body_hash,
                "personal_notes": review.personal_notes,
            },
        )
        return row_to_review(row)

    async def update_notes(self, review_id: str, personal_notes: str) -> None:
        await self.client.update(
            "poem_reviews", {"personal_notes": personal_notes}, filters={"id": review_id}
        )

    async def delete(self, review_id: str) -> None:
        await self.client.delete("poem_reviews", filters={"id": review_id})
