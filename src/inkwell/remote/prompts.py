"""Writing prompts, per-user prompt state, and the poetry form reference table."""

from typing import Any, Optional

from ..models import PoetryForm, PoetryFormExample, PromptCategory, WritingPrompt
from .backend import BackendClient


def row_to_prompt(row: dict[str, Any], state: Optional[dict[str, Any]] = None) -> WritingPrompt:
    state = state or {}
    return WritingPrompt(
        id=row["id"],
        text=row.get("text") or "",
        category=PromptCategory(row["category"]),
        is_favorite=bool(state.get("is_favorite", False)),
        is_used=bool(state.get("is_used", False)),
    )


def row_to_form(row: dict[str, Any]) -> PoetryForm:
    return PoetryForm(
        slug=row["slug"],
        name=row.get("name") or "",
        origin=row.get("origin") or "",
        description=row.get("description") or "",
        rules=list(row.get("rules") or []),
        rhyme_scheme=row.get("rhyme_scheme"),
        line_count=row.get("line_count"),
        syllable_pattern=row.get("syllable_pattern"),
        examples=[
            PoetryFormExample(
                title=e.get("title", ""), author=e.get("author", ""), text=e.get("text", "")
            )
            for e in row.get("examples") or []
        ],
    )


class PromptService:
    """Shared prompt catalog merged with the user's favorite/used flags."""

    def __init__(self, client: BackendClient):
        self.client = client

    async def _state_map(self) -> dict[str, dict[str, Any]]:
        rows = await self.client.select("user_prompt_state")
        return {row["prompt_id"]: row for row in rows}

    async def fetch_prompts(self) -> list[WritingPrompt]:
        rows = await self.client.select("writing_prompts")
        if not rows:
            return []
        states = await self._state_map()
        return [row_to_prompt(row, states.get(row["id"])) for row in rows]

    async def fetch_by_category(self, category: PromptCategory) -> list[WritingPrompt]:
        rows = await self.client.select(
            "writing_prompts", filters={"category": category.value}
        )
        states = await self._state_map()
        return [row_to_prompt(row, states.get(row["id"])) for row in rows]

    async def random_prompt(
        self, category: Optional[PromptCategory] = None
    ) -> Optional[WritingPrompt]:
        rows = await self.client.rpc(
            "get_random_prompt", {"cat": category.value if category else None}
        )
        if not rows:
            return None
        state = await self.client.select_one(
            "user_prompt_state", filters={"prompt_id": rows[0]["id"]}
        )
        return row_to_prompt(rows[0], state)

    async def set_favorite(self, user_id: str, prompt_id: str, is_favorite: bool) -> None:
        await self.client.upsert(
            "user_prompt_state",
            {"user_id": user_id, "prompt_id": prompt_id, "is_favorite": is_favorite},
            on_conflict="user_id,prompt_id",
        )

    async def mark_used(self, user_id: str, prompt_id: str) -> None:
        await self.client.upsert(
            "user_prompt_state",
            {"user_id": user_id, "prompt_id": prompt_id, "is_used": True},
            on_conflict="user_id,prompt_id",
        )


class FormService:
    def __init__(self, client: BackendClient):
        self.client = client

    async def fetch_forms(self) -> list[PoetryForm]:
        rows = await self.client.select("poetry_forms", order="name")
        return [row_to_form(row) for row in rows]

    async def fetch_by_slug(self, slug: str) -> Optional[PoetryForm]:
        row = await self.client.select_one("poetry_forms", filters={"slug": slug})
        return row_to_form(row) if row else None
