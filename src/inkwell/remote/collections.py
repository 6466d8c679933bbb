"""Remote operations for collections, anthologies and section dividers."""

import logging
from typing import Any, Optional

from ..models import AnthologyMeta, Collection, SectionDivider, now_iso
from .backend import BackendClient

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "description", "cover_color", "icon_name")

# AnthologyMeta field -> collections column
ANTHOLOGY_COLUMNS = {
    "subtitle": "anthology_subtitle",
    "author_bio": "anthology_author_bio",
    "dedication": "anthology_dedication",
    "foreword": "anthology_foreword",
    "cover_image_uri": "anthology_cover_image",
    "include_reviews": "anthology_include_reviews",
    "published_at": "anthology_published_at",
}


def row_to_divider(row: dict[str, Any]) -> SectionDivider:
    return SectionDivider(
        after_poem_id=row["after_poem_id"],
        heading=row.get("heading") or "",
        subtitle=row.get("subtitle"),
    )


def row_to_collection(row: dict[str, Any], dividers: list[SectionDivider]) -> Collection:
    """Anthology metadata is present only when the anthology flag is set."""
    is_anthology = bool(row.get("is_anthology", False))
    meta = None
    if is_anthology:
        meta = AnthologyMeta(
            subtitle=row.get("anthology_subtitle") or "",
            author_bio=row.get("anthology_author_bio") or "",
            dedication=row.get("anthology_dedication") or "",
            foreword=row.get("anthology_foreword") or "",
            cover_image_uri=row.get("anthology_cover_image"),
            include_reviews=bool(row.get("anthology_include_reviews", False)),
            published_at=row.get("anthology_published_at"),
        )

    return Collection(
        id=row["id"],
        name=row.get("name") or "",
        description=row.get("description") or "",
        cover_color=row.get("cover_color") or "#0F3460",
        icon_name=row.get("icon_name") or "folder",
        is_default=bool(row.get("is_default", False)),
        is_anthology=is_anthology,
        anthology_meta=meta,
        poem_order=list(row.get("poem_order") or []),
        section_dividers=list(dividers),
        created_at=row.get("created_at") or now_iso(),
        updated_at=row.get("updated_at") or now_iso(),
    )


def anthology_columns(changes: dict[str, Any]) -> dict[str, Any]:
    return {
        ANTHOLOGY_COLUMNS[name]: value
        for name, value in changes.items()
        if name in ANTHOLOGY_COLUMNS
    }


class CollectionService:
    """Collection CRUD against the backend ``collections`` table."""

    def __init__(self, client: BackendClient):
        self.client = client

    async def _divider_map(self, collection_ids: list[str]) -> dict[str, list[SectionDivider]]:
        if not collection_ids:
            return {}
        rows = await self.client.select(
            "section_dividers", filters={"collection_id": collection_ids}
        )
        divider_map: dict[str, list[SectionDivider]] = {}
        for row in rows:
            divider_map.setdefault(row["collection_id"], []).append(row_to_divider(row))
        return divider_map

    async def fetch_all(self) -> list[Collection]:
        rows = await self.client.select("collections", order="created_at")
        divider_map = await self._divider_map([row["id"] for row in rows])
        return [row_to_collection(row, divider_map.get(row["id"], [])) for row in rows]

    async def fetch_by_id(self, collection_id: str) -> Optional[Collection]:
        row = await self.client.select_one("collections", filters={"id": collection_id})
        if row is None:
            return None
        divider_map = await self._divider_map([collection_id])
        return row_to_collection(row, divider_map.get(collection_id, []))

    async def fetch_defaults(self) -> list[Collection]:
        rows = await self.client.select("collections", filters={"is_default": True})
        return [row_to_collection(row, []) for row in rows]

    async def create(self, user_id: str, collection: Collection) -> Collection:
        row = await self.client.insert_one(
            "collections",
            {
                "user_id": user_id,
                "name": collection.name,
                "description": collection.description,
                "cover_color": collection.cover_color,
                "icon_name": collection.icon_name,
            },
        )
        logger.debug(f"Created collection {row['id']}")
        return row_to_collection(row, [])

    async def update(self, collection_id: str, changes: dict[str, Any]) -> None:
        row = {name: changes[name] for name in UPDATABLE_FIELDS if name in changes}
        if not row:
            return
        await self.client.update("collections", row, filters={"id": collection_id})

    async def delete(self, collection_id: str) -> bool:
        """Delete a non-default collection. Returns False for defaults."""
        row = await self.client.select_one(
            "collections", columns="is_default", filters={"id": collection_id}
        )
        if row and row.get("is_default"):
            return False
        await self.client.delete("collections", filters={"id": collection_id})
        return True

    async def set_poem_order(self, collection_id: str, poem_ids: list[str]) -> None:
        await self.client.update(
            "collections", {"poem_order": list(poem_ids)}, filters={"id": collection_id}
        )

    async def promote_to_anthology(self, collection_id: str, meta: AnthologyMeta) -> None:
        await self.client.update(
            "collections",
            {"is_anthology": True, **anthology_columns(meta.to_dict())},
            filters={"id": collection_id},
        )

    async def update_anthology_meta(
        self, collection_id: str, changes: dict[str, Any]
    ) -> None:
        row = anthology_columns(changes)
        if not row:
            return
        await self.client.update("collections", row, filters={"id": collection_id})

    async def upsert_section_divider(
        self, collection_id: str, divider: SectionDivider
    ) -> None:
        await self.client.upsert(
            "section_dividers",
            {
                "collection_id": collection_id,
                "after_poem_id": divider.after_poem_id,
                "heading": divider.heading,
                "subtitle": divider.subtitle,
            },
            on_conflict="collection_id,after_poem_id",
        )

    async def remove_section_divider(self, collection_id: str, after_poem_id: str) -> None:
        await self.client.delete(
            "section_dividers",
            filters={"collection_id": collection_id, "after_poem_id": after_poem_id},
        )
