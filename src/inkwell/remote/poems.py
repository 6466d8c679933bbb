"""Remote operations for poems and the poem_collections join table."""

import logging
from enum import Enum
from typing import Any, Optional

from ..models import (
    CatalogSource,
    DictatedSource,
    ImportedSource,
    ImportMethod,
    OriginalSource,
    Poem,
    PoemSource,
    PoemStatus,
    now_iso,
)
from ..text_metrics import count_lines, count_words
from .backend import BackendClient

logger = logging.getLogger(__name__)

# Poem fields mirrored by the generic update call. Review and collection
# membership map to other relations and have dedicated operations.
UPDATABLE_FIELDS = (
    "title",
    "body",
    "tags",
    "form_type",
    "status",
    "is_favorite",
    "prompt_id",
)


def row_to_source(row: dict[str, Any]) -> PoemSource:
    source_type = row.get("source_type") or "original"
    if source_type == "imported":
        return ImportedSource(
            method=ImportMethod(row.get("import_method") or "text"),
            imported_at=row.get("imported_at") or now_iso(),
            author=row.get("source_author"),
            source_url=row.get("source_url"),
            source_book=row.get("source_book"),
        )
    if source_type == "dictated":
        return DictatedSource()
    if source_type == "poetrydb":
        return CatalogSource(external_id=row.get("poetrydb_id"))
    return OriginalSource()


def source_to_columns(source: PoemSource) -> dict[str, Any]:
    if isinstance(source, ImportedSource):
        return {
            "source_type": "imported",
            "import_method": source.method.value,
            "source_author": source.author,
            "source_url": source.source_url,
            "source_book": source.source_book,
            "imported_at": source.imported_at,
        }
    if isinstance(source, CatalogSource):
        return {"source_type": "poetrydb", "poetrydb_id": source.external_id}
    if isinstance(source, (OriginalSource, DictatedSource)):
        return {"source_type": source.type}
    raise TypeError(f"Unknown poem source: {source!r}")


def row_to_poem(row: dict[str, Any], collection_ids: list[str]) -> Poem:
    """Build a Poem from a poems row; reviews and recitations load separately."""
    body = row.get("body") or ""
    return Poem(
        id=row["id"],
        title=row.get("title") or "",
        body=body,
        tags=list(row.get("tags") or []),
        form_type=row.get("form_type"),
        status=PoemStatus(row.get("status") or "draft"),
        is_favorite=bool(row.get("is_favorite", False)),
        word_count=row.get("word_count", count_words(body)),
        line_count=row.get("line_count", count_lines(body)),
        collection_ids=list(collection_ids),
        prompt_id=row.get("prompt_id"),
        source=row_to_source(row),
        created_at=row.get("created_at") or now_iso(),
        updated_at=row.get("updated_at") or now_iso(),
    )


def poem_to_row(user_id: str, poem: Poem) -> dict[str, Any]:
    return {
        "user_id": user_id,
        "title": poem.title,
        "body": poem.body,
        "tags": list(poem.tags),
        "word_count": count_words(poem.body),
        "line_count": count_lines(poem.body),
        "form_type": poem.form_type,
        "status": poem.status.value,
        "is_favorite": poem.is_favorite,
        "prompt_id": poem.prompt_id,
        **source_to_columns(poem.source),
    }


def changes_to_row(changes: dict[str, Any]) -> dict[str, Any]:
    """Column values for a partial update; fields outside UPDATABLE_FIELDS are ignored."""
    row: dict[str, Any] = {}
    for name in UPDATABLE_FIELDS:
        if name not in changes:
            continue
        value = changes[name]
        row[name] = value.value if isinstance(value, Enum) else value
    if "body" in row:
        row["word_count"] = count_words(row["body"])
        row["line_count"] = count_lines(row["body"])
    return row


class PoemService:
    """Poem CRUD against the backend ``poems`` table."""

    def __init__(self, client: BackendClient):
        self.client = client

    async def _collection_map(self, poem_ids: list[str]) -> dict[str, list[str]]:
        if not poem_ids:
            return {}
        links = await self.client.select(
            "poem_collections",
            columns="poem_id,collection_id",
            filters={"poem_id": poem_ids},
        )
        collection_map: dict[str, list[str]] = {}
        for link in links:
            collection_map.setdefault(link["poem_id"], []).append(link["collection_id"])
        return collection_map

    async def _with_collections(self, rows: list[dict[str, Any]]) -> list[Poem]:
        collection_map = await self._collection_map([row["id"] for row in rows])
        return [row_to_poem(row, collection_map.get(row["id"], [])) for row in rows]

    async def fetch_all(self) -> list[Poem]:
        """Fetch every poem visible to the session, newest edits first."""
        rows = await self.client.select("poems", order="updated_at", descending=True)
        return await self._with_collections(rows)

    async def fetch_by_id(self, poem_id: str) -> Optional[Poem]:
        row = await self.client.select_one("poems", filters={"id": poem_id})
        if row is None:
            return None
        collection_map = await self._collection_map([poem_id])
        return row_to_poem(row, collection_map.get(poem_id, []))

    async def create(self, user_id: str, poem: Poem) -> Poem:
        """Insert the poem and its collection links; return the stored record."""
        row = await self.client.insert_one("poems", poem_to_row(user_id, poem))
        if poem.collection_ids:
            await self.client.insert(
                "poem_collections",
                [
                    {"poem_id": row["id"], "collection_id": collection_id}
                    for collection_id in poem.collection_ids
                ],
            )
        logger.debug(f"Created poem {row['id']}")
        return row_to_poem(row, poem.collection_ids)

    async def update(self, poem_id: str, changes: dict[str, Any]) -> None:
        row = changes_to_row(changes)
        if not row:
            return
        await self.client.update("poems", row, filters={"id": poem_id})

    async def delete(self, poem_id: str) -> None:
        await self.client.delete("poems", filters={"id": poem_id})

    async def toggle_favorite(self, poem_id: str, current: bool) -> None:
        """Store the negation of ``current``, the value seen before the toggle."""
        await self.client.update(
            "poems", {"is_favorite": not current}, filters={"id": poem_id}
        )

    async def add_to_collection(self, poem_id: str, collection_id: str) -> None:
        await self.client.upsert(
            "poem_collections",
            {"poem_id": poem_id, "collection_id": collection_id},
            on_conflict="poem_id,collection_id",
        )

    async def remove_from_collection(self, poem_id: str, collection_id: str) -> None:
        await self.client.delete(
            "poem_collections",
            filters={"poem_id": poem_id, "collection_id": collection_id},
        )

    async def search(self, query: str) -> list[Poem]:
        """Full-text search through the backend's ``search_poems`` function."""
        rows = await self.client.rpc("search_poems", {"search_query": query})
        return await self._with_collections(rows or [])
