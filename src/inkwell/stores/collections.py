"""Collection store: collections, anthologies and section dividers."""

import logging
from collections.abc import Callable
from dataclasses import replace
from typing import Any, Optional

from ..defaults import NEW_COLLECTION_COLOR, NEW_COLLECTION_ICON, STORAGE_KEYS
from ..local_storage import LocalStorage
from ..models import (
    AnthologyMeta,
    Collection,
    SectionDivider,
    default_collections,
    new_id,
    next_timestamp,
    now_iso,
)
from ..remote.ports import CollectionPort
from ..sync import BackgroundSync
from .base import ReconcilingStore

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "description", "cover_color", "icon_name")


class CollectionStore(ReconcilingStore):
    """Authoritative list of collections. The two defaults are always present."""

    storage_key = STORAGE_KEYS["collections"]
    label = "collections"

    def __init__(
        self,
        storage: Optional[LocalStorage] = None,
        remote: Optional[CollectionPort] = None,
        sync: Optional[BackgroundSync] = None,
    ):
        super().__init__(storage, sync)
        self.remote = remote
        self.collections: list[Collection] = default_collections()

    def snapshot(self) -> dict[str, Any]:
        return {"collections": [c.to_dict() for c in self.collections]}

    def restore(self, data: dict[str, Any]) -> None:
        self.collections = [Collection.from_dict(item) for item in data.get("collections", [])]

    def after_load(self) -> None:
        self.ensure_defaults()

    def ensure_defaults(self) -> None:
        """Put back any missing default collection, ahead of the user's own."""
        present = {c.id for c in self.collections}
        missing = [c for c in default_collections() if c.id not in present]
        if not missing:
            return
        self.collections = missing + self.collections
        logger.debug(f"Restored {len(missing)} default collections")
        self.persist()

    def _index(self, collection_id: str) -> Optional[int]:
        for index, collection in enumerate(self.collections):
            if collection.id == collection_id:
                return index
        return None

    def _apply(
        self, collection_id: str, change: Callable[[Collection], Optional[Collection]]
    ) -> Optional[Collection]:
        index = self._index(self.resolve_id(collection_id))
        if index is None:
            return None
        updated = change(self.collections[index])
        if updated is None:
            return None
        self.collections[index] = updated
        self.persist()
        return updated

    async def fetch_from_server(self, user_id: Optional[str] = None) -> bool:
        """Replace local collections with the server's; an empty result keeps the local set."""
        if self.remote is None:
            return self._remote_missing()

        def apply(collections: list[Collection]) -> None:
            if not collections:
                logger.info("Server returned no collections, keeping local set")
                return
            self.collections = list(collections)
            self.ensure_defaults()

        return await self._refresh(self.remote.fetch_all, apply)

    def create_collection(
        self,
        name: str,
        description: str = "",
        cover_color: str = NEW_COLLECTION_COLOR,
        icon_name: str = NEW_COLLECTION_ICON,
        user_id: Optional[str] = None,
    ) -> Collection:
        """Append a new collection under a temporary id and return it.

        Raises:
            ValueError: If the name is blank
        """
        if not name.strip():
            raise ValueError("Collection name cannot be empty")

        now = now_iso()
        collection = Collection(
            id=new_id(),
            name=name.strip(),
            description=description,
            cover_color=cover_color,
            icon_name=icon_name,
            created_at=now,
            updated_at=now,
        )
        self.collections.append(collection)
        self.persist()

        if user_id and self.remote is not None:
            remote = self.remote
            payload = replace(collection)
            self._mirror(
                collection.id,
                "create collection",
                lambda _current_id: remote.create(user_id, payload),
                lambda server: self._reconcile(collection.id, payload.updated_at, server),
            )
        return collection

    def _reconcile(self, temp_id: str, created_stamp: str, server: Collection) -> None:
        self._record_alias(temp_id, server.id)
        index = self._index(temp_id)
        if index is None:
            return

        local = self.collections[index]
        if local.updated_at == created_stamp:
            merged = server
        else:
            merged = replace(local, id=server.id, created_at=server.created_at)

        self.collections[index] = merged
        self.collections = [
            c for i, c in enumerate(self.collections) if i == index or c.id != merged.id
        ]
        self.persist()
        logger.debug(f"Reconciled collection {temp_id} -> {server.id}")
        self._notify_reconciled(temp_id, server.id)

    def update_collection(self, collection_id: str, **changes: Any) -> Optional[Collection]:
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown collection fields: {', '.join(sorted(unknown))}")

        updated = self._apply(
            collection_id,
            lambda c: replace(c, **changes, updated_at=next_timestamp(c.updated_at)),
        )
        if changes and self.remote is not None:
            remote = self.remote
            self._mirror(
                collection_id,
                "update collection",
                lambda current_id: remote.update(current_id, dict(changes)),
            )
        return updated

    def delete_collection(self, collection_id: str) -> bool:
        """Remove a user collection. Defaults are protected: returns False, nothing changes."""
        current_id = self.resolve_id(collection_id)
        target = self.get_collection_by_id(current_id)
        if target is not None and target.is_default:
            logger.info(f"Refusing to delete default collection {current_id}")
            return False

        self.collections = [c for c in self.collections if c.id != current_id]
        self.persist()

        if self.remote is not None:
            remote = self.remote
            self._mirror(collection_id, "delete collection", lambda resolved: remote.delete(resolved))
        return True

    def get_collection_by_id(self, collection_id: str) -> Optional[Collection]:
        index = self._index(collection_id)
        return self.collections[index] if index is not None else None

    def get_user_collections(self) -> list[Collection]:
        return [c for c in self.collections if not c.is_default and not c.is_anthology]

    def get_anthologies(self) -> list[Collection]:
        return [c for c in self.collections if c.is_anthology]

    def set_poem_order(self, collection_id: str, poem_ids: list[str]) -> Optional[Collection]:
        order = list(poem_ids)
        updated = self._apply(
            collection_id,
            lambda c: replace(c, poem_order=order, updated_at=next_timestamp(c.updated_at)),
        )
        if self.remote is not None:
            remote = self.remote
            self._mirror(
                collection_id,
                "set poem order",
                lambda current_id: remote.set_poem_order(current_id, order),
            )
        return updated

    def replace_poem_reference(self, old_id: str, new_id_: str) -> None:
        """Swap a reconciled poem id into orders and dividers. Not an edit: no timestamp."""
        changed = False
        for index, collection in enumerate(self.collections):
            if old_id not in collection.poem_order and not any(
                d.after_poem_id == old_id for d in collection.section_dividers
            ):
                continue
            self.collections[index] = replace(
                collection,
                poem_order=[new_id_ if pid == old_id else pid for pid in collection.poem_order],
                section_dividers=[
                    replace(d, after_poem_id=new_id_) if d.after_poem_id == old_id else d
                    for d in collection.section_dividers
                ],
            )
            changed = True
        if changed:
            self.persist()

    # Anthologies ----------------------------------------------------------

    def promote_to_anthology(
        self, collection_id: str, meta: Optional[AnthologyMeta] = None
    ) -> Optional[Collection]:
        """Set the anthology flag and metadata in one update."""
        meta = meta or AnthologyMeta()
        updated = self._apply(
            collection_id,
            lambda c: replace(
                c,
                is_anthology=True,
                anthology_meta=meta,
                updated_at=next_timestamp(c.updated_at),
            ),
        )
        if self.remote is not None:
            remote = self.remote
            self._mirror(
                collection_id,
                "promote to anthology",
                lambda current_id: remote.promote_to_anthology(current_id, meta),
            )
        return updated

    def update_anthology_meta(self, collection_id: str, **changes: Any) -> Optional[Collection]:
        """Partially update anthology metadata; a collection without metadata is left alone.

        Raises:
            ValueError: On a key that is not an anthology field
        """
        # Validates keys even when nothing matches locally.
        AnthologyMeta().merged(changes)

        def change(collection: Collection) -> Optional[Collection]:
            if collection.anthology_meta is None:
                return None
            return replace(
                collection,
                anthology_meta=collection.anthology_meta.merged(changes),
                updated_at=next_timestamp(collection.updated_at),
            )

        updated = self._apply(collection_id, change)
        if changes and self.remote is not None:
            remote = self.remote
            self._mirror(
                collection_id,
                "update anthology meta",
                lambda current_id: remote.update_anthology_meta(current_id, dict(changes)),
            )
        return updated

    def add_section_divider(
        self,
        collection_id: str,
        after_poem_id: str,
        heading: str,
        subtitle: Optional[str] = None,
    ) -> Optional[Collection]:
        """Add a divider, replacing any existing one after the same poem."""
        divider = SectionDivider(after_poem_id=after_poem_id, heading=heading, subtitle=subtitle)
        updated = self._apply(
            collection_id,
            lambda c: replace(
                c,
                section_dividers=[
                    *[d for d in c.section_dividers if d.after_poem_id != after_poem_id],
                    divider,
                ],
                updated_at=next_timestamp(c.updated_at),
            ),
        )
        if self.remote is not None:
            remote = self.remote
            self._mirror(
                collection_id,
                "upsert section divider",
                lambda current_id: remote.upsert_section_divider(current_id, divider),
            )
        return updated

    def remove_section_divider(self, collection_id: str, after_poem_id: str) -> Optional[Collection]:
        def change(collection: Collection) -> Optional[Collection]:
            kept = [d for d in collection.section_dividers if d.after_poem_id != after_poem_id]
            if len(kept) == len(collection.section_dividers):
                return None
            return replace(
                collection,
                section_dividers=kept,
                updated_at=next_timestamp(collection.updated_at),
            )

        updated = self._apply(collection_id, change)
        if self.remote is not None:
            remote = self.remote
            self._mirror(
                collection_id,
                "remove section divider",
                lambda current_id: remote.remove_section_divider(current_id, after_poem_id),
            )
        return updated
