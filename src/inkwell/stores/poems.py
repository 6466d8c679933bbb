"""Poem store: optimistic poem CRUD with background mirroring."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Optional

from ..defaults import ALL_POEMS_COLLECTION_ID, DRAFTS_COLLECTION_ID, STORAGE_KEYS
from ..local_storage import LocalStorage
from ..models import (
    AudioRecitation,
    OriginalSource,
    Poem,
    PoemReview,
    PoemSource,
    PoemStatus,
    new_id,
    next_timestamp,
    now_iso,
    parse_timestamp,
)
from ..remote.ports import PoemPort, RecitationPort, ReviewPort
from ..sync import BackgroundSync
from ..text_metrics import count_lines, count_words
from .base import ReconcilingStore

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "title",
    "body",
    "tags",
    "form_type",
    "status",
    "is_favorite",
    "collection_ids",
    "prompt_id",
    "review",
)

# Mirrored by the generic remote update; review and collection_ids have
# their own remote operations.
REMOTE_FIELDS = ("title", "body", "tags", "form_type", "status", "is_favorite", "prompt_id")


def normalize_tags(tags: list[str]) -> list[str]:
    """Strip tags, drop blanks and duplicates, keep first-seen order."""
    seen: dict[str, None] = {}
    for tag in tags:
        cleaned = tag.strip()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def _updated_sort_key(poem: Poem) -> datetime:
    # Unparseable stamps from restored snapshots or server rows sort oldest
    try:
        return parse_timestamp(poem.updated_at)
    except (TypeError, ValueError):
        return _OLDEST


class PoemStore(ReconcilingStore):
    """Authoritative in-memory list of the user's poems, newest first."""

    storage_key = STORAGE_KEYS["poems"]
    label = "poems"

    def __init__(
        self,
        storage: Optional[LocalStorage] = None,
        remote: Optional[PoemPort] = None,
        reviews: Optional[ReviewPort] = None,
        recitations: Optional[RecitationPort] = None,
        sync: Optional[BackgroundSync] = None,
        collection_resolver: Optional[Callable[[str], str]] = None,
    ):
        super().__init__(storage, sync)
        self.remote = remote
        self.reviews = reviews
        self.recitations = recitations
        self.collection_resolver = collection_resolver or (lambda collection_id: collection_id)
        self.poems: list[Poem] = []

    # Persistence ----------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        return {"poems": [poem.to_dict() for poem in self.poems]}

    def restore(self, data: dict[str, Any]) -> None:
        self.poems = [Poem.from_dict(item) for item in data.get("poems", [])]

    # Helpers ----------------------------------------------------------------

    def _index(self, poem_id: str) -> Optional[int]:
        for index, poem in enumerate(self.poems):
            if poem.id == poem_id:
                return index
        return None

    def _apply(self, poem_id: str, change: Callable[[Poem], Optional[Poem]]) -> Optional[Poem]:
        """Replace the poem with ``change(poem)``; None from ``change`` means no-op."""
        index = self._index(self.resolve_id(poem_id))
        if index is None:
            return None
        updated = change(self.poems[index])
        if updated is None:
            return None
        self.poems[index] = updated
        self.persist()
        return updated

    # Sync -------------------------------------------------------------------

    async def fetch_from_server(self, user_id: Optional[str] = None) -> bool:
        """Replace every local poem with the server's set.

        On failure the local poems stay and ``sync_error`` holds the message.
        """
        if self.remote is None:
            return self._remote_missing()

        def apply(poems: list[Poem]) -> None:
            self.poems = list(poems)
            logger.info(f"Fetched {len(self.poems)} poems from server")

        return await self._refresh(self.remote.fetch_all, apply)

    # CRUD -------------------------------------------------------------------

    def create_poem(
        self,
        title: str = "",
        body: str = "",
        tags: Optional[list[str]] = None,
        form_type: Optional[str] = None,
        source: Optional[PoemSource] = None,
        prompt_id: Optional[str] = None,
        collection_ids: Optional[list[str]] = None,
        user_id: Optional[str] = None,
    ) -> Poem:
        """Create a draft under a temporary id and return it immediately.

        With ``user_id`` the poem is also created remotely in the background
        and re-keyed to the server id once that succeeds.
        """
        now = now_iso()
        if collection_ids is None:
            collection_ids = [ALL_POEMS_COLLECTION_ID, DRAFTS_COLLECTION_ID]

        poem = Poem(
            id=new_id(),
            title=title,
            body=body,
            tags=normalize_tags(tags or []),
            form_type=form_type,
            status=PoemStatus.DRAFT,
            is_favorite=False,
            word_count=count_words(body),
            line_count=count_lines(body),
            collection_ids=[self.collection_resolver(cid) for cid in collection_ids],
            prompt_id=prompt_id,
            source=source or OriginalSource(),
            created_at=now,
            updated_at=now,
        )
        self.poems.insert(0, poem)
        self.persist()
        logger.debug(f"Created poem {poem.id} locally")

        if user_id and self.remote is not None:
            remote = self.remote
            payload = replace(poem)
            resolve_collection = self.collection_resolver

            def create(_current_id: str) -> Awaitable[Poem]:
                # Collections created just before may have reconciled by now
                ids = [resolve_collection(cid) for cid in payload.collection_ids]
                return remote.create(user_id, replace(payload, collection_ids=ids))

            self._mirror(
                poem.id,
                "create poem",
                create,
                lambda server_poem: self._reconcile(poem.id, payload.updated_at, server_poem),
            )

        return poem

    def _reconcile(self, temp_id: str, created_stamp: str, server_poem: Poem) -> None:
        """Re-key the temporary record to the server's id.

        An untouched record takes the server's fields; one edited since
        creation keeps its local fields and adopts only the server id and
        creation time, since the queued updates carry the edits.
        """
        self._record_alias(temp_id, server_poem.id)
        index = self._index(temp_id)
        if index is None:
            logger.debug(f"Poem {temp_id} was removed before its create settled")
            return

        local = self.poems[index]
        if local.updated_at == created_stamp:
            # Memberships stay local: collection reconciles rewrite them without a stamp
            merged = replace(
                server_poem,
                collection_ids=list(local.collection_ids),
                review=local.review,
                recitation_ids=list(local.recitation_ids),
            )
        else:
            merged = replace(local, id=server_poem.id, created_at=server_poem.created_at)

        self.poems[index] = merged
        self.poems = [
            poem for i, poem in enumerate(self.poems) if i == index or poem.id != merged.id
        ]
        self.persist()
        logger.debug(f"Reconciled poem {temp_id} -> {server_poem.id}")
        self._notify_reconciled(temp_id, server_poem.id)

    def update_poem(self, poem_id: str, **changes: Any) -> Optional[Poem]:
        """Merge ``changes`` into the poem and stamp a new ``updated_at``.

        Word and line counts are recomputed when the body changes. A missing
        poem is a local no-op; the remote update is still queued.

        Returns:
            The updated poem, or None if no poem matched

        Raises:
            ValueError: On an unknown field or an invalid status
        """
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown poem fields: {', '.join(sorted(unknown))}")
        if "status" in changes:
            changes["status"] = PoemStatus(changes["status"])
        if "tags" in changes:
            changes["tags"] = normalize_tags(changes["tags"])
        if "collection_ids" in changes:
            changes["collection_ids"] = [
                self.collection_resolver(cid) for cid in changes["collection_ids"]
            ]

        def change(poem: Poem) -> Poem:
            derived = {}
            if "body" in changes:
                derived = {
                    "word_count": count_words(changes["body"]),
                    "line_count": count_lines(changes["body"]),
                }
            return replace(
                poem, **changes, **derived, updated_at=next_timestamp(poem.updated_at)
            )

        updated = self._apply(poem_id, change)

        remote_changes = {name: changes[name] for name in REMOTE_FIELDS if name in changes}
        if remote_changes and self.remote is not None:
            remote = self.remote
            self._mirror(
                poem_id,
                "update poem",
                lambda current_id: remote.update(current_id, remote_changes),
            )
        return updated

    def delete_poem(self, poem_id: str) -> None:
        """Remove the poem locally and queue the remote delete."""
        current_id = self.resolve_id(poem_id)
        self.poems = [poem for poem in self.poems if poem.id != current_id]
        self.persist()

        if self.remote is not None:
            remote = self.remote
            self._mirror(poem_id, "delete poem", lambda resolved: remote.delete(resolved))

    # Queries --------------------------------------------------------------

    def get_poem_by_id(self, poem_id: str) -> Optional[Poem]:
        index = self._index(poem_id)
        return self.poems[index] if index is not None else None

    def get_recent(self, limit: int = 5) -> list[Poem]:
        """Poems ordered by last update, most recent first."""
        ordered = sorted(self.poems, key=_updated_sort_key, reverse=True)
        return ordered[:limit]

    def get_poems_by_collection(self, collection_id: str) -> list[Poem]:
        """Members of a collection.

        "all-poems" returns every poem and "drafts" every draft, whatever
        their explicit memberships.
        """
        if collection_id == ALL_POEMS_COLLECTION_ID:
            return list(self.poems)
        if collection_id == DRAFTS_COLLECTION_ID:
            return self.get_poems_by_status(PoemStatus.DRAFT)
        collection_id = self.collection_resolver(collection_id)
        return [poem for poem in self.poems if collection_id in poem.collection_ids]

    def get_poems_by_status(self, status: PoemStatus | str) -> list[Poem]:
        status = PoemStatus(status)
        return [poem for poem in self.poems if poem.status == status]

    def search_poems(self, query: str) -> list[Poem]:
        """Case-insensitive substring match over title, body and tags."""
        needle = query.lower()
        return [
            poem
            for poem in self.poems
            if needle in poem.title.lower()
            or needle in poem.body.lower()
            or any(needle in tag.lower() for tag in poem.tags)
        ]

    # Collection membership ------------------------------------------------

    def add_poem_to_collection(self, poem_id: str, collection_id: str) -> None:
        """Add a membership. Already a member: nothing changes locally.

        The idempotent remote upsert is queued either way.
        """
        collection_id = self.collection_resolver(collection_id)

        def change(poem: Poem) -> Optional[Poem]:
            if collection_id in poem.collection_ids:
                return None
            return replace(
                poem,
                collection_ids=[*poem.collection_ids, collection_id],
                updated_at=next_timestamp(poem.updated_at),
            )

        self._apply(poem_id, change)

        if self.remote is not None:
            remote = self.remote
            resolve_collection = self.collection_resolver
            self._mirror(
                poem_id,
                "add poem to collection",
                lambda current_id: remote.add_to_collection(
                    current_id, resolve_collection(collection_id)
                ),
            )

    def remove_poem_from_collection(self, poem_id: str, collection_id: str) -> None:
        collection_id = self.collection_resolver(collection_id)

        def change(poem: Poem) -> Optional[Poem]:
            if collection_id not in poem.collection_ids:
                return None
            return replace(
                poem,
                collection_ids=[cid for cid in poem.collection_ids if cid != collection_id],
                updated_at=next_timestamp(poem.updated_at),
            )

        self._apply(poem_id, change)

        if self.remote is not None:
            remote = self.remote
            resolve_collection = self.collection_resolver
            self._mirror(
                poem_id,
                "remove poem from collection",
                lambda current_id: remote.remove_from_collection(
                    current_id, resolve_collection(collection_id)
                ),
            )

    def replace_collection_reference(self, old_id: str, new_id_: str) -> None:
        """Point memberships at a collection's reconciled id. Not an edit: no timestamp."""
        changed = False
        for index, poem in enumerate(self.poems):
            if old_id not in poem.collection_ids:
                continue
            ids: list[str] = []
            for cid in poem.collection_ids:
                cid = new_id_ if cid == old_id else cid
                if cid not in ids:
                    ids.append(cid)
            self.poems[index] = replace(poem, collection_ids=ids)
            changed = True
        if changed:
            self.persist()

    # Favorites ------------------------------------------------------------

    def toggle_favorite(self, poem_id: str) -> Optional[bool]:
        """Flip the favorite flag.

        The remote call receives the value seen before the flip and stores
        its negation, so it never depends on a second optimistic write.

        Returns:
            The new flag, or None if no poem matched
        """
        poem = self.get_poem_by_id(self.resolve_id(poem_id))
        current = poem.is_favorite if poem else False

        updated = self._apply(
            poem_id,
            lambda p: replace(
                p, is_favorite=not p.is_favorite, updated_at=next_timestamp(p.updated_at)
            ),
        )

        if self.remote is not None:
            remote = self.remote
            self._mirror(
                poem_id,
                "toggle favorite",
                lambda current_id: remote.toggle_favorite(current_id, current),
            )
        return updated.is_favorite if updated else None

    # Reviews and recitations ---------------------------------------------

    def attach_review(
        self, poem_id: str, review: PoemReview, user_id: Optional[str] = None
    ) -> Optional[Poem]:
        """Make ``review`` the poem's current review.

        With ``user_id`` the review is stored remotely and its id replaced by
        the server's once that succeeds.
        """
        current_id = self.resolve_id(poem_id)
        local_review = replace(review, poem_id=current_id)
        updated = self._apply(
            poem_id,
            lambda p: replace(p, review=local_review, updated_at=next_timestamp(p.updated_at)),
        )

        if updated is not None and user_id and self.reviews is not None:
            reviews = self.reviews
            self.sync.submit(
                self.queue_key(poem_id),
                "create review",
                lambda: reviews.create(
                    user_id, replace(local_review, poem_id=self.resolve_id(poem_id))
                ),
                lambda server_review: self._reconcile_review(
                    poem_id, local_review.id, server_review
                ),
            )
        return updated

    def _reconcile_review(self, poem_id: str, local_id: str, server_review: PoemReview) -> None:
        def change(poem: Poem) -> Optional[Poem]:
            if poem.review is None or poem.review.id != local_id:
                return None
            return replace(
                poem,
                review=replace(
                    poem.review,
                    id=server_review.id,
                    poem_id=server_review.poem_id,
                    generated_at=server_review.generated_at,
                ),
            )

        self._apply(poem_id, change)

    def update_review_notes(self, poem_id: str, personal_notes: str) -> Optional[Poem]:
        """Set the personal notes on the poem's current review."""

        def change(poem: Poem) -> Optional[Poem]:
            if poem.review is None:
                return None
            return replace(
                poem,
                review=replace(poem.review, personal_notes=personal_notes),
                updated_at=next_timestamp(poem.updated_at),
            )

        updated = self._apply(poem_id, change)

        if updated is not None and self.reviews is not None:
            reviews = self.reviews

            async def push_notes() -> None:
                poem = self.get_poem_by_id(self.resolve_id(poem_id))
                if poem is None or poem.review is None:
                    return
                await reviews.update_notes(poem.review.id, personal_notes)

            self.sync.submit(self.queue_key(poem_id), "update review notes", push_notes)
        return updated

    def add_recitation(
        self, poem_id: str, recitation: AudioRecitation, user_id: Optional[str] = None
    ) -> Optional[Poem]:
        """Reference a generated recitation from the poem.

        With ``user_id`` the metadata row is created remotely and the local
        reference swapped for the server's recitation id.
        """
        updated = self._apply(
            poem_id,
            lambda p: replace(
                p,
                recitation_ids=[*p.recitation_ids, recitation.id],
                updated_at=next_timestamp(p.updated_at),
            ),
        )

        if updated is not None and user_id and self.recitations is not None:
            recitations = self.recitations
            self.sync.submit(
                self.queue_key(poem_id),
                "create recitation",
                lambda: recitations.create(
                    user_id, replace(recitation, poem_id=self.resolve_id(poem_id))
                ),
                lambda server: self._replace_recitation_id(poem_id, recitation.id, server.id),
            )
        return updated

    def _replace_recitation_id(self, poem_id: str, local_id: str, server_id: str) -> None:
        def change(poem: Poem) -> Optional[Poem]:
            if local_id not in poem.recitation_ids:
                return None
            return replace(
                poem,
                recitation_ids=[server_id if rid == local_id else rid for rid in poem.recitation_ids],
            )

        self._apply(poem_id, change)
