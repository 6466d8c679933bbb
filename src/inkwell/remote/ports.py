"""Interfaces the local stores depend on.

The backend services in this package satisfy them; tests substitute
in-memory fakes. Every method may raise RemoteError.
"""

from typing import Any, Optional, Protocol

from ..models import (
    AnthologyMeta,
    AppSettings,
    AudioRecitation,
    Collection,
    Poem,
    PoemReview,
    SectionDivider,
)


class PoemPort(Protocol):
    async def fetch_all(self) -> list[Poem]: ...

    async def fetch_by_id(self, poem_id: str) -> Optional[Poem]: ...

    async def create(self, user_id: str, poem: Poem) -> Poem: ...

    async def update(self, poem_id: str, changes: dict[str, Any]) -> None: ...

    async def delete(self, poem_id: str) -> None: ...

    async def toggle_favorite(self, poem_id: str, current: bool) -> None: ...

    async def add_to_collection(self, poem_id: str, collection_id: str) -> None: ...

    async def remove_from_collection(self, poem_id: str, collection_id: str) -> None: ...

    async def search(self, query: str) -> list[Poem]: ...


class CollectionPort(Protocol):
    async def fetch_all(self) -> list[Collection]: ...

    async def fetch_by_id(self, collection_id: str) -> Optional[Collection]: ...

    async def create(self, user_id: str, collection: Collection) -> Collection: ...

    async def update(self, collection_id: str, changes: dict[str, Any]) -> None: ...

    async def delete(self, collection_id: str) -> bool: ...

    async def set_poem_order(self, collection_id: str, poem_ids: list[str]) -> None: ...

    async def promote_to_anthology(self, collection_id: str, meta: AnthologyMeta) -> None: ...

    async def update_anthology_meta(
        self, collection_id: str, changes: dict[str, Any]
    ) -> None: ...

    async def upsert_section_divider(
        self, collection_id: str, divider: SectionDivider
    ) -> None: ...

    async def remove_section_divider(self, collection_id: str, after_poem_id: str) -> None: ...


class SettingsPort(Protocol):
    async def fetch(self, user_id: str) -> Optional[AppSettings]: ...

    async def update(self, user_id: str, changes: dict[str, Any]) -> None: ...

    async def reset(self, user_id: str) -> None: ...


class ReviewPort(Protocol):
    async def fetch_latest(self, poem_id: str) -> Optional[PoemReview]: ...

    async def fetch_history(self, poem_id: str) -> list[PoemReview]: ...

    async def create(self, user_id: str, review: PoemReview) -> PoemReview: ...

    async def update_notes(self, review_id: str, personal_notes: str) -> None: ...

    async def delete(self, review_id: str) -> None: ...


class RecitationPort(Protocol):
    async def fetch_for_poem(self, poem_id: str) -> list[AudioRecitation]: ...

    async def fetch_all(self) -> list[AudioRecitation]: ...

    async def create(self, user_id: str, recitation: AudioRecitation) -> AudioRecitation: ...

    async def delete(self, recitation_id: str) -> None: ...
