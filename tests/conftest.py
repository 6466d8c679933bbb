"""Shared test fixtures for all tests."""

import os
from dataclasses import replace
from pathlib import Path
from typing import Any, Optional

import pytest
from dotenv import load_dotenv
from typer.testing import CliRunner

# Load .env before anything else (same as __main__.py does)
config_home = os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config"))
dotenv_path = Path(config_home) / "inkwell" / ".env"
if dotenv_path.exists():
    load_dotenv(dotenv_path)

from inkwell import observability  # noqa: E402
from inkwell.database import init_db  # noqa: E402
from inkwell.defaults import ensure_config  # noqa: E402
from inkwell.errors import RemoteError  # noqa: E402
from inkwell.local_storage import LocalStorage  # noqa: E402
from inkwell.models import (  # noqa: E402
    AnthologyMeta,
    AppSettings,
    AudioRecitation,
    Collection,
    Poem,
    PoemReview,
    SectionDivider,
    new_id,
    now_iso,
)
from inkwell.text_metrics import count_lines, count_words  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path: Path, monkeypatch) -> Path:
    """Point XDG dirs and the observability log at a per-test directory."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    observability.configure(tmp_path / "observability")
    return tmp_path


@pytest.fixture
def storage(tmp_path: Path) -> LocalStorage:
    """On-device key-value storage in a temporary database."""
    return LocalStorage(tmp_path / "inkwell-test.db")


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def inkwell_home(isolated_dirs: Path, monkeypatch) -> Path:
    """A default config with no backend, as written by ``inkwell init``."""
    for name in ("INKWELL_BACKEND_URL", "INKWELL_ANON_KEY", "INKWELL_ACCESS_TOKEN", "INKWELL_USER_ID"):
        monkeypatch.delenv(name, raising=False)
    ensure_config()
    init_db()
    return isolated_dirs


class FakePoemRemote:
    """In-memory PoemPort. Set ``fail`` to make every call raise."""

    def __init__(self) -> None:
        self.rows: dict[str, Poem] = {}
        self.calls: list[tuple] = []
        self.fail = False

    def _check(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        if self.fail:
            raise RemoteError(f"{name}: backend unavailable")

    async def fetch_all(self) -> list[Poem]:
        self._check("fetch_all")
        return list(self.rows.values())

    async def fetch_by_id(self, poem_id: str) -> Optional[Poem]:
        self._check("fetch_by_id", poem_id)
        return self.rows.get(poem_id)

    async def create(self, user_id: str, poem: Poem) -> Poem:
        self._check("create", user_id, poem.id)
        server = replace(poem, id=f"srv-{len(self.rows) + 1}", created_at=now_iso())
        self.rows[server.id] = server
        return server

    async def update(self, poem_id: str, changes: dict[str, Any]) -> None:
        self._check("update", poem_id, dict(changes))
        if poem_id in self.rows:
            self.rows[poem_id] = replace(self.rows[poem_id], **changes)

    async def delete(self, poem_id: str) -> None:
        self._check("delete", poem_id)
        self.rows.pop(poem_id, None)

    async def toggle_favorite(self, poem_id: str, current: bool) -> None:
        self._check("toggle_favorite", poem_id, current)
        if poem_id in self.rows:
            self.rows[poem_id] = replace(self.rows[poem_id], is_favorite=not current)

    async def add_to_collection(self, poem_id: str, collection_id: str) -> None:
        self._check("add_to_collection", poem_id, collection_id)

    async def remove_from_collection(self, poem_id: str, collection_id: str) -> None:
        self._check("remove_from_collection", poem_id, collection_id)

    async def search(self, query: str) -> list[Poem]:
        self._check("search", query)
        return [p for p in self.rows.values() if query.lower() in p.body.lower()]


class FakeCollectionRemote:
    def __init__(self) -> None:
        self.rows: dict[str, Collection] = {}
        self.calls: list[tuple] = []
        self.fail = False

    def _check(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        if self.fail:
            raise RemoteError(f"{name}: backend unavailable")

    async def fetch_all(self) -> list[Collection]:
        self._check("fetch_all")
        return list(self.rows.values())

    async def fetch_by_id(self, collection_id: str) -> Optional[Collection]:
        self._check("fetch_by_id", collection_id)
        return self.rows.get(collection_id)

    async def create(self, user_id: str, collection: Collection) -> Collection:
        self._check("create", user_id, collection.id)
        server = replace(collection, id=f"col-{len(self.rows) + 1}")
        self.rows[server.id] = server
        return server

    async def update(self, collection_id: str, changes: dict[str, Any]) -> None:
        self._check("update", collection_id, dict(changes))

    async def delete(self, collection_id: str) -> bool:
        self._check("delete", collection_id)
        return self.rows.pop(collection_id, None) is not None

    async def set_poem_order(self, collection_id: str, poem_ids: list[str]) -> None:
        self._check("set_poem_order", collection_id, list(poem_ids))

    async def promote_to_anthology(self, collection_id: str, meta: AnthologyMeta) -> None:
        self._check("promote_to_anthology", collection_id, meta)

    async def update_anthology_meta(self, collection_id: str, changes: dict[str, Any]) -> None:
        self._check("update_anthology_meta", collection_id, dict(changes))

    async def upsert_section_divider(self, collection_id: str, divider: SectionDivider) -> None:
        self._check("upsert_section_divider", collection_id, divider)

    async def remove_section_divider(self, collection_id: str, after_poem_id: str) -> None:
        self._check("remove_section_divider", collection_id, after_poem_id)


class FakeSettingsRemote:
    def __init__(self, stored: Optional[AppSettings] = None) -> None:
        self.stored = stored
        self.calls: list[tuple] = []
        self.fail = False

    def _check(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        if self.fail:
            raise RemoteError(f"{name}: backend unavailable")

    async def fetch(self, user_id: str) -> Optional[AppSettings]:
        self._check("fetch", user_id)
        return self.stored

    async def update(self, user_id: str, changes: dict[str, Any]) -> None:
        self._check("update", user_id, dict(changes))

    async def reset(self, user_id: str) -> None:
        self._check("reset", user_id)


class FakeReviewRemote:
    def __init__(self) -> None:
        self.calls: list[tuple] = []

    async def fetch_latest(self, poem_id: str) -> Optional[PoemReview]:
        return None

    async def fetch_history(self, poem_id: str) -> list[PoemReview]:
        return []

    async def create(self, user_id: str, review: PoemReview) -> PoemReview:
        self.calls.append(("create", user_id, review.poem_id))
        return replace(review, id="review-srv-1")

    async def update_notes(self, review_id: str, personal_notes: str) -> None:
        self.calls.append(("update_notes", review_id, personal_notes))

    async def delete(self, review_id: str) -> None:
        self.calls.append(("delete", review_id))


class FakeRecitationRemote:
    def __init__(self) -> None:
        self.calls: list[tuple] = []

    async def fetch_for_poem(self, poem_id: str) -> list[AudioRecitation]:
        return []

    async def fetch_all(self) -> list[AudioRecitation]:
        return []

    async def create(self, user_id: str, recitation: AudioRecitation) -> AudioRecitation:
        self.calls.append(("create", user_id, recitation.poem_id))
        return replace(recitation, id="recitation-srv-1")

    async def delete(self, recitation_id: str) -> None:
        self.calls.append(("delete", recitation_id))


@pytest.fixture
def poem_remote() -> FakePoemRemote:
    return FakePoemRemote()


@pytest.fixture
def collection_remote() -> FakeCollectionRemote:
    return FakeCollectionRemote()


@pytest.fixture
def settings_remote() -> FakeSettingsRemote:
    return FakeSettingsRemote()


@pytest.fixture
def review_remote() -> FakeReviewRemote:
    return FakeReviewRemote()


@pytest.fixture
def recitation_remote() -> FakeRecitationRemote:
    return FakeRecitationRemote()


def make_poem(body: str = "a line\nanother line", **fields: Any) -> Poem:
    """Build a stored-looking poem for fetch results and fixtures."""
    now = now_iso()
    values: dict[str, Any] = {
        "id": new_id(),
        "title": "Sample",
        "body": body,
        "word_count": count_words(body),
        "line_count": count_lines(body),
        "created_at": now,
        "updated_at": now,
    }
    values.update(fields)
    return Poem(**values)
