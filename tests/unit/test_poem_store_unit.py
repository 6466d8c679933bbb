"""Unit tests for PoemStore optimistic updates and reconciliation."""

import asyncio
import json

import pytest

from conftest import make_poem
from inkwell.local_storage import LocalStorage
from inkwell.models import AudioRecitation, PoemReview, PoemStatus, ReviewTone
from inkwell.stores import PoemStore
from inkwell.text_metrics import count_lines, count_words


def test_end_to_end_local_lifecycle() -> None:
    """Test create, update, favorite and delete on a local-only store."""
    store = PoemStore()

    poem = store.create_poem(title="Valentine", body="Roses are red\nViolets are blue")
    assert poem.word_count == 6
    assert poem.line_count == 2
    assert poem.status is PoemStatus.DRAFT
    assert poem.collection_ids == ["all-poems", "drafts"]

    updated = store.update_poem(poem.id, status="complete")
    assert updated is not None
    assert updated.status is PoemStatus.COMPLETE
    assert updated.updated_at != poem.updated_at

    assert store.toggle_favorite(poem.id) is True
    assert store.get_poem_by_id(poem.id).is_favorite is True

    store.delete_poem(poem.id)
    assert store.get_poem_by_id(poem.id) is None


def test_create_derives_counts_from_body() -> None:
    """Test derived counts match the text metrics exactly."""
    body = "\nFirst line here\n\n  second   line\n\n"
    poem = PoemStore().create_poem(body=body, tags=["night", " night ", "", "sky"])

    assert poem.word_count == count_words(body)
    assert poem.line_count == count_lines(body)
    assert poem.tags == ["night", "sky"]


def test_new_poems_are_prepended() -> None:
    """Test the newest poem is first in the snapshot."""
    store = PoemStore()
    first = store.create_poem(title="one")
    second = store.create_poem(title="two")
    assert [p.id for p in store.poems] == [second.id, first.id]


def test_created_poem_is_available_before_remote_settles(poem_remote) -> None:
    """Test the temp record is queryable until reconciliation replaces it."""
    store = PoemStore(remote=poem_remote)

    async def scenario():
        poem = store.create_poem(title="Dawn", body="light on the water", user_id="u1")
        assert store.get_poem_by_id(poem.id) is poem
        await store.sync.drain()
        return poem

    temp = asyncio.run(scenario())

    assert store.get_poem_by_id(temp.id) is None
    assert len(store.poems) == 1
    reconciled = store.get_poem_by_id("srv-1")
    assert reconciled is not None
    assert reconciled.body == "light on the water"
    assert reconciled.title == "Dawn"
    assert store.resolve_id(temp.id) == "srv-1"


def test_edits_during_create_survive_reconciliation(poem_remote) -> None:
    """Test edits made while the create is in flight keep local values and reach the server."""
    store = PoemStore(remote=poem_remote)

    async def scenario():
        poem = store.create_poem(title="Draft", body="one", user_id="u1")
        store.update_poem(poem.id, title="Final", body="one two")
        await store.sync.drain()
        return poem

    temp = asyncio.run(scenario())

    reconciled = store.get_poem_by_id("srv-1")
    assert reconciled.title == "Final"
    assert reconciled.word_count == 2
    assert poem_remote.calls == [
        ("create", "u1", temp.id),
        ("update", "srv-1", {"title": "Final", "body": "one two"}),
    ]
    assert poem_remote.rows["srv-1"].title == "Final"


def test_stale_temp_id_mutations_are_redirected(poem_remote) -> None:
    """Test a caller holding the temp id still edits the reconciled record."""
    store = PoemStore(remote=poem_remote)

    async def scenario():
        poem = store.create_poem(body="x", user_id="u1")
        await store.sync.drain()
        store.update_poem(poem.id, title="Renamed")
        await store.sync.drain()

    asyncio.run(scenario())

    assert store.get_poem_by_id("srv-1").title == "Renamed"
    assert poem_remote.calls[-1] == ("update", "srv-1", {"title": "Renamed"})


def test_failed_create_keeps_temp_record(poem_remote) -> None:
    """Test a remote failure leaves the optimistic record as the local truth."""
    poem_remote.fail = True
    store = PoemStore(remote=poem_remote)

    async def scenario():
        poem = store.create_poem(body="keep me", user_id="u1")
        await store.sync.drain()
        return poem

    poem = asyncio.run(scenario())

    assert store.get_poem_by_id(poem.id) is not None
    assert store.sync.failures == 1
    assert store.sync_error is None


def test_synchronous_caller_gets_temp_record_until_flush(poem_remote) -> None:
    """Test a create from plain sync code returns at once and syncs on flush."""
    store = PoemStore(remote=poem_remote)

    poem = store.create_poem(title="Dawn", body="light", user_id="u1")
    assert store.get_poem_by_id(poem.id) is poem
    assert poem_remote.calls == []

    store.update_poem(poem.id, title="Noon")
    store.sync.flush()

    assert store.get_poem_by_id(poem.id) is None
    assert store.get_poem_by_id("srv-1").title == "Noon"
    assert poem_remote.calls == [
        ("create", "u1", poem.id),
        ("update", "srv-1", {"title": "Noon"}),
    ]
    assert store.sync.failures == 0


def test_delete_is_mirrored_remotely(poem_remote) -> None:
    """Test deleting a reconciled poem removes the server row."""
    store = PoemStore(remote=poem_remote)

    async def scenario():
        poem = store.create_poem(body="gone soon", user_id="u1")
        await store.sync.drain()
        store.delete_poem(poem.id)
        await store.sync.drain()

    asyncio.run(scenario())

    assert poem_remote.calls[-1] == ("delete", "srv-1")
    assert poem_remote.rows == {}
    assert store.poems == []


def test_delete_during_create_removes_server_row(poem_remote) -> None:
    """Test a delete issued before the create settles targets the server id."""
    store = PoemStore(remote=poem_remote)

    async def scenario():
        poem = store.create_poem(body="short lived", user_id="u1")
        store.delete_poem(poem.id)
        await store.sync.drain()
        return poem

    temp = asyncio.run(scenario())

    assert poem_remote.calls == [("create", "u1", temp.id), ("delete", "srv-1")]
    assert poem_remote.rows == {}
    assert store.poems == []


def test_create_without_user_stays_local(poem_remote) -> None:
    """Test no remote create is attempted without a user."""
    store = PoemStore(remote=poem_remote)
    store.create_poem(body="private")
    assert poem_remote.calls == []


def test_update_validates_fields_and_coerces_status() -> None:
    """Test unknown fields raise and status strings are coerced."""
    store = PoemStore()
    poem = store.create_poem(body="a")

    with pytest.raises(ValueError, match="Unknown poem fields"):
        store.update_poem(poem.id, colour="red")
    with pytest.raises(ValueError):
        store.update_poem(poem.id, status="published")

    updated = store.update_poem(poem.id, body="a b c\n\nd")
    assert (updated.word_count, updated.line_count) == (4, 2)


def test_update_missing_poem_is_local_noop_but_mirrored(poem_remote) -> None:
    """Test an unmatched update changes nothing locally and still calls the remote."""
    store = PoemStore(remote=poem_remote)

    assert store.update_poem("ghost", title="x") is None
    assert store.poems == []
    store.sync.flush()
    assert poem_remote.calls == [("update", "ghost", {"title": "x"})]


def test_relational_fields_are_not_sent_by_generic_update(poem_remote) -> None:
    """Test collection_ids changes stay local for the generic update."""
    store = PoemStore(remote=poem_remote)
    poem = store.create_poem(body="a")

    store.update_poem(poem.id, collection_ids=["c1"])

    assert store.get_poem_by_id(poem.id).collection_ids == ["c1"]
    assert poem_remote.calls == []


def test_collection_membership_queries() -> None:
    """Test all-poems and drafts pseudo-collections."""
    store = PoemStore()
    draft = store.create_poem(body="a", collection_ids=["mine"])
    done = store.create_poem(body="b", collection_ids=[])
    store.update_poem(done.id, status=PoemStatus.COMPLETE)

    assert {p.id for p in store.get_poems_by_collection("all-poems")} == {draft.id, done.id}
    assert [p.id for p in store.get_poems_by_collection("drafts")] == [draft.id]
    assert [p.id for p in store.get_poems_by_collection("mine")] == [draft.id]
    assert [p.id for p in store.get_poems_by_status("complete")] == [done.id]


def test_get_recent_orders_by_update_time() -> None:
    """Test recent poems follow the latest update."""
    store = PoemStore()
    store.poems = [
        make_poem(id="b", updated_at="2026-02-01T00:00:00.000000Z"),
        make_poem(id="c", updated_at="2026-03-01T00:00:00.000000Z"),
        make_poem(id="a", updated_at="2026-01-01T00:00:00.000000Z"),
    ]

    assert [p.id for p in store.get_recent(2)] == ["c", "b"]

    store.update_poem("a", title="edited")
    assert store.get_recent(1)[0].id == "a"


def test_get_recent_sorts_malformed_timestamps_last() -> None:
    """Test a bad updated_at from a snapshot or server row does not break the query."""
    store = PoemStore()
    store.poems = [
        make_poem(id="bad", updated_at="yesterday-ish"),
        make_poem(id="good", updated_at="2026-02-01T00:00:00.000000Z"),
    ]

    assert [p.id for p in store.get_recent()] == ["good", "bad"]


def test_search_matches_title_body_and_tags_case_insensitively() -> None:
    """Test free-text search."""
    store = PoemStore()
    by_title = store.create_poem(title="Ocean Song")
    by_body = store.create_poem(body="the OCEAN was calm")
    by_tag = store.create_poem(tags=["oceanic"])
    store.create_poem(title="Desert")

    found = {p.id for p in store.search_poems("ocean")}
    assert found == {by_title.id, by_body.id, by_tag.id}


def test_toggle_favorite_twice_restores_and_passes_previous_value(poem_remote) -> None:
    """Test double toggle is idempotent and the remote sees pre-toggle values."""
    store = PoemStore(remote=poem_remote)
    poem = store.create_poem(body="a")

    assert store.toggle_favorite(poem.id) is True
    assert store.toggle_favorite(poem.id) is False
    assert store.get_poem_by_id(poem.id).is_favorite is False
    store.sync.flush()
    assert poem_remote.calls == [
        ("toggle_favorite", poem.id, False),
        ("toggle_favorite", poem.id, True),
    ]


def test_toggle_favorite_unknown_poem_returns_none() -> None:
    assert PoemStore().toggle_favorite("ghost") is None


def test_duplicate_membership_add_is_noop_but_mirrored(poem_remote) -> None:
    """Test adding an existing membership keeps updated_at and still upserts remotely."""
    store = PoemStore(remote=poem_remote)
    poem = store.create_poem(body="a")

    store.add_poem_to_collection(poem.id, "all-poems")
    assert store.get_poem_by_id(poem.id).updated_at == poem.updated_at

    store.add_poem_to_collection(poem.id, "favorites")
    after = store.get_poem_by_id(poem.id)
    assert after.collection_ids == ["all-poems", "drafts", "favorites"]
    assert after.updated_at != poem.updated_at

    store.remove_poem_from_collection(poem.id, "drafts")
    assert store.get_poem_by_id(poem.id).collection_ids == ["all-poems", "favorites"]
    store.sync.flush()
    assert [c[0] for c in poem_remote.calls] == [
        "add_to_collection",
        "add_to_collection",
        "remove_from_collection",
    ]


def test_replace_collection_reference_does_not_stamp() -> None:
    """Test reconciled collection ids are swapped without an edit timestamp."""
    store = PoemStore()
    poem = store.create_poem(body="a", collection_ids=["temp-col", "real-col"])

    store.replace_collection_reference("temp-col", "real-col")

    after = store.get_poem_by_id(poem.id)
    assert after.collection_ids == ["real-col"]
    assert after.updated_at == poem.updated_at


def test_fetch_from_server_replaces_snapshot(poem_remote) -> None:
    """Test a successful fetch is a full replace."""
    store = PoemStore(remote=poem_remote)
    store.create_poem(body="local only")
    remote_poem = make_poem(id="srv-9", body="from server")
    poem_remote.rows[remote_poem.id] = remote_poem

    assert asyncio.run(store.fetch_from_server("u1")) is True
    assert [p.id for p in store.poems] == ["srv-9"]
    assert store.is_syncing is False
    assert store.sync_error is None


def test_fetch_failure_keeps_snapshot_and_records_error(poem_remote) -> None:
    """Test a failed fetch leaves local poems and sets sync_error."""
    store = PoemStore(remote=poem_remote)
    poem = store.create_poem(body="local only")
    poem_remote.fail = True

    assert asyncio.run(store.fetch_from_server("u1")) is False
    assert [p.id for p in store.poems] == [poem.id]
    assert store.sync_error == "fetch_all: backend unavailable"
    assert store.is_syncing is False


def test_fetch_without_remote_reports_not_configured() -> None:
    store = PoemStore()
    assert asyncio.run(store.fetch_from_server()) is False
    assert store.sync_error == "Remote sync is not configured"


def test_snapshot_persists_and_rehydrates(storage: LocalStorage) -> None:
    """Test the whole snapshot is written under the poems key and loads back."""
    store = PoemStore(storage=storage)
    poem = store.create_poem(title="Kept", body="a b")
    store.toggle_favorite(poem.id)

    store.sync.flush()
    raw = json.loads(storage.get_item("@inkwell_poems"))
    assert raw["poems"][0]["id"] == poem.id

    fresh = PoemStore(storage=storage)
    asyncio.run(fresh.load())
    assert fresh.is_loaded is True
    assert fresh.poems == store.poems


def test_corrupt_snapshot_is_ignored(storage: LocalStorage) -> None:
    """Test an unreadable blob leaves the store empty but loaded."""
    storage.set_item("@inkwell_poems", "{broken")
    store = PoemStore(storage=storage)

    asyncio.run(store.load())

    assert store.is_loaded is True
    assert store.poems == []


def _review(poem_id: str) -> PoemReview:
    return PoemReview(
        poem_id=poem_id,
        summary="s",
        structure_analysis="free verse",
        interpretation="i",
        tone=ReviewTone.ACADEMIC,
        poem_body_hash="abc",
    )


def test_attach_review_reconciles_review_id_and_notes_follow(
    poem_remote, review_remote
) -> None:
    """Test review creation waits for the poem id and notes use the server review id."""
    store = PoemStore(remote=poem_remote, reviews=review_remote)

    async def scenario():
        poem = store.create_poem(body="a b", user_id="u1")
        store.attach_review(poem.id, _review(poem.id), user_id="u1")
        await store.sync.drain()
        store.update_review_notes(poem.id, "my notes")
        await store.sync.drain()

    asyncio.run(scenario())

    review = store.get_poem_by_id("srv-1").review
    assert review.id == "review-srv-1"
    assert review.poem_id == "srv-1"
    assert review.personal_notes == "my notes"
    assert review_remote.calls == [
        ("create", "u1", "srv-1"),
        ("update_notes", "review-srv-1", "my notes"),
    ]


def test_update_review_notes_without_review_is_noop() -> None:
    store = PoemStore()
    poem = store.create_poem(body="a")
    assert store.update_review_notes(poem.id, "x") is None


def test_add_recitation_swaps_in_server_id(recitation_remote) -> None:
    """Test recitation references are re-keyed after the remote create."""
    store = PoemStore(recitations=recitation_remote)
    poem = store.create_poem(body="a")
    recitation = AudioRecitation(
        poem_id=poem.id,
        file_uri="file:///tmp/a.mp3",
        voice_id="v1",
        voice_name="Rachel",
        duration_seconds=1.5,
        file_size_bytes=24000,
    )

    async def scenario():
        store.add_recitation(poem.id, recitation, user_id="u1")
        assert store.get_poem_by_id(poem.id).recitation_ids == [recitation.id]
        await store.sync.drain()

    asyncio.run(scenario())

    assert store.get_poem_by_id(poem.id).recitation_ids == ["recitation-srv-1"]
