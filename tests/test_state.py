import asyncio

import pytest

from media_catalog.cache.store import SnapshotStore
from media_catalog.exceptions import PersistFailure, RootNotFound
from media_catalog.indexer import ErrorEvent, EventChannel, SnapshotEvent
from media_catalog.models import Snapshot
from media_catalog.state import CatalogState, consume_events, rebuild_catalog, rebuild_catalog_async

from conftest import INDEXED_AT, make_media, simple_tag


def snapshot_event(*ids):
    return SnapshotEvent(
        records=[make_media(i, [simple_tag("x")]) for i in ids],
        scanned_at=INDEXED_AT,
        duration=0.001,
    )


def run_consumer(events, store, state):
    async def scenario():
        channel = EventChannel(capacity=len(events) or 1)
        for event in events:
            assert await channel.send(event)
        channel.close()
        await asyncio.wait_for(consume_events(channel, store, state), timeout=5)

    asyncio.run(scenario())


def test_state_starts_empty():
    state = CatalogState()
    assert len(state.current()) == 0
    assert state.generation == 0


def test_swap_returns_previous_and_bumps_generation(fixture_snapshot):
    state = CatalogState()
    first = state.current()

    previous = state.swap(fixture_snapshot)
    assert previous is first
    assert state.current() is fixture_snapshot
    assert state.generation == 1


def test_reader_keeps_its_snapshot_across_swap(fixture_snapshot):
    state = CatalogState(fixture_snapshot)
    held = state.current()
    state.swap(Snapshot.empty())
    assert len(held) == 4
    assert len(state.current()) == 0


def test_consumer_persists_then_swaps(store):
    state = CatalogState()
    run_consumer([snapshot_event("a", "b")], store, state)

    assert [r.id for r in state.current().media] == ["a", "b"]
    # What was swapped in is what is on disk
    assert store.load().generated_at == state.current().generated_at


def test_consumer_applies_events_in_order(store):
    state = CatalogState()
    run_consumer([snapshot_event("a"), snapshot_event("b", "c")], store, state)

    assert state.generation == 2
    assert [r.id for r in state.current().media] == ["b", "c"]


def test_error_event_keeps_current_snapshot(store, fixture_snapshot):
    state = CatalogState(fixture_snapshot)
    run_consumer([ErrorEvent("media root vanished")], store, state)

    assert state.current() is fixture_snapshot
    assert state.generation == 0
    assert store.load() is None


def test_persist_failure_keeps_current_snapshot(monkeypatch, store, fixture_snapshot):
    def failing_persist(records):
        raise PersistFailure("disk full")

    monkeypatch.setattr(store, "persist", failing_persist)
    state = CatalogState(fixture_snapshot)
    run_consumer([snapshot_event("a")], store, state)

    assert state.current() is fixture_snapshot


def test_consumer_ends_when_channel_closes(store):
    async def scenario():
        channel = EventChannel()
        consumer = asyncio.create_task(consume_events(channel, store, CatalogState()))
        await asyncio.sleep(0)
        channel.close()
        await asyncio.wait_for(consumer, timeout=2)
        return consumer.done()

    assert asyncio.run(scenario())


def test_rebuild_catalog_swaps_and_persists(media_root, store):
    state = CatalogState()
    snapshot = rebuild_catalog(media_root, store, state)

    assert len(snapshot) == 4
    assert state.current() is snapshot
    assert len(store.load()) == 4


def test_rebuild_failure_leaves_state_untouched(tmp_path, store, fixture_snapshot):
    state = CatalogState(fixture_snapshot)
    with pytest.raises(RootNotFound):
        rebuild_catalog(tmp_path / "missing", store, state)
    assert state.current() is fixture_snapshot
    assert store.load() is None


def test_rebuild_persist_failure_leaves_state_untouched(monkeypatch, media_root, store, fixture_snapshot):
    def failing_persist(records):
        raise PersistFailure("read-only filesystem")

    monkeypatch.setattr(store, "persist", failing_persist)
    state = CatalogState(fixture_snapshot)
    with pytest.raises(PersistFailure):
        rebuild_catalog(media_root, store, state)
    assert state.current() is fixture_snapshot


def test_rebuild_catalog_async(media_root, store):
    state = CatalogState()
    snapshot = asyncio.run(rebuild_catalog_async(media_root, store, state))
    assert state.current() is snapshot
    assert state.generation == 1


def test_consumer_survives_unusable_cache_dir(tmp_path, fixture_snapshot):
    blocker = tmp_path / "cache"
    blocker.write_text("not a directory")
    store = SnapshotStore(blocker)
    state = CatalogState(fixture_snapshot)

    # Both events fail to persist; the consumer keeps going and drains the channel
    run_consumer([snapshot_event("a"), snapshot_event("b")], store, state)

    assert state.current() is fixture_snapshot
    assert state.generation == 0
