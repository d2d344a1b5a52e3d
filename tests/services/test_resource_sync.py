"""
Tests for ResourceSync.

A session is wired to a cache over empty in-memory storage, so everything the
cache can serve after a flush must have been written through.
"""

import pytest

from fieldvault.core.blobs import InMemoryBlobAllocator
from fieldvault.core.storage import InMemoryResourceStorage
from fieldvault.core.vault import denormalize_entity
from fieldvault.services.archive_session import ArchiveSession
from fieldvault.services.resource_sync import ResourceSync
from fieldvault.services.trash_service import TrashService
from fieldvault.services.virtualized_cache import VirtualizedCache


@pytest.fixture
def empty_storage() -> InMemoryResourceStorage:
    return InMemoryResourceStorage()


@pytest.fixture
def synced_cache(empty_storage) -> VirtualizedCache:
    return VirtualizedCache(empty_storage, InMemoryBlobAllocator())


@pytest.fixture
def sync(synced_cache) -> ResourceSync:
    return ResourceSync(synced_cache)


@pytest.fixture
def session(sync, document, clock) -> ArchiveSession:
    archive = ArchiveSession(trash_service=TrashService(clock=clock))
    archive.subscribe(sync.track)
    archive.load(document)
    return archive


@pytest.mark.unit
class TestFlush:
    """Tests for writing snapshots through the cache."""

    async def test_load_persists_every_collection_and_manifest(self, session, sync, empty_storage, ids):
        written = await sync.flush()

        assert written == 4
        assert await empty_storage.count_resources() == 4
        assert await empty_storage.load_resource(ids.m1) == denormalize_entity(session.state, ids.m1)

    async def test_evicted_child_manifest_reloads_from_storage(self, session, sync, synced_cache, ids):
        await sync.flush()
        synced_cache.clear()

        body = await synced_cache.load_full(ids.m2)

        assert body == denormalize_entity(session.state, ids.m2)

    async def test_flush_without_changes_is_noop(self, session, sync):
        await sync.flush()

        assert await sync.flush() == 0

    async def test_flush_before_any_snapshot(self, sync):
        assert await sync.flush() == 0

    async def test_edit_refreshes_cached_body(self, session, sync, synced_cache, ids):
        await sync.flush()

        session.update_entity(ids.m1, {"label": {"en": ["Renamed"]}})
        written = await sync.flush()

        # m1 itself and the top collection that embeds it
        assert written == 2
        body = await synced_cache.load_full(ids.m1)
        assert body["label"] == {"en": ["Renamed"]}

    async def test_edit_updates_stub_label(self, session, sync, synced_cache, document, ids):
        synced_cache.create_stub_tree(document)
        await sync.flush()

        session.update_entity(ids.m1, {"label": {"en": ["Renamed"]}})
        await sync.flush()

        assert synced_cache.get_stub(ids.m1).label == {"en": ["Renamed"]}

    async def test_trash_discards_and_undo_restores(self, session, sync, synced_cache, empty_storage, ids):
        await sync.flush()

        session.move_to_trash(ids.m2)
        await sync.flush()

        assert await empty_storage.load_resource(ids.m2) is None
        assert await synced_cache.load_full(ids.m2) is None
        sub = await synced_cache.load_full(ids.sub)
        assert sub["items"] == []

        session.undo()
        await sync.flush()

        assert await empty_storage.load_resource(ids.m2) == denormalize_entity(session.state, ids.m2)

    async def test_failed_operation_writes_nothing(self, session, sync, ids):
        await sync.flush()

        result = session.update_dimensions(ids.c1, -1, 10)

        assert not result.success
        assert await sync.flush() == 0
