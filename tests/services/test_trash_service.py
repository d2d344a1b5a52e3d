"""
Tests for TrashService.

Tests cover:
1. Trash and restore round trips, including the restore-parent fallbacks
2. Purging by empty_trash and retention-based auto_cleanup
3. Best-effort batches
4. Stats, limits and presentation helpers
"""

import pytest

from fieldvault.config import TrashConfig
from fieldvault.core.vault import add_child, denormalize_entity, get_child_ids, has_entity, remove_entity
from fieldvault.models.results import ErrorKind
from fieldvault.models.state import TrashedEntity
from fieldvault.services.trash_service import TrashService, estimate_record_size


def with_trash(state, **records):
    """Snapshot with extra trash records written directly."""
    return state.model_copy(update={"trashed_entities": {**state.trashed_entities, **records}})


@pytest.mark.unit
class TestMoveToTrash:
    """Tests for move_to_trash()."""

    def test_trash_canvas(self, trash_service, state, ids, clock):
        """Test that the canvas subtree leaves the live graph."""
        result = trash_service.move_to_trash(state, ids.c1)

        assert result.success
        trashed = result.state
        assert not has_entity(trashed, ids.c1)
        assert not has_entity(trashed, ids.page1)
        assert ids.c1 not in trashed.references[ids.m1]
        assert trashed.collection_members[ids.r1] == [ids.c2]

        record = trash_service.get_trashed_entity(trashed, ids.c1)
        assert record.trashed_at == clock.now
        assert record.original_parent_id == ids.m1
        assert record.original_index == 0
        assert record.member_of_collections == [ids.r1]
        assert set(record.descendants) == {ids.page1, ids.anno1}

    def test_original_state_untouched(self, trash_service, state, ids):
        trash_service.move_to_trash(state, ids.c1)

        assert has_entity(state, ids.c1)
        assert state.trashed_entities == {}

    def test_trash_unknown(self, trash_service, state):
        result = trash_service.move_to_trash(state, "https://example.org/nope")

        assert result.success is False
        assert result.error_kind == ErrorKind.NOT_FOUND
        assert result.state is state

    def test_trash_twice(self, trash_service, state, ids):
        """Test that a trashed entity cannot be trashed again."""
        trashed = trash_service.move_to_trash(state, ids.c1).state

        result = trash_service.move_to_trash(trashed, ids.c1)

        assert result.error_kind == ErrorKind.ALREADY_TRASHED
        assert result.state is trashed

    def test_trashed_id_cannot_be_added(self, trash_service, state, ids, canvas_factory):
        """Test that a trashed id is reserved until restored or purged."""
        trashed = trash_service.move_to_trash(state, ids.c1).state

        result = add_child(trashed, ids.m2, canvas_factory(ids.c1))

        assert result.error_kind == ErrorKind.CONFLICT

    def test_trash_root(self, trash_service, state, ids):
        """Test that trashing the root clears root_id."""
        result = trash_service.move_to_trash(state, ids.top)

        assert result.state.root_id is None
        assert trash_service.get_trashed_entity(result.state, ids.top).was_root


@pytest.mark.unit
class TestRestoreFromTrash:
    """Tests for restore_from_trash()."""

    def test_restore_to_original_position(self, trash_service, state, ids):
        """Test that a restored canvas returns to its index with its subtree."""
        trashed = trash_service.move_to_trash(state, ids.c2).state

        result = trash_service.restore_from_trash(trashed, ids.c2)

        assert result.success
        restored = result.state
        assert restored.references[ids.m1] == [ids.c1, ids.c2, ids.c3, ids.r1]
        assert has_entity(restored, f"{ids.c2}/page/1/anno/1")
        assert set(restored.collection_members[ids.r1]) == {ids.c1, ids.c2}
        assert not trash_service.is_trashed(restored, ids.c2)

    def test_restore_manifest_to_collection(self, trash_service, state, ids, document):
        """Test that a manifest comes back to its collection with ranges intact."""
        trashed = trash_service.move_to_trash(state, ids.m1).state
        assert ids.m1 not in trashed.collection_members[ids.top]

        restored = trash_service.restore_from_trash(trashed, ids.m1).state

        assert ids.m1 in restored.collection_members[ids.top]
        assert restored.member_of_collections[ids.m1] == [ids.top]
        assert restored.collection_members[ids.r1] == [ids.c1, ids.c2]
        assert restored.collection_members[ids.r2] == [ids.c3]
        assert restored.entity_count() == state.entity_count()
        assert denormalize_entity(restored, ids.m1) == document["items"][0]

    def test_restore_after_parent_deleted(self, trash_service, state, ids):
        """Test that a canvas whose manifest is gone is restored unattached."""
        trashed = trash_service.move_to_trash(state, ids.c1).state
        without_parent = remove_entity(trashed, ids.m1).state

        result = trash_service.restore_from_trash(without_parent, ids.c1)

        assert result.success
        assert has_entity(result.state, ids.c1)
        assert ids.c1 not in result.state.reverse_refs
        assert get_child_ids(result.state, ids.c1) == [ids.page1]

    def test_restore_manifest_after_collection_deleted(self, trash_service, state, ids):
        """Test that a manifest restores as an orphan once its collection is gone."""
        trashed = trash_service.move_to_trash(state, ids.m2).state
        without_collection = remove_entity(trashed, ids.sub).state

        result = trash_service.restore_from_trash(without_collection, ids.m2)

        assert result.success
        assert has_entity(result.state, ids.m2)
        assert ids.m2 not in result.state.member_of_collections

    def test_restore_under_explicit_parent(self, trash_service, state, ids):
        trashed = trash_service.move_to_trash(state, ids.c1).state

        result = trash_service.restore_from_trash(trashed, ids.c1, parent_id=ids.m2, index=0)

        assert result.success
        assert result.state.references[ids.m2] == [ids.c1, ids.m2c1]
        assert result.state.reverse_refs[ids.c1] == ids.m2

    def test_restore_under_incompatible_parent(self, trash_service, state, ids):
        trashed = trash_service.move_to_trash(state, ids.c1).state

        result = trash_service.restore_from_trash(trashed, ids.c1, parent_id=ids.top)

        assert result.error_kind == ErrorKind.INVALID_CHILD_TYPE
        assert result.state is trashed

    def test_restore_root(self, trash_service, state, ids):
        trashed = trash_service.move_to_trash(state, ids.top).state

        restored = trash_service.restore_from_trash(trashed, ids.top).state

        assert restored.root_id == ids.top
        assert restored.collection_members[ids.top] == [ids.m1, ids.sub]

    def test_restore_not_trashed(self, trash_service, state, ids):
        result = trash_service.restore_from_trash(state, ids.c1)

        assert result.error_kind == ErrorKind.NOT_FOUND

    def test_restore_corrupted_record(self, trash_service, state):
        """Test that a record without payload is reported, not raised."""
        corrupted = with_trash(state, **{"https://example.org/x": TrashedEntity(entity=None)})

        result = trash_service.restore_from_trash(corrupted, "https://example.org/x")

        assert result.success is False
        assert result.error_kind == ErrorKind.CORRUPTED_RECORD

    def test_restore_conflicting_live_ids(self, trash_service, state, ids):
        """Test that restore is rejected when its ids are live again."""
        trashed = trash_service.move_to_trash(state, ids.c1).state
        conflicting = with_trash(state, **trashed.trashed_entities)

        result = trash_service.restore_from_trash(conflicting, ids.c1)

        assert result.error_kind == ErrorKind.CONFLICT
        assert set(result.invalid_ids) == {ids.c1, ids.page1, ids.anno1}


@pytest.mark.unit
class TestPurge:
    """Tests for empty_trash() and auto_cleanup()."""

    def test_empty_trash(self, trash_service, state, ids):
        trashed = trash_service.batch_move_to_trash(state, [ids.c1, ids.m2]).state

        result = trash_service.empty_trash(trashed)

        assert result.deleted_count == 2
        assert result.failed_count == 0
        assert result.state.trashed_entities == {}

    def test_empty_trash_skips_corrupted(self, trash_service, state, ids):
        """Test that one bad record does not abort the purge."""
        trashed = trash_service.move_to_trash(state, ids.c1).state
        mixed = with_trash(trashed, **{"https://example.org/x": TrashedEntity(entity=None)})

        result = trash_service.empty_trash(mixed)

        assert result.deleted_count == 1
        assert result.failed_count == 1
        assert result.errors == ["https://example.org/x: corrupted trash record"]
        assert list(result.state.trashed_entities) == ["https://example.org/x"]

    def test_auto_cleanup_retention(self, trash_service, state, ids, clock):
        """Test that only records past the retention window are purged."""
        first = trash_service.move_to_trash(state, ids.c1).state
        clock.advance(days=30)
        second = trash_service.move_to_trash(first, ids.c2).state
        clock.advance(days=1)

        result = trash_service.auto_cleanup(second)

        assert result.deleted_ids == [ids.c1]
        assert list(result.state.trashed_entities) == [ids.c2]

    def test_auto_cleanup_custom_age(self, trash_service, state, ids, clock):
        trashed = trash_service.move_to_trash(state, ids.c1).state
        clock.advance(days=3)

        assert trash_service.auto_cleanup(trashed, max_age_days=2).deleted_count == 1
        assert trash_service.auto_cleanup(trashed, max_age_days=5).deleted_count == 0

    def test_auto_cleanup_keeps_unstamped(self, trash_service, state, ids, clock):
        """Test that a record without trashed_at is never purged."""
        trashed = trash_service.move_to_trash(state, ids.c1).state
        record = trashed.trashed_entities[ids.c1].model_copy(update={"trashed_at": None})
        unstamped = with_trash(trashed, **{ids.c1: record})
        clock.advance(days=365)

        result = trash_service.auto_cleanup(unstamped)

        assert result.deleted_count == 0
        assert result.state is unstamped

    def test_needs_cleanup(self, trash_service, state, ids, clock):
        trashed = trash_service.move_to_trash(state, ids.c1).state

        assert not trash_service.needs_cleanup(trashed)
        clock.advance(days=31)
        assert trash_service.needs_cleanup(trashed)


@pytest.mark.unit
class TestBatch:
    """Tests for best-effort batches."""

    def test_batch_trash_continues_past_failures(self, trash_service, state, ids):
        result = trash_service.batch_move_to_trash(state, [ids.c1, "https://example.org/nope", ids.c2])

        assert result.success is False
        assert result.processed_count == 2
        assert result.failed_count == 1
        assert result.errors[0].startswith("https://example.org/nope")
        assert trash_service.get_trashed_ids(result.state) == [ids.c1, ids.c2]

    def test_batch_trash_descendant_of_earlier_item(self, trash_service, state, ids):
        """Test that a canvas already trashed with its manifest is reported."""
        result = trash_service.batch_move_to_trash(state, [ids.m1, ids.c1])

        assert result.processed_count == 1
        assert result.results[1].error_kind == ErrorKind.NOT_FOUND

    def test_batch_restore(self, trash_service, state, ids):
        """Test that restoring in reverse trash order rebuilds the original order."""
        trashed = trash_service.batch_move_to_trash(state, [ids.c1, ids.c2]).state

        result = trash_service.batch_restore(trashed, [ids.c2, ids.c1])

        assert result.success
        assert result.processed_count == 2
        assert result.state.references[ids.m1] == [ids.c1, ids.c2, ids.c3, ids.r1]


@pytest.mark.unit
class TestLimits:
    """Tests for enforced trash limits."""

    def test_item_limit(self, limited_trash_service, state, ids):
        trashed = limited_trash_service.move_to_trash(state, ids.c1).state

        result = limited_trash_service.move_to_trash(trashed, ids.c2)

        assert result.error_kind == ErrorKind.TRASH_LIMIT
        assert has_entity(result.state, ids.c2)

    def test_size_limit(self, clock, state, ids):
        service = TrashService(TrashConfig(enforce_size_limits=True, max_size_bytes=10), clock=clock)

        result = service.move_to_trash(state, ids.c1)

        assert result.error_kind == ErrorKind.TRASH_LIMIT

    def test_limits_not_enforced_by_default(self, clock, state, ids):
        service = TrashService(TrashConfig(max_item_count=1), clock=clock)

        result = service.batch_move_to_trash(state, [ids.c1, ids.c2])

        assert result.success


@pytest.mark.unit
class TestQueries:
    """Tests for read-only trash queries and stats."""

    def test_empty_stats(self, trash_service, state):
        stats = trash_service.get_trash_stats(state)

        assert stats.item_count == 0
        assert stats.total_size == 0
        assert stats.oldest_item is None
        assert stats.items_by_type == {}

    def test_stats(self, trash_service, state, ids, clock):
        first = trash_service.move_to_trash(state, ids.c1).state
        started = clock.now
        clock.advance(days=24)
        second = trash_service.move_to_trash(first, ids.m2).state

        stats = trash_service.get_trash_stats(second)

        assert stats.item_count == 2
        assert stats.items_by_type == {"Canvas": 1, "Manifest": 1}
        assert stats.oldest_item == started
        assert stats.newest_item == clock.now
        assert stats.expiring_soon == 1
        assert stats.total_size == sum(estimate_record_size(r) for r in second.trashed_entities.values())

    def test_stats_with_corrupted_record(self, trash_service, state):
        corrupted = with_trash(state, **{"https://example.org/x": TrashedEntity(entity=None)})

        stats = trash_service.get_trash_stats(corrupted)

        assert stats.items_by_type == {"unknown": 1}

    def test_sorted_newest_first(self, trash_service, state, ids, clock):
        first = trash_service.move_to_trash(state, ids.c1).state
        clock.advance(hours=1)
        second = trash_service.move_to_trash(first, ids.c2).state

        assert [i for i, _ in trash_service.get_trashed_sorted(second)] == [ids.c2, ids.c1]
        assert [i for i, _ in trash_service.get_trashed_sorted(second, newest_first=False)] == [ids.c1, ids.c2]

    def test_get_all_trashed_is_copy(self, trash_service, state, ids):
        trashed = trash_service.move_to_trash(state, ids.c1).state

        records = trash_service.get_all_trashed(trashed)
        records.clear()

        assert trash_service.is_trashed(trashed, ids.c1)


@pytest.mark.unit
class TestPresentation:
    """Tests for presentation helpers."""

    def test_format_bytes(self):
        assert TrashService.format_bytes(1536) == "1.5 KB"

    def test_relative_time(self, trash_service, clock):
        trashed_at = clock.now
        assert trash_service.format_relative_time(trashed_at) == "just now"

        clock.advance(hours=2)

        assert trash_service.format_relative_time(trashed_at) == "2 hours ago"

    def test_days_until_expiration(self, trash_service, clock):
        trashed_at = clock.now
        clock.advance(days=10)

        assert trash_service.get_days_until_expiration(trashed_at) == 20
