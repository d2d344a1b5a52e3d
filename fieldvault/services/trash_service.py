"""
Trash Service - soft delete with retention.

Entities move Live -> Trashed -> {Restored -> Live | Purged}. A trashed
entity is removed from every live index and kept as a TrashedEntity record
that captures its owned subtree and reference memberships, so a restore puts
the whole subtree back. Records older than the retention window are purged by
auto_cleanup().
"""

from collections.abc import Callable
from datetime import datetime, timedelta

from fieldvault.config import TrashConfig
from fieldvault.core.vault.draft import StateDraft
from fieldvault.models.entity import EntityType, RelationshipKind, get_relationship_kind, parse_entity_type
from fieldvault.models.results import (
    BatchResult,
    CleanupResult,
    EmptyTrashResult,
    ErrorKind,
    OperationResult,
    TrashStats,
)
from fieldvault.models.state import CapturedEntity, NormalizedState, TrashedEntity
from fieldvault.utils.exceptions import VaultOperationError
from fieldvault.utils.formatting import days_until_expiration, format_bytes, format_relative_time
from fieldvault.utils.logger import get_audit_logger, get_logger

logger = get_logger(__name__)
audit = get_audit_logger(__name__)


def estimate_record_size(record: TrashedEntity) -> int:
    """Serialized size of a trash record in bytes."""
    return len(record.model_dump_json().encode("utf-8"))


class TrashService:
    """
    Soft-delete operations over NormalizedState snapshots.

    Stateless apart from its configuration and clock: every method takes a
    snapshot and returns a result carrying the next one.
    """

    def __init__(self, config: TrashConfig | None = None, clock: Callable[[], datetime] = datetime.now):
        """
        Initialize trash service.

        Args:
            config: Retention and limit settings (defaults apply when None)
            clock: Source of the current time
        """
        self.config = config or TrashConfig()
        self.clock = clock

    # ═══════════════════════════════════════════════════════════
    # TRASH / RESTORE
    # ═══════════════════════════════════════════════════════════

    def move_to_trash(self, state: NormalizedState, entity_id: str) -> OperationResult:
        """
        Soft-delete an entity together with its owned subtree.

        Args:
            state: Current snapshot
            entity_id: Entity to trash

        Returns:
            OperationResult; NOT_FOUND, ALREADY_TRASHED or TRASH_LIMIT on failure
        """
        draft = StateDraft(state)
        try:
            record = self._trash(draft, entity_id)
        except VaultOperationError as e:
            logger.warning(f"move_to_trash rejected ({e.kind.value}): {e.message}")
            return OperationResult.fail(state, e.kind, e.message, entity_id=entity_id, invalid_ids=e.invalid_ids)

        audit.bind(
            action="trash", entity_id=entity_id, entity_type=record.entity_type, descendants=len(record.descendants)
        ).info(f"Trashed {entity_id}")
        return OperationResult.ok(draft.commit(), entity_id=entity_id)

    def _trash(self, draft: StateDraft, entity_id: str) -> TrashedEntity:
        if entity_id in draft.trashed_entities:
            raise VaultOperationError(
                ErrorKind.ALREADY_TRASHED, f"{entity_id} is already in the trash", invalid_ids=[entity_id]
            )
        if entity_id not in draft.type_index:
            raise VaultOperationError(ErrorKind.NOT_FOUND, f"Entity not found: {entity_id}", invalid_ids=[entity_id])

        subtree = draft.owned_subtree(entity_id)
        record = TrashedEntity(
            entity=draft.get_entity(entity_id),
            trashed_at=self.clock(),
            original_parent_id=draft.reverse_refs.get(entity_id),
            original_index=self._position_under_owner(draft, entity_id),
            member_of_collections=list(draft.member_of_collections.get(entity_id, [])),
            child_ids=list(draft.references.get(entity_id, [])),
            was_root=draft.root_id == entity_id,
            extensions=dict(draft.extensions.get(entity_id, {})),
            member_ids=list(draft.collection_members.get(entity_id, [])),
            descendants={
                descendant_id: CapturedEntity(
                    entity=draft.get_entity(descendant_id),
                    extensions=dict(draft.extensions.get(descendant_id, {})),
                    child_ids=list(draft.references.get(descendant_id, [])),
                    member_ids=list(draft.collection_members.get(descendant_id, [])),
                    member_of=list(draft.member_of_collections.get(descendant_id, [])),
                )
                for descendant_id in subtree[1:]
            },
        )

        if self.config.enforce_size_limits:
            self._check_limits(draft, record, entity_id)

        draft.remove_subtree(entity_id)
        draft.put_trash(entity_id, record)
        return record

    def _position_under_owner(self, draft: StateDraft, entity_id: str) -> int | None:
        owner = draft.reverse_refs.get(entity_id)
        if owner is None:
            return None
        return draft.references.get(owner, []).index(entity_id)

    def _check_limits(self, draft: StateDraft, record: TrashedEntity, entity_id: str) -> None:
        if len(draft.trashed_entities) >= self.config.max_item_count:
            raise VaultOperationError(
                ErrorKind.TRASH_LIMIT,
                f"Trash holds the maximum of {self.config.max_item_count} items",
                invalid_ids=[entity_id],
            )
        current = sum(estimate_record_size(r) for r in draft.trashed_entities.values())
        if current + estimate_record_size(record) > self.config.max_size_bytes:
            raise VaultOperationError(
                ErrorKind.TRASH_LIMIT,
                f"Trash would exceed {format_bytes(self.config.max_size_bytes)}",
                invalid_ids=[entity_id],
            )

    def restore_from_trash(
        self,
        state: NormalizedState,
        entity_id: str,
        parent_id: str | None = None,
        index: int | None = None,
    ) -> OperationResult:
        """
        Bring a trashed entity and its captured subtree back to life.

        The entity is attached under parent_id when that parent is live,
        otherwise under its original owner when that is still live. With
        neither available it is restored unattached.

        Args:
            state: Current snapshot
            entity_id: Trashed entity id
            parent_id: Optional new parent
            index: Position under the parent (appends when None)

        Returns:
            OperationResult; NOT_FOUND, CORRUPTED_RECORD, CONFLICT or
            INVALID_CHILD_TYPE on failure
        """
        draft = StateDraft(state)
        try:
            attached_to = self._restore(draft, entity_id, parent_id, index)
        except VaultOperationError as e:
            logger.warning(f"restore_from_trash rejected ({e.kind.value}): {e.message}")
            return OperationResult.fail(state, e.kind, e.message, entity_id=entity_id, invalid_ids=e.invalid_ids)

        audit.bind(action="restore", entity_id=entity_id, parent_id=attached_to).info(f"Restored {entity_id}")
        return OperationResult.ok(draft.commit(), entity_id=entity_id)

    def _restore(self, draft: StateDraft, entity_id: str, parent_id: str | None, index: int | None) -> str | None:
        record = draft.trashed_entities.get(entity_id)
        if record is None:
            raise VaultOperationError(ErrorKind.NOT_FOUND, f"{entity_id} is not in the trash", invalid_ids=[entity_id])

        entity_type = parse_entity_type(record.entity_type)
        if record.is_corrupted or entity_type is None:
            raise VaultOperationError(
                ErrorKind.CORRUPTED_RECORD, f"Trash record for {entity_id} has no usable payload", invalid_ids=[entity_id]
            )

        live = [i for i in (entity_id, *record.descendants) if i in draft.type_index]
        if live:
            raise VaultOperationError(
                ErrorKind.CONFLICT, f"{len(live)} ids from {entity_id} are live again", invalid_ids=live
            )

        target = self._resolve_restore_parent(draft, entity_type, record, parent_id)

        # Bodies first, then edges, so edges inside the subtree resolve
        draft.put_entity(entity_id, entity_type, record.entity)
        draft.set_extensions(entity_id, record.extensions)
        for descendant_id, captured in record.descendants.items():
            descendant_type = parse_entity_type(captured.entity.get("type"))
            if descendant_type is None:
                logger.warning(f"Skipping descendant {descendant_id} of {entity_id} with unknown type")
                continue
            draft.put_entity(descendant_id, descendant_type, captured.entity)
            draft.set_extensions(descendant_id, captured.extensions)

        captured_edges = [(entity_id, record.child_ids, record.member_ids, record.member_of_collections)]
        captured_edges.extend(
            (descendant_id, captured.child_ids, captured.member_ids, captured.member_of)
            for descendant_id, captured in record.descendants.items()
            if descendant_id in draft.type_index
        )
        # Outgoing lists first so each referrer keeps its captured order
        for owner_id, child_ids, member_ids, _ in captured_edges:
            self._relink_outgoing(draft, owner_id, child_ids, member_ids)
        for target_id, _, _, referrer_ids in captured_edges:
            for referrer_id in referrer_ids:
                if referrer_id in draft.type_index and target_id not in draft.collection_members.get(referrer_id, []):
                    draft.attach(referrer_id, target_id, RelationshipKind.REFERENCE)

        if target is not None:
            kind = get_relationship_kind(draft.type_index[target], entity_type)
            if index is None and target == record.original_parent_id:
                index = record.original_index
            if kind == RelationshipKind.OWNERSHIP or entity_id not in draft.collection_members.get(target, []):
                draft.attach(target, entity_id, kind, index)
        if record.was_root and draft.root_id is None:
            draft.set_root(entity_id)

        draft.drop_trash(entity_id)
        return target

    def _resolve_restore_parent(
        self, draft: StateDraft, entity_type: EntityType, record: TrashedEntity, parent_id: str | None
    ) -> str | None:
        if parent_id is not None and parent_id in draft.type_index:
            if get_relationship_kind(draft.type_index[parent_id], entity_type) is None:
                raise VaultOperationError(
                    ErrorKind.INVALID_CHILD_TYPE,
                    f"{entity_type.value} cannot be restored under {draft.type_index[parent_id].value}",
                    invalid_ids=[parent_id],
                )
            return parent_id

        original = record.original_parent_id
        if original is not None and original in draft.type_index:
            if get_relationship_kind(draft.type_index[original], entity_type) is not None:
                return original
        return None

    def _relink_outgoing(self, draft: StateDraft, entity_id: str, child_ids: list[str], member_ids: list[str]) -> None:
        for child_id in child_ids:
            if child_id in draft.type_index and draft.reverse_refs.get(child_id) is None:
                draft.attach(entity_id, child_id, RelationshipKind.OWNERSHIP)
        for member_id in member_ids:
            if member_id in draft.type_index and member_id not in draft.collection_members.get(entity_id, []):
                draft.attach(entity_id, member_id, RelationshipKind.REFERENCE)

    # ═══════════════════════════════════════════════════════════
    # PURGE
    # ═══════════════════════════════════════════════════════════

    def empty_trash(self, state: NormalizedState) -> EmptyTrashResult:
        """
        Permanently delete every trash record.

        Corrupted records are skipped, left in place and reported.
        """
        draft = StateDraft(state)
        deleted_count = 0
        errors: list[str] = []

        for entity_id, record in list(state.trashed_entities.items()):
            if record.is_corrupted:
                errors.append(f"{entity_id}: corrupted trash record")
                continue
            draft.drop_trash(entity_id)
            deleted_count += 1

        if deleted_count or errors:
            audit.bind(action="purge", deleted_count=deleted_count, failed_count=len(errors)).info(
                f"Emptied trash: {deleted_count} deleted, {len(errors)} failed"
            )
        return EmptyTrashResult(
            state=draft.commit(),
            deleted_count=deleted_count,
            failed_count=len(errors),
            errors=errors,
        )

    def auto_cleanup(self, state: NormalizedState, max_age_days: int | None = None) -> CleanupResult:
        """
        Purge records trashed longer ago than the retention window.

        Records without a timestamp are never purged.

        Args:
            state: Current snapshot
            max_age_days: Window in days (default: configured retention)
        """
        days = max_age_days if max_age_days is not None else self.config.retention_days
        cutoff = self.clock() - timedelta(days=days)
        draft = StateDraft(state)
        deleted_ids: list[str] = []

        for entity_id, record in list(state.trashed_entities.items()):
            if record.trashed_at is not None and record.trashed_at < cutoff:
                draft.drop_trash(entity_id)
                deleted_ids.append(entity_id)

        if deleted_ids:
            audit.bind(action="purge", deleted_ids=deleted_ids).info(
                f"Auto cleanup purged {len(deleted_ids)} items older than {days} days"
            )
        return CleanupResult(state=draft.commit(), deleted_count=len(deleted_ids), deleted_ids=deleted_ids)

    # ═══════════════════════════════════════════════════════════
    # BATCH OPERATIONS
    # ═══════════════════════════════════════════════════════════

    def batch_move_to_trash(self, state: NormalizedState, entity_ids: list[str]) -> BatchResult:
        """Trash several entities, continuing past individual failures."""
        return self._run_batch(state, entity_ids, self.move_to_trash)

    def batch_restore(self, state: NormalizedState, entity_ids: list[str]) -> BatchResult:
        """Restore several entities to their original parents, best effort."""
        return self._run_batch(state, entity_ids, self.restore_from_trash)

    def _run_batch(
        self,
        state: NormalizedState,
        entity_ids: list[str],
        operation: Callable[[NormalizedState, str], OperationResult],
    ) -> BatchResult:
        current = state
        results: list[OperationResult] = []
        errors: list[str] = []

        for entity_id in entity_ids:
            result = operation(current, entity_id)
            results.append(result)
            if result.success:
                current = result.state
            else:
                errors.append(f"{entity_id}: {result.error}")

        failed_count = len(errors)
        return BatchResult(
            success=failed_count == 0,
            processed_count=len(entity_ids) - failed_count,
            failed_count=failed_count,
            results=results,
            state=current,
            errors=errors,
        )

    # ═══════════════════════════════════════════════════════════
    # QUERIES
    # ═══════════════════════════════════════════════════════════

    def get_trashed_ids(self, state: NormalizedState) -> list[str]:
        return list(state.trashed_entities)

    def get_trashed_entity(self, state: NormalizedState, entity_id: str) -> TrashedEntity | None:
        return state.trashed_entities.get(entity_id)

    def get_all_trashed(self, state: NormalizedState) -> dict[str, TrashedEntity]:
        return dict(state.trashed_entities)

    def is_trashed(self, state: NormalizedState, entity_id: str) -> bool:
        return entity_id in state.trashed_entities

    def get_trashed_sorted(self, state: NormalizedState, newest_first: bool = True) -> list[tuple[str, TrashedEntity]]:
        """Trash records ordered by trash time; records without a timestamp come last."""
        stamped = [(i, r) for i, r in state.trashed_entities.items() if r.trashed_at is not None]
        unstamped = [(i, r) for i, r in state.trashed_entities.items() if r.trashed_at is None]
        stamped.sort(key=lambda item: item[1].trashed_at, reverse=newest_first)
        return stamped + unstamped

    def get_expiring_soon(self, state: NormalizedState) -> list[str]:
        """Ids whose retention ends within the expiring-soon window."""
        threshold = self.clock() - timedelta(days=self.config.retention_days - self.config.expiring_soon_days)
        return [
            entity_id
            for entity_id, record in state.trashed_entities.items()
            if record.trashed_at is not None and record.trashed_at <= threshold
        ]

    def needs_cleanup(self, state: NormalizedState) -> bool:
        """True if any record has expired or the trash is over its limits."""
        if len(state.trashed_entities) > self.config.max_item_count:
            return True
        cutoff = self.clock() - timedelta(days=self.config.retention_days)
        if any(r.trashed_at is not None and r.trashed_at < cutoff for r in state.trashed_entities.values()):
            return True
        return sum(estimate_record_size(r) for r in state.trashed_entities.values()) > self.config.max_size_bytes

    def get_trash_stats(self, state: NormalizedState) -> TrashStats:
        """Aggregate counts, sizes and ages over the trash. Never raises."""
        records = list(state.trashed_entities.values())
        timestamps = [r.trashed_at for r in records if r.trashed_at is not None]

        items_by_type: dict[str, int] = {}
        for record in records:
            type_name = record.entity_type or "unknown"
            items_by_type[type_name] = items_by_type.get(type_name, 0) + 1

        return TrashStats(
            item_count=len(records),
            total_size=sum(estimate_record_size(r) for r in records),
            oldest_item=min(timestamps) if timestamps else None,
            newest_item=max(timestamps) if timestamps else None,
            items_by_type=items_by_type,
            expiring_soon=len(self.get_expiring_soon(state)),
        )

    # ═══════════════════════════════════════════════════════════
    # PRESENTATION HELPERS
    # ═══════════════════════════════════════════════════════════

    @staticmethod
    def format_bytes(num_bytes: int | float) -> str:
        return format_bytes(num_bytes)

    def format_relative_time(self, timestamp: datetime) -> str:
        return format_relative_time(timestamp, now=self.clock())

    def get_days_until_expiration(self, trashed_at: datetime) -> int:
        """Whole days before an item trashed at trashed_at is purged by cleanup."""
        return days_until_expiration(trashed_at, self.config.retention_days, now=self.clock())
