"""
Archive Session - stateful facade over the vault.

Holds the current snapshot together with its undo history and the trash
service. Every mutating call applies the pure vault or trash operation, and
on success records the new snapshot in history and notifies subscribers.
Failed operations leave the session untouched.
"""

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from fieldvault.config import Config
from fieldvault.core import vault
from fieldvault.models.results import BatchResult, CleanupResult, EmptyTrashResult, OperationResult, TrashStats
from fieldvault.models.state import NormalizedState
from fieldvault.services.history import HistoryManager, HistoryStatus
from fieldvault.services.trash_service import TrashService
from fieldvault.utils.id_generator import generate_session_id
from fieldvault.utils.logger import get_logger

logger = get_logger(__name__)

Listener = Callable[[NormalizedState], None]


class ArchiveSession:
    """
    One open archive document.

    All writes are serialized through this object, so callers always operate
    on the latest snapshot.
    """

    def __init__(
        self,
        trash_service: TrashService | None = None,
        history: HistoryManager[NormalizedState] | None = None,
        config: Config | None = None,
    ):
        """
        Initialize archive session.

        Args:
            trash_service: Soft-delete service (built from config when None)
            history: Undo history (built from config when None)
            config: Configuration used for missing collaborators
        """
        config = config or Config()
        self.id = generate_session_id()
        self.trash = trash_service or TrashService(config.trash)
        self.history = history or HistoryManager(max_size=config.history.max_size)

        self._state = vault.create_empty_state()
        self._listeners: list[Listener] = []
        self.history.push(self._state, label="Empty")

    @property
    def state(self) -> NormalizedState:
        return self._state

    # ═══════════════════════════════════════════════════════════
    # DOCUMENT
    # ═══════════════════════════════════════════════════════════

    def load(self, document: dict[str, Any]) -> NormalizedState:
        """
        Replace the session content with a normalized document.

        History starts over from the loaded snapshot.

        Raises:
            ValidationError: If the document is malformed
        """
        state = vault.normalize(document)
        self.history.clear(keep_current=False)
        self.history.push(state, label="Load")
        self._set_state(state)
        logger.info(f"Session {self.id} loaded {state.entity_count()} entities")
        return state

    def export(self) -> dict[str, Any] | None:
        """Current document as a nested IIIF tree."""
        return vault.denormalize(self._state)

    def get(self, entity_id: str) -> dict[str, Any] | None:
        return vault.get_entity(self._state, entity_id)

    def has(self, entity_id: str) -> bool:
        return vault.has_entity(self._state, entity_id)

    # ═══════════════════════════════════════════════════════════
    # VAULT MUTATIONS
    # ═══════════════════════════════════════════════════════════

    def add_child(self, parent_id: str, child: dict[str, Any], index: int | None = None) -> OperationResult:
        return self._apply(vault.add_child(self._state, parent_id, child, index), "Add child")

    def remove_child(self, parent_id: str, child_id: str) -> OperationResult:
        return self._apply(vault.remove_child(self._state, parent_id, child_id), "Remove child")

    def reorder_children(self, parent_id: str, new_order: list[str]) -> OperationResult:
        return self._apply(vault.reorder_children(self._state, parent_id, new_order), "Reorder")

    def move_entity(
        self,
        entity_id: str,
        new_parent_id: str,
        index: int | None = None,
        from_parent_id: str | None = None,
    ) -> OperationResult:
        result = vault.move_entity(self._state, entity_id, new_parent_id, index, from_parent_id)
        return self._apply(result, "Move")

    def update_entity(self, entity_id: str, patch: dict[str, Any]) -> OperationResult:
        return self._apply(vault.update_entity(self._state, entity_id, patch), "Edit")

    def batch_update(self, updates: list[dict[str, Any]]) -> OperationResult:
        return self._apply(vault.batch_update(self._state, updates), f"Edit {len(updates)} items")

    def update_dimensions(self, entity_id: str, width: Any, height: Any) -> OperationResult:
        return self._apply(vault.update_dimensions(self._state, entity_id, width, height), "Resize canvas")

    def update_duration(self, entity_id: str, duration: Any) -> OperationResult:
        return self._apply(vault.update_duration(self._state, entity_id, duration), "Set duration")

    def add_to_collection(self, collection_id: str, member_id: str, index: int | None = None) -> OperationResult:
        return self._apply(vault.add_to_collection(self._state, collection_id, member_id, index), "Add to collection")

    def remove_from_collection(self, collection_id: str, member_id: str) -> OperationResult:
        result = vault.remove_from_collection(self._state, collection_id, member_id)
        return self._apply(result, "Remove from collection")

    def remove_entity(self, entity_id: str) -> OperationResult:
        return self._apply(vault.remove_entity(self._state, entity_id), "Delete permanently")

    # ═══════════════════════════════════════════════════════════
    # TRASH
    # ═══════════════════════════════════════════════════════════

    def move_to_trash(self, entity_id: str) -> OperationResult:
        return self._apply(self.trash.move_to_trash(self._state, entity_id), "Move to trash")

    def restore_from_trash(
        self, entity_id: str, parent_id: str | None = None, index: int | None = None
    ) -> OperationResult:
        return self._apply(self.trash.restore_from_trash(self._state, entity_id, parent_id, index), "Restore")

    def batch_move_to_trash(self, entity_ids: list[str]) -> BatchResult:
        result = self.trash.batch_move_to_trash(self._state, entity_ids)
        self._commit(result.state, f"Move {result.processed_count} items to trash")
        return result

    def batch_restore(self, entity_ids: list[str]) -> BatchResult:
        result = self.trash.batch_restore(self._state, entity_ids)
        self._commit(result.state, f"Restore {result.processed_count} items")
        return result

    def empty_trash(self) -> EmptyTrashResult:
        result = self.trash.empty_trash(self._state)
        self._commit(result.state, "Empty trash")
        return result

    def auto_cleanup(self, max_age_days: int | None = None) -> CleanupResult:
        result = self.trash.auto_cleanup(self._state, max_age_days)
        self._commit(result.state, "Clean up trash")
        return result

    def trash_stats(self) -> TrashStats:
        return self.trash.get_trash_stats(self._state)

    def trashed_ids(self) -> list[str]:
        return self.trash.get_trashed_ids(self._state)

    # ═══════════════════════════════════════════════════════════
    # HISTORY
    # ═══════════════════════════════════════════════════════════

    def undo(self) -> bool:
        """Step back one undo unit. Returns False when there is nothing to undo."""
        snapshot = self.history.undo()
        if snapshot is None:
            return False
        self._set_state(snapshot)
        return True

    def redo(self) -> bool:
        """Step forward one undo unit. Returns False when there is nothing to redo."""
        snapshot = self.history.redo()
        if snapshot is None:
            return False
        self._set_state(snapshot)
        return True

    @contextmanager
    def batch(self, label: str | None = None) -> Iterator["ArchiveSession"]:
        """Group every mutation inside the block into one undo unit."""
        with self.history.group(label):
            yield self

    def history_status(self) -> HistoryStatus:
        return self.history.get_status()

    # ═══════════════════════════════════════════════════════════
    # SUBSCRIPTIONS
    # ═══════════════════════════════════════════════════════════

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Call listener with every new snapshot.

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ═══════════════════════════════════════════════════════════
    # HELPER METHODS
    # ═══════════════════════════════════════════════════════════

    def _apply(self, result: OperationResult, label: str) -> OperationResult:
        if result.success:
            self._commit(result.state, label)
        return result

    def _commit(self, state: NormalizedState | None, label: str) -> None:
        if state is None or state is self._state:
            return
        self.history.push(state, label=label)
        self._set_state(state)

    def _set_state(self, state: NormalizedState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error(f"Session listener failed: {e}")
