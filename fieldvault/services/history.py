"""
Undo/redo history over vault snapshots.

History is a list of entries plus a pointer to the current one. Pushing after
an undo discards the redo branch. Several pushes inside group() collapse into
one undo unit.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

from fieldvault.utils.id_generator import generate_history_id
from fieldvault.utils.logger import get_logger

logger = get_logger(__name__)

S = TypeVar("S")


class HistoryEntry(BaseModel):
    """One undoable step."""

    id: str = Field(default_factory=generate_history_id)
    snapshot: Any
    label: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)


class HistoryStatus(BaseModel):
    """Read-only summary for toolbar state."""

    can_undo: bool
    can_redo: bool
    undo_count: int
    redo_count: int
    undo_label: str | None = None
    redo_label: str | None = None


class HistoryManager(Generic[S]):
    """
    Bounded undo/redo stack of immutable snapshots.

    Snapshots are stored by reference; they must not be mutated after push.
    """

    def __init__(self, max_size: int = 100):
        """
        Initialize history manager.

        Args:
            max_size: Maximum number of entries kept (oldest dropped first)
        """
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._entries: list[HistoryEntry] = []
        self._index = -1

        self._group_depth = 0
        self._group_label: str | None = None
        self._group_start: int | None = None

    @property
    def current(self) -> S | None:
        """Snapshot at the history pointer, or None when empty."""
        if self._index < 0:
            return None
        return self._entries[self._index].snapshot

    @property
    def can_undo(self) -> bool:
        return self._index > 0

    @property
    def can_redo(self) -> bool:
        return self._index < len(self._entries) - 1

    def push(self, snapshot: S, label: str | None = None) -> bool:
        """
        Record a new snapshot as the current state.

        A snapshot equal to the current one is ignored.

        Args:
            snapshot: New snapshot
            label: Optional description shown in undo menus

        Returns:
            True if an entry was recorded
        """
        current = self.current
        if current is not None and (current is snapshot or current == snapshot):
            return False

        # New branch: anything after the pointer can no longer be redone
        del self._entries[self._index + 1 :]

        if self._group_depth and self._group_start is not None and self._index > self._group_start:
            # Inside a group, later pushes replace the group's entry
            self._entries[self._index] = HistoryEntry(snapshot=snapshot, label=self._group_label or label)
            return True

        self._entries.append(HistoryEntry(snapshot=snapshot, label=self._group_label or label))
        self._index = len(self._entries) - 1

        overflow = len(self._entries) - self.max_size
        if overflow > 0:
            del self._entries[:overflow]
            self._index -= overflow
            if self._group_start is not None:
                self._group_start = max(-1, self._group_start - overflow)

        return True

    def undo(self) -> S | None:
        """Step back one entry; returns the new current snapshot, or None if nothing to undo."""
        if not self.can_undo:
            return None
        self._index -= 1
        logger.debug(f"Undo -> {self._entries[self._index].label or self._entries[self._index].id}")
        return self._entries[self._index].snapshot

    def redo(self) -> S | None:
        """Step forward one entry; returns the new current snapshot, or None if nothing to redo."""
        if not self.can_redo:
            return None
        self._index += 1
        logger.debug(f"Redo -> {self._entries[self._index].label or self._entries[self._index].id}")
        return self._entries[self._index].snapshot

    @contextmanager
    def group(self, label: str | None = None) -> Iterator[None]:
        """
        Collapse every push inside the block into one undo unit.

        Groups nest; only the outermost one delimits the unit.

        Example:
            with history.group("Rename canvases"):
                history.push(state_a)
                history.push(state_b)
            history.undo()  # back to the state before state_a
        """
        outermost = self._group_depth == 0
        if outermost:
            self._group_label = label
            self._group_start = self._index
        self._group_depth += 1
        try:
            yield
        finally:
            self._group_depth -= 1
            if outermost:
                self._group_label = None
                self._group_start = None

    def get_status(self) -> HistoryStatus:
        return HistoryStatus(
            can_undo=self.can_undo,
            can_redo=self.can_redo,
            undo_count=max(0, self._index),
            redo_count=len(self._entries) - 1 - self._index,
            undo_label=self._entries[self._index].label if self.can_undo else None,
            redo_label=self._entries[self._index + 1].label if self.can_redo else None,
        )

    def get_recent(self, limit: int = 10) -> list[HistoryEntry]:
        """Most recent entries up to the pointer, newest first."""
        return list(reversed(self._entries[max(0, self._index + 1 - limit) : self._index + 1]))

    def clear(self, keep_current: bool = True) -> None:
        """
        Drop history.

        Args:
            keep_current: Keep the current snapshot as the only entry
        """
        current = self._entries[self._index] if keep_current and self._index >= 0 else None
        self._entries = [current] if current is not None else []
        self._index = len(self._entries) - 1

    def __len__(self) -> int:
        return len(self._entries)
