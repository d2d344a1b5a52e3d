"""
Typed results returned by vault and trash operations.

Single-item operations never raise for domain failures: callers check
`success` before trusting `state`.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from fieldvault.models.state import NormalizedState


class ErrorKind(str, Enum):
    """Failure categories for vault and trash operations."""

    NOT_FOUND = "not_found"
    INVALID_CHILD_TYPE = "invalid_child_type"
    LENGTH_MISMATCH = "length_mismatch"
    PARTIAL_FAILURE = "partial_failure"
    CORRUPTED_RECORD = "corrupted_record"
    VALIDATION = "validation"
    CYCLE = "cycle"
    CONFLICT = "conflict"
    AMBIGUOUS_PARENT = "ambiguous_parent"
    ALREADY_TRASHED = "already_trashed"
    TRASH_LIMIT = "trash_limit"


class OperationResult(BaseModel):
    """Outcome of a single snapshot-producing operation."""

    success: bool
    state: NormalizedState | None = None
    entity_id: str | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    invalid_ids: list[str] = Field(default_factory=list)

    @classmethod
    def ok(cls, state: NormalizedState, entity_id: str | None = None) -> "OperationResult":
        return cls(success=True, state=state, entity_id=entity_id)

    @classmethod
    def fail(
        cls,
        state: NormalizedState,
        kind: ErrorKind,
        error: str,
        entity_id: str | None = None,
        invalid_ids: list[str] | None = None,
    ) -> "OperationResult":
        return cls(
            success=False,
            state=state,
            entity_id=entity_id,
            error=error,
            error_kind=kind,
            invalid_ids=invalid_ids or [],
        )


class BatchResult(BaseModel):
    """Outcome of a best-effort batch trash/restore."""

    success: bool
    processed_count: int = 0
    failed_count: int = 0
    results: list[OperationResult] = Field(default_factory=list)
    state: NormalizedState | None = None
    errors: list[str] = Field(default_factory=list)


class EmptyTrashResult(BaseModel):
    """Outcome of permanently deleting the trash."""

    state: NormalizedState
    deleted_count: int = 0
    failed_count: int = 0
    errors: list[str] = Field(default_factory=list)


class CleanupResult(BaseModel):
    """Outcome of retention-based trash cleanup."""

    state: NormalizedState
    deleted_count: int = 0
    deleted_ids: list[str] = Field(default_factory=list)


class TrashStats(BaseModel):
    """Read-only aggregate over the trash."""

    item_count: int = 0
    total_size: int = 0
    oldest_item: datetime | None = None
    newest_item: datetime | None = None
    items_by_type: dict[str, int] = Field(default_factory=dict)
    expiring_soon: int = 0
