"""
Data models for FieldVault.

Core models:
- EntityType, RelationshipKind: resource types and hierarchy rules
- NormalizedState: one immutable snapshot of the resource graph
- TrashedEntity, CapturedEntity: soft-delete records
- OperationResult, BatchResult, EmptyTrashResult, CleanupResult, TrashStats: typed outcomes
- CacheEntry, ResourceStub, CacheStats: virtualized cache models
"""

from fieldvault.models.cache import CacheEntry, CacheStats, ResourceStub
from fieldvault.models.entity import (
    HIERARCHY_RULES,
    EntityType,
    RelationshipKind,
    get_relationship_kind,
    get_valid_child_types,
    is_known_property,
    is_valid_child_type,
    parse_entity_type,
)
from fieldvault.models.results import (
    BatchResult,
    CleanupResult,
    EmptyTrashResult,
    ErrorKind,
    OperationResult,
    TrashStats,
)
from fieldvault.models.state import CapturedEntity, NormalizedState, TrashedEntity

__all__ = [
    # Entity models
    "EntityType",
    "RelationshipKind",
    "HIERARCHY_RULES",
    "get_relationship_kind",
    "get_valid_child_types",
    "is_known_property",
    "is_valid_child_type",
    "parse_entity_type",
    # State models
    "NormalizedState",
    "TrashedEntity",
    "CapturedEntity",
    # Result models
    "ErrorKind",
    "OperationResult",
    "BatchResult",
    "EmptyTrashResult",
    "CleanupResult",
    "TrashStats",
    # Cache models
    "CacheEntry",
    "ResourceStub",
    "CacheStats",
]
