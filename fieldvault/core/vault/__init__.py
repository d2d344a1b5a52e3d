"""
Normalized entity store.

Pure functions over immutable NormalizedState snapshots.
"""

from fieldvault.core.vault.draft import StateDraft
from fieldvault.core.vault.normalization import (
    GraphFragment,
    create_empty_state,
    denormalize,
    denormalize_entity,
    normalize,
    normalize_subtree,
)
from fieldvault.core.vault.queries import (
    get_ancestors,
    get_child_ids,
    get_collection_members,
    get_collections_containing,
    get_descendants,
    get_entities_by_type,
    get_entity,
    get_entity_type,
    get_orphan_manifests,
    get_parent_id,
    has_entity,
    is_orphan_manifest,
    is_reachable,
)
from fieldvault.core.vault.updates import (
    add_child,
    add_to_collection,
    batch_update,
    move_entity,
    remove_child,
    remove_entity,
    remove_from_collection,
    reorder_children,
    update_dimensions,
    update_duration,
    update_entity,
)

__all__ = [
    # Normalization
    "create_empty_state",
    "normalize",
    "normalize_subtree",
    "denormalize",
    "denormalize_entity",
    "GraphFragment",
    "StateDraft",
    # Queries
    "has_entity",
    "get_entity",
    "get_entity_type",
    "get_parent_id",
    "get_child_ids",
    "get_entities_by_type",
    "get_ancestors",
    "get_descendants",
    "get_collections_containing",
    "get_collection_members",
    "is_orphan_manifest",
    "get_orphan_manifests",
    "is_reachable",
    # Updates
    "add_child",
    "remove_child",
    "reorder_children",
    "move_entity",
    "batch_update",
    "update_entity",
    "update_dimensions",
    "update_duration",
    "add_to_collection",
    "remove_from_collection",
    "remove_entity",
]
