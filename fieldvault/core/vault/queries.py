"""
Read-only queries over a NormalizedState.

None of these functions raise for unknown ids; they return None or an empty
list instead.
"""

from typing import Any

from fieldvault.models.entity import EntityType
from fieldvault.models.state import NormalizedState


def has_entity(state: NormalizedState, entity_id: str) -> bool:
    """Check whether an entity is live (trashed entities are not)."""
    return entity_id in state.type_index


def get_entity(state: NormalizedState, entity_id: str) -> dict[str, Any] | None:
    """Get a live entity body by id."""
    entity_type = state.type_index.get(entity_id)
    if entity_type is None:
        return None
    return state.entities[entity_type.value].get(entity_id)


def get_entity_type(state: NormalizedState, entity_id: str) -> EntityType | None:
    return state.type_index.get(entity_id)


def get_parent_id(state: NormalizedState, entity_id: str) -> str | None:
    """Owning parent of an entity, or None for roots and reference-only entities."""
    return state.reverse_refs.get(entity_id)


def get_child_ids(state: NormalizedState, parent_id: str) -> list[str]:
    """
    Ordered children of a parent.

    Owned children come first, followed by reference targets (collection
    members, canvases pointed at by a range).
    """
    owned = state.references.get(parent_id, [])
    referenced = state.collection_members.get(parent_id, [])
    return [*owned, *referenced]


def get_entities_by_type(state: NormalizedState, entity_type: EntityType | str) -> list[dict[str, Any]]:
    """All live entities of one type, in insertion order."""
    key = entity_type.value if isinstance(entity_type, EntityType) else entity_type
    return list(state.entities.get(key, {}).values())


def get_ancestors(state: NormalizedState, entity_id: str) -> list[str]:
    """
    Owning ancestors of an entity, nearest first.

    Stops if the ownership chain loops back on itself.
    """
    ancestors: list[str] = []
    seen = {entity_id}
    current = state.reverse_refs.get(entity_id)

    while current is not None and current not in seen:
        ancestors.append(current)
        seen.add(current)
        current = state.reverse_refs.get(current)

    return ancestors


def get_descendants(state: NormalizedState, entity_id: str) -> list[str]:
    """All owned descendants of an entity, depth first."""
    descendants: list[str] = []
    seen = {entity_id}
    stack = list(reversed(state.references.get(entity_id, [])))

    while stack:
        current = stack.pop()
        if current in seen:
            continue
        seen.add(current)
        descendants.append(current)
        stack.extend(reversed(state.references.get(current, [])))

    return descendants


def get_collections_containing(state: NormalizedState, entity_id: str) -> list[str]:
    """Referrers (collections or ranges) pointing at an entity."""
    return list(state.member_of_collections.get(entity_id, []))


def get_collection_members(state: NormalizedState, collection_id: str) -> list[dict[str, Any]]:
    """Live entities referenced by a collection, in member order."""
    members = []
    for member_id in state.collection_members.get(collection_id, []):
        entity = get_entity(state, member_id)
        if entity is not None:
            members.append(entity)
    return members


def is_orphan_manifest(state: NormalizedState, manifest_id: str) -> bool:
    """True if a live manifest is not referenced by any collection."""
    if state.type_index.get(manifest_id) != EntityType.MANIFEST:
        return False
    return not state.member_of_collections.get(manifest_id)


def get_orphan_manifests(state: NormalizedState) -> list[dict[str, Any]]:
    return [
        body
        for manifest_id, body in state.entities[EntityType.MANIFEST.value].items()
        if is_orphan_manifest(state, manifest_id)
    ]


def is_reachable(state: NormalizedState, source_id: str, target_id: str) -> bool:
    """
    Check whether target_id can be reached from source_id.

    Follows ownership and reference edges alike.
    """
    if source_id == target_id:
        return True

    seen = {source_id}
    stack = [source_id]

    while stack:
        current = stack.pop()
        for next_id in get_child_ids(state, current):
            if next_id == target_id:
                return True
            if next_id not in seen:
                seen.add(next_id)
                stack.append(next_id)

    return False
