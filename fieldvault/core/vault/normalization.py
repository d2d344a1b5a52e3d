"""
Normalization between nested IIIF JSON-LD trees and the flat vault snapshot.

normalize() flattens a tree into per-type buckets plus edge indices;
denormalize() rebuilds the nested tree for export. Keys that are not
recognised IIIF properties are moved to the extensions bag on the way in and
merged back verbatim on the way out.
"""

import copy
from typing import Any

from fieldvault.models.entity import (
    EntityType,
    RelationshipKind,
    get_relationship_kind,
    is_known_property,
    parse_entity_type,
)
from fieldvault.models.state import NormalizedState
from fieldvault.utils.exceptions import ValidationError
from fieldvault.utils.logger import get_logger

logger = get_logger(__name__)

# Keys whose content is normalized into child entities instead of the body
STRUCTURAL_KEYS: dict[EntityType, tuple[str, ...]] = {
    EntityType.COLLECTION: ("items",),
    EntityType.MANIFEST: ("items", "structures"),
    EntityType.CANVAS: ("items",),
    EntityType.RANGE: ("items",),
    EntityType.ANNOTATION_PAGE: ("items",),
    EntityType.ANNOTATION: (),
}

# Range items that are not Ranges or Canvases (SpecificResource selectors and
# the like) are kept verbatim under this extensions key
RANGE_PASSTHROUGH_KEY = "items"


class GraphFragment:
    """
    Mutable scratch graph used while flattening a tree.

    Only ever lives inside a single normalization call; it is converted into
    an immutable NormalizedState (or merged into one) before anybody sees it.
    """

    def __init__(self):
        self.entities: dict[str, dict[str, dict[str, Any]]] = {t.value: {} for t in EntityType}
        self.type_index: dict[str, EntityType] = {}
        self.references: dict[str, list[str]] = {}
        self.reverse_refs: dict[str, str] = {}
        self.collection_members: dict[str, list[str]] = {}
        self.member_of_collections: dict[str, list[str]] = {}
        self.extensions: dict[str, dict[str, Any]] = {}
        self.order: list[str] = []

    def ids(self) -> list[str]:
        """Entity ids in the order they were normalized (root first)."""
        return list(self.order)

    def add_entity(self, entity_id: str, entity_type: EntityType, body: dict, extensions: dict) -> None:
        if entity_id in self.type_index:
            raise ValidationError(
                f"Duplicate entity id in tree: {entity_id}", context={"entity_id": entity_id}
            )
        self.entities[entity_type.value][entity_id] = body
        self.type_index[entity_id] = entity_type
        self.order.append(entity_id)
        if extensions:
            self.extensions[entity_id] = extensions

    def keep_passthrough(self, range_id: str, item: dict[str, Any]) -> None:
        self.extensions.setdefault(range_id, {}).setdefault(RANGE_PASSTHROUGH_KEY, []).append(copy.deepcopy(item))

    def link(self, parent_id: str, child_id: str, kind: RelationshipKind) -> None:
        if kind == RelationshipKind.OWNERSHIP:
            self.references.setdefault(parent_id, []).append(child_id)
            self.reverse_refs[child_id] = parent_id
        else:
            self.collection_members.setdefault(parent_id, []).append(child_id)
            self.member_of_collections.setdefault(child_id, []).append(parent_id)

    def to_state(self, root_id: str | None) -> NormalizedState:
        return NormalizedState(
            entities=self.entities,
            type_index=self.type_index,
            references=self.references,
            reverse_refs=self.reverse_refs,
            collection_members=self.collection_members,
            member_of_collections=self.member_of_collections,
            root_id=root_id,
            extensions=self.extensions,
        )


def create_empty_state() -> NormalizedState:
    """Create an empty snapshot."""
    return NormalizedState()


def split_extensions(item: dict[str, Any], entity_type: EntityType) -> tuple[dict, dict]:
    """
    Split a JSON-LD object into its recognised body and its extension bag.

    Structural child lists are dropped from the body; they become edges.

    Returns:
        (body, extensions)
    """
    structural = STRUCTURAL_KEYS[entity_type]
    body: dict[str, Any] = {}
    extensions: dict[str, Any] = {}

    for key, value in item.items():
        if key in structural:
            continue
        if is_known_property(entity_type, key):
            body[key] = copy.deepcopy(value)
        elif value is not None:
            extensions[key] = copy.deepcopy(value)

    return body, extensions


def _require_identity(item: Any) -> tuple[str, EntityType]:
    if not isinstance(item, dict):
        raise ValidationError(f"Resource must be an object, got {type(item).__name__}")
    entity_id = item.get("id")
    entity_type = parse_entity_type(item.get("type"))
    if not entity_id or not isinstance(entity_id, str):
        raise ValidationError("Resource is missing an id", context={"type": item.get("type")})
    if entity_type is None:
        raise ValidationError(
            f"Unsupported resource type: {item.get('type')}", context={"entity_id": entity_id}
        )
    return entity_id, entity_type


def normalize_subtree(item: dict[str, Any], fragment: GraphFragment | None = None) -> GraphFragment:
    """
    Flatten a nested resource (and everything it contains) into a fragment.

    Args:
        item: JSON-LD resource
        fragment: Fragment to extend (a new one by default)

    Returns:
        The fragment holding the flattened subtree

    Raises:
        ValidationError: If a resource lacks an id, has an unsupported type,
            sits under a parent that cannot hold it, or an id repeats where
            an owned child is expected
    """
    fragment = fragment or GraphFragment()
    _normalize_item(item, fragment)
    return fragment


def _normalize_item(item: dict[str, Any], fragment: GraphFragment) -> str:
    entity_id, entity_type = _require_identity(item)
    body, extensions = split_extensions(item, entity_type)
    fragment.add_entity(entity_id, entity_type, body, extensions)

    for key in STRUCTURAL_KEYS[entity_type]:
        children = item.get(key) or []
        if not isinstance(children, list):
            raise ValidationError(f"{entity_type.value}.{key} must be a list", context={"entity_id": entity_id})
        for child in children:
            _normalize_child(entity_id, entity_type, child, fragment)

    return entity_id


def _normalize_child(
    parent_id: str, parent_type: EntityType, child: Any, fragment: GraphFragment
) -> None:
    if parent_type == EntityType.RANGE and _is_passthrough(child):
        fragment.keep_passthrough(parent_id, child)
        return

    child_id, child_type = _require_identity(child)
    kind = get_relationship_kind(parent_type, child_type)

    if kind is None:
        raise ValidationError(
            f"{child_type.value} cannot be a child of {parent_type.value}",
            context={"parent_id": parent_id, "child_id": child_id},
        )

    if kind == RelationshipKind.REFERENCE:
        # A referenced resource may appear several times in one tree
        if child_id not in fragment.type_index and _is_embedded(child, child_type):
            _normalize_item(child, fragment)
        fragment.link(parent_id, child_id, kind)
        return

    _normalize_item(child, fragment)
    fragment.link(parent_id, child_id, kind)


def _is_passthrough(child: Any) -> bool:
    if not isinstance(child, dict):
        return False
    return parse_entity_type(child.get("type")) not in (EntityType.RANGE, EntityType.CANVAS)


def _is_embedded(child: dict[str, Any], child_type: EntityType) -> bool:
    # Range items reference canvases by id only; the canvas is owned by its manifest
    if child_type == EntityType.CANVAS:
        return False
    return True


def normalize(root: dict[str, Any]) -> NormalizedState:
    """
    Normalize a nested IIIF tree into a flat snapshot.

    Args:
        root: Top-level Collection or Manifest

    Returns:
        NormalizedState with root_id set

    Raises:
        ValidationError: If the tree is malformed
    """
    fragment = normalize_subtree(root)
    root_id = fragment.order[0]

    # Range -> Canvas pointers may name canvases that were never part of the tree
    for referrer_id, targets in fragment.collection_members.items():
        dangling = [t for t in targets if t not in fragment.type_index]
        if dangling:
            logger.warning(f"{referrer_id} references {len(dangling)} unknown resources; dropping them")
            fragment.collection_members[referrer_id] = [t for t in targets if t in fragment.type_index]
            for target in dangling:
                fragment.member_of_collections.pop(target, None)

    logger.info(f"Normalized {len(fragment.type_index)} entities under root {root_id}")
    return fragment.to_state(root_id)


# ═══════════════════════════════════════════════════════════
# DENORMALIZATION
# ═══════════════════════════════════════════════════════════


def denormalize(state: NormalizedState) -> dict[str, Any] | None:
    """Reconstruct the nested tree from the snapshot's root, or None without a root."""
    if not state.root_id or state.root_id not in state.type_index:
        return None
    return denormalize_entity(state, state.root_id)


def denormalize_entity(state: NormalizedState, entity_id: str) -> dict[str, Any] | None:
    """Reconstruct one entity with everything below it, or None if it is not live."""
    if entity_id not in state.type_index:
        return None
    return _denormalize(state, entity_id, set())


def _denormalize(state: NormalizedState, entity_id: str, visiting: set[str]) -> dict[str, Any]:
    entity_type = state.type_index[entity_id]
    body = state.entities[entity_type.value][entity_id]

    if entity_id in visiting:
        # Reference loop in a corrupted snapshot; emit a pointer instead of recursing
        return {"id": entity_id, "type": entity_type.value}

    visiting = visiting | {entity_id}
    result = copy.deepcopy(body)
    owned = state.references.get(entity_id, [])
    referenced = state.collection_members.get(entity_id, [])

    if entity_type == EntityType.COLLECTION:
        result["items"] = [_denormalize(state, mid, visiting) for mid in referenced if mid in state.type_index]
    elif entity_type == EntityType.MANIFEST:
        result["items"] = [
            _denormalize(state, cid, visiting) for cid in owned if state.type_index.get(cid) == EntityType.CANVAS
        ]
        ranges = [
            _denormalize(state, rid, visiting) for rid in owned if state.type_index.get(rid) == EntityType.RANGE
        ]
        if ranges:
            result["structures"] = ranges
    elif entity_type == EntityType.RANGE:
        items = [_denormalize(state, rid, visiting) for rid in owned if rid in state.type_index]
        items.extend({"id": cid, "type": EntityType.CANVAS.value} for cid in referenced if cid in state.type_index)
        result["items"] = items
        items.extend(copy.deepcopy(state.extensions.get(entity_id, {}).get(RANGE_PASSTHROUGH_KEY, [])))
    elif entity_type in (EntityType.CANVAS, EntityType.ANNOTATION_PAGE):
        result["items"] = [_denormalize(state, cid, visiting) for cid in owned if cid in state.type_index]

    for key, value in state.extensions.get(entity_id, {}).items():
        if entity_type == EntityType.RANGE and key == RANGE_PASSTHROUGH_KEY:
            continue
        result[key] = copy.deepcopy(value)

    return result
