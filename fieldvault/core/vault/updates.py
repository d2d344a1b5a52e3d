"""
Snapshot-producing vault mutations.

Every public function takes a NormalizedState and returns an OperationResult.
The input snapshot is never modified; on failure the result carries the
original snapshot object and an ErrorKind. Graph rules are enforced by
raising VaultOperationError inside the helpers and converting it here.
"""

import math
from typing import Any

from fieldvault.core.vault.draft import StateDraft
from fieldvault.core.vault.normalization import STRUCTURAL_KEYS, normalize_subtree
from fieldvault.core.vault.queries import is_reachable
from fieldvault.models.entity import (
    EntityType,
    RelationshipKind,
    get_relationship_kind,
    is_known_property,
    parse_entity_type,
)
from fieldvault.models.results import ErrorKind, OperationResult
from fieldvault.models.state import NormalizedState
from fieldvault.utils.exceptions import ValidationError, VaultOperationError
from fieldvault.utils.logger import get_logger

logger = get_logger(__name__)

DIMENSION_KEYS = ("width", "height", "duration")
IMMUTABLE_KEYS = ("id", "type")


def _rejected(operation: str, state: NormalizedState, error: VaultOperationError) -> OperationResult:
    logger.warning(f"{operation} rejected ({error.kind.value}): {error.message}")
    return OperationResult.fail(
        state,
        error.kind,
        error.message,
        entity_id=error.context.get("entity_id"),
        invalid_ids=error.invalid_ids,
    )


def _require_live(draft: StateDraft, entity_id: str, role: str = "Entity") -> EntityType:
    entity_type = draft.type_index.get(entity_id)
    if entity_type is None:
        raise VaultOperationError(
            ErrorKind.NOT_FOUND,
            f"{role} not found: {entity_id}",
            context={"entity_id": entity_id},
            invalid_ids=[entity_id],
        )
    return entity_type


def _require_kind(parent_type: EntityType, child_type: EntityType | None, child_id: str) -> RelationshipKind:
    kind = get_relationship_kind(parent_type, child_type) if child_type is not None else None
    if kind is None:
        child_name = child_type.value if child_type is not None else "unknown type"
        raise VaultOperationError(
            ErrorKind.INVALID_CHILD_TYPE,
            f"{child_name} cannot be placed under {parent_type.value}",
            context={"entity_id": child_id},
        )
    return kind


def _check_positive_number(key: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise VaultOperationError(ErrorKind.VALIDATION, f"{key} must be a number, got {value!r}")
    if not math.isfinite(value) or value <= 0:
        raise VaultOperationError(ErrorKind.VALIDATION, f"{key} must be a finite positive number, got {value!r}")


# ═══════════════════════════════════════════════════════════
# ADD / REMOVE / REORDER
# ═══════════════════════════════════════════════════════════


def add_child(
    state: NormalizedState,
    parent_id: str,
    child: dict[str, Any],
    index: int | None = None,
) -> OperationResult:
    """
    Insert a child under a parent.

    The child body is normalized recursively, so nested items become
    entities of their own. Under a reference parent an already-live child is
    linked by pointer instead of being created.

    Args:
        state: Current snapshot
        parent_id: Parent entity id
        child: JSON-LD body of the child
        index: Insert position (appends when None)

    Returns:
        OperationResult with entity_id set to the child id
    """
    draft = StateDraft(state)
    try:
        child_id = _add_child(draft, parent_id, child, index)
    except VaultOperationError as e:
        return _rejected("add_child", state, e)

    logger.debug(f"Added {child_id} under {parent_id}")
    return OperationResult.ok(draft.commit(), entity_id=child_id)


def _add_child(draft: StateDraft, parent_id: str, child: dict[str, Any], index: int | None) -> str:
    parent_type = _require_live(draft, parent_id, "Parent")

    if not isinstance(child, dict) or not isinstance(child.get("id"), str) or not child.get("id"):
        raise VaultOperationError(ErrorKind.VALIDATION, "Child must be an object with an id")

    child_id = child["id"]
    child_type = parse_entity_type(child.get("type"))
    kind = _require_kind(parent_type, child_type, child_id)

    if child_id == parent_id:
        raise VaultOperationError(
            ErrorKind.CYCLE, f"{child_id} cannot contain itself", context={"entity_id": child_id}
        )

    if child_id in draft.trashed_entities:
        raise VaultOperationError(
            ErrorKind.CONFLICT,
            f"{child_id} is in the trash; restore or purge it first",
            context={"entity_id": child_id},
            invalid_ids=[child_id],
        )

    if kind == RelationshipKind.REFERENCE and (child_id in draft.type_index or child_type == EntityType.CANVAS):
        _link_existing(draft, parent_id, child_id, child_type, index)
        return child_id

    if child_id in draft.type_index:
        raise VaultOperationError(
            ErrorKind.CONFLICT,
            f"Entity already exists: {child_id}",
            context={"entity_id": child_id},
            invalid_ids=[child_id],
        )

    try:
        fragment = normalize_subtree(child)
    except ValidationError as e:
        raise VaultOperationError(ErrorKind.VALIDATION, e.message, context={"entity_id": child_id}) from e

    if parent_id in fragment.type_index:
        raise VaultOperationError(
            ErrorKind.CYCLE,
            f"{child_id} contains its own parent {parent_id}",
            context={"entity_id": child_id},
        )

    clashes = [
        entity_id
        for entity_id in fragment.ids()
        if entity_id in draft.type_index or entity_id in draft.trashed_entities
    ]
    if clashes:
        raise VaultOperationError(
            ErrorKind.CONFLICT,
            f"{len(clashes)} nested ids already exist",
            context={"entity_id": child_id},
            invalid_ids=clashes,
        )

    draft.merge_fragment(fragment)
    draft.attach(parent_id, child_id, kind, index)
    return child_id


def _link_existing(
    draft: StateDraft,
    referrer_id: str,
    target_id: str,
    target_type: EntityType | None,
    index: int | None,
) -> None:
    live_type = draft.type_index.get(target_id)
    if live_type is None:
        raise VaultOperationError(
            ErrorKind.NOT_FOUND,
            f"Referenced entity not found: {target_id}",
            context={"entity_id": target_id},
            invalid_ids=[target_id],
        )
    if target_type is not None and live_type != target_type:
        raise VaultOperationError(
            ErrorKind.CONFLICT,
            f"{target_id} already exists as a {live_type.value}",
            context={"entity_id": target_id},
            invalid_ids=[target_id],
        )
    if target_id in draft.collection_members.get(referrer_id, []):
        return
    if is_reachable(draft, target_id, referrer_id):
        raise VaultOperationError(
            ErrorKind.CYCLE,
            f"Linking {target_id} under {referrer_id} would create a cycle",
            context={"entity_id": target_id},
        )
    draft.attach(referrer_id, target_id, RelationshipKind.REFERENCE, index)


def remove_child(state: NormalizedState, parent_id: str, child_id: str) -> OperationResult:
    """
    Remove a child from a parent.

    For an owned child the child and its owned descendants are deleted; for a
    referenced child only the pointer goes.
    """
    draft = StateDraft(state)
    try:
        _require_live(draft, parent_id, "Parent")
        if child_id in draft.references.get(parent_id, []):
            removed = draft.remove_subtree(child_id)
            logger.debug(f"Removed {child_id} and {len(removed) - 1} descendants from {parent_id}")
        elif child_id in draft.collection_members.get(parent_id, []):
            draft.unlink(parent_id, child_id)
            logger.debug(f"Unlinked {child_id} from {parent_id}")
        else:
            raise VaultOperationError(
                ErrorKind.NOT_FOUND,
                f"{child_id} is not a child of {parent_id}",
                context={"entity_id": child_id},
                invalid_ids=[child_id],
            )
    except VaultOperationError as e:
        return _rejected("remove_child", state, e)

    return OperationResult.ok(draft.commit(), entity_id=child_id)


def reorder_children(state: NormalizedState, parent_id: str, new_order: list[str]) -> OperationResult:
    """
    Replace the order of a parent's children.

    new_order must be a permutation of the current children; anything else
    (missing, unknown or repeated ids, wrong length) fails with
    LENGTH_MISMATCH and leaves the snapshot untouched.
    """
    draft = StateDraft(state)
    try:
        _require_live(draft, parent_id, "Parent")
        owned = draft.references.get(parent_id, [])
        referenced = draft.collection_members.get(parent_id, [])
        current = [*owned, *referenced]

        if len(new_order) != len(current) or sorted(new_order) != sorted(current):
            unknown = [child_id for child_id in new_order if child_id not in current]
            raise VaultOperationError(
                ErrorKind.LENGTH_MISMATCH,
                f"New order has {len(new_order)} ids, {parent_id} has {len(current)} children",
                context={"entity_id": parent_id},
                invalid_ids=unknown,
            )

        owned_set = set(owned)
        draft.set_owned_children(parent_id, [c for c in new_order if c in owned_set])
        draft.set_members(parent_id, [c for c in new_order if c not in owned_set])
    except VaultOperationError as e:
        return _rejected("reorder_children", state, e)

    return OperationResult.ok(draft.commit(), entity_id=parent_id)


# ═══════════════════════════════════════════════════════════
# MOVE
# ═══════════════════════════════════════════════════════════


def move_entity(
    state: NormalizedState,
    entity_id: str,
    new_parent_id: str,
    index: int | None = None,
    from_parent_id: str | None = None,
) -> OperationResult:
    """
    Move an entity to a new parent in one atomic step.

    Args:
        state: Current snapshot
        entity_id: Entity to move
        new_parent_id: Destination parent
        index: Position under the new parent (appends when None)
        from_parent_id: Referrer to detach from when the entity is referenced
            by more than one parent

    Returns:
        OperationResult; on failure nothing is moved
    """
    draft = StateDraft(state)
    try:
        entity_type = _require_live(draft, entity_id)
        parent_type = _require_live(draft, new_parent_id, "New parent")
        kind = _require_kind(parent_type, entity_type, entity_id)

        if is_reachable(state, entity_id, new_parent_id):
            raise VaultOperationError(
                ErrorKind.CYCLE,
                f"Cannot move {entity_id} under itself or its descendant {new_parent_id}",
                context={"entity_id": entity_id},
            )

        source_id = _resolve_source_parent(draft, entity_id, kind, from_parent_id)
        if source_id is not None:
            if source_id == draft.reverse_refs.get(entity_id):
                draft.detach_owner(entity_id)
            else:
                draft.unlink(source_id, entity_id)

        if kind == RelationshipKind.OWNERSHIP:
            draft.detach_owner(entity_id)
        elif entity_id in draft.collection_members.get(new_parent_id, []):
            draft.unlink(new_parent_id, entity_id)

        draft.attach(new_parent_id, entity_id, kind, index)
    except VaultOperationError as e:
        return _rejected("move_entity", state, e)

    logger.debug(f"Moved {entity_id} to {new_parent_id}")
    return OperationResult.ok(draft.commit(), entity_id=entity_id)


def _resolve_source_parent(
    draft: StateDraft, entity_id: str, kind: RelationshipKind, from_parent_id: str | None
) -> str | None:
    owner = draft.reverse_refs.get(entity_id)
    referrers = draft.member_of_collections.get(entity_id, [])

    if from_parent_id is not None:
        if from_parent_id != owner and from_parent_id not in referrers:
            raise VaultOperationError(
                ErrorKind.NOT_FOUND,
                f"{entity_id} is not a child of {from_parent_id}",
                context={"entity_id": entity_id},
                invalid_ids=[from_parent_id],
            )
        return from_parent_id

    if kind == RelationshipKind.OWNERSHIP:
        return owner
    if len(referrers) > 1:
        raise VaultOperationError(
            ErrorKind.AMBIGUOUS_PARENT,
            f"{entity_id} has {len(referrers)} parents; pass from_parent_id",
            context={"entity_id": entity_id},
            invalid_ids=list(referrers),
        )
    return referrers[0] if referrers else None


# ═══════════════════════════════════════════════════════════
# PATCHES
# ═══════════════════════════════════════════════════════════


def _apply_patch(draft: StateDraft, entity_id: str, patch: dict[str, Any]) -> None:
    entity_type = _require_live(draft, entity_id)
    body = dict(draft.get_entity(entity_id))
    extensions = dict(draft.extensions.get(entity_id, {}))

    for key, value in patch.items():
        if key in IMMUTABLE_KEYS:
            if value != body.get(key):
                raise VaultOperationError(
                    ErrorKind.VALIDATION,
                    f"{key} of {entity_id} cannot be changed",
                    context={"entity_id": entity_id},
                    invalid_ids=[entity_id],
                )
            continue
        if key in STRUCTURAL_KEYS[entity_type]:
            raise VaultOperationError(
                ErrorKind.VALIDATION,
                f"{key} of {entity_id} is managed through child operations",
                context={"entity_id": entity_id},
                invalid_ids=[entity_id],
            )
        if key in DIMENSION_KEYS and value is not None:
            _check_positive_number(key, value)

        target = body if is_known_property(entity_type, key) else extensions
        if value is None:
            target.pop(key, None)
        else:
            target[key] = value

    draft.put_entity(entity_id, entity_type, body)
    draft.set_extensions(entity_id, extensions)


def update_entity(state: NormalizedState, entity_id: str, patch: dict[str, Any]) -> OperationResult:
    """
    Shallow-merge a patch into one entity.

    A None value removes the key. Unrecognised keys land in the entity's
    extensions so they survive export.
    """
    draft = StateDraft(state)
    try:
        _apply_patch(draft, entity_id, patch)
    except VaultOperationError as e:
        return _rejected("update_entity", state, e)

    logger.debug(f"Updated {entity_id}: {sorted(patch)}")
    return OperationResult.ok(draft.commit(), entity_id=entity_id)


def batch_update(state: NormalizedState, updates: list[dict[str, Any]]) -> OperationResult:
    """
    Apply several patches all-or-nothing.

    Args:
        state: Current snapshot
        updates: List of {"id": ..., "patch": {...}}

    Returns:
        OperationResult; PARTIAL_FAILURE with invalid_ids when any id is
        missing, in which case no patch is applied
    """
    missing = [update.get("id") for update in updates if update.get("id") not in state.type_index]
    if missing:
        error = VaultOperationError(
            ErrorKind.PARTIAL_FAILURE,
            f"{len(missing)} of {len(updates)} entities not found",
            invalid_ids=[str(entity_id) for entity_id in missing],
        )
        return _rejected("batch_update", state, error)

    draft = StateDraft(state)
    try:
        for update in updates:
            _apply_patch(draft, update["id"], update.get("patch") or {})
    except VaultOperationError as e:
        return _rejected("batch_update", state, e)

    logger.debug(f"Batch updated {len(updates)} entities")
    return OperationResult.ok(draft.commit())


def update_dimensions(state: NormalizedState, entity_id: str, width: Any, height: Any) -> OperationResult:
    """Set a canvas's width and height; both must be finite and positive."""
    try:
        _require_canvas(state, entity_id)
        _check_positive_number("width", width)
        _check_positive_number("height", height)
    except VaultOperationError as e:
        return _rejected("update_dimensions", state, e)
    return update_entity(state, entity_id, {"width": width, "height": height})


def update_duration(state: NormalizedState, entity_id: str, duration: Any) -> OperationResult:
    """Set a canvas's duration in seconds; must be finite and positive."""
    try:
        _require_canvas(state, entity_id)
        _check_positive_number("duration", duration)
    except VaultOperationError as e:
        return _rejected("update_duration", state, e)
    return update_entity(state, entity_id, {"duration": duration})


def _require_canvas(state: NormalizedState, entity_id: str) -> None:
    entity_type = state.type_index.get(entity_id)
    if entity_type is None:
        raise VaultOperationError(
            ErrorKind.NOT_FOUND, f"Entity not found: {entity_id}", invalid_ids=[entity_id]
        )
    if entity_type != EntityType.CANVAS:
        raise VaultOperationError(
            ErrorKind.VALIDATION,
            f"{entity_id} is a {entity_type.value}, not a Canvas",
            context={"entity_id": entity_id},
        )


# ═══════════════════════════════════════════════════════════
# COLLECTIONS AND PURGE
# ═══════════════════════════════════════════════════════════


def add_to_collection(
    state: NormalizedState,
    collection_id: str,
    member_id: str,
    index: int | None = None,
) -> OperationResult:
    """Reference an existing manifest or collection from a collection."""
    draft = StateDraft(state)
    try:
        collection_type = _require_live(draft, collection_id, "Collection")
        if collection_type != EntityType.COLLECTION:
            raise VaultOperationError(
                ErrorKind.INVALID_CHILD_TYPE,
                f"{collection_id} is a {collection_type.value}, not a Collection",
                context={"entity_id": collection_id},
            )
        member_type = _require_live(draft, member_id)
        _require_kind(collection_type, member_type, member_id)
        _link_existing(draft, collection_id, member_id, member_type, index)
    except VaultOperationError as e:
        return _rejected("add_to_collection", state, e)

    return OperationResult.ok(draft.commit(), entity_id=member_id)


def remove_from_collection(state: NormalizedState, collection_id: str, member_id: str) -> OperationResult:
    """Drop a collection's pointer to a member; the member itself stays."""
    draft = StateDraft(state)
    try:
        _require_live(draft, collection_id, "Collection")
        if member_id not in draft.collection_members.get(collection_id, []):
            raise VaultOperationError(
                ErrorKind.NOT_FOUND,
                f"{member_id} is not a member of {collection_id}",
                context={"entity_id": member_id},
                invalid_ids=[member_id],
            )
        draft.unlink(collection_id, member_id)
    except VaultOperationError as e:
        return _rejected("remove_from_collection", state, e)

    return OperationResult.ok(draft.commit(), entity_id=member_id)


def remove_entity(state: NormalizedState, entity_id: str) -> OperationResult:
    """
    Permanently delete an entity and its owned subtree.

    Works on live and trashed entities alike; trash records for any removed
    id are cleared so the id can be reused.
    """
    draft = StateDraft(state)
    if entity_id in draft.type_index:
        removed = draft.remove_subtree(entity_id)
    elif entity_id in draft.trashed_entities:
        removed = [entity_id]
    else:
        error = VaultOperationError(
            ErrorKind.NOT_FOUND,
            f"Entity not found: {entity_id}",
            context={"entity_id": entity_id},
            invalid_ids=[entity_id],
        )
        return _rejected("remove_entity", state, error)

    for removed_id in removed:
        draft.drop_trash(removed_id)

    logger.info(f"Purged {entity_id} ({len(removed)} entities)")
    return OperationResult.ok(draft.commit(), entity_id=entity_id)
