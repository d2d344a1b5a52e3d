"""
Copy-on-write editing of a NormalizedState.

A StateDraft collects changes against a published snapshot without touching
it. Each top-level index is shallow-copied the first time it is written, each
entity bucket the first time one of its entities changes, and adjacency lists
are always replaced, never edited in place. commit() returns a new snapshot
that shares every untouched branch with the base.
"""

from typing import Any

from fieldvault.core.vault.normalization import GraphFragment
from fieldvault.models.entity import EntityType, RelationshipKind
from fieldvault.models.state import NormalizedState, TrashedEntity


def _insert(items: list[str], item: str, index: int | None) -> list[str]:
    result = list(items)
    if index is None:
        result.append(item)
    else:
        result.insert(max(0, min(index, len(result))), item)
    return result


class StateDraft:
    """Pending edits on top of an immutable snapshot."""

    def __init__(self, base: NormalizedState):
        self.base = base
        self._updates: dict[str, Any] = {}
        self._copied_buckets: set[str] = set()

    # ═══════════════════════════════════════════════════════════
    # READ ACCESS
    # ═══════════════════════════════════════════════════════════

    def _read(self, field: str) -> Any:
        if field in self._updates:
            return self._updates[field]
        return getattr(self.base, field)

    def _write(self, field: str) -> dict:
        if field not in self._updates:
            self._updates[field] = dict(getattr(self.base, field))
        return self._updates[field]

    @property
    def entities(self) -> dict[str, dict[str, dict[str, Any]]]:
        return self._read("entities")

    @property
    def type_index(self) -> dict[str, EntityType]:
        return self._read("type_index")

    @property
    def references(self) -> dict[str, list[str]]:
        return self._read("references")

    @property
    def reverse_refs(self) -> dict[str, str]:
        return self._read("reverse_refs")

    @property
    def collection_members(self) -> dict[str, list[str]]:
        return self._read("collection_members")

    @property
    def member_of_collections(self) -> dict[str, list[str]]:
        return self._read("member_of_collections")

    @property
    def extensions(self) -> dict[str, dict[str, Any]]:
        return self._read("extensions")

    @property
    def trashed_entities(self) -> dict[str, TrashedEntity]:
        return self._read("trashed_entities")

    @property
    def root_id(self) -> str | None:
        return self._read("root_id")

    def get_entity(self, entity_id: str) -> dict[str, Any] | None:
        entity_type = self.type_index.get(entity_id)
        if entity_type is None:
            return None
        return self.entities[entity_type.value].get(entity_id)

    def owned_subtree(self, entity_id: str) -> list[str]:
        """entity_id followed by all of its owned descendants, depth first."""
        result: list[str] = []
        seen: set[str] = set()
        stack = [entity_id]
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            result.append(current)
            stack.extend(reversed(self.references.get(current, [])))
        return result

    # ═══════════════════════════════════════════════════════════
    # ENTITY WRITES
    # ═══════════════════════════════════════════════════════════

    def _bucket(self, entity_type: EntityType) -> dict[str, dict[str, Any]]:
        entities = self._write("entities")
        if entity_type.value not in self._copied_buckets:
            entities[entity_type.value] = dict(entities.get(entity_type.value, {}))
            self._copied_buckets.add(entity_type.value)
        return entities[entity_type.value]

    def put_entity(self, entity_id: str, entity_type: EntityType, body: dict[str, Any]) -> None:
        self._bucket(entity_type)[entity_id] = body
        if self.type_index.get(entity_id) != entity_type:
            self._write("type_index")[entity_id] = entity_type

    def set_extensions(self, entity_id: str, extensions: dict[str, Any] | None) -> None:
        if extensions:
            self._write("extensions")[entity_id] = extensions
        elif entity_id in self.extensions:
            del self._write("extensions")[entity_id]

    def set_root(self, root_id: str | None) -> None:
        self._updates["root_id"] = root_id

    def drop_entity(self, entity_id: str) -> None:
        """Remove an entity body and every index keyed by its id."""
        entity_type = self.type_index.get(entity_id)
        if entity_type is not None:
            self._bucket(entity_type).pop(entity_id, None)
            del self._write("type_index")[entity_id]
        for field in ("references", "reverse_refs", "collection_members", "member_of_collections", "extensions"):
            if entity_id in self._read(field):
                del self._write(field)[entity_id]
        if self.root_id == entity_id:
            self.set_root(None)

    # ═══════════════════════════════════════════════════════════
    # EDGE WRITES
    # ═══════════════════════════════════════════════════════════

    def _set_list(self, field: str, key: str, values: list[str]) -> None:
        if values:
            self._write(field)[key] = values
        elif key in self._read(field):
            del self._write(field)[key]

    def set_owned_children(self, parent_id: str, child_ids: list[str]) -> None:
        self._set_list("references", parent_id, list(child_ids))

    def set_members(self, referrer_id: str, member_ids: list[str]) -> None:
        self._set_list("collection_members", referrer_id, list(member_ids))

    def set_referrers(self, target_id: str, referrer_ids: list[str]) -> None:
        self._set_list("member_of_collections", target_id, list(referrer_ids))

    def attach(self, parent_id: str, child_id: str, kind: RelationshipKind, index: int | None = None) -> None:
        if kind == RelationshipKind.OWNERSHIP:
            self.set_owned_children(parent_id, _insert(self.references.get(parent_id, []), child_id, index))
            self._write("reverse_refs")[child_id] = parent_id
        else:
            self.set_members(parent_id, _insert(self.collection_members.get(parent_id, []), child_id, index))
            referrers = self.member_of_collections.get(child_id, [])
            if parent_id not in referrers:
                self.set_referrers(child_id, [*referrers, parent_id])

    def detach_owner(self, child_id: str) -> str | None:
        """Cut the ownership edge above child_id, returning the former owner."""
        owner = self.reverse_refs.get(child_id)
        if owner is None:
            return None
        self.set_owned_children(owner, [c for c in self.references.get(owner, []) if c != child_id])
        del self._write("reverse_refs")[child_id]
        return owner

    def unlink(self, referrer_id: str, target_id: str) -> None:
        """Remove a reference pointer in both directions."""
        self.set_members(referrer_id, [m for m in self.collection_members.get(referrer_id, []) if m != target_id])
        self.set_referrers(target_id, [r for r in self.member_of_collections.get(target_id, []) if r != referrer_id])

    def remove_subtree(self, entity_id: str) -> list[str]:
        """
        Delete an entity and its owned descendants from the live graph.

        Reference pointers into and out of the removed entities are cut, so
        referrers outside the subtree keep working.

        Returns:
            Removed ids, root first
        """
        removed = self.owned_subtree(entity_id)
        self.detach_owner(entity_id)
        for current in removed:
            for referrer in list(self.member_of_collections.get(current, [])):
                self.unlink(referrer, current)
            for target in list(self.collection_members.get(current, [])):
                self.unlink(current, target)
        for current in removed:
            self.drop_entity(current)
        return removed

    def merge_fragment(self, fragment: GraphFragment) -> None:
        """Add every entity and edge of a freshly normalized fragment."""
        for entity_id in fragment.order:
            entity_type = fragment.type_index[entity_id]
            self.put_entity(entity_id, entity_type, fragment.entities[entity_type.value][entity_id])
            self.set_extensions(entity_id, fragment.extensions.get(entity_id))
        for parent_id, child_ids in fragment.references.items():
            for child_id in child_ids:
                self.attach(parent_id, child_id, RelationshipKind.OWNERSHIP)
        for referrer_id, member_ids in fragment.collection_members.items():
            for member_id in member_ids:
                if member_id in self.type_index:
                    self.attach(referrer_id, member_id, RelationshipKind.REFERENCE)

    # ═══════════════════════════════════════════════════════════
    # TRASH RECORDS
    # ═══════════════════════════════════════════════════════════

    def put_trash(self, entity_id: str, record: TrashedEntity) -> None:
        self._write("trashed_entities")[entity_id] = record

    def drop_trash(self, entity_id: str) -> None:
        if entity_id in self.trashed_entities:
            del self._write("trashed_entities")[entity_id]

    # ═══════════════════════════════════════════════════════════
    # COMMIT
    # ═══════════════════════════════════════════════════════════

    @property
    def changed(self) -> bool:
        return bool(self._updates)

    def commit(self) -> NormalizedState:
        """Publish the edits as a new snapshot (the base itself if nothing changed)."""
        if not self._updates:
            return self.base
        return self.base.model_copy(update=self._updates)
