"""
Normalized vault snapshot and trash records.

A NormalizedState is one immutable version of the whole resource graph.
Mutating functions never edit a published snapshot; they build a new one with
model_copy(update=...) and share every branch they did not touch.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from fieldvault.models.entity import EntityType


def _empty_entity_buckets() -> dict[str, dict[str, dict[str, Any]]]:
    return {entity_type.value: {} for entity_type in EntityType}


class CapturedEntity(BaseModel):
    """
    An owned descendant captured together with a trashed root.

    Holds everything needed to put the descendant back exactly where it was
    inside the restored subtree.
    """

    entity: dict[str, Any]
    extensions: dict[str, Any] = Field(default_factory=dict)
    child_ids: list[str] = Field(default_factory=list)
    member_ids: list[str] = Field(default_factory=list)
    member_of: list[str] = Field(default_factory=list)


class TrashedEntity(BaseModel):
    """
    Soft-deleted entity awaiting restore or permanent deletion.

    entity and trashed_at are optional so that corrupted records read back
    from persisted snapshots can still be represented and reported.
    """

    entity: dict[str, Any] | None = Field(default=None, description="Entity body at deletion time")
    trashed_at: datetime | None = Field(default=None, description="When the entity was trashed")
    original_parent_id: str | None = Field(default=None, description="Owning parent at deletion")
    member_of_collections: list[str] = Field(
        default_factory=list, description="Referrers (collections, ranges) at deletion"
    )
    child_ids: list[str] = Field(default_factory=list, description="Owned children at deletion")
    original_index: int | None = Field(default=None, description="Position under the original parent")
    was_root: bool = Field(default=False, description="Entity was the document root")

    # Supplementary capture for a lossless restore
    extensions: dict[str, Any] = Field(default_factory=dict)
    member_ids: list[str] = Field(default_factory=list, description="Outgoing reference targets")
    descendants: dict[str, CapturedEntity] = Field(default_factory=dict)

    @property
    def is_corrupted(self) -> bool:
        """True if the record lost its entity payload."""
        return not isinstance(self.entity, dict) or not self.entity.get("id")

    @property
    def entity_type(self) -> str | None:
        if isinstance(self.entity, dict):
            return self.entity.get("type")
        return None


class NormalizedState(BaseModel):
    """
    Flat, typed storage of all resource entities plus the reference graph.

    Indices:
    - type_index: id -> type
    - references / reverse_refs: ownership edges (parent -> ordered children, child -> owner)
    - collection_members / member_of_collections: reference edges
      (referrer -> ordered targets, target -> referrers)
    - extensions: unrecognised JSON-LD keys per id, preserved verbatim
    - trashed_entities: soft-deleted records, disjoint from live entities
    """

    model_config = ConfigDict(frozen=True)

    entities: dict[str, dict[str, dict[str, Any]]] = Field(default_factory=_empty_entity_buckets)
    type_index: dict[str, EntityType] = Field(default_factory=dict)
    references: dict[str, list[str]] = Field(default_factory=dict)
    reverse_refs: dict[str, str] = Field(default_factory=dict)
    collection_members: dict[str, list[str]] = Field(default_factory=dict)
    member_of_collections: dict[str, list[str]] = Field(default_factory=dict)
    root_id: str | None = None
    extensions: dict[str, dict[str, Any]] = Field(default_factory=dict)
    trashed_entities: dict[str, TrashedEntity] = Field(default_factory=dict)

    def entity_count(self) -> int:
        """Number of live entities."""
        return len(self.type_index)
