"""
Entity types and hierarchy rules for IIIF Presentation resources.
"""

from enum import Enum
from typing import Any


class EntityType(str, Enum):
    """Types of resources held in the vault."""

    COLLECTION = "Collection"
    MANIFEST = "Manifest"
    CANVAS = "Canvas"
    RANGE = "Range"
    ANNOTATION_PAGE = "AnnotationPage"
    ANNOTATION = "Annotation"


class RelationshipKind(str, Enum):
    """How a parent holds a child."""

    OWNERSHIP = "ownership"  # exclusive, child has exactly one owner
    REFERENCE = "reference"  # many-to-many pointer


# (parent type, child type) -> relationship kind
HIERARCHY_RULES: dict[tuple[EntityType, EntityType], RelationshipKind] = {
    (EntityType.COLLECTION, EntityType.COLLECTION): RelationshipKind.REFERENCE,
    (EntityType.COLLECTION, EntityType.MANIFEST): RelationshipKind.REFERENCE,
    (EntityType.MANIFEST, EntityType.CANVAS): RelationshipKind.OWNERSHIP,
    (EntityType.MANIFEST, EntityType.RANGE): RelationshipKind.OWNERSHIP,
    (EntityType.CANVAS, EntityType.ANNOTATION_PAGE): RelationshipKind.OWNERSHIP,
    (EntityType.ANNOTATION_PAGE, EntityType.ANNOTATION): RelationshipKind.OWNERSHIP,
    (EntityType.RANGE, EntityType.RANGE): RelationshipKind.OWNERSHIP,
    (EntityType.RANGE, EntityType.CANVAS): RelationshipKind.REFERENCE,
}

# Properties shared by every resource, including internal "_" markers
COMMON_PROPERTIES = frozenset(
    {
        "@context",
        "id",
        "type",
        "label",
        "summary",
        "metadata",
        "requiredStatement",
        "rights",
        "provider",
        "thumbnail",
        "behavior",
        "homepage",
        "logo",
        "rendering",
        "seeAlso",
        "service",
        "services",
        "partOf",
        "_fileRef",
        "_blobUrl",
        "_parentId",
        "_state",
        "_filename",
    }
)

TYPE_PROPERTIES: dict[EntityType, frozenset[str]] = {
    EntityType.COLLECTION: frozenset(
        {"navDate", "navPlace", "placeholderCanvas", "accompanyingCanvas", "viewingDirection", "items", "annotations", "start"}
    ),
    EntityType.MANIFEST: frozenset(
        {
            "navDate",
            "navPlace",
            "placeholderCanvas",
            "accompanyingCanvas",
            "viewingDirection",
            "items",
            "structures",
            "annotations",
            "start",
        }
    ),
    EntityType.CANVAS: frozenset(
        {
            "height",
            "width",
            "duration",
            "navDate",
            "navPlace",
            "placeholderCanvas",
            "accompanyingCanvas",
            "items",
            "annotations",
        }
    ),
    EntityType.RANGE: frozenset(
        {"navDate", "navPlace", "placeholderCanvas", "accompanyingCanvas", "viewingDirection", "items", "supplementary", "annotations", "start"}
    ),
    EntityType.ANNOTATION_PAGE: frozenset({"items", "next", "prev", "first", "last", "total", "startIndex"}),
    EntityType.ANNOTATION: frozenset(
        {"motivation", "body", "bodyValue", "target", "created", "modified", "creator", "timeMode", "stylesheet"}
    ),
}


def parse_entity_type(value: Any) -> EntityType | None:
    """
    Parse a JSON-LD "type" value into an EntityType.

    Args:
        value: Raw type value

    Returns:
        EntityType, or None if the value is not a vault resource type
    """
    try:
        return EntityType(value)
    except ValueError:
        return None


def get_relationship_kind(parent_type: EntityType, child_type: EntityType) -> RelationshipKind | None:
    """Relationship kind for a parent/child pair, or None if not allowed."""
    return HIERARCHY_RULES.get((parent_type, child_type))


def is_valid_child_type(parent_type: EntityType, child_type: EntityType) -> bool:
    """Check whether child_type may be placed under parent_type."""
    return (parent_type, child_type) in HIERARCHY_RULES


def get_valid_child_types(parent_type: EntityType) -> list[EntityType]:
    """All child types allowed under parent_type."""
    return [child for (parent, child) in HIERARCHY_RULES if parent == parent_type]


def is_known_property(entity_type: EntityType, key: str) -> bool:
    """Check whether key is a recognised IIIF property for entity_type."""
    return key in COMMON_PROPERTIES or key in TYPE_PROPERTIES[entity_type]
