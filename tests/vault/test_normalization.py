"""
Tests for normalization and denormalization.

Tests cover:
1. Flattening a nested tree into typed buckets and edge indices
2. Extension bags for unrecognised keys
3. Round-trip back to the original tree
4. Malformed input
"""

import copy

import pytest

from fieldvault.core.vault import create_empty_state, denormalize, denormalize_entity, normalize
from fieldvault.models.entity import EntityType
from fieldvault.utils.exceptions import ValidationError

SPECIFIC_RESOURCE = {"type": "SpecificResource", "source": "https://example.org/m/c1#t=0,5"}


def make_range_manifest(canvas_factory) -> dict:
    return {
        "id": "https://example.org/m",
        "type": "Manifest",
        "items": [canvas_factory("https://example.org/m/c1")],
        "structures": [
            {
                "id": "https://example.org/m/r",
                "type": "Range",
                "items": [
                    {"id": "https://example.org/m/c1", "type": "Canvas"},
                    copy.deepcopy(SPECIFIC_RESOURCE),
                ],
            }
        ],
    }


@pytest.mark.unit
class TestCreateEmptyState:
    """Tests for the empty snapshot."""

    def test_has_every_bucket(self):
        """Test that all entity buckets exist and are empty."""
        state = create_empty_state()

        assert set(state.entities) == {t.value for t in EntityType}
        assert all(not bucket for bucket in state.entities.values())
        assert state.root_id is None
        assert state.entity_count() == 0

    def test_denormalize_empty_returns_none(self):
        """Test that an empty snapshot exports nothing."""
        assert denormalize(create_empty_state()) is None


@pytest.mark.unit
class TestNormalize:
    """Tests for normalize()."""

    def test_entity_counts(self, state):
        """Test that every resource lands in its type bucket."""
        counts = {bucket: len(entities) for bucket, entities in state.entities.items()}

        assert counts == {
            "Collection": 2,
            "Manifest": 2,
            "Canvas": 4,
            "Range": 2,
            "AnnotationPage": 4,
            "Annotation": 4,
        }
        assert state.entity_count() == 18

    def test_root_id(self, state, ids):
        """Test that the top-level resource becomes the root."""
        assert state.root_id == ids.top

    def test_ownership_edges(self, state, ids):
        """Test ownership edges and their reverse index."""
        assert state.references[ids.m1] == [ids.c1, ids.c2, ids.c3, ids.r1]
        assert state.references[ids.c1] == [ids.page1]
        assert state.references[ids.page1] == [ids.anno1]
        assert state.references[ids.r1] == [ids.r2]
        assert state.reverse_refs[ids.c1] == ids.m1
        assert state.reverse_refs[ids.r2] == ids.r1

    def test_reference_edges(self, state, ids):
        """Test collection membership and range pointers."""
        assert state.collection_members[ids.top] == [ids.m1, ids.sub]
        assert state.collection_members[ids.sub] == [ids.m2]
        assert state.collection_members[ids.r1] == [ids.c1, ids.c2]
        assert state.collection_members[ids.r2] == [ids.c3]
        assert state.member_of_collections[ids.m1] == [ids.top]
        assert state.member_of_collections[ids.c1] == [ids.r1]

    def test_manifests_have_no_owner(self, state, ids):
        """Test that collection members are referenced, not owned."""
        assert ids.m1 not in state.reverse_refs
        assert ids.sub not in state.reverse_refs

    def test_bodies_exclude_child_lists(self, state, ids):
        """Test that structural keys are not stored in bodies."""
        manifest = state.entities["Manifest"][ids.m1]

        assert "items" not in manifest
        assert "structures" not in manifest
        assert manifest["navDate"] == "1921-01-01T00:00:00Z"

    def test_unknown_keys_go_to_extensions(self, state, ids):
        """Test that unrecognised keys are moved into the extensions bag."""
        assert state.extensions[ids.m1] == {"x-archive:accession": "ACC-001"}
        assert state.extensions[ids.c1] == {"vendorData": {"scanner": "A3"}}
        assert "x-archive:accession" not in state.entities["Manifest"][ids.m1]
        assert ids.c2 not in state.extensions

    def test_does_not_mutate_input(self, document):
        """Test that the input tree is left untouched."""
        original = copy.deepcopy(document)

        normalize(document)

        assert document == original

    def test_missing_id_raises(self):
        """Test that a resource without id is rejected."""
        with pytest.raises(ValidationError):
            normalize({"type": "Manifest", "items": []})

    def test_unsupported_type_raises(self):
        """Test that a non-vault root type is rejected."""
        with pytest.raises(ValidationError):
            normalize({"id": "https://example.org/thing", "type": "Image"})

    def test_invalid_child_type_raises(self):
        """Test that a canvas directly inside a collection is rejected."""
        document = {
            "id": "https://example.org/c",
            "type": "Collection",
            "items": [{"id": "https://example.org/canvas", "type": "Canvas"}],
        }

        with pytest.raises(ValidationError):
            normalize(document)

    def test_duplicate_owned_id_raises(self, canvas_factory):
        """Test that the same owned id twice in one tree is rejected."""
        document = {
            "id": "https://example.org/m",
            "type": "Manifest",
            "items": [canvas_factory("https://example.org/m/c"), canvas_factory("https://example.org/m/c")],
        }

        with pytest.raises(ValidationError):
            normalize(document)

    def test_dangling_range_reference_dropped(self, canvas_factory):
        """Test that a range pointing at an unknown canvas keeps only known canvases."""
        document = {
            "id": "https://example.org/m",
            "type": "Manifest",
            "items": [canvas_factory("https://example.org/m/c1")],
            "structures": [
                {
                    "id": "https://example.org/m/r",
                    "type": "Range",
                    "items": [
                        {"id": "https://example.org/m/c1", "type": "Canvas"},
                        {"id": "https://example.org/m/missing", "type": "Canvas"},
                    ],
                }
            ],
        }

        state = normalize(document)

        assert state.collection_members["https://example.org/m/r"] == ["https://example.org/m/c1"]
        assert "https://example.org/m/missing" not in state.member_of_collections

    def test_manifest_shared_by_two_collections(self, canvas_factory):
        """Test that a manifest listed twice is stored once with two referrers."""
        manifest = {"id": "https://example.org/m", "type": "Manifest", "items": [canvas_factory("https://example.org/m/c")]}
        document = {
            "id": "https://example.org/top",
            "type": "Collection",
            "items": [
                copy.deepcopy(manifest),
                {"id": "https://example.org/sub", "type": "Collection", "items": [copy.deepcopy(manifest)]},
            ],
        }

        state = normalize(document)

        assert len(state.entities["Manifest"]) == 1
        assert state.member_of_collections["https://example.org/m"] == [
            "https://example.org/top",
            "https://example.org/sub",
        ]

    def test_range_specific_resource_kept_out_of_graph(self, canvas_factory):
        """Test that a range item without vault identity is stored verbatim, not rejected."""
        document = make_range_manifest(canvas_factory)

        state = normalize(document)

        assert state.collection_members["https://example.org/m/r"] == ["https://example.org/m/c1"]
        assert state.extensions["https://example.org/m/r"]["items"] == [SPECIFIC_RESOURCE]
        assert "SpecificResource" not in state.entities


@pytest.mark.unit
class TestDenormalize:
    """Tests for denormalize()."""

    def test_round_trip(self, document, state):
        """Test that export reproduces the imported tree, extensions included."""
        assert denormalize(state) == document

    def test_round_trip_with_range_specific_resource(self, canvas_factory):
        """Test that selector items inside a range survive export."""
        document = make_range_manifest(canvas_factory)

        state = normalize(document)

        assert denormalize(state) == document
        assert normalize(denormalize(state)) == state

    def test_round_trip_is_stable(self, state):
        """Test that normalizing an export gives an equal snapshot."""
        exported = denormalize(state)

        assert normalize(exported) == state

    def test_denormalize_single_entity(self, state, ids, document):
        """Test exporting one subtree."""
        canvas = denormalize_entity(state, ids.c1)

        assert canvas == document["items"][0]["items"][0]

    def test_denormalize_unknown_entity(self, state):
        """Test exporting an id that is not live."""
        assert denormalize_entity(state, "https://example.org/nope") is None

    def test_export_is_independent_copy(self, state, ids):
        """Test that editing the export does not leak into the snapshot."""
        exported = denormalize(state)
        exported["items"][0]["label"]["en"][0] = "changed"

        assert state.entities["Manifest"][ids.m1]["label"] == {"en": ["Notebook 1"]}
