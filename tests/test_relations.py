"""
Tests for contentgraph/relations.py -- RelationClassifier.

Validates:
    - Classification of singular / ordered / unordered relations
    - Ownership defaults per kind
    - Kind enforcement via require()
    - Content-area discovery by relation kind and target type
    - Type graph construction and cycle reporting
"""

import pytest

from contentgraph.models.base import RelationKind
from contentgraph.models.factory import ModelFactory
from contentgraph.relations import RelationClassifier, RelationKindError


@pytest.fixture
def classifier(project):
    return RelationClassifier(ModelFactory(project / "types"))


class TestClassify:
    """Tests for classify / relations_of."""

    def test_kinds(self, classifier):
        assert classifier.classify("ElementCarousel", "Image").kind is RelationKind.SINGULAR
        assert classifier.classify("ElementCarousel", "Slides").kind is RelationKind.ORDERED
        assert classifier.classify("ElementCarousel", "Links").kind is RelationKind.UNORDERED

    def test_scalar_is_not_a_relation(self, classifier):
        """A scalar field classifies as None, never an error."""
        assert classifier.classify("ElementCarousel", "Title") is None
        assert classifier.is_scalar_field("ElementCarousel", "Title")

    def test_unknown_key(self, classifier):
        assert classifier.classify("ElementCarousel", "Nonsense") is None
        assert not classifier.is_scalar_field("ElementCarousel", "Nonsense")

    def test_relations_of_grouped(self, classifier):
        grouped = classifier.relations_of("ElementCarousel")
        assert [r.name for r in grouped["ordered"]] == ["Slides"]
        assert [r.name for r in grouped["unordered"]] == ["Links"]
        assert {r.name for r in grouped["singular"]} == {"Image", "Parent"}

    def test_inherited_relation(self, classifier):
        """Relations declared on a parent type are visible on the child."""
        info = classifier.classify("ElementContent", "Parent")
        assert info is not None
        assert info.target_type == "ContentArea"

    def test_ownership_defaults(self, classifier):
        assert classifier.classify("ElementCarousel", "Slides").owned
        assert not classifier.classify("ElementCarousel", "Links").owned
        assert not classifier.classify("ElementCarousel", "Image").owned
        assert classifier.classify("Template", "Elements").owned

    def test_unknown_kind_ignored(self, classifier):
        classifier.factory.register_schema({
            "$id": "Odd",
            "type": "object",
            "properties": {"Thing": {"x-relation": {"kind": "sideways", "target": "Link"}}},
        })
        classifier.reset()
        assert classifier.classify("Odd", "Thing") is None


class TestRequire:
    """Tests for require()."""

    def test_matching_kind(self, classifier):
        assert classifier.require("ElementCarousel", "Slides", collection=True).name == "Slides"

    def test_singular_used_as_collection(self, classifier):
        with pytest.raises(RelationKindError):
            classifier.require("ElementCarousel", "Image", collection=True)

    def test_collection_used_as_singular(self, classifier):
        with pytest.raises(RelationKindError):
            classifier.require("ElementCarousel", "Slides", collection=False)

    def test_missing_relation(self, classifier):
        with pytest.raises(RelationKindError):
            classifier.require("ElementCarousel", "Title", collection=False)


class TestContentArea:
    """Tests for content_area_relation / nodes_relation."""

    def test_found_by_target_type(self, classifier):
        """Page's area relation is found although it is not called 'Elements'."""
        assert classifier.content_area_relation("Page").name == "ElementalArea"
        assert classifier.content_area_relation("Template").name == "Elements"

    def test_back_reference_skipped(self, classifier):
        """BaseElement.Parent targets a content area but is not one it owns."""
        assert classifier.content_area_relation("ElementContent") is None

    def test_no_content_area(self, classifier):
        assert classifier.content_area_relation("Slide") is None

    def test_nodes_relation(self, classifier):
        assert classifier.nodes_relation("ContentArea").name == "Elements"


class TestTypeGraph:
    """Tests for type_graph / relation_cycles."""

    def test_edges(self, classifier):
        graph = classifier.type_graph()
        assert graph.has_edge("ElementCarousel", "Slide")
        assert graph.nodes["ExternalLink"]["parent"] == "Link"

    def test_self_cycle_reported(self, classifier):
        assert ["Nest"] in classifier.relation_cycles()
