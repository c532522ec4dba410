"""Unit tests for snapshot types and editor JSON conversion."""

import pytest

from flowgraph.engine.models import (
    BranchData,
    JumpData,
    Position,
    StepData,
    edge_from_dict,
    edge_id,
    edge_to_dict,
    make_node_data,
    node_from_dict,
    node_to_dict,
)
from tests.builders import edge_json, make_node, node_json


class TestNodeData:
    """Test the variant-tagged node data."""

    def test_step_alias(self):
        assert isinstance(make_node_data("step", "A"), StepData)

    def test_unknown_variant(self):
        with pytest.raises(ValueError, match="unknown node variant 'loop'"):
            make_node_data("loop", "A")

    def test_branch_fields_rejected_on_jump(self):
        with pytest.raises(TypeError):
            make_node_data("jump", "J", branches=())

    def test_moved_to_returns_new_node(self):
        node = make_node("A", 10, 20)
        moved = node.moved_to(Position(30, 40))

        assert moved.position == Position(30, 40)
        assert node.position == Position(10, 20)
        assert moved.data is node.data


class TestNodeConversion:
    """Test node JSON conversion."""

    def test_branch_node(self):
        raw = node_json(
            "B",
            variant="branch",
            branches=[{"id": "s1", "label": "Yes"}, {"id": "s2", "label": "No", "condition": "x"}],
        )

        node = node_from_dict(raw)

        assert isinstance(node.data, BranchData)
        assert node.data.handle_ids == ["s1", "s2"]
        assert node.data.branches[1].condition == "x"

    def test_jump_node(self):
        node = node_from_dict(node_json("J", variant="jump", targetNodeId="A"))

        assert isinstance(node.data, JumpData)
        assert node.data.target_node_id == "A"

    def test_missing_variant_is_default(self):
        raw = {"id": "A", "position": {"x": 1, "y": 2}, "data": {"label": "A"}}
        assert node_from_dict(raw).variant == "default"

    def test_missing_id(self):
        with pytest.raises(ValueError, match="node id cannot be empty"):
            node_from_dict({"position": {"x": 0, "y": 0}})

    def test_branch_slot_without_id(self):
        raw = node_json("B", variant="branch", branches=[{"id": "s1"}, {"label": "No"}])

        with pytest.raises(ValueError, match="branch slot on node B has no id"):
            node_from_dict(raw)

    def test_branch_slot_not_a_mapping(self):
        with pytest.raises(ValueError, match="branch slot on node B has no id"):
            node_from_dict(node_json("B", variant="branch", branches=["s1"]))

    def test_editor_fields_pass_through(self):
        raw = node_json("A", instructions="Greet the caller", faqs=[{"q": "hi"}])

        data = node_to_dict(node_from_dict(raw))["data"]

        assert data["instructions"] == "Greet the caller"
        assert data["faqs"] == [{"q": "hi"}]
        assert data["variant"] == "default"

    def test_branch_to_dict(self):
        raw = node_json("B", 15, 30, variant="branch", branches=[{"id": "s1", "label": "Yes"}])

        result = node_to_dict(node_from_dict(raw))

        assert result["position"] == {"x": 15, "y": 30}
        assert result["data"]["branches"] == [{"id": "s1", "label": "Yes", "condition": ""}]


class TestEdgeConversion:
    """Test edge JSON conversion."""

    def test_missing_id_is_derived(self):
        edge = edge_from_dict(edge_json("A", "B", "s1"))

        assert edge.id == "edge-A-s1-B"
        assert edge.source_handle == "s1"
        assert edge.animated is True

    def test_explicit_id_kept(self):
        edge = edge_from_dict({"id": "e1", "source": "A", "target": "B"})
        assert edge.id == "e1"

    def test_to_dict_omits_unset_fields(self):
        result = edge_to_dict(edge_from_dict(edge_json("A", "B")))

        assert result == {
            "id": "edge-A-B",
            "source": "A",
            "target": "B",
            "type": "default",
            "animated": True,
        }

    def test_edge_id(self):
        assert edge_id("A", "B") == "edge-A-B"
        assert edge_id("A", "B", "h") == "edge-A-h-B"
