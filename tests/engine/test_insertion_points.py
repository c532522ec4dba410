"""Unit tests for branch insertion markers."""

from flowgraph.engine.insertion_points import (
    detect_branch_insertion_points,
    is_branch_insertion_point_valid,
    update_branch_insertion_point_positions,
)
from flowgraph.engine.models import Position
from tests.builders import linear_chain, make_branch, make_edge, make_node


class TestDetectBranchInsertionPoints:
    """Test marker placement."""

    def test_one_marker_per_step_edge(self):
        nodes, edges = linear_chain("A", "B", "C")
        points = detect_branch_insertion_points(nodes, edges)

        assert [p.id for p in points] == ["branch-insertion-A-B", "branch-insertion-B-C"]
        assert points[0].position == Position(300, 95)
        assert points[0].edge_id == "edge-A-B"

    def test_branch_and_end_edges_are_skipped(self):
        nodes = [
            make_node("A"),
            make_branch("B", ["s1"]),
            make_node("C"),
            make_node("E", variant="end"),
            make_node("F"),
        ]
        edges = [
            make_edge("A", "B"),
            make_edge("B", "C", "s1"),
            make_edge("E", "F"),
            make_edge("C", "E"),
        ]

        points = detect_branch_insertion_points(nodes, edges)

        assert [p.edge_id for p in points] == ["edge-C-E"]

    def test_handled_edge_from_step_is_skipped(self):
        nodes = [make_node("A"), make_node("B")]
        assert detect_branch_insertion_points(nodes, [make_edge("A", "B", "h")]) == []

    def test_pill_target_is_skipped(self):
        nodes = [make_node("A"), make_node("x-branch-pill-1")]
        assert detect_branch_insertion_points(nodes, [make_edge("A", "x-branch-pill-1")]) == []

    def test_dangling_edge_is_skipped(self):
        assert detect_branch_insertion_points([make_node("A")], [make_edge("A", "ghost")]) == []


class TestInsertionPointMaintenance:
    """Test validity and midpoint refresh."""

    def test_validity(self):
        nodes, edges = linear_chain("A", "B")
        point = detect_branch_insertion_points(nodes, edges)[0]

        assert is_branch_insertion_point_valid(point, nodes, edges) is True
        assert is_branch_insertion_point_valid(point, nodes, []) is False
        assert is_branch_insertion_point_valid(point, nodes[:1], edges) is False

    def test_positions_follow_nodes(self):
        nodes, edges = linear_chain("A", "B")
        points = detect_branch_insertion_points(nodes, edges)
        moved = [nodes[0], nodes[1].moved_to(Position(500, 400))]

        updated = update_branch_insertion_point_positions(points, moved)

        assert updated[0].position == Position(400, 200)
        assert points[0].position == Position(300, 95)
