"""Unit tests for the Step Analysis Engine

Tests cover:
- Downstream traversal (reconvergence, cycles, visited set)
- Transfer plan construction for a linear chain
- Upstream preservation and inbound edges of transferred steps
- Complexity estimation
- Insertion strategy selection
- Confirmation summary
"""

import re

import pytest

from flowgraph.engine.step_analysis import (
    BranchInsertionContext,
    NodeNotFoundError,
    analyze_steps_for_branch_insertion,
    find_optimal_branch_insertion_point,
    generate_transfer_summary,
    get_subsequent_steps,
)
from tests.builders import linear_chain, make_edge, make_node

BRANCH_SLOT_ID = re.compile(r"^branch-[0-9a-f]{8}-1$")


class TestGetSubsequentSteps:
    """Test downstream traversal."""

    def test_linear_chain(self, chain_abcd):
        nodes, edges = chain_abcd
        assert [n.id for n in get_subsequent_steps("B", nodes, edges)] == ["C", "D"]

    def test_tail_has_no_steps(self, chain_abcd):
        nodes, edges = chain_abcd
        assert get_subsequent_steps("D", nodes, edges) == []

    def test_each_reachable_node_once(self):
        """Test that reconverging paths do not duplicate steps."""
        nodes = [make_node(n) for n in "ABCDE"]
        edges = [
            make_edge("A", "B"),
            make_edge("A", "C"),
            make_edge("B", "D"),
            make_edge("C", "D"),
            make_edge("D", "E"),
        ]

        steps = get_subsequent_steps("A", nodes, edges)

        assert [n.id for n in steps] == ["B", "D", "E", "C"]

    def test_cycle_back_to_start(self):
        nodes, edges = linear_chain("A", "B", "C")
        edges.append(make_edge("C", "A"))

        assert [n.id for n in get_subsequent_steps("A", nodes, edges)] == ["B", "C"]

    def test_already_visited_start(self, chain_abcd):
        nodes, edges = chain_abcd
        assert get_subsequent_steps("B", nodes, edges, visited={"B"}) == []


class TestAnalyzeStepsForBranchInsertion:
    """Test transfer plan construction."""

    def test_linear_chain_insert_at_b(self, chain_abcd):
        """Test the A -> B -> C -> D insertion at B."""
        nodes, edges = chain_abcd
        analysis = analyze_steps_for_branch_insertion("B", nodes, edges)
        plan = analysis.transfer_plan

        assert analysis.branch_insertion_point.id == "B"
        assert [n.id for n in analysis.subsequent_steps] == ["C", "D"]
        assert plan.step_ids == ["C", "D"]
        assert BRANCH_SLOT_ID.match(plan.target_branch_id)

        assert len(plan.edges_to_create) == 1
        created = plan.edges_to_create[0]
        assert (created.source, created.target) == ("B", "C")
        assert created.source_handle == plan.target_branch_id

        assert {e.id for e in plan.edges_to_remove} == {"edge-A-B", "edge-B-C"}
        assert plan.estimated_complexity == "simple"

    def test_affected_edges(self, chain_abcd):
        nodes, edges = chain_abcd
        analysis = analyze_steps_for_branch_insertion("B", nodes, edges)

        assert sorted(e.id for e in analysis.affected_edges) == ["edge-A-B", "edge-B-C", "edge-C-D"]

    def test_unknown_target_raises(self, chain_abcd):
        nodes, edges = chain_abcd

        with pytest.raises(NodeNotFoundError, match="Target node Z not found"):
            analyze_steps_for_branch_insertion("Z", nodes, edges)

    def test_node_not_found_is_a_value_error(self):
        assert issubclass(NodeNotFoundError, ValueError)

    def test_empty_tail(self, chain_abcd):
        nodes, edges = chain_abcd
        plan = analyze_steps_for_branch_insertion("D", nodes, edges).transfer_plan

        assert plan.steps_to_transfer == []
        assert plan.edges_to_create == []
        assert [e.id for e in plan.edges_to_remove] == ["edge-C-D"]

    def test_preserve_upstream(self, chain_abcd):
        nodes, edges = chain_abcd
        context = BranchInsertionContext(preserve_upstream=True)

        plan = analyze_steps_for_branch_insertion("B", nodes, edges, context).transfer_plan

        assert [e.id for e in plan.edges_to_remove] == ["edge-B-C"]

    def test_other_inbound_edges_of_transferred_steps_are_kept(self):
        """Test that only the insertion point's edge into a step is removed."""
        nodes, edges = linear_chain("A", "B", "C", "D")
        nodes.append(make_node("X"))
        edges.append(make_edge("X", "C"))

        plan = analyze_steps_for_branch_insertion("B", nodes, edges).transfer_plan

        assert "edge-X-C" not in {e.id for e in plan.edges_to_remove}

    def test_fresh_branch_id_per_analysis(self, chain_abcd):
        nodes, edges = chain_abcd

        first = analyze_steps_for_branch_insertion("B", nodes, edges).transfer_plan
        second = analyze_steps_for_branch_insertion("B", nodes, edges).transfer_plan

        assert first.target_branch_id != second.target_branch_id

    @pytest.mark.parametrize("length,expected", [(4, "simple"), (10, "moderate"), (20, "complex")])
    def test_complexity(self, length, expected):
        ids = [f"n{i}" for i in range(length)]
        nodes, edges = linear_chain(*ids)

        plan = analyze_steps_for_branch_insertion("n0", nodes, edges).transfer_plan

        assert plan.estimated_complexity == expected

    def test_conservation_of_steps(self):
        """Test that the plan holds every distinct reachable node exactly once."""
        nodes = [make_node(n) for n in "ABCDE"]
        edges = [
            make_edge("A", "B"),
            make_edge("A", "C"),
            make_edge("B", "D"),
            make_edge("C", "D"),
            make_edge("D", "E"),
        ]

        plan = analyze_steps_for_branch_insertion("A", nodes, edges).transfer_plan

        assert sorted(plan.step_ids) == ["B", "C", "D", "E"]
        assert len(plan.step_ids) == len(set(plan.step_ids))

    def test_inputs_are_not_mutated(self, chain_abcd):
        nodes, edges = chain_abcd
        nodes_before, edges_before = list(nodes), list(edges)

        analyze_steps_for_branch_insertion("B", nodes, edges)

        assert nodes == nodes_before
        assert edges == edges_before

    def test_to_dict_uses_editor_shape(self, chain_abcd):
        nodes, edges = chain_abcd
        data = analyze_steps_for_branch_insertion("B", nodes, edges).to_dict()

        created = data["transfer_plan"]["edges_to_create"][0]
        assert created["sourceHandle"] == data["transfer_plan"]["target_branch_id"]
        assert data["branch_insertion_point"]["id"] == "B"


class TestFindOptimalBranchInsertionPoint:
    """Test insertion strategy selection."""

    def test_no_inbound_edges_converts(self, chain_abcd):
        nodes, edges = chain_abcd
        decision = find_optimal_branch_insertion_point("A", nodes, edges)

        assert decision.strategy == "convert"
        assert decision.insertion_point.id == "A"

    def test_single_inbound_edge_inserts_before(self, chain_abcd):
        nodes, edges = chain_abcd
        assert find_optimal_branch_insertion_point("B", nodes, edges).strategy == "insertBefore"

    def test_multiple_inbound_edges_insert_above(self, chain_abcd):
        """Test that several inbound edges are never collapsed by converting."""
        nodes, edges = chain_abcd
        nodes = nodes + [make_node("X")]
        edges = edges + [make_edge("X", "B")]

        decision = find_optimal_branch_insertion_point("B", nodes, edges)

        assert decision.strategy == "insertAbove"
        assert "multiple incoming" in decision.reasoning

    def test_unknown_target(self, chain_abcd):
        nodes, edges = chain_abcd
        decision = find_optimal_branch_insertion_point("Z", nodes, edges)

        assert decision.insertion_point is None
        assert decision.strategy == "convert"
        assert decision.reasoning == "Target step not found"


class TestGenerateTransferSummary:
    """Test the confirmation summary."""

    def test_summary(self, chain_abcd):
        nodes, edges = chain_abcd
        summary = generate_transfer_summary(analyze_steps_for_branch_insertion("B", nodes, edges))

        assert summary.title == "Branch Creation and Step Transfer"
        assert summary.description == (
            'This will create a branch before "Step B" and move 2 subsequent step(s) to Branch 1.'
        )
        assert summary.steps_affected == 2
        assert summary.edges_affected == 3
        assert summary.warnings == []

    def test_empty_transfer_warns(self, chain_abcd):
        nodes, edges = chain_abcd
        summary = generate_transfer_summary(analyze_steps_for_branch_insertion("D", nodes, edges))

        assert summary.warnings == ["No steps will be transferred as there are no subsequent steps"]
