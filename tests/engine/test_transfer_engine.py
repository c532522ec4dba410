"""Unit tests for the Transfer Execution Engine

Tests cover:
- State progression for preview and commit
- Branch conversion, repositioning and edge rewrite
- Failure handling (original snapshot returned)
- Structural guarantees of a committed result
- Rollback and readiness checks
"""

import pytest

from flowgraph.engine.edges import detect_circular_dependencies
from flowgraph.engine.models import BranchData
from flowgraph.engine.step_analysis import analyze_steps_for_branch_insertion
from flowgraph.engine.transfer_engine import (
    TransferExecutionOptions,
    TransferState,
    default_branch_slots,
    estimate_execution_time,
    execute_step_transfer,
    preview_step_transfer,
    rollback_step_transfer,
    sibling_slot_id,
    validate_transfer_execution,
)
from tests.builders import linear_chain, make_branch, make_edge, make_node


def _execute(target_id, nodes, edges, **options):
    analysis = analyze_steps_for_branch_insertion(target_id, nodes, edges)
    return analysis, execute_step_transfer(
        analysis, nodes, edges, TransferExecutionOptions(**options)
    )


class TestSlotHelpers:
    """Test branch slot construction."""

    def test_sibling_slot_id(self):
        assert sibling_slot_id("branch-abcd1234-1") == "branch-abcd1234-2"
        assert sibling_slot_id("custom") == "custom-2"

    def test_labels(self):
        assert [s.label for s in default_branch_slots("b-1")] == ["Branch", "Branch"]
        assert [s.label for s in default_branch_slots("b-1", False)] == ["Yes", "No"]


class TestExecuteStepTransfer:
    """Test the committed pipeline."""

    def test_states(self, chain_abcd):
        nodes, edges = chain_abcd
        _, result = _execute("B", nodes, edges)

        assert result.success is True
        assert result.state == TransferState.COMMITTED
        assert result.states == [
            TransferState.PLANNED,
            TransferState.CONVERTING,
            TransferState.REPOSITIONING,
            TransferState.EDGE_REWRITING,
            TransferState.VALIDATED,
            TransferState.COMMITTED,
        ]

    def test_target_becomes_branch(self, chain_abcd):
        nodes, edges = chain_abcd
        analysis, result = _execute("B", nodes, edges)
        branch = result.created_branch_node
        slot_id = analysis.transfer_plan.target_branch_id

        assert branch.id == "B"
        assert isinstance(branch.data, BranchData)
        assert branch.label == "Step B"
        assert branch.data.handle_ids == [slot_id, sibling_slot_id(slot_id)]
        assert branch.position == nodes[1].position

    def test_unlabelled_target_gets_default_label(self):
        nodes, edges = linear_chain("A", "B", "C")
        nodes[1] = make_node("B", 300, 190, label="")

        _, result = _execute("B", nodes, edges)

        assert result.created_branch_node.label == "Decision Point"

    def test_branch_labels_off(self, chain_abcd):
        nodes, edges = chain_abcd
        _, result = _execute("B", nodes, edges, generate_branch_labels=False)

        assert [s.label for s in result.created_branch_node.data.branches] == ["Yes", "No"]

    def test_edges_rewritten(self, chain_abcd):
        nodes, edges = chain_abcd
        analysis, result = _execute("B", nodes, edges)
        slot_id = analysis.transfer_plan.target_branch_id

        pairs = [(e.source, e.target, e.source_handle) for e in result.updated_edges]

        assert ("A", "B", None) not in pairs
        assert ("B", "C", None) not in pairs
        assert ("B", "C", slot_id) in pairs
        assert ("C", "D", None) in pairs

    def test_transferred_steps_stacked_under_slot(self, chain_abcd):
        nodes, edges = chain_abcd
        _, result = _execute("B", nodes, edges)
        by_id = {n.id: n for n in result.updated_nodes}

        c, d = by_id["C"].position, by_id["D"].position
        assert c.x == d.x
        assert d.y - c.y == 120
        assert c.x % 15 == 0 and c.y % 15 == 0
        assert by_id["A"].position == nodes[0].position

    def test_preserve_positions(self, chain_abcd):
        nodes, edges = chain_abcd
        _, result = _execute("B", nodes, edges, preserve_positions=True)

        assert TransferState.REPOSITIONING not in result.states
        assert [n.position for n in result.updated_nodes] == [n.position for n in nodes]

    def test_empty_tail(self, chain_abcd):
        nodes, edges = chain_abcd
        _, result = _execute("D", nodes, edges)

        assert result.success is True
        assert result.transferred_steps == []
        assert result.created_branch_node.variant == "branch"
        assert "edge-C-D" not in [e.id for e in result.updated_edges]

    def test_inputs_are_not_mutated(self, chain_abcd):
        nodes, edges = chain_abcd
        nodes_before, edges_before = list(nodes), list(edges)

        _execute("B", nodes, edges)

        assert nodes == nodes_before
        assert edges == edges_before

    def test_committed_graph_invariants(self):
        """Test acyclicity, no self-loops and each step once on a branching graph."""
        nodes = [make_node(n) for n in "ABCDE"]
        edges = [
            make_edge("A", "B"),
            make_edge("B", "C"),
            make_edge("B", "D"),
            make_edge("C", "E"),
            make_edge("D", "E"),
        ]

        analysis, result = _execute("B", nodes, edges)

        assert result.success is True
        assert detect_circular_dependencies(result.updated_nodes, result.updated_edges).cycles == []
        assert all(e.source != e.target for e in result.updated_edges)
        ids = [n.id for n in result.updated_nodes]
        assert sorted(ids) == sorted(set(ids))
        assert [n.id for n in result.transferred_steps] == analysis.transfer_plan.step_ids


class TestExecutionFailure:
    """Test that failures return the original snapshot."""

    def test_integrity_failure(self):
        nodes, edges = linear_chain("A", "B", "C", "D")
        nodes[2] = make_node("C", variant="end")

        _, result = _execute("B", nodes, edges)

        assert result.success is False
        assert result.state == TransferState.FAILED
        assert result.states[-1] == TransferState.FAILED
        assert TransferState.VALIDATED not in result.states
        assert "End node C cannot be a source node" in result.error
        assert result.updated_nodes == nodes
        assert result.updated_edges == edges
        assert result.created_branch_node is None

    def test_target_missing_at_execution(self, chain_abcd):
        nodes, edges = chain_abcd
        analysis = analyze_steps_for_branch_insertion("B", nodes, edges)
        current = [n for n in nodes if n.id != "B"]

        result = execute_step_transfer(analysis, current, edges)

        assert result.success is False
        assert result.error == "Target node B not found"
        assert result.states == [
            TransferState.PLANNED,
            TransferState.CONVERTING,
            TransferState.FAILED,
        ]
        assert result.updated_nodes == current


class TestPreviewStepTransfer:
    """Test the dry-run pipeline."""

    def test_preview_stops_at_validated(self, chain_abcd):
        nodes, edges = chain_abcd
        analysis = analyze_steps_for_branch_insertion("B", nodes, edges)

        preview = preview_step_transfer(analysis, nodes, edges)

        assert preview.preview.state == TransferState.VALIDATED
        assert TransferState.COMMITTED not in preview.preview.states
        assert preview.summary.steps_to_move == 2
        assert preview.summary.edges_to_remove == 2
        assert preview.summary.edges_to_create == 1
        assert preview.summary.branch_node_label == "Step B"
        assert preview.summary.estimated_time == "< 1 second"

    def test_preview_matches_commit(self, chain_abcd):
        nodes, edges = chain_abcd
        analysis = analyze_steps_for_branch_insertion("B", nodes, edges)

        preview = preview_step_transfer(analysis, nodes, edges).preview
        committed = execute_step_transfer(analysis, nodes, edges)

        assert preview.updated_nodes == committed.updated_nodes
        assert preview.updated_edges == committed.updated_edges

    @pytest.mark.parametrize(
        "complexity,expected",
        [("simple", "< 1 second"), ("moderate", "1-2 seconds"), ("complex", "2-5 seconds")],
    )
    def test_estimated_time(self, chain_abcd, complexity, expected):
        nodes, edges = chain_abcd
        plan = analyze_steps_for_branch_insertion("B", nodes, edges).transfer_plan
        plan.estimated_complexity = complexity

        assert estimate_execution_time(plan) == expected


class TestRollbackAndReadiness:
    """Test rollback and the pre-flight check."""

    def test_rollback_restores_snapshot(self, chain_abcd):
        nodes, edges = chain_abcd
        _, result = _execute("B", nodes, edges)

        rollback = rollback_step_transfer(nodes, edges, result)

        assert rollback.success is True
        assert rollback.restored_nodes == nodes
        assert rollback.restored_edges == edges
        assert rollback.restored_nodes is not nodes

    def test_ready(self, chain_abcd):
        nodes, edges = chain_abcd
        analysis = analyze_steps_for_branch_insertion("B", nodes, edges)

        readiness = validate_transfer_execution(analysis, nodes, edges)

        assert readiness.can_execute is True
        assert readiness.errors == []

    def test_stale_step_blocks(self, chain_abcd):
        nodes, edges = chain_abcd
        analysis = analyze_steps_for_branch_insertion("B", nodes, edges)

        readiness = validate_transfer_execution(analysis, nodes[:3], edges)

        assert readiness.can_execute is False
        assert readiness.errors == ['Step "Step D" no longer exists in the workflow']

    def test_branch_warnings(self):
        nodes = [make_node("A"), make_branch("B", ["s1"]), make_branch("C", ["s2"]), make_node("D")]
        edges = [make_edge("A", "B"), make_edge("B", "C", "s1"), make_edge("C", "D", "s2")]
        analysis = analyze_steps_for_branch_insertion("B", nodes, edges)

        readiness = validate_transfer_execution(analysis, nodes, edges)

        assert readiness.can_execute is True
        assert len(readiness.warnings) == 2

    def test_many_edge_changes(self):
        nodes = [make_node("T")] + [make_node(f"p{i}") for i in range(12)] + [make_node("N")]
        edges = [make_edge(f"p{i}", "T") for i in range(12)] + [make_edge("T", "N")]
        analysis = analyze_steps_for_branch_insertion("T", nodes, edges)

        readiness = validate_transfer_execution(analysis, nodes, edges)

        assert len(readiness.requirements) == 1
