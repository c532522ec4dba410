"""Transfer Execution Engine

Applies a StepTransferPlan to a snapshot as a small state machine:

    PLANNED -> CONVERTING -> REPOSITIONING -> EDGE_REWRITING -> VALIDATED -> COMMITTED
                   \\______________\\______________\\______________\\-> FAILED

Two entry points share the same pipeline:

- preview_step_transfer: runs up to VALIDATED and returns a summary for the
  confirmation dialog
- execute_step_transfer: runs through COMMITTED

On any failure the caller's original nodes and edges are returned unchanged.
Execution keeps no undo log; rollback is a restore of the caller's snapshot.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .. import settings
from .edges import BRANCH_EDGE_STYLE, create_edge, validate_edge_connections
from .models import (
    BranchData,
    BranchSlot,
    Position,
    WorkflowEdge,
    WorkflowNode,
    edge_to_dict,
    node_index,
    node_to_dict,
)
from .positioning import calculate_branch_position, snap_to_grid
from .step_analysis import StepAnalysisResult, StepTransferPlan

logger = logging.getLogger(__name__)

DEFAULT_BRANCH_NODE_LABEL = "Decision Point"

_ESTIMATED_TIMES = {
    "simple": "< 1 second",
    "moderate": "1-2 seconds",
    "complex": "2-5 seconds",
}


class TransferState(str, Enum):
    PLANNED = "planned"
    CONVERTING = "converting"
    REPOSITIONING = "repositioning"
    EDGE_REWRITING = "edge_rewriting"
    VALIDATED = "validated"
    COMMITTED = "committed"
    FAILED = "failed"


@dataclass(frozen=True)
class TransferExecutionOptions:
    """Execution switches.

    Attributes:
        preserve_positions: Skip the REPOSITIONING stage
        validate_integrity: Re-run edge validation on the result
        generate_branch_labels: "Branch"/"Branch" slot labels, otherwise "Yes"/"No"
    """

    preserve_positions: bool = False
    validate_integrity: bool = True
    generate_branch_labels: bool = True


DEFAULT_EXECUTION_OPTIONS = TransferExecutionOptions()


@dataclass
class TransferExecutionResult:
    success: bool
    updated_nodes: List[WorkflowNode]
    updated_edges: List[WorkflowEdge]
    created_branch_node: Optional[WorkflowNode]
    transferred_steps: List[WorkflowNode]
    state: TransferState
    states: List[TransferState] = field(default_factory=list)
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "updated_nodes": [node_to_dict(n) for n in self.updated_nodes],
            "updated_edges": [edge_to_dict(e) for e in self.updated_edges],
            "created_branch_node": (
                node_to_dict(self.created_branch_node) if self.created_branch_node else None
            ),
            "transferred_steps": [n.id for n in self.transferred_steps],
            "state": self.state.value,
            "states": [s.value for s in self.states],
            "error": self.error,
            "warnings": self.warnings,
        }


@dataclass
class TransferSummary:
    steps_to_move: int
    edges_to_remove: int
    edges_to_create: int
    branch_node_label: str
    estimated_time: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "steps_to_move": self.steps_to_move,
            "edges_to_remove": self.edges_to_remove,
            "edges_to_create": self.edges_to_create,
            "branch_node_label": self.branch_node_label,
            "estimated_time": self.estimated_time,
        }


@dataclass
class TransferPreview:
    preview: TransferExecutionResult
    summary: TransferSummary

    def to_dict(self) -> Dict[str, Any]:
        return {"preview": self.preview.to_dict(), "summary": self.summary.to_dict()}


@dataclass
class RollbackResult:
    success: bool
    restored_nodes: List[WorkflowNode]
    restored_edges: List[WorkflowEdge]
    error: Optional[str] = None


@dataclass
class TransferReadiness:
    """Cheap pre-flight check shown before the full validation report."""

    can_execute: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    requirements: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "can_execute": self.can_execute,
            "errors": self.errors,
            "warnings": self.warnings,
            "requirements": self.requirements,
        }


class TransferError(Exception):
    """A pipeline stage could not complete."""


def sibling_slot_id(slot_id: str, slot: int = 2) -> str:
    """Id of another slot of the same branch (``branch-x-1`` -> ``branch-x-2``)."""
    if slot_id.endswith("-1"):
        return f"{slot_id[:-2]}-{slot}"
    return f"{slot_id}-{slot}"


def default_branch_slots(first_slot_id: str, generate_branch_labels: bool = True) -> tuple:
    labels = ("Branch", "Branch") if generate_branch_labels else ("Yes", "No")
    return (
        BranchSlot(id=first_slot_id, label=labels[0]),
        BranchSlot(id=sibling_slot_id(first_slot_id), label=labels[1]),
    )


# ---------------------------------------------------------------------------
# Pipeline stages
# ---------------------------------------------------------------------------


def _convert_node_to_branch(
    target_id: str,
    nodes: List[WorkflowNode],
    plan: StepTransferPlan,
    options: TransferExecutionOptions,
) -> tuple:
    target = node_index(nodes).get(target_id)
    if target is None:
        raise TransferError(f"Target node {target_id} not found")

    branch_data = BranchData(
        label=target.label or DEFAULT_BRANCH_NODE_LABEL,
        attributes=target.data.attributes,
        branches=default_branch_slots(plan.target_branch_id, options.generate_branch_labels),
    )
    branch_node = WorkflowNode(
        id=target.id, position=target.position, data=branch_data, type=target.type
    )
    updated = [branch_node if node.id == target_id else node for node in nodes]
    return updated, branch_node


def _reposition_transferred_steps(
    nodes: List[WorkflowNode], branch_node: WorkflowNode, plan: StepTransferPlan
) -> List[WorkflowNode]:
    if not isinstance(branch_node.data, BranchData) or not branch_node.data.branches:
        return nodes
    if not plan.steps_to_transfer:
        return nodes

    order = {step.id: i for i, step in enumerate(plan.steps_to_transfer)}
    obstacles = [node for node in nodes if node.id not in order]
    slot = calculate_branch_position(branch_node, 0, len(branch_node.data.branches), obstacles)

    result: List[WorkflowNode] = []
    for node in nodes:
        index = order.get(node.id)
        if index is None:
            result.append(node)
            continue
        stacked = Position(slot.x, slot.y + index * settings.TRANSFER_VERTICAL_SPACING)
        result.append(node.moved_to(snap_to_grid(stacked)))
    return result


def _rewrite_edges(
    edges: List[WorkflowEdge], plan: StepTransferPlan, branch_node: WorkflowNode
) -> List[WorkflowEdge]:
    removed = {edge.id for edge in plan.edges_to_remove}
    updated = [edge for edge in edges if edge.id not in removed]
    updated.extend(plan.edges_to_create)

    if plan.steps_to_transfer:
        first = plan.steps_to_transfer[0]
        has_slot_edge = any(
            edge.source == branch_node.id
            and edge.target == first.id
            and edge.source_handle == plan.target_branch_id
            for edge in updated
        )
        if not has_slot_edge:
            updated.append(
                create_edge(
                    branch_node.id,
                    first.id,
                    source_handle=plan.target_branch_id,
                    animated=True,
                    style=BRANCH_EDGE_STYLE,
                )
            )

    return updated


def _failed(
    nodes: List[WorkflowNode],
    edges: List[WorkflowEdge],
    states: List[TransferState],
    error: str,
    warnings: Optional[List[str]] = None,
) -> TransferExecutionResult:
    states.append(TransferState.FAILED)
    return TransferExecutionResult(
        success=False,
        updated_nodes=list(nodes),
        updated_edges=list(edges),
        created_branch_node=None,
        transferred_steps=[],
        state=TransferState.FAILED,
        states=states,
        error=error,
        warnings=warnings or [],
    )


def _run_transfer(
    analysis: StepAnalysisResult,
    current_nodes: List[WorkflowNode],
    current_edges: List[WorkflowEdge],
    options: TransferExecutionOptions,
    commit: bool,
) -> TransferExecutionResult:
    plan = analysis.transfer_plan
    target_id = analysis.branch_insertion_point.id
    states = [TransferState.PLANNED]

    try:
        states.append(TransferState.CONVERTING)
        nodes, branch_node = _convert_node_to_branch(target_id, current_nodes, plan, options)

        if not options.preserve_positions:
            states.append(TransferState.REPOSITIONING)
            nodes = _reposition_transferred_steps(nodes, branch_node, plan)

        states.append(TransferState.EDGE_REWRITING)
        edges = _rewrite_edges(current_edges, plan, branch_node)

        warnings: List[str] = []
        if options.validate_integrity:
            report = validate_edge_connections(nodes, edges)
            if not report.valid:
                logger.warning(f"Transfer at {target_id} aborted: {report.errors}")
                return _failed(
                    current_nodes,
                    current_edges,
                    states,
                    f"Workflow validation failed: {', '.join(report.errors)}",
                    report.warnings,
                )
            warnings.extend(report.warnings)
        states.append(TransferState.VALIDATED)

    except TransferError as e:
        logger.warning(f"Transfer at {target_id} failed: {e}")
        return _failed(current_nodes, current_edges, states, str(e))
    except Exception as e:
        logger.exception(f"Unexpected error during transfer at {target_id}")
        return _failed(
            current_nodes,
            current_edges,
            states,
            str(e) or "Unknown error during transfer execution",
        )

    if commit:
        states.append(TransferState.COMMITTED)
        logger.info(
            f"Committed transfer at {target_id}: {len(plan.steps_to_transfer)} step(s) "
            f"moved to slot {plan.target_branch_id}"
        )

    return TransferExecutionResult(
        success=True,
        updated_nodes=nodes,
        updated_edges=edges,
        created_branch_node=branch_node,
        transferred_steps=list(analysis.subsequent_steps),
        state=states[-1],
        states=states,
        warnings=warnings,
    )


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------


def execute_step_transfer(
    analysis: StepAnalysisResult,
    current_nodes: List[WorkflowNode],
    current_edges: List[WorkflowEdge],
    options: TransferExecutionOptions = DEFAULT_EXECUTION_OPTIONS,
) -> TransferExecutionResult:
    """Apply the plan and commit.

    Args:
        analysis: Result of analyze_steps_for_branch_insertion
        current_nodes: Snapshot nodes (not mutated)
        current_edges: Snapshot edges (not mutated)
        options: Execution switches

    Returns:
        TransferExecutionResult in state COMMITTED, or FAILED with the
        original snapshot
    """
    return _run_transfer(analysis, current_nodes, current_edges, options, commit=True)


def estimate_execution_time(plan: StepTransferPlan) -> str:
    return _ESTIMATED_TIMES.get(plan.estimated_complexity, "Unknown")


def preview_step_transfer(
    analysis: StepAnalysisResult,
    current_nodes: List[WorkflowNode],
    current_edges: List[WorkflowEdge],
    options: TransferExecutionOptions = DEFAULT_EXECUTION_OPTIONS,
) -> TransferPreview:
    """Run the full pipeline without committing and summarize it."""
    preview = _run_transfer(analysis, current_nodes, current_edges, options, commit=False)
    plan = analysis.transfer_plan
    summary = TransferSummary(
        steps_to_move=len(analysis.subsequent_steps),
        edges_to_remove=len(plan.edges_to_remove),
        edges_to_create=len(plan.edges_to_create),
        branch_node_label=analysis.branch_insertion_point.label or "Unknown Step",
        estimated_time=estimate_execution_time(plan),
    )
    return TransferPreview(preview=preview, summary=summary)


def rollback_step_transfer(
    original_nodes: List[WorkflowNode],
    original_edges: List[WorkflowEdge],
    transfer_result: Optional[TransferExecutionResult] = None,
) -> RollbackResult:
    """Restore the caller's pre-transfer snapshot."""
    if transfer_result is not None:
        logger.info(f"Rolling back transfer (state={transfer_result.state.value})")
    return RollbackResult(
        success=True,
        restored_nodes=list(original_nodes),
        restored_edges=list(original_edges),
    )


def validate_transfer_execution(
    analysis: StepAnalysisResult,
    current_nodes: List[WorkflowNode],
    current_edges: List[WorkflowEdge],
) -> TransferReadiness:
    errors: List[str] = []
    warnings: List[str] = []
    requirements: List[str] = []
    by_id = node_index(current_nodes)

    target = by_id.get(analysis.branch_insertion_point.id)
    if target is None:
        errors.append("Target node no longer exists in the workflow")

    for step in analysis.subsequent_steps:
        if step.id not in by_id:
            errors.append(f'Step "{step.label}" no longer exists in the workflow')

    if target is not None and target.variant == "branch":
        warnings.append("Target node is already a branch node. This will replace existing branches.")

    if len(analysis.transfer_plan.edges_to_remove) > settings.MANY_EDGE_CHANGES:
        requirements.append(
            "This operation will modify many connections. Consider reviewing the workflow structure."
        )

    if any(step.variant == "branch" for step in analysis.subsequent_steps):
        warnings.append("Transfer includes branch nodes, which will create nested branching logic.")

    return TransferReadiness(
        can_execute=not errors,
        errors=errors,
        warnings=warnings,
        requirements=requirements,
    )
