"""Step Analysis Engine

Given a branch insertion point, work out which downstream steps move into the
new branch and derive the StepTransferPlan that rewires them.

Pipeline:
    target -> get_subsequent_steps -> affected edges -> StepTransferPlan

Missing targets are a caller contract violation and raise NodeNotFoundError.
Stale plans are caught later by transfer_validation, not here.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from .. import settings
from .edges import BRANCH_EDGE_STYLE, collect_downstream_nodes, create_edge
from .models import WorkflowEdge, WorkflowNode, edge_to_dict, node_index, node_to_dict

logger = logging.getLogger(__name__)

INSERTION_TYPES = ("before", "after", "convert")
INSERTION_STRATEGIES = ("convert", "insertBefore", "insertAbove")
COMPLEXITY_LEVELS = ("simple", "moderate", "complex")


class NodeNotFoundError(ValueError):
    """Raised when an operation is called with an id absent from the snapshot."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Target node {node_id} not found")


@dataclass(frozen=True)
class BranchInsertionContext:
    """How the caller intends to insert the branch.

    Attributes:
        insertion_type: before / after / convert (informational)
        preserve_upstream: Keep the target's inbound edges instead of
            scheduling them for removal
    """

    insertion_type: str = "before"
    preserve_upstream: bool = False


DEFAULT_INSERTION_CONTEXT = BranchInsertionContext()


@dataclass
class StepTransferPlan:
    """Edges and steps touched by moving a subgraph into branch slot 1.

    Attributes:
        steps_to_transfer: Subsequent steps in traversal order
        edges_to_remove: Upstream edges into the target and target->step edges
        edges_to_create: Branch slot edge to the first step (empty for a tail)
        target_branch_id: Freshly minted id of branch slot 1
        estimated_complexity: simple / moderate / complex
    """

    steps_to_transfer: List[WorkflowNode]
    edges_to_remove: List[WorkflowEdge]
    edges_to_create: List[WorkflowEdge]
    target_branch_id: str
    estimated_complexity: str

    @property
    def step_ids(self) -> List[str]:
        return [step.id for step in self.steps_to_transfer]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "steps_to_transfer": [node_to_dict(n) for n in self.steps_to_transfer],
            "edges_to_remove": [edge_to_dict(e) for e in self.edges_to_remove],
            "edges_to_create": [edge_to_dict(e) for e in self.edges_to_create],
            "target_branch_id": self.target_branch_id,
            "estimated_complexity": self.estimated_complexity,
        }


@dataclass
class StepAnalysisResult:
    subsequent_steps: List[WorkflowNode]
    affected_edges: List[WorkflowEdge]
    branch_insertion_point: WorkflowNode
    transfer_plan: StepTransferPlan

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subsequent_steps": [node_to_dict(n) for n in self.subsequent_steps],
            "affected_edges": [edge_to_dict(e) for e in self.affected_edges],
            "branch_insertion_point": node_to_dict(self.branch_insertion_point),
            "transfer_plan": self.transfer_plan.to_dict(),
        }


@dataclass
class InsertionPointDecision:
    insertion_point: Optional[WorkflowNode]
    strategy: str
    reasoning: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "insertion_point": node_to_dict(self.insertion_point) if self.insertion_point else None,
            "strategy": self.strategy,
            "reasoning": self.reasoning,
        }


@dataclass
class TransferSummaryText:
    """Confirmation-dialog summary of an analysis."""

    title: str
    description: str
    steps_affected: int
    edges_affected: int
    complexity: str
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "steps_affected": self.steps_affected,
            "edges_affected": self.edges_affected,
            "complexity": self.complexity,
            "warnings": self.warnings,
        }


def new_branch_slot_id(slot: int = 1) -> str:
    return f"branch-{uuid.uuid4().hex[:8]}-{slot}"


def get_subsequent_steps(
    node_id: str,
    nodes: List[WorkflowNode],
    edges: List[WorkflowEdge],
    visited: Optional[Set[str]] = None,
) -> List[WorkflowNode]:
    """All steps downstream of ``node_id``, depth-first in edge order.

    Reconverging paths and cycles are fine: a node already in ``visited``
    contributes nothing further. ``node_id`` itself is never returned.
    """
    steps = collect_downstream_nodes(node_id, nodes, edges, visited)
    logger.debug(f"Subsequent steps of {node_id}: {[s.id for s in steps]}")
    return steps


def get_affected_edges(
    target_node_id: str, subsequent_steps: List[WorkflowNode], edges: List[WorkflowEdge]
) -> List[WorkflowEdge]:
    """Edges touching a subsequent step plus edges into the target, each once."""
    step_ids = {step.id for step in subsequent_steps}
    return [
        edge
        for edge in edges
        if edge.source in step_ids or edge.target in step_ids or edge.target == target_node_id
    ]


def calculate_edges_to_remove(
    insertion_point: WorkflowNode,
    subsequent_steps: List[WorkflowNode],
    affected_edges: List[WorkflowEdge],
    context: BranchInsertionContext = DEFAULT_INSERTION_CONTEXT,
) -> List[WorkflowEdge]:
    step_ids = {step.id for step in subsequent_steps}
    to_remove: List[WorkflowEdge] = []

    for edge in affected_edges:
        # Upstream connection into the insertion point
        if (
            not context.preserve_upstream
            and edge.target == insertion_point.id
            and edge.source not in step_ids
        ):
            to_remove.append(edge)
        # Direct link replaced by the branch slot edge; other inbound edges of
        # transferred steps are left in place
        elif edge.source == insertion_point.id and edge.target in step_ids:
            to_remove.append(edge)

    return to_remove


def calculate_edges_to_create(
    insertion_point: WorkflowNode,
    subsequent_steps: List[WorkflowNode],
    target_branch_id: str,
) -> List[WorkflowEdge]:
    if not subsequent_steps:
        return []
    return [
        create_edge(
            insertion_point.id,
            subsequent_steps[0].id,
            source_handle=target_branch_id,
            animated=True,
            style=BRANCH_EDGE_STYLE,
        )
    ]


def estimate_transfer_complexity(
    steps: List[WorkflowNode],
    edges_to_remove: List[WorkflowEdge],
    edges_to_create: List[WorkflowEdge],
) -> str:
    total = len(steps) + len(edges_to_remove) + len(edges_to_create)
    if total <= settings.COMPLEXITY_SIMPLE_MAX:
        return "simple"
    if total <= settings.COMPLEXITY_MODERATE_MAX:
        return "moderate"
    return "complex"


def create_step_transfer_plan(
    insertion_point: WorkflowNode,
    subsequent_steps: List[WorkflowNode],
    affected_edges: List[WorkflowEdge],
    context: BranchInsertionContext = DEFAULT_INSERTION_CONTEXT,
) -> StepTransferPlan:
    target_branch_id = new_branch_slot_id(1)
    edges_to_remove = calculate_edges_to_remove(
        insertion_point, subsequent_steps, affected_edges, context
    )
    edges_to_create = calculate_edges_to_create(insertion_point, subsequent_steps, target_branch_id)

    return StepTransferPlan(
        steps_to_transfer=list(subsequent_steps),
        edges_to_remove=edges_to_remove,
        edges_to_create=edges_to_create,
        target_branch_id=target_branch_id,
        estimated_complexity=estimate_transfer_complexity(
            subsequent_steps, edges_to_remove, edges_to_create
        ),
    )


def analyze_steps_for_branch_insertion(
    target_node_id: str,
    nodes: List[WorkflowNode],
    edges: List[WorkflowEdge],
    context: Optional[BranchInsertionContext] = None,
) -> StepAnalysisResult:
    """Analyze what moves when a branch is inserted at ``target_node_id``.

    Args:
        target_node_id: Node that becomes the branch
        nodes: Snapshot nodes
        edges: Snapshot edges
        context: Insertion options

    Returns:
        StepAnalysisResult with the transfer plan

    Raises:
        NodeNotFoundError: If the target is not in the snapshot
    """
    target = node_index(nodes).get(target_node_id)
    if target is None:
        raise NodeNotFoundError(target_node_id)

    context = context or DEFAULT_INSERTION_CONTEXT
    subsequent = get_subsequent_steps(target_node_id, nodes, edges)
    affected = get_affected_edges(target_node_id, subsequent, edges)
    plan = create_step_transfer_plan(target, subsequent, affected, context)

    logger.info(
        f"Analyzed branch insertion at {target_node_id}: "
        f"{len(plan.steps_to_transfer)} step(s), "
        f"-{len(plan.edges_to_remove)}/+{len(plan.edges_to_create)} edge(s), "
        f"{plan.estimated_complexity}"
    )

    return StepAnalysisResult(
        subsequent_steps=subsequent,
        affected_edges=affected,
        branch_insertion_point=target,
        transfer_plan=plan,
    )


def find_optimal_branch_insertion_point(
    target_step_id: str, nodes: List[WorkflowNode], edges: List[WorkflowEdge]
) -> InsertionPointDecision:
    """Pick convert / insertBefore / insertAbove from the target's in-degree.

    Several inbound edges are never collapsed silently: that case always
    yields insertAbove.
    """
    target = node_index(nodes).get(target_step_id)
    if target is None:
        return InsertionPointDecision(None, "convert", "Target step not found")

    inbound = sum(1 for edge in edges if edge.target == target_step_id)

    if inbound == 0:
        return InsertionPointDecision(
            target, "convert", "Target step has no incoming connections, safe to convert"
        )
    if inbound == 1:
        return InsertionPointDecision(
            target,
            "insertBefore",
            "Target step has single incoming connection, insert branch before it",
        )
    return InsertionPointDecision(
        target,
        "insertAbove",
        "Target step has multiple incoming connections, insert above to maintain all connections",
    )


def generate_transfer_summary(analysis: StepAnalysisResult) -> TransferSummaryText:
    plan = analysis.transfer_plan
    count = len(analysis.subsequent_steps)
    label = analysis.branch_insertion_point.label

    warnings = []
    if count == 0:
        warnings.append("No steps will be transferred as there are no subsequent steps")

    return TransferSummaryText(
        title="Branch Creation and Step Transfer",
        description=(
            f'This will create a branch before "{label}" and move '
            f"{count} subsequent step(s) to Branch 1."
        ),
        steps_affected=count,
        edges_affected=len(plan.edges_to_remove) + len(plan.edges_to_create),
        complexity=plan.estimated_complexity,
        warnings=warnings,
    )
