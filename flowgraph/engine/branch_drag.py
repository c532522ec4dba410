"""Branch-with-Drag Composer

Builds a complete branch insertion from one drag gesture between Step A
(source) and Step B (target):

1. Step A becomes a branch node with two slots
2. Two slot nodes are created below it (Branch 1 left, Branch 2 right)
3. Step B and everything downstream of it move under Branch 1
4. Branch 2 is left empty for new paths

Failures come back as a StepDragResult with ``success=False`` and the prior
graph, so the editor can show a banner and keep going.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from .. import settings
from .edges import collect_downstream_nodes, create_branch_edge, create_edge, validate_edge_connections
from .models import (
    BranchData,
    BranchSlot,
    Position,
    WorkflowEdge,
    WorkflowNode,
    edge_to_dict,
    make_node_data,
    node_index,
    node_to_dict,
)
from .positioning import calculate_branch_position, snap_to_grid
from .spacing import PositionUpdate, apply_position_updates
from .step_analysis import new_branch_slot_id
from .transfer_engine import DEFAULT_BRANCH_NODE_LABEL, sibling_slot_id

logger = logging.getLogger(__name__)

# Plain step-to-step link from a slot node to the first moved step
STEP_EDGE_STYLE = {"stroke": "#94a3b8", "strokeWidth": 2}

NodeFactory = Callable[[Position, str, str], WorkflowNode]


def default_node_factory(position: Position, variant: str, label: str = "") -> WorkflowNode:
    return WorkflowNode(
        id=f"node-{uuid.uuid4().hex[:8]}",
        position=position,
        data=make_node_data(variant, label),
    )


@dataclass(frozen=True)
class BranchWithDragOptions:
    """Drag composer switches.

    Attributes:
        preserve_step_label: Keep Step A's label instead of "Decision Point"
        enable_step_drag: Move Step B and its downstream steps into Branch 1
        branch_labels: Labels of the two slots
    """

    preserve_step_label: bool = True
    enable_step_drag: bool = True
    branch_labels: Tuple[str, str] = ("Branch", "Branch")


DEFAULT_DRAG_OPTIONS = BranchWithDragOptions()


@dataclass
class BranchDragOperation:
    """Everything the composer will do, before any node is created."""

    source_node_id: str
    branch_label: str
    branch_slots: Tuple[BranchSlot, BranchSlot]
    branch1_position: Position
    branch2_position: Position
    steps_to_transfer: List[PositionUpdate]
    edges_to_remove: List[str]


@dataclass
class StepDragResult:
    success: bool
    transferred_steps_count: int = 0
    transferred_step_ids: List[str] = field(default_factory=list)
    branch1_node_id: str = ""
    branch2_node_id: str = ""
    updated_nodes: List[WorkflowNode] = field(default_factory=list)
    updated_edges: List[WorkflowEdge] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "transferred_steps_count": self.transferred_steps_count,
            "transferred_step_ids": self.transferred_step_ids,
            "branch1_node_id": self.branch1_node_id,
            "branch2_node_id": self.branch2_node_id,
            "updated_nodes": [node_to_dict(n) for n in self.updated_nodes],
            "updated_edges": [edge_to_dict(e) for e in self.updated_edges],
            "error": self.error,
        }


class DragCompositionError(Exception):
    """The drag gesture cannot be turned into a valid branch."""


def analyze_steps_for_drag(
    source_node_id: str,
    target_node_id: Optional[str],
    nodes: List[WorkflowNode],
    edges: List[WorkflowEdge],
) -> List[str]:
    """Ids of Step B plus every step downstream of it."""
    if not target_node_id:
        return []

    target = node_index(nodes).get(target_node_id)
    if target is None:
        return []

    downstream = collect_downstream_nodes(target_node_id, nodes, edges)
    return [target.id] + [node.id for node in downstream]


def create_branch_drag_operation(
    source_node_id: str,
    target_node_id: Optional[str],
    branch_position: Position,
    options: BranchWithDragOptions,
    nodes: List[WorkflowNode],
    edges: List[WorkflowEdge],
) -> BranchDragOperation:
    """Plan the composition.

    Raises:
        DragCompositionError: Unknown source, or the source is downstream of the target
    """
    source = node_index(nodes).get(source_node_id)
    if source is None:
        raise DragCompositionError(f"Source node {source_node_id} not found")

    step_ids: List[str] = []
    if options.enable_step_drag:
        step_ids = analyze_steps_for_drag(source_node_id, target_node_id, nodes, edges)
        if source_node_id in step_ids:
            raise DragCompositionError(
                f"Source node {source_node_id} is reachable from {target_node_id}; "
                "moving it would create a cycle"
            )

    slot1_id = new_branch_slot_id(1)
    label1, label2 = options.branch_labels
    slots = (BranchSlot(id=slot1_id, label=label1), BranchSlot(id=sibling_slot_id(slot1_id), label=label2))

    moving = set(step_ids)
    obstacles = [node for node in nodes if node.id not in moving]
    anchor = WorkflowNode(id=source_node_id, position=branch_position)
    branch1 = calculate_branch_position(anchor, 0, 2, obstacles).position
    branch2 = calculate_branch_position(anchor, 1, 2, obstacles).position

    steps_to_transfer = [
        PositionUpdate(
            step_id,
            snap_to_grid(
                Position(branch1.x, branch1.y + (i + 1) * settings.TRANSFER_VERTICAL_SPACING)
            ),
        )
        for i, step_id in enumerate(step_ids)
    ]

    edges_to_remove: List[str] = []
    if step_ids:
        edges_to_remove = [
            edge.id
            for edge in edges
            if edge.source == source_node_id and edge.target == target_node_id
        ]

    return BranchDragOperation(
        source_node_id=source_node_id,
        branch_label=source.label if options.preserve_step_label else DEFAULT_BRANCH_NODE_LABEL,
        branch_slots=slots,
        branch1_position=branch1,
        branch2_position=branch2,
        steps_to_transfer=steps_to_transfer,
        edges_to_remove=edges_to_remove,
    )


def _compose(
    operation: BranchDragOperation,
    nodes: List[WorkflowNode],
    edges: List[WorkflowEdge],
    create_new_node: NodeFactory,
) -> StepDragResult:
    source_id = operation.source_node_id
    slot1, slot2 = operation.branch_slots

    branch1_node = create_new_node(operation.branch1_position, "default", slot1.label)
    branch2_node = create_new_node(operation.branch2_position, "default", slot2.label)

    updated_nodes: List[WorkflowNode] = []
    for node in nodes:
        if node.id == source_id:
            node = WorkflowNode(
                id=node.id,
                position=node.position,
                data=BranchData(
                    label=operation.branch_label,
                    attributes=node.data.attributes,
                    branches=operation.branch_slots,
                ),
                type=node.type,
            )
        updated_nodes.append(node)
    updated_nodes = apply_position_updates(updated_nodes, operation.steps_to_transfer)
    updated_nodes.extend([branch1_node, branch2_node])

    removed = set(operation.edges_to_remove)
    updated_edges = [edge for edge in edges if edge.id not in removed]
    updated_edges.append(create_branch_edge(source_id, slot1.id, branch1_node.id))
    updated_edges.append(create_branch_edge(source_id, slot2.id, branch2_node.id))
    if operation.steps_to_transfer:
        updated_edges.append(
            create_edge(
                branch1_node.id,
                operation.steps_to_transfer[0].node_id,
                animated=True,
                style=STEP_EDGE_STYLE,
            )
        )

    report = validate_edge_connections(updated_nodes, updated_edges)
    if not report.valid:
        raise DragCompositionError(f"Workflow validation failed: {', '.join(report.errors)}")

    step_ids = [update.node_id for update in operation.steps_to_transfer]
    return StepDragResult(
        success=True,
        transferred_steps_count=len(step_ids),
        transferred_step_ids=step_ids,
        branch1_node_id=branch1_node.id,
        branch2_node_id=branch2_node.id,
        updated_nodes=updated_nodes,
        updated_edges=updated_edges,
    )


def create_branch_with_step_drag(
    source_node_id: str,
    target_node_id: Optional[str],
    branch_position: Position,
    options: BranchWithDragOptions,
    nodes: List[WorkflowNode],
    edges: List[WorkflowEdge],
    create_new_node: NodeFactory = default_node_factory,
) -> StepDragResult:
    """Turn Step A into a branch and move Step B's subgraph under Branch 1.

    Args:
        source_node_id: Step A, converted to the branch node
        target_node_id: Step B, first step moved into Branch 1 (optional)
        branch_position: Where the branch sits; slot nodes are placed around it
        options: Composer switches
        nodes: Snapshot nodes (not mutated)
        edges: Snapshot edges (not mutated)
        create_new_node: Factory for the two slot nodes

    Returns:
        StepDragResult; on failure ``updated_nodes``/``updated_edges`` are the input
    """
    try:
        operation = create_branch_drag_operation(
            source_node_id, target_node_id, branch_position, options, nodes, edges
        )
        result = _compose(operation, nodes, edges, create_new_node)
    except DragCompositionError as e:
        logger.warning(f"Branch drag from {source_node_id} rejected: {e}")
        return StepDragResult(
            success=False, updated_nodes=list(nodes), updated_edges=list(edges), error=str(e)
        )
    except Exception as e:
        logger.exception(f"Branch creation with drag from {source_node_id} failed")
        return StepDragResult(
            success=False,
            updated_nodes=list(nodes),
            updated_edges=list(edges),
            error=str(e) or "Unknown error",
        )

    logger.info(
        f"Branch created at {source_node_id}: {result.transferred_steps_count} step(s) "
        f"moved under {result.branch1_node_id}"
    )
    return result
