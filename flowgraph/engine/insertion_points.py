"""Branch insertion markers ("+" buttons) drawn at edge midpoints."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, List

from .models import Position, WorkflowEdge, WorkflowNode, node_index

# Virtual pill nodes rendered under branch slots never get a marker
_BRANCH_PILL_MARKER = "-branch-pill-"


@dataclass(frozen=True)
class BranchInsertionPoint:
    id: str
    source_node_id: str
    target_node_id: str
    edge_id: str
    position: Position
    is_valid: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source_node_id": self.source_node_id,
            "target_node_id": self.target_node_id,
            "edge_id": self.edge_id,
            "position": self.position.to_dict(),
            "is_valid": self.is_valid,
        }


def _midpoint(a: WorkflowNode, b: WorkflowNode) -> Position:
    return Position((a.position.x + b.position.x) / 2, (a.position.y + b.position.y) / 2)


def detect_branch_insertion_points(
    nodes: List[WorkflowNode], edges: List[WorkflowEdge]
) -> List[BranchInsertionPoint]:
    """One marker per plain step-to-step edge.

    Skipped: edges with a source handle (already inside a branch), edges
    leaving a branch or end node, and edges into a branch or pill node.
    """
    by_id = node_index(nodes)
    points: List[BranchInsertionPoint] = []

    for edge in edges:
        source = by_id.get(edge.source)
        target = by_id.get(edge.target)
        if source is None or target is None:
            continue
        if edge.source_handle:
            continue
        if source.variant in ("branch", "end"):
            continue
        if _BRANCH_PILL_MARKER in edge.target or target.variant == "branch":
            continue

        points.append(
            BranchInsertionPoint(
                id=f"branch-insertion-{edge.source}-{edge.target}",
                source_node_id=edge.source,
                target_node_id=edge.target,
                edge_id=edge.id,
                position=_midpoint(source, target),
            )
        )

    return points


def is_branch_insertion_point_valid(
    point: BranchInsertionPoint, nodes: List[WorkflowNode], edges: List[WorkflowEdge]
) -> bool:
    """Both endpoints and the underlying edge still exist."""
    by_id = node_index(nodes)
    if point.source_node_id not in by_id or point.target_node_id not in by_id:
        return False
    return any(edge.id == point.edge_id for edge in edges)


def update_branch_insertion_point_positions(
    points: List[BranchInsertionPoint], nodes: List[WorkflowNode]
) -> List[BranchInsertionPoint]:
    by_id = node_index(nodes)
    updated: List[BranchInsertionPoint] = []
    for point in points:
        source = by_id.get(point.source_node_id)
        target = by_id.get(point.target_node_id)
        if source is None or target is None:
            updated.append(point)
        else:
            updated.append(replace(point, position=_midpoint(source, target)))
    return updated
