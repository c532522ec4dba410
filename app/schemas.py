"""Pydantic request/response models for the graph engine API.

Nodes and edges use the editor's JSON shape (React Flow): ``data.variant``,
``data.branches``, ``data.targetNodeId``, ``sourceHandle`` ...
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from flowgraph.engine.models import (
    Position,
    WorkflowEdge,
    WorkflowNode,
    edge_from_dict,
    node_from_dict,
)


class PositionModel(BaseModel):
    x: float
    y: float

    def to_position(self) -> Position:
        return Position(self.x, self.y)


class NodeRequest(BaseModel):
    """Node in editor format. ``data`` is passed through as-is."""
    id: str
    type: str = "cardStep"
    position: PositionModel
    data: Dict[str, Any] = Field(default_factory=dict)


class EdgeRequest(BaseModel):
    """Edge in editor format."""
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    source: str
    target: str
    source_handle: Optional[str] = Field(default=None, alias="sourceHandle")
    target_handle: Optional[str] = Field(default=None, alias="targetHandle")
    type: Optional[str] = None
    animated: bool = True
    label: Optional[str] = None
    style: Optional[Dict[str, Any]] = None


class GraphSnapshotRequest(BaseModel):
    """A full nodes + edges snapshot."""
    nodes: List[NodeRequest] = Field(default_factory=list)
    edges: List[EdgeRequest] = Field(default_factory=list)

    def to_snapshot(self) -> Tuple[List[WorkflowNode], List[WorkflowEdge]]:
        """Convert to engine types.

        Raises:
            ValueError: On an unknown node variant or malformed node
        """
        nodes = [node_from_dict(n.model_dump()) for n in self.nodes]
        edges = [
            edge_from_dict(e.model_dump(by_alias=True, exclude_none=True)) for e in self.edges
        ]
        return nodes, edges


class BranchTargetRequest(GraphSnapshotRequest):
    """Snapshot plus the step a branch is inserted at."""
    target_node_id: str
    preserve_upstream: bool = False


class TransferRequest(BranchTargetRequest):
    """Branch target plus execution switches."""
    preserve_positions: bool = False
    validate_integrity: bool = True
    generate_branch_labels: bool = True


class DragRequest(GraphSnapshotRequest):
    """Drag gesture from Step A (source) onto Step B (target)."""
    source_node_id: str
    target_node_id: Optional[str] = None
    branch_position: PositionModel
    preserve_step_label: bool = True
    enable_step_drag: bool = True
    branch_labels: List[str] = Field(default_factory=lambda: ["Branch", "Branch"], min_length=2, max_length=2)


class BranchPositionRequest(GraphSnapshotRequest):
    """Slot placement under a parent node."""
    parent_node_id: str
    branch_index: int = Field(default=0, ge=0)
    total_branches: int = Field(default=2, ge=1)


class GraphValidationResponse(BaseModel):
    """Edge-set validation plus cycle report."""
    valid: bool
    errors: List[str]
    warnings: List[str]
    has_circular_dependency: bool
    cycles: List[List[str]]


class InsertionStrategyResponse(BaseModel):
    insertion_point_id: Optional[str]
    strategy: str
    reasoning: str


class InsertionPointResponse(BaseModel):
    id: str
    source_node_id: str
    target_node_id: str
    edge_id: str
    position: PositionModel
    is_valid: bool


class AnalysisResponse(BaseModel):
    """Step analysis and its confirmation summary."""
    analysis: Dict[str, Any]
    summary: Dict[str, Any]


class TransferValidationResponse(BaseModel):
    """Five-pass validation report, user message and readiness check."""
    validation: Dict[str, Any]
    user_message: Dict[str, Any]
    readiness: Dict[str, Any]


class PreviewResponse(BaseModel):
    preview: Dict[str, Any]
    summary: Dict[str, Any]


class CommitResponse(BaseModel):
    """Committed (or failed) transfer plus re-validation of its result."""
    result: Dict[str, Any]
    post_validation: Dict[str, Any]


class PositionResponse(BaseModel):
    x: float
    y: float
    has_collision: bool
    adjusted_from_original: bool


class DragResponse(BaseModel):
    """Drag-to-branch outcome; on failure the nodes and edges are the input snapshot."""
    success: bool
    transferred_steps_count: int
    transferred_step_ids: List[str]
    branch1_node_id: str
    branch2_node_id: str
    updated_nodes: List[Dict[str, Any]]
    updated_edges: List[Dict[str, Any]]
    error: Optional[str] = None
