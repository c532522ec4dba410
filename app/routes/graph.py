"""Snapshot-level endpoints: edge validation and slot placement."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException

from flowgraph.engine.edges import detect_circular_dependencies, validate_edge_connections
from flowgraph.engine.models import node_index
from flowgraph.engine.positioning import calculate_branch_position
from flowgraph.logging_config import get_api_logger

from ..schemas import (
    BranchPositionRequest,
    GraphSnapshotRequest,
    GraphValidationResponse,
    PositionResponse,
)

router = APIRouter(tags=["graph"])
logger = get_api_logger()


@router.post("/api/v2/graph/validate", response_model=GraphValidationResponse)
async def validate_graph_inline(payload: GraphSnapshotRequest):
    """Validate a snapshot without applying anything (for live editor feedback)."""
    try:
        nodes, edges = payload.to_snapshot()
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    report = validate_edge_connections(nodes, edges)
    cycles = detect_circular_dependencies(nodes, edges)

    return GraphValidationResponse(
        valid=report.valid and not cycles.has_circular_dependency,
        errors=report.errors,
        warnings=report.warnings,
        has_circular_dependency=cycles.has_circular_dependency,
        cycles=cycles.cycles,
    )


@router.post("/api/v2/layout/branch-position", response_model=PositionResponse)
async def branch_position(payload: BranchPositionRequest):
    """Collision-resolved position of one branch slot under a parent."""
    try:
        nodes, _ = payload.to_snapshot()
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    parent = node_index(nodes).get(payload.parent_node_id)
    if parent is None:
        raise HTTPException(status_code=404, detail=f"Node {payload.parent_node_id} not found")

    result = calculate_branch_position(
        parent, payload.branch_index, payload.total_branches, nodes
    )
    if result.has_collision:
        logger.warning(f"No free slot position under {parent.id} (index {payload.branch_index})")

    return PositionResponse(**result.to_dict())
