"""Branch insertion endpoints: analyze, validate, preview, commit and drag."""

from __future__ import annotations

from typing import List, Tuple

from fastapi import APIRouter, HTTPException

from flowgraph.engine.branch_drag import BranchWithDragOptions, create_branch_with_step_drag
from flowgraph.engine.insertion_points import detect_branch_insertion_points
from flowgraph.engine.models import WorkflowEdge, WorkflowNode
from flowgraph.engine.step_analysis import (
    BranchInsertionContext,
    NodeNotFoundError,
    StepAnalysisResult,
    analyze_steps_for_branch_insertion,
    find_optimal_branch_insertion_point,
    generate_transfer_summary,
)
from flowgraph.engine.transfer_engine import (
    TransferExecutionOptions,
    execute_step_transfer,
    preview_step_transfer,
    validate_transfer_execution,
)
from flowgraph.engine.transfer_validation import (
    format_validation_for_user,
    validate_step_transfer_operation,
    validate_transfer_execution_result,
)
from flowgraph.logging_config import get_api_logger

from ..schemas import (
    AnalysisResponse,
    BranchTargetRequest,
    CommitResponse,
    DragRequest,
    DragResponse,
    GraphSnapshotRequest,
    InsertionPointResponse,
    InsertionStrategyResponse,
    PreviewResponse,
    TransferRequest,
    TransferValidationResponse,
)

router = APIRouter(prefix="/api/v2/branch", tags=["branch"])
logger = get_api_logger()


def _parse_snapshot(payload: GraphSnapshotRequest) -> Tuple[List[WorkflowNode], List[WorkflowEdge]]:
    try:
        return payload.to_snapshot()
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


def _analyze(
    payload: BranchTargetRequest, nodes: List[WorkflowNode], edges: List[WorkflowEdge]
) -> StepAnalysisResult:
    context = BranchInsertionContext(preserve_upstream=payload.preserve_upstream)
    try:
        return analyze_steps_for_branch_insertion(payload.target_node_id, nodes, edges, context)
    except NodeNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


def _execution_options(payload: TransferRequest) -> TransferExecutionOptions:
    return TransferExecutionOptions(
        preserve_positions=payload.preserve_positions,
        validate_integrity=payload.validate_integrity,
        generate_branch_labels=payload.generate_branch_labels,
    )


@router.post("/insertion-strategy", response_model=InsertionStrategyResponse)
async def insertion_strategy(payload: BranchTargetRequest):
    """convert / insertBefore / insertAbove for the target step."""
    nodes, edges = _parse_snapshot(payload)
    decision = find_optimal_branch_insertion_point(payload.target_node_id, nodes, edges)
    return InsertionStrategyResponse(
        insertion_point_id=decision.insertion_point.id if decision.insertion_point else None,
        strategy=decision.strategy,
        reasoning=decision.reasoning,
    )


@router.post("/insertion-points", response_model=List[InsertionPointResponse])
async def insertion_points(payload: GraphSnapshotRequest):
    """"+" markers for every edge a branch can be inserted on."""
    nodes, edges = _parse_snapshot(payload)
    return [
        InsertionPointResponse(**point.to_dict())
        for point in detect_branch_insertion_points(nodes, edges)
    ]


@router.post("/analyze", response_model=AnalysisResponse)
async def analyze(payload: BranchTargetRequest):
    nodes, edges = _parse_snapshot(payload)
    analysis = _analyze(payload, nodes, edges)
    return AnalysisResponse(
        analysis=analysis.to_dict(),
        summary=generate_transfer_summary(analysis).to_dict(),
    )


@router.post("/validate", response_model=TransferValidationResponse)
async def validate_transfer(payload: BranchTargetRequest):
    """Analyze the insertion and run every validation pass on it."""
    nodes, edges = _parse_snapshot(payload)
    analysis = _analyze(payload, nodes, edges)
    validation = validate_step_transfer_operation(analysis, nodes, edges)
    return TransferValidationResponse(
        validation=validation.to_dict(),
        user_message=format_validation_for_user(validation).to_dict(),
        readiness=validate_transfer_execution(analysis, nodes, edges).to_dict(),
    )


@router.post("/preview", response_model=PreviewResponse)
async def preview(payload: TransferRequest):
    """Run the transfer without committing it."""
    nodes, edges = _parse_snapshot(payload)
    analysis = _analyze(payload, nodes, edges)
    result = preview_step_transfer(analysis, nodes, edges, _execution_options(payload))
    return PreviewResponse(**result.to_dict())


@router.post("/commit", response_model=CommitResponse)
async def commit(payload: TransferRequest):
    """Validate, then execute the transfer.

    Blocking validation errors return 409 with the report; nothing is applied.
    """
    nodes, edges = _parse_snapshot(payload)
    analysis = _analyze(payload, nodes, edges)

    validation = validate_step_transfer_operation(analysis, nodes, edges)
    if not validation.is_valid:
        logger.warning(
            f"Commit at {payload.target_node_id} blocked: {validation.error_codes}"
        )
        raise HTTPException(status_code=409, detail=validation.to_dict())

    result = execute_step_transfer(analysis, nodes, edges, _execution_options(payload))
    logger.info(
        f"Commit at {payload.target_node_id}: success={result.success} state={result.state.value}"
    )
    return CommitResponse(
        result=result.to_dict(),
        post_validation=validate_transfer_execution_result(result).to_dict(),
    )


@router.post("/drag", response_model=DragResponse)
async def drag(payload: DragRequest):
    """Create a branch from a drag gesture between two steps."""
    nodes, edges = _parse_snapshot(payload)
    options = BranchWithDragOptions(
        preserve_step_label=payload.preserve_step_label,
        enable_step_drag=payload.enable_step_drag,
        branch_labels=(payload.branch_labels[0], payload.branch_labels[1]),
    )
    result = create_branch_with_step_drag(
        payload.source_node_id,
        payload.target_node_id,
        payload.branch_position.to_position(),
        options,
        nodes,
        edges,
    )
    return DragResponse(**result.to_dict())
