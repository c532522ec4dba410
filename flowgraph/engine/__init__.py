"""Graph Engine: branch insertion analysis, validation, execution and layout."""

from .branch_drag import (
    BranchWithDragOptions,
    StepDragResult,
    analyze_steps_for_drag,
    create_branch_drag_operation,
    create_branch_with_step_drag,
    default_node_factory,
)
from .edges import (
    CycleReport,
    EdgeValidationReport,
    create_edge,
    detect_circular_dependencies,
    find_node_connections,
    find_paths_between_nodes,
    optimize_edge_layout,
    validate_edge_connections,
)
from .models import (
    BranchData,
    BranchSlot,
    EndData,
    JumpData,
    Position,
    StepData,
    WorkflowEdge,
    WorkflowNode,
    edge_from_dict,
    edge_to_dict,
    node_from_dict,
    node_to_dict,
)
from .positioning import (
    PositionOptions,
    PositionResult,
    calculate_branch_position,
    resolve_position_collisions,
    snap_to_grid,
    would_collide,
)
from .spacing import PositionUpdate, SpacingConfig, SpacingScheduler
from .step_analysis import (
    BranchInsertionContext,
    InsertionPointDecision,
    NodeNotFoundError,
    StepAnalysisResult,
    StepTransferPlan,
    analyze_steps_for_branch_insertion,
    find_optimal_branch_insertion_point,
    get_subsequent_steps,
)
from .transfer_engine import (
    TransferExecutionOptions,
    TransferExecutionResult,
    TransferState,
    execute_step_transfer,
    preview_step_transfer,
    rollback_step_transfer,
)
from .transfer_validation import (
    ValidationError,
    ValidationResult,
    format_validation_for_user,
    validate_step_transfer_operation,
)

__all__ = [
    "BranchWithDragOptions",
    "StepDragResult",
    "analyze_steps_for_drag",
    "create_branch_drag_operation",
    "create_branch_with_step_drag",
    "default_node_factory",
    "CycleReport",
    "EdgeValidationReport",
    "create_edge",
    "detect_circular_dependencies",
    "find_node_connections",
    "find_paths_between_nodes",
    "optimize_edge_layout",
    "validate_edge_connections",
    "BranchData",
    "BranchSlot",
    "EndData",
    "JumpData",
    "Position",
    "StepData",
    "WorkflowEdge",
    "WorkflowNode",
    "edge_from_dict",
    "edge_to_dict",
    "node_from_dict",
    "node_to_dict",
    "PositionOptions",
    "PositionResult",
    "calculate_branch_position",
    "resolve_position_collisions",
    "snap_to_grid",
    "would_collide",
    "PositionUpdate",
    "SpacingConfig",
    "SpacingScheduler",
    "BranchInsertionContext",
    "InsertionPointDecision",
    "NodeNotFoundError",
    "StepAnalysisResult",
    "StepTransferPlan",
    "analyze_steps_for_branch_insertion",
    "find_optimal_branch_insertion_point",
    "get_subsequent_steps",
    "TransferExecutionOptions",
    "TransferExecutionResult",
    "TransferState",
    "execute_step_transfer",
    "preview_step_transfer",
    "rollback_step_transfer",
    "ValidationError",
    "ValidationResult",
    "format_validation_for_user",
    "validate_step_transfer_operation",
]
