"""Transfer Validation

Checks a StepAnalysisResult against the *current* snapshot before it is
executed. The plan may be stale relative to concurrent edits, so every
reference is re-resolved.

Five passes run independently and their findings are merged:

1. Structural      - target and steps still exist, target already a branch, empty transfer
2. Circular        - simulate the plan's edge changes, detect cycles; jump back to the target
3. Node rules      - end mid-sequence, nested branching, jump targets
4. Edge drift      - removals already gone, duplicate or existing creations
5. Flow health     - potential orphans, missing end node, very large transfers

Errors block execution. Warnings and suggestions never do. The overall
severity is derived from the findings, never stored per error.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Set

from .. import settings
from .edges import detect_circular_dependencies, validate_edge_connections
from .models import JumpData, WorkflowEdge, WorkflowNode, node_index
from .step_analysis import StepAnalysisResult

if TYPE_CHECKING:
    from .transfer_engine import TransferExecutionResult

logger = logging.getLogger(__name__)

SEVERITY_LEVELS = ("none", "low", "medium", "high", "critical")

# Error codes that make a result critical regardless of anything else
CRITICAL_ERROR_CODES = {"TARGET_NODE_NOT_FOUND", "CIRCULAR_DEPENDENCY", "JUMP_CREATES_CYCLE"}


class ValidationError:
    """Transfer validation error.

    Attributes:
        code: Error code
        message: Error message
        severity: "error" blocks execution
        node_id: Affected node, if any
        edge_id: Affected edge, if any
    """

    def __init__(
        self,
        code: str,
        message: str,
        severity: str = "error",
        node_id: Optional[str] = None,
        edge_id: Optional[str] = None,
    ):
        self.code = code
        self.message = message
        self.severity = severity
        self.node_id = node_id
        self.edge_id = edge_id

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format."""
        return {
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "node_id": self.node_id,
            "edge_id": self.edge_id,
        }


class ValidationWarning:
    """Recoverable problem.

    Attributes:
        code: Warning code
        message: Warning message
        impact: low / medium / high
        suggestion: Optional remedy shown to the user
    """

    def __init__(self, code: str, message: str, impact: str, suggestion: Optional[str] = None):
        self.code = code
        self.message = message
        self.impact = impact
        self.suggestion = suggestion

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "impact": self.impact,
            "suggestion": self.suggestion,
        }


class ValidationSuggestion:
    def __init__(self, code: str, message: str, action: str, priority: str):
        self.code = code
        self.message = message
        self.action = action
        self.priority = priority

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "action": self.action,
            "priority": self.priority,
        }


class ValidationResult:
    """Merged result of every validation pass.

    Attributes:
        is_valid: No error-severity entries
        errors: Hard failures
        warnings: Recoverable issues
        suggestions: Optional improvements
        severity: none / low / medium / high / critical
    """

    def __init__(
        self,
        is_valid: bool,
        errors: List[ValidationError],
        warnings: List[ValidationWarning],
        suggestions: List[ValidationSuggestion],
        severity: str,
    ):
        self.is_valid = is_valid
        self.errors = errors
        self.warnings = warnings
        self.suggestions = suggestions
        self.severity = severity

    @property
    def error_codes(self) -> List[str]:
        return [e.code for e in self.errors]

    @property
    def warning_codes(self) -> List[str]:
        return [w.code for w in self.warnings]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format."""
        return {
            "is_valid": self.is_valid,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "suggestions": [s.to_dict() for s in self.suggestions],
            "severity": self.severity,
        }


class UserFacingValidation:
    def __init__(self, title: str, message: str, can_proceed: bool, action_required: bool):
        self.title = title
        self.message = message
        self.can_proceed = can_proceed
        self.action_required = action_required

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "message": self.message,
            "can_proceed": self.can_proceed,
            "action_required": self.action_required,
        }


class _PassResult:
    def __init__(self):
        self.errors: List[ValidationError] = []
        self.warnings: List[ValidationWarning] = []
        self.suggestions: List[ValidationSuggestion] = []


def _build_result(
    errors: List[ValidationError],
    warnings: List[ValidationWarning],
    suggestions: List[ValidationSuggestion],
) -> ValidationResult:
    return ValidationResult(
        is_valid=not any(e.severity == "error" for e in errors),
        errors=errors,
        warnings=warnings,
        suggestions=suggestions,
        severity=determine_severity(errors, warnings),
    )


def validate_step_transfer_operation(
    analysis: StepAnalysisResult,
    current_nodes: List[WorkflowNode],
    current_edges: List[WorkflowEdge],
) -> ValidationResult:
    """Validate a planned transfer against the current snapshot.

    Args:
        analysis: Result of analyze_steps_for_branch_insertion
        current_nodes: Nodes as they are now
        current_edges: Edges as they are now

    Returns:
        ValidationResult with merged findings and derived severity
    """
    errors: List[ValidationError] = []
    warnings: List[ValidationWarning] = []
    suggestions: List[ValidationSuggestion] = []

    for check in (
        _validate_structural_integrity(analysis, current_nodes),
        _validate_circular_dependencies(analysis, current_nodes, current_edges),
        _validate_node_specific_rules(analysis, current_nodes),
        _validate_edge_connectivity(analysis, current_edges),
        _validate_workflow_flow(analysis, current_nodes, current_edges),
    ):
        errors.extend(check.errors)
        warnings.extend(check.warnings)
        suggestions.extend(check.suggestions)

    result = _build_result(errors, warnings, suggestions)
    logger.debug(
        f"Transfer validation at {analysis.branch_insertion_point.id}: "
        f"severity={result.severity} errors={result.error_codes} warnings={result.warning_codes}"
    )
    return result


def _validate_structural_integrity(
    analysis: StepAnalysisResult, current_nodes: List[WorkflowNode]
) -> _PassResult:
    out = _PassResult()
    by_id = node_index(current_nodes)
    target_id = analysis.branch_insertion_point.id

    target = by_id.get(target_id)
    if target is None:
        out.errors.append(
            ValidationError(
                "TARGET_NODE_NOT_FOUND",
                "Target node for branch insertion no longer exists",
                node_id=target_id,
            )
        )
        return out

    for step in analysis.subsequent_steps:
        if step.id not in by_id:
            out.errors.append(
                ValidationError(
                    "SUBSEQUENT_STEP_NOT_FOUND",
                    f'Subsequent step "{step.label}" no longer exists',
                    node_id=step.id,
                )
            )

    if target.variant == "branch":
        out.warnings.append(
            ValidationWarning(
                "TARGET_ALREADY_BRANCH",
                "Target node is already a branch node. Existing branches will be replaced.",
                "medium",
                "Consider adding steps to existing branches instead",
            )
        )

    if not analysis.subsequent_steps:
        out.warnings.append(
            ValidationWarning(
                "NO_STEPS_TO_TRANSFER",
                "No subsequent steps found to transfer to the branch",
                "low",
                "Branch will be created but no steps will be moved",
            )
        )

    return out


def simulate_plan_edges(
    analysis: StepAnalysisResult, current_edges: List[WorkflowEdge]
) -> List[WorkflowEdge]:
    """Current edges with the plan's removals and creations applied."""
    plan = analysis.transfer_plan
    removed = {edge.id for edge in plan.edges_to_remove}
    return [edge for edge in current_edges if edge.id not in removed] + list(plan.edges_to_create)


def _validate_circular_dependencies(
    analysis: StepAnalysisResult,
    current_nodes: List[WorkflowNode],
    current_edges: List[WorkflowEdge],
) -> _PassResult:
    out = _PassResult()

    report = detect_circular_dependencies(current_nodes, simulate_plan_edges(analysis, current_edges))
    for cycle in report.cycles:
        out.errors.append(
            ValidationError(
                "CIRCULAR_DEPENDENCY",
                f"Workflow contains circular dependency after transfer: {' → '.join(cycle)}",
            )
        )

    # Jumps are data, not edges, so the cycle check above cannot see them
    by_id = node_index(current_nodes)
    target_id = analysis.branch_insertion_point.id
    for step in analysis.subsequent_steps:
        if not isinstance(step.data, JumpData) or not step.data.target_node_id:
            continue
        if step.data.target_node_id == target_id and target_id in by_id:
            out.errors.append(
                ValidationError(
                    "JUMP_CREATES_CYCLE",
                    f'Jump step "{step.label}" targets the branch insertion point, creating a cycle',
                    node_id=step.id,
                )
            )

    return out


def _validate_node_specific_rules(
    analysis: StepAnalysisResult, current_nodes: List[WorkflowNode]
) -> _PassResult:
    out = _PassResult()
    steps = analysis.subsequent_steps
    by_id = node_index(current_nodes)

    last_index = len(steps) - 1
    if any(step.variant == "end" and i < last_index for i, step in enumerate(steps)):
        out.warnings.append(
            ValidationWarning(
                "END_NODE_NOT_TERMINAL",
                "End node(s) found in the middle of transferred steps",
                "high",
                "Consider restructuring the workflow to place end nodes at the end",
            )
        )

    branch_count = sum(1 for step in steps if step.variant == "branch")
    if branch_count:
        out.warnings.append(
            ValidationWarning(
                "NESTED_BRANCHING",
                f"Transfer includes {branch_count} branch node(s), creating nested branching",
                "medium",
                "Nested branching can make workflows complex. Consider flattening the structure.",
            )
        )
        out.suggestions.append(
            ValidationSuggestion(
                "CONSIDER_FLATTENING",
                "Consider flattening nested branches for better readability",
                "Restructure workflow to avoid nested branches",
                "medium",
            )
        )

    for step in steps:
        if not isinstance(step.data, JumpData):
            continue
        if step.data.target_node_id:
            if step.data.target_node_id not in by_id:
                out.errors.append(
                    ValidationError(
                        "INVALID_JUMP_TARGET",
                        f'Jump step "{step.label}" targets a non-existent node',
                        node_id=step.id,
                    )
                )
        else:
            out.warnings.append(
                ValidationWarning(
                    "JUMP_NO_TARGET",
                    f'Jump step "{step.label}" has no target specified',
                    "medium",
                    "Configure the jump target before transferring",
                )
            )

    return out


def _validate_edge_connectivity(
    analysis: StepAnalysisResult, current_edges: List[WorkflowEdge]
) -> _PassResult:
    out = _PassResult()
    plan = analysis.transfer_plan
    current_ids = {edge.id for edge in current_edges}

    for edge in plan.edges_to_remove:
        if edge.id not in current_ids:
            out.warnings.append(
                ValidationWarning(
                    "EDGE_ALREADY_REMOVED",
                    f"Edge {edge.id} scheduled for removal no longer exists",
                    "low",
                )
            )

    existing_keys = {(e.source, e.target, e.source_handle) for e in current_edges}
    seen: Set[tuple] = set()
    for edge in plan.edges_to_create:
        key = (edge.source, edge.target, edge.source_handle or "default")
        if key in seen:
            out.errors.append(
                ValidationError(
                    "DUPLICATE_EDGE_CREATION",
                    f"Duplicate edge would be created: {edge.source} → {edge.target}",
                    edge_id=edge.id,
                )
            )
        seen.add(key)

        if (edge.source, edge.target, edge.source_handle) in existing_keys:
            out.warnings.append(
                ValidationWarning(
                    "EDGE_ALREADY_EXISTS",
                    f"Edge from {edge.source} to {edge.target} already exists",
                    "low",
                )
            )

    return out


def _validate_workflow_flow(
    analysis: StepAnalysisResult,
    current_nodes: List[WorkflowNode],
    current_edges: List[WorkflowEdge],
) -> _PassResult:
    out = _PassResult()
    steps = analysis.subsequent_steps
    transferred = {step.id for step in steps}

    inbound: Dict[str, List[WorkflowEdge]] = {}
    for edge in current_edges:
        inbound.setdefault(edge.target, []).append(edge)

    orphans = [
        node
        for node in current_nodes
        if node.id not in transferred
        and len(inbound.get(node.id, [])) == 1
        and inbound[node.id][0].source in transferred
    ]
    if orphans:
        out.warnings.append(
            ValidationWarning(
                "POTENTIAL_ORPHANED_NODES",
                f"{len(orphans)} node(s) may become orphaned after transfer",
                "medium",
                "Review workflow connections after transfer",
            )
        )

    if steps and not any(step.variant == "end" for step in steps):
        out.suggestions.append(
            ValidationSuggestion(
                "ADD_END_NODE",
                "Consider adding an end node to the transferred branch",
                "Add an end node at the end of the branch flow",
                "low",
            )
        )

    if len(analysis.transfer_plan.steps_to_transfer) > settings.LARGE_TRANSFER_STEPS:
        out.suggestions.append(
            ValidationSuggestion(
                "CONSIDER_BRANCH_BALANCE",
                "Large number of steps being transferred to one branch",
                "Consider distributing steps across multiple branches",
                "low",
            )
        )

    return out


def determine_severity(errors: List[ValidationError], warnings: List[ValidationWarning]) -> str:
    hard = [e for e in errors if e.severity == "error"]
    if any(e.code in CRITICAL_ERROR_CODES for e in hard):
        return "critical"
    if hard:
        return "high"

    if any(w.impact == "high" for w in warnings):
        return "high"
    if sum(1 for w in warnings if w.impact == "medium") > 1:
        return "medium"
    if warnings:
        return "low"
    return "none"


def validate_transfer_execution_result(result: "TransferExecutionResult") -> ValidationResult:
    """Re-check the snapshot produced by an execution."""
    errors: List[ValidationError] = []
    warnings: List[ValidationWarning] = []

    if not result.success:
        errors.append(
            ValidationError(
                "EXECUTION_FAILED",
                result.error or "Transfer execution failed for unknown reason",
            )
        )
    else:
        report = validate_edge_connections(result.updated_nodes, result.updated_edges)
        for message in report.errors:
            errors.append(ValidationError("POST_EXECUTION_EDGE_ERROR", message))
        for message in report.warnings:
            warnings.append(ValidationWarning("POST_EXECUTION_EDGE_WARNING", message, "medium"))

    for message in result.warnings:
        warnings.append(ValidationWarning("EXECUTION_WARNING", message, "low"))

    return _build_result(errors, warnings, [])


def format_validation_for_user(validation: ValidationResult) -> UserFacingValidation:
    """Title/message pair for the confirmation dialog."""
    error_count = sum(1 for e in validation.errors if e.severity == "error")
    warning_count = len(validation.warnings)

    if validation.severity == "critical":
        return UserFacingValidation(
            "Critical Issues Found",
            f"Found {error_count} critical error(s) that must be resolved before proceeding.",
            can_proceed=False,
            action_required=True,
        )

    if validation.severity == "high":
        if error_count:
            return UserFacingValidation(
                "Errors Found",
                f"Found {error_count} error(s) that must be resolved before proceeding.",
                can_proceed=False,
                action_required=True,
            )
        return UserFacingValidation(
            "High Impact Issues",
            f"Found {warning_count} high-impact issue(s) that should be reviewed.",
            can_proceed=True,
            action_required=False,
        )

    if validation.severity == "medium":
        return UserFacingValidation(
            "Issues Detected",
            f"Found {warning_count} issue(s) that may affect the workflow. "
            "You can proceed but should review them.",
            can_proceed=True,
            action_required=False,
        )

    if validation.severity == "low":
        return UserFacingValidation(
            "Minor Issues",
            f"Found {warning_count} minor issue(s). Safe to proceed.",
            can_proceed=True,
            action_required=False,
        )

    return UserFacingValidation(
        "Validation Passed",
        "No issues found. Safe to proceed with the transfer.",
        can_proceed=True,
        action_required=False,
    )
