"""Positioning Engine: collision-aware placement of new and moved nodes.

Every placement goes through resolve_position_collisions: if the preferred
spot is clear it is used, otherwise a fixed number of rings of 8 candidates
(cardinal + diagonal, scaled by ring number) is probed around it. The search
is bounded and deterministic so the editor never stalls on a crowded canvas.

Coordinates are snapped to the grid so repeated layout passes converge.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .. import settings
from .models import Position, WorkflowEdge, WorkflowNode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PositionOptions:
    """Per-call positioning overrides.

    Attributes:
        vertical_spacing: Distance used for above/below/branch placement and probing
        horizontal_spacing: Horizontal distance for branches and probing
        grid_snap: Round the result to the grid
        avoid_collisions: Probe for a free spot when the preferred one is taken
    """

    vertical_spacing: float = settings.SPACING_VERTICAL
    horizontal_spacing: float = settings.SPACING_HORIZONTAL
    grid_snap: bool = True
    avoid_collisions: bool = True


DEFAULT_POSITION_OPTIONS = PositionOptions()


@dataclass(frozen=True)
class PositionResult:
    """Outcome of a placement request.

    Attributes:
        x, y: Chosen coordinate
        has_collision: The returned spot still overlaps an existing node
        adjusted_from_original: The spot differs from the preferred one
    """

    x: float
    y: float
    has_collision: bool = False
    adjusted_from_original: bool = False

    @property
    def position(self) -> Position:
        return Position(self.x, self.y)

    def to_dict(self) -> Dict[str, object]:
        return {
            "x": self.x,
            "y": self.y,
            "has_collision": self.has_collision,
            "adjusted_from_original": self.adjusted_from_original,
        }


@dataclass(frozen=True)
class ViewportBounds:
    x: float
    y: float
    width: float
    height: float


def _round_to_grid(value: float, step: int) -> float:
    # Half-up rounding so -7.5 and 7.5 snap symmetrically with the editor
    return float(math.floor(value / step + 0.5) * step)


def snap_to_grid(position: Position, step: int = settings.GRID_SNAP) -> Position:
    return Position(_round_to_grid(position.x, step), _round_to_grid(position.y, step))


def would_collide(
    pos_a: Optional[Position],
    pos_b: Optional[Position],
    margin: float = settings.COLLISION_MARGIN,
) -> bool:
    """Whether two nominal node boxes overlap within ``margin``.

    Incomplete coordinates never count as a collision.
    """
    if pos_a is None or pos_b is None:
        return False
    if pos_a.x is None or pos_a.y is None or pos_b.x is None or pos_b.y is None:
        return False

    return (
        abs(pos_a.x - pos_b.x) < settings.NODE_WIDTH + margin
        and abs(pos_a.y - pos_b.y) < settings.NODE_HEIGHT + margin
    )


def detect_position_collisions(
    position: Position,
    existing_nodes: Sequence[WorkflowNode],
    margin: float = settings.COLLISION_MARGIN,
) -> List[WorkflowNode]:
    return [node for node in existing_nodes if would_collide(position, node.position, margin)]


def _probe_directions(options: PositionOptions) -> List[tuple]:
    v, h = options.vertical_spacing, options.horizontal_spacing
    return [
        (0, v),    # down
        (h, 0),    # right
        (0, -v),   # up
        (-h, 0),   # left
        (h, v),    # down-right
        (-h, v),   # down-left
        (h, -v),   # up-right
        (-h, -v),  # up-left
    ]


def resolve_position_collisions(
    preferred: Position,
    existing_nodes: Sequence[WorkflowNode],
    options: PositionOptions = DEFAULT_POSITION_OPTIONS,
) -> PositionResult:
    """Find the nearest free position around ``preferred``.

    Probes at most ``8 * COLLISION_MAX_ATTEMPTS`` candidates. When none is
    free, the preferred position is returned with ``has_collision=True``.

    Args:
        preferred: Desired position
        existing_nodes: Nodes already on the canvas
        options: Spacing and snapping overrides

    Returns:
        PositionResult for the chosen coordinate
    """

    def finish(position: Position, has_collision: bool, adjusted: bool) -> PositionResult:
        if options.grid_snap:
            position = snap_to_grid(position)
        return PositionResult(position.x, position.y, has_collision, adjusted)

    if not options.avoid_collisions or not detect_position_collisions(preferred, existing_nodes):
        return finish(preferred, False, False)

    directions = _probe_directions(options)
    for attempt in range(1, settings.COLLISION_MAX_ATTEMPTS + 1):
        for dx, dy in directions:
            candidate = Position(preferred.x + dx * attempt, preferred.y + dy * attempt)
            if not detect_position_collisions(candidate, existing_nodes):
                return finish(candidate, False, True)

    logger.warning(
        f"No free position found around ({preferred.x}, {preferred.y}) "
        f"after {settings.COLLISION_MAX_ATTEMPTS} attempts"
    )
    return finish(preferred, True, False)


def calculate_above_position(
    parent: WorkflowNode,
    existing_nodes: Sequence[WorkflowNode],
    options: PositionOptions = DEFAULT_POSITION_OPTIONS,
) -> PositionResult:
    preferred = Position(parent.position.x, parent.position.y - options.vertical_spacing)
    return resolve_position_collisions(preferred, existing_nodes, options)


def calculate_below_position(
    parent: WorkflowNode,
    existing_nodes: Sequence[WorkflowNode],
    options: PositionOptions = DEFAULT_POSITION_OPTIONS,
) -> PositionResult:
    preferred = Position(parent.position.x, parent.position.y + options.vertical_spacing)
    return resolve_position_collisions(preferred, existing_nodes, options)


def branch_horizontal_offset(
    branch_index: int,
    total_branches: int,
    options: PositionOptions = DEFAULT_POSITION_OPTIONS,
) -> float:
    """Horizontal offset of slot ``branch_index`` relative to its parent.

    One slot sits to the right, two slots use the fixed left/right offsets,
    more are spread evenly over [-horizontal, +horizontal].
    """
    if total_branches <= 1:
        return options.horizontal_spacing
    if total_branches == 2:
        return -settings.BRANCH_OFFSET if branch_index == 0 else settings.BRANCH_OFFSET

    spread = options.horizontal_spacing * 2
    step = spread / (total_branches - 1)
    return -options.horizontal_spacing + step * branch_index


def calculate_branch_position(
    parent: WorkflowNode,
    branch_index: int,
    total_branches: int,
    existing_nodes: Sequence[WorkflowNode],
    options: PositionOptions = DEFAULT_POSITION_OPTIONS,
) -> PositionResult:
    """Position of branch slot ``branch_index`` of ``total_branches`` under ``parent``."""
    offset = branch_horizontal_offset(branch_index, total_branches, options)
    preferred = Position(
        parent.position.x + offset,
        parent.position.y + options.vertical_spacing,
    )
    return resolve_position_collisions(preferred, existing_nodes, options)


def calculate_insert_position(
    source: WorkflowNode,
    target: WorkflowNode,
    existing_nodes: Sequence[WorkflowNode],
    options: PositionOptions = DEFAULT_POSITION_OPTIONS,
) -> PositionResult:
    """Midpoint between two connected nodes, collision-resolved."""
    preferred = Position(
        (source.position.x + target.position.x) / 2,
        (source.position.y + target.position.y) / 2,
    )
    return resolve_position_collisions(preferred, existing_nodes, options)


def get_parent_nodes(
    node_id: str, nodes: Sequence[WorkflowNode], edges: Sequence[WorkflowEdge]
) -> List[WorkflowNode]:
    parent_ids = {edge.source for edge in edges if edge.target == node_id}
    return [node for node in nodes if node.id in parent_ids]


def get_child_nodes(
    node_id: str, nodes: Sequence[WorkflowNode], edges: Sequence[WorkflowEdge]
) -> List[WorkflowNode]:
    child_ids = {edge.target for edge in edges if edge.source == node_id}
    return [node for node in nodes if node.id in child_ids]


def validate_viewport_bounds(position: Position, bounds: Optional[ViewportBounds] = None) -> bool:
    """Whether a node placed at ``position`` fits entirely inside ``bounds``."""
    if bounds is None:
        return True

    return (
        position.x >= bounds.x
        and position.y >= bounds.y
        and position.x + settings.NODE_WIDTH <= bounds.x + bounds.width
        and position.y + settings.NODE_HEIGHT <= bounds.y + bounds.height
    )


def get_optimal_position_after_node(
    parent: WorkflowNode,
    existing_nodes: Sequence[WorkflowNode],
    edges: Sequence[WorkflowEdge],
    options: PositionOptions = DEFAULT_POSITION_OPTIONS,
) -> PositionResult:
    """Below a childless parent; above a parent that already has children."""
    if not get_child_nodes(parent.id, existing_nodes, edges):
        return calculate_below_position(parent, existing_nodes, options)
    return calculate_above_position(parent, existing_nodes, options)


def calculate_nodes_center(nodes: Sequence[WorkflowNode]) -> Position:
    if not nodes:
        return Position(0.0, 0.0)
    return Position(
        sum(node.position.x for node in nodes) / len(nodes),
        sum(node.position.y for node in nodes) / len(nodes),
    )


def get_default_start_position() -> Position:
    return snap_to_grid(Position(settings.DEFAULT_START_X, settings.DEFAULT_START_Y))
