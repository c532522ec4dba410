"""Spacing Engine: consistent vertical gaps along a chain of nodes.

The next node's y is ``previous.y + height(previous) + minimum_gap``, where
height comes from a per-variant estimate unless live measurement is enabled.

The editor re-invokes spacing on every node-size change, and a spacing pass
itself changes node positions. SpacingScheduler breaks that loop:

- one pending asyncio timer coalesces bursts of changes into a single pass
- node ids currently being repositioned are tracked in an in-flight set, and
  any re-entry for such a node is a no-op

One scheduler is owned per editor session.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional, Sequence, Set

from .. import settings
from .edges import collect_downstream_nodes
from .models import Position, WorkflowEdge, WorkflowNode

logger = logging.getLogger(__name__)

NODE_HEIGHT_ESTIMATES: Dict[str, float] = {
    "default": 160.0,
    "branch": 140.0,
    "end": 120.0,
    "jump": 130.0,
}

HeightProbe = Callable[[WorkflowNode], Optional[float]]


@dataclass(frozen=True)
class SpacingConfig:
    minimum_gap: float = settings.SPACING_MIN_GAP
    use_actual_height: bool = settings.SPACING_USE_ACTUAL_HEIGHT
    fallback_height: float = settings.SPACING_FALLBACK_HEIGHT
    debounce_ms: int = settings.SPACING_DEBOUNCE_MS


DEFAULT_SPACING_CONFIG = SpacingConfig()


@dataclass(frozen=True)
class PositionUpdate:
    node_id: str
    new_position: Position

    def to_dict(self) -> Dict[str, object]:
        return {"node_id": self.node_id, "new_position": self.new_position.to_dict()}


UpdateCallback = Callable[[List[PositionUpdate]], None]


def create_spacing_config(**overrides) -> SpacingConfig:
    """Default config with ``overrides`` applied (unknown keys raise TypeError)."""
    return replace(DEFAULT_SPACING_CONFIG, **overrides)


def estimate_node_height(node: WorkflowNode, config: SpacingConfig = DEFAULT_SPACING_CONFIG) -> float:
    return NODE_HEIGHT_ESTIMATES.get(node.variant, config.fallback_height)


def get_vertical_node_chain(
    start_node_id: str,
    nodes: Sequence[WorkflowNode],
    edges: Sequence[WorkflowEdge],
) -> List[WorkflowNode]:
    """Nodes below ``start_node_id`` in flow order, each once."""
    return collect_downstream_nodes(start_node_id, list(nodes), list(edges))


def apply_position_updates(
    nodes: Sequence[WorkflowNode], updates: Sequence[PositionUpdate]
) -> List[WorkflowNode]:
    """Fresh node list with ``updates`` applied."""
    new_positions = {update.node_id: update.new_position for update in updates}
    return [
        node.moved_to(new_positions[node.id]) if node.id in new_positions else node
        for node in nodes
    ]


class SpacingScheduler:
    """Debounced, re-entrancy-guarded spacing passes for one editor session.

    Args:
        config: Gap, height and debounce settings
        height_probe: Optional callable returning a node's measured height.
            Consulted only when ``config.use_actual_height`` is set.
    """

    def __init__(
        self,
        config: SpacingConfig = DEFAULT_SPACING_CONFIG,
        height_probe: Optional[HeightProbe] = None,
    ):
        self.config = config
        self._height_probe = height_probe
        self._processing: Set[str] = set()
        self._timer: Optional[asyncio.TimerHandle] = None
        self._pending: Optional[Callable[[], List[PositionUpdate]]] = None

    # ------------------------------------------------------------------
    # Guard state
    # ------------------------------------------------------------------

    def is_processing(self, node_id: str) -> bool:
        return node_id in self._processing

    @property
    def has_pending_update(self) -> bool:
        return self._timer is not None

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def get_node_height(self, node: WorkflowNode) -> float:
        estimate = estimate_node_height(node, self.config)
        if node.id in self._processing:
            return estimate
        if not self.config.use_actual_height or self._height_probe is None:
            return estimate

        try:
            measured = self._height_probe(node)
        except Exception as e:
            logger.warning(f"Failed to measure height of node {node.id}: {e}")
            return estimate

        if measured and measured > 0:
            return max(estimate, measured)
        return estimate

    def calculate_consistent_spacing(self, previous_node: WorkflowNode) -> float:
        return previous_node.position.y + self.get_node_height(previous_node) + self.config.minimum_gap

    def calculate_new_node_position(self, parent_node: WorkflowNode) -> Position:
        """Directly below ``parent_node``, same x."""
        return Position(parent_node.position.x, self.calculate_consistent_spacing(parent_node))

    def calculate_chain_repositioning(
        self,
        changed_node_id: str,
        nodes: Sequence[WorkflowNode],
        edges: Sequence[WorkflowEdge],
    ) -> List[PositionUpdate]:
        """Position updates for the chain below ``changed_node_id``.

        Only nodes whose y is off by more than the tolerance are returned;
        x never changes. Returns [] for an in-flight or unknown node.
        """
        if changed_node_id in self._processing:
            logger.debug(f"Spacing re-entry for {changed_node_id} suppressed")
            return []

        changed = next((n for n in nodes if n.id == changed_node_id), None)
        if changed is None:
            return []

        updates: List[PositionUpdate] = []
        previous = changed
        for node in get_vertical_node_chain(changed_node_id, nodes, edges):
            expected_y = self.calculate_consistent_spacing(previous)
            if abs(node.position.y - expected_y) > settings.SPACING_TOLERANCE:
                updates.append(PositionUpdate(node.id, Position(node.position.x, expected_y)))
                # Later gaps are measured from where this node will be
                previous = node.moved_to(Position(node.position.x, expected_y))
            else:
                previous = node

        return updates

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def schedule_spacing_update(
        self,
        changed_node_id: str,
        nodes: Sequence[WorkflowNode],
        edges: Sequence[WorkflowEdge],
        callback: UpdateCallback,
    ) -> bool:
        """Schedule one spacing pass after ``debounce_ms``.

        Any pending pass is cancelled first. Must be called from a running
        event loop.

        Returns:
            False when the request was suppressed because the node is in flight
        """
        if changed_node_id in self._processing:
            logger.debug(f"Spacing schedule for {changed_node_id} suppressed (in flight)")
            return False

        loop = asyncio.get_running_loop()
        self._cancel_timer()

        snapshot_nodes = list(nodes)
        snapshot_edges = list(edges)
        self._pending = lambda: self._run_pass(changed_node_id, snapshot_nodes, snapshot_edges, callback)
        self._timer = loop.call_later(self.config.debounce_ms / 1000, self._fire)
        return True

    def flush(self) -> List[PositionUpdate]:
        """Run the pending pass now instead of waiting for the timer."""
        self._cancel_timer()
        pending, self._pending = self._pending, None
        if pending is None:
            return []
        return pending()

    def cleanup(self) -> None:
        """Cancel the pending pass and clear the in-flight set (session teardown)."""
        self._cancel_timer()
        self._pending = None
        self._processing.clear()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        self._timer = None
        pending, self._pending = self._pending, None
        if pending is not None:
            pending()

    def _run_pass(
        self,
        node_id: str,
        nodes: List[WorkflowNode],
        edges: List[WorkflowEdge],
        callback: UpdateCallback,
    ) -> List[PositionUpdate]:
        updates: List[PositionUpdate] = []
        try:
            updates = self.calculate_chain_repositioning(node_id, nodes, edges)
            self._processing.add(node_id)
            if updates:
                logger.debug(f"Spacing pass for {node_id}: {len(updates)} node(s) moved")
                callback(updates)
        except Exception:
            logger.exception(f"Error in spacing update for {node_id}")
        finally:
            self._processing.discard(node_id)
        return updates
