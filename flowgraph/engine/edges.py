"""Edge Utilities for Workflow Graphs

Primitive operations over a snapshot's edge list:

- create_edge: deterministic edge construction
- find_node_connections: incoming/outgoing lookup
- detect_circular_dependencies: every independent cycle, iterative DFS
- find_paths_between_nodes: bounded simple-path enumeration
- collect_downstream_nodes: reachable nodes in depth-first preorder
- validate_edge_connections: dangling ends, self-loops, end out-degree, branch handles
- optimize_edge_layout: dedup on (source, target, source_handle)
- rerouting helpers used when a node is inserted between, above or below others

All functions are pure. Malformed graphs are reported through return values,
never raised.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterator, List, Mapping, Optional, Set

from ..settings import PATH_MAX_DEPTH
from .models import BranchData, WorkflowEdge, WorkflowNode, edge_id, node_index

logger = logging.getLogger(__name__)

# Stroke of edges leaving a branch slot
BRANCH_EDGE_STYLE = {"stroke": "#8b5cf6", "strokeWidth": 2}


@dataclass
class NodeConnections:
    """Edges touching one node.

    Attributes:
        incoming: Edges whose target is the node
        outgoing: Edges whose source is the node
        all: incoming followed by outgoing
    """

    incoming: List[WorkflowEdge]
    outgoing: List[WorkflowEdge]

    @property
    def all(self) -> List[WorkflowEdge]:
        return [*self.incoming, *self.outgoing]


@dataclass
class CycleReport:
    """Result of cycle detection.

    Attributes:
        has_circular_dependency: Whether at least one cycle exists
        cycles: Each cycle as a node-id path whose last entry repeats the first
    """

    has_circular_dependency: bool
    cycles: List[List[str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_circular_dependency": self.has_circular_dependency,
            "cycles": self.cycles,
        }


@dataclass
class EdgeValidationReport:
    """Edge-set validation result.

    Attributes:
        valid: True when there are no errors
        errors: Hard problems (dangling endpoints, self-loops, illegal handles)
        warnings: Soft problems (end node with several inbound edges)
    """

    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"valid": self.valid, "errors": self.errors, "warnings": self.warnings}


@dataclass
class EdgeCreationResult:
    """Outcome of a rerouting helper."""

    new_edges: List[WorkflowEdge] = field(default_factory=list)
    removed_edge_ids: List[str] = field(default_factory=list)
    success: bool = True
    error: Optional[str] = None


@dataclass(frozen=True)
class NodeUpdate:
    """Rename or removal of a node, applied to edge endpoints."""

    new_id: Optional[str] = None
    removed: bool = False


def create_edge(
    source: str,
    target: str,
    *,
    source_handle: Optional[str] = None,
    target_handle: Optional[str] = None,
    type: str = "default",
    animated: bool = True,
    label: Optional[str] = None,
    style: Optional[Mapping[str, Any]] = None,
) -> WorkflowEdge:
    """Create an edge whose id is derived from its logical connection.

    Calling twice with the same source, target and handle yields the same id.
    """
    return WorkflowEdge(
        id=edge_id(source, target, source_handle),
        source=source,
        target=target,
        source_handle=source_handle,
        target_handle=target_handle,
        type=type,
        animated=animated,
        label=label,
        style=style,
    )


def create_branch_edge(parent_node_id: str, branch_id: str, new_node_id: str) -> WorkflowEdge:
    """Edge from a branch slot of ``parent_node_id`` to ``new_node_id``."""
    return create_edge(
        parent_node_id,
        new_node_id,
        source_handle=branch_id,
        animated=True,
        style=BRANCH_EDGE_STYLE,
    )


def find_node_connections(node_id: str, edges: List[WorkflowEdge]) -> NodeConnections:
    incoming = [edge for edge in edges if edge.target == node_id]
    outgoing = [edge for edge in edges if edge.source == node_id]
    return NodeConnections(incoming=incoming, outgoing=outgoing)


def _adjacency(edges: List[WorkflowEdge]) -> Dict[str, List[str]]:
    graph: Dict[str, List[str]] = defaultdict(list)
    for edge in edges:
        graph[edge.source].append(edge.target)
    return graph


def detect_circular_dependencies(
    nodes: List[WorkflowNode], edges: List[WorkflowEdge]
) -> CycleReport:
    """Detect all cycles using an explicit-stack DFS.

    Roots are tried in node order. When the walk reaches a node that is on the
    current path, the path from that node onward (plus the node again) is
    recorded and the walk continues, so independent cycles are all reported.

    Args:
        nodes: Snapshot nodes
        edges: Snapshot edges

    Returns:
        CycleReport with every cycle found
    """
    graph = _adjacency(edges)
    visited: Set[str] = set()
    cycles: List[List[str]] = []

    for root in nodes:
        if root.id in visited:
            continue

        visited.add(root.id)
        path: List[str] = [root.id]
        on_path: Set[str] = {root.id}
        stack: List[Iterator[str]] = [iter(graph.get(root.id, []))]

        while stack:
            neighbor = next(stack[-1], None)
            if neighbor is None:
                stack.pop()
                on_path.discard(path.pop())
                continue

            if neighbor in on_path:
                cycle_start = path.index(neighbor)
                cycles.append(path[cycle_start:] + [neighbor])
                continue

            if neighbor in visited:
                continue

            visited.add(neighbor)
            path.append(neighbor)
            on_path.add(neighbor)
            stack.append(iter(graph.get(neighbor, [])))

    if cycles:
        logger.debug(f"Detected {len(cycles)} cycle(s): {cycles}")

    return CycleReport(has_circular_dependency=bool(cycles), cycles=cycles)


def find_paths_between_nodes(
    source_node_id: str,
    target_node_id: str,
    edges: List[WorkflowEdge],
    max_depth: int = PATH_MAX_DEPTH,
) -> List[List[str]]:
    """Enumerate simple paths from source to target of at most ``max_depth`` hops.

    Exponential on dense graphs; keep ``max_depth`` small (<= 10).
    """
    graph = _adjacency(edges)
    paths: List[List[str]] = []

    def dfs(current: str, path: List[str], depth: int) -> None:
        if depth > max_depth:
            return

        path = path + [current]
        if current == target_node_id:
            paths.append(path)
            return

        on_path = set(path)
        for neighbor in graph.get(current, []):
            if neighbor not in on_path:
                dfs(neighbor, path, depth + 1)

    dfs(source_node_id, [], 0)
    return paths


def collect_downstream_nodes(
    start_node_id: str,
    nodes: List[WorkflowNode],
    edges: List[WorkflowEdge],
    visited: Optional[Set[str]] = None,
) -> List[WorkflowNode]:
    """Every node reachable from ``start_node_id``, in depth-first preorder.

    Outgoing edges are followed in edge order. Each node is returned once;
    nodes already in ``visited`` (which is updated in place) are skipped, so
    reconverging paths and cycles terminate. Edges to unknown nodes are ignored.
    """
    if visited is None:
        visited = set()
    if start_node_id in visited:
        return []

    by_id = node_index(nodes)
    outgoing: Dict[str, List[str]] = _adjacency(edges)

    visited.add(start_node_id)
    result: List[WorkflowNode] = []
    stack: List[Iterator[str]] = [iter(outgoing.get(start_node_id, []))]

    while stack:
        child_id = next(stack[-1], None)
        if child_id is None:
            stack.pop()
            continue

        child = by_id.get(child_id)
        if child is None or child_id in visited:
            continue

        visited.add(child_id)
        result.append(child)
        stack.append(iter(outgoing.get(child_id, [])))

    return result


def validate_edge_connections(
    nodes: List[WorkflowNode], edges: List[WorkflowEdge]
) -> EdgeValidationReport:
    """Validate edge endpoints and node-variant rules.

    Errors:
        - source or target does not exist (remaining checks skipped for that edge)
        - end node used as a source
        - self-loop
        - source handle that is not a branch id of its branch source node

    Warnings:
        - end node with more than one incoming edge
    """
    errors: List[str] = []
    warnings: List[str] = []
    by_id = node_index(nodes)

    inbound_counts: Dict[str, int] = defaultdict(int)
    for edge in edges:
        inbound_counts[edge.target] += 1

    warned_end_nodes: Set[str] = set()

    for edge in edges:
        source_node = by_id.get(edge.source)
        target_node = by_id.get(edge.target)

        if source_node is None:
            errors.append(f"Edge {edge.id} references non-existent source node: {edge.source}")
            continue
        if target_node is None:
            errors.append(f"Edge {edge.id} references non-existent target node: {edge.target}")
            continue

        if source_node.variant == "end":
            errors.append(f"End node {source_node.id} cannot be a source node")

        if (
            target_node.variant == "end"
            and inbound_counts[target_node.id] > 1
            and target_node.id not in warned_end_nodes
        ):
            warned_end_nodes.add(target_node.id)
            warnings.append(f"End node {target_node.id} has multiple incoming connections")

        if edge.source == edge.target:
            errors.append(f"Self-loop detected in edge {edge.id}")

        if edge.source_handle and isinstance(source_node.data, BranchData):
            if edge.source_handle not in source_node.data.handle_ids:
                errors.append(
                    f"Invalid branch handle {edge.source_handle} on node {source_node.id}"
                )

    return EdgeValidationReport(valid=not errors, errors=errors, warnings=warnings)


def optimize_edge_layout(edges: List[WorkflowEdge]) -> List[WorkflowEdge]:
    """Drop edges repeating an earlier (source, target, source_handle)."""
    seen: Set[tuple] = set()
    result: List[WorkflowEdge] = []
    for edge in edges:
        key = (edge.source, edge.target, edge.source_handle or "default")
        if key in seen:
            continue
        seen.add(key)
        result.append(edge)
    return result


def get_edges_to_remove_for_node(node_id: str, edges: List[WorkflowEdge]) -> List[str]:
    """Ids of every edge touching ``node_id``."""
    return [edge.id for edge in find_node_connections(node_id, edges).all]


def update_edge_endpoints(
    edges: List[WorkflowEdge], node_updates: Mapping[str, NodeUpdate]
) -> List[WorkflowEdge]:
    """Apply node renames/removals to edge endpoints.

    Edges touching a removed node are dropped; renamed endpoints are rewritten.
    """
    result: List[WorkflowEdge] = []
    for edge in edges:
        source_update = node_updates.get(edge.source)
        target_update = node_updates.get(edge.target)
        if (source_update and source_update.removed) or (target_update and target_update.removed):
            continue

        new_source = source_update.new_id if source_update and source_update.new_id else edge.source
        new_target = target_update.new_id if target_update and target_update.new_id else edge.target
        if new_source != edge.source or new_target != edge.target:
            edge = replace(edge, source=new_source, target=new_target)
        result.append(edge)
    return result


# ---------------------------------------------------------------------------
# Rerouting for node insertion
# ---------------------------------------------------------------------------


def reroute_edges_for_insertion(
    inserted_node_id: str,
    source_node_id: str,
    target_node_id: str,
    existing_edges: List[WorkflowEdge],
) -> EdgeCreationResult:
    """Split ``source -> target`` into ``source -> inserted -> target``.

    The new edges inherit the original's handles, animation and style.
    """
    original = next(
        (e for e in existing_edges if e.source == source_node_id and e.target == target_node_id),
        None,
    )
    if original is None:
        return EdgeCreationResult(success=False, error="Original edge not found")

    new_edges = [
        create_edge(
            source_node_id,
            inserted_node_id,
            source_handle=original.source_handle,
            animated=original.animated,
            style=original.style,
        ),
        create_edge(
            inserted_node_id,
            target_node_id,
            target_handle=original.target_handle,
            animated=original.animated,
            style=original.style,
        ),
    ]
    return EdgeCreationResult(new_edges=new_edges, removed_edge_ids=[original.id])


def reroute_edges_for_above_insertion(
    new_node_id: str,
    existing_node_id: str,
    existing_edges: List[WorkflowEdge],
) -> EdgeCreationResult:
    """Move every incoming edge of ``existing_node_id`` onto the new node above it."""
    incoming = find_node_connections(existing_node_id, existing_edges).incoming

    new_edges: List[WorkflowEdge] = []
    removed: List[str] = []
    for edge in incoming:
        new_edges.append(
            create_edge(
                edge.source,
                new_node_id,
                source_handle=edge.source_handle,
                animated=edge.animated,
                style=edge.style,
            )
        )
        removed.append(edge.id)

    new_edges.append(create_edge(new_node_id, existing_node_id))
    return EdgeCreationResult(new_edges=new_edges, removed_edge_ids=removed)


def create_edge_for_below_insertion(parent_node_id: str, new_node_id: str) -> EdgeCreationResult:
    return EdgeCreationResult(new_edges=[create_edge(parent_node_id, new_node_id)])
