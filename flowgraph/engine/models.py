"""Graph snapshot types shared by every engine module.

A snapshot is a pair of lists (nodes, edges) owned by the caller. Every type
here is a frozen dataclass: engine operations never mutate what they are
given, they build new values with ``dataclasses.replace`` and return fresh
lists.

Node data is a tagged union on ``variant``:

- StepData   (``default``): a plain step
- BranchData (``branch``): carries the ordered branch slots
- EndData    (``end``): terminal step
- JumpData   (``jump``): carries the jump target id

so a branch list on a jump step (or a jump target on a branch) cannot be
expressed at all.

The ``*_from_dict`` / ``*_to_dict`` helpers translate to and from the
editor's JSON shape (``data.variant``, ``data.branches``,
``data.targetNodeId``, ``sourceHandle`` ...).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple, Union

NODE_VARIANTS = ("default", "branch", "end", "jump")

# Editor aliases accepted on input
_VARIANT_ALIASES = {"step": "default"}

# Keys of the editor's node.data owned by the typed fields
_TYPED_DATA_KEYS = {"variant", "label", "branches", "targetNodeId"}


@dataclass(frozen=True)
class Position:
    """Canvas coordinate of a node's top-left corner."""

    x: float
    y: float

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass(frozen=True)
class BranchSlot:
    """One outgoing port of a branch node.

    Attributes:
        id: Handle id; the only legal ``source_handle`` for edges through this slot
        label: Display label
        condition: Free-form condition text, opaque to the engine
    """

    id: str
    label: str = "Branch"
    condition: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "label": self.label, "condition": self.condition}


@dataclass(frozen=True)
class NodeDataBase:
    """Fields every variant carries.

    ``attributes`` holds the editor's remaining per-node fields
    (instructions, actions, faqs ...). The engine copies it through untouched.
    """

    variant: ClassVar[str] = ""

    label: str = ""
    attributes: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StepData(NodeDataBase):
    variant: ClassVar[str] = "default"


@dataclass(frozen=True)
class BranchData(NodeDataBase):
    variant: ClassVar[str] = "branch"

    branches: Tuple[BranchSlot, ...] = ()

    @property
    def handle_ids(self) -> List[str]:
        return [slot.id for slot in self.branches]


@dataclass(frozen=True)
class EndData(NodeDataBase):
    variant: ClassVar[str] = "end"


@dataclass(frozen=True)
class JumpData(NodeDataBase):
    variant: ClassVar[str] = "jump"

    target_node_id: Optional[str] = None


NodeData = Union[StepData, BranchData, EndData, JumpData]

_DATA_TYPES = {
    "default": StepData,
    "branch": BranchData,
    "end": EndData,
    "jump": JumpData,
}


@dataclass(frozen=True)
class WorkflowNode:
    """A workflow step on the canvas.

    Attributes:
        id: Unique node identifier
        position: Canvas position
        data: Variant-specific payload
        type: Renderer type, opaque to the engine
    """

    id: str
    position: Position
    data: NodeData = field(default_factory=StepData)
    type: str = "cardStep"

    @property
    def variant(self) -> str:
        return self.data.variant

    @property
    def label(self) -> str:
        return self.data.label

    def moved_to(self, position: Position) -> "WorkflowNode":
        return replace(self, position=position)


@dataclass(frozen=True)
class WorkflowEdge:
    """A directed connection between two nodes.

    Edges only reference nodes by id. Nothing is checked at construction:
    self-loops and dangling endpoints are reported by validation.
    """

    id: str
    source: str
    target: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None
    type: str = "default"
    animated: bool = True
    label: Optional[str] = None
    style: Optional[Mapping[str, Any]] = None


def edge_id(source: str, target: str, source_handle: Optional[str] = None) -> str:
    """Deterministic edge id: ``edge-<source>[-<handle>]-<target>``."""
    if source_handle:
        return f"edge-{source}-{source_handle}-{target}"
    return f"edge-{source}-{target}"


def make_node_data(variant: str, label: str = "", **fields: Any) -> NodeData:
    """Build the data record for ``variant``.

    Raises:
        ValueError: If variant is unknown
    """
    variant = _VARIANT_ALIASES.get(variant, variant)
    data_type = _DATA_TYPES.get(variant)
    if data_type is None:
        raise ValueError(f"unknown node variant '{variant}'")
    return data_type(label=label, **fields)


def node_index(nodes: List[WorkflowNode]) -> Dict[str, WorkflowNode]:
    """Map node id -> node (last one wins on duplicate ids)."""
    return {node.id: node for node in nodes}


# ---------------------------------------------------------------------------
# Editor JSON <-> snapshot types
# ---------------------------------------------------------------------------


def _branch_slot_from_dict(node_id: str, raw: Any) -> BranchSlot:
    if not isinstance(raw, Mapping) or not raw.get("id"):
        raise ValueError(f"branch slot on node {node_id} has no id")
    return BranchSlot(
        id=raw["id"],
        label=raw.get("label", "Branch"),
        condition=raw.get("condition") or "",
    )


def node_from_dict(raw: Mapping[str, Any]) -> WorkflowNode:
    """Build a node from the editor's JSON shape.

    Raises:
        ValueError: If id is missing, a branch slot has no id or the variant is unknown
    """
    node_id = raw.get("id")
    if not node_id:
        raise ValueError("node id cannot be empty")

    raw_position = raw.get("position") or {}
    position = Position(x=raw_position.get("x"), y=raw_position.get("y"))

    raw_data = dict(raw.get("data") or {})
    variant = raw_data.get("variant", "default")
    attributes = {k: v for k, v in raw_data.items() if k not in _TYPED_DATA_KEYS}

    fields: Dict[str, Any] = {}
    variant = _VARIANT_ALIASES.get(variant, variant)
    if variant == "branch":
        fields["branches"] = tuple(
            _branch_slot_from_dict(node_id, b) for b in raw_data.get("branches") or []
        )
    elif variant == "jump":
        fields["target_node_id"] = raw_data.get("targetNodeId")

    data = make_node_data(variant, raw_data.get("label", ""), attributes=attributes, **fields)
    return WorkflowNode(
        id=node_id,
        position=position,
        data=data,
        type=raw.get("type") or "cardStep",
    )


def node_to_dict(node: WorkflowNode) -> Dict[str, Any]:
    data: Dict[str, Any] = dict(node.data.attributes)
    data["variant"] = node.variant
    data["label"] = node.label
    if isinstance(node.data, BranchData):
        data["branches"] = [slot.to_dict() for slot in node.data.branches]
    elif isinstance(node.data, JumpData) and node.data.target_node_id:
        data["targetNodeId"] = node.data.target_node_id
    return {
        "id": node.id,
        "type": node.type,
        "position": node.position.to_dict(),
        "data": data,
    }


def edge_from_dict(raw: Mapping[str, Any]) -> WorkflowEdge:
    """Build an edge from the editor's JSON shape.

    A missing id is derived from the endpoints and handle.
    """
    source = raw.get("source", "")
    target = raw.get("target", "")
    source_handle = raw.get("sourceHandle")
    return WorkflowEdge(
        id=raw.get("id") or edge_id(source, target, source_handle),
        source=source,
        target=target,
        source_handle=source_handle,
        target_handle=raw.get("targetHandle"),
        type=raw.get("type") or "default",
        animated=raw.get("animated", True),
        label=raw.get("label"),
        style=raw.get("style"),
    )


def edge_to_dict(edge: WorkflowEdge) -> Dict[str, Any]:
    result: Dict[str, Any] = {
        "id": edge.id,
        "source": edge.source,
        "target": edge.target,
        "type": edge.type,
        "animated": edge.animated,
    }
    if edge.source_handle is not None:
        result["sourceHandle"] = edge.source_handle
    if edge.target_handle is not None:
        result["targetHandle"] = edge.target_handle
    if edge.label is not None:
        result["label"] = edge.label
    if edge.style is not None:
        result["style"] = dict(edge.style)
    return result
