from __future__ import annotations

"""
Reasoner output contract.

The reasoner must answer with exactly one JSON object::

    {"intent": "STORE_MEMORY" | "Q_AND_A" | "MIND_MAP",
     "data": {"nodes": [...], "edges": [...], "responseText": "...",
              "centerNodeId": "...", "concept": "..."}}

``decode_intent`` turns that text into one of three variants or raises
:class:`~mindgraph.errors.IntentDecodeError`. Nothing loosely shaped gets
through: a payload that fails any check is rejected as a whole.
"""

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union

from mindgraph.errors import IntentDecodeError
from mindgraph.graph.records import Edge, Node, Position

_FENCE_RE = re.compile(r"```(?:json|JSON)?")

DEFAULT_ACK = "Got it. I'll remember that."


class Intent(str, Enum):
    STORE_MEMORY = "STORE_MEMORY"
    Q_AND_A = "Q_AND_A"
    MIND_MAP = "MIND_MAP"


@dataclass(slots=True)
class StoreMemory:
    tag: ClassVar[Intent] = Intent.STORE_MEMORY

    nodes: List[Node]
    edges: List[Edge]
    response_text: str = DEFAULT_ACK
    concept: Optional[str] = None
    center_node_id: Optional[str] = None


@dataclass(slots=True)
class QuestionAnswer:
    tag: ClassVar[Intent] = Intent.Q_AND_A

    response_text: str
    center_node_id: Optional[str] = None
    nodes: List[Node] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)


@dataclass(slots=True)
class MindMap:
    tag: ClassVar[Intent] = Intent.MIND_MAP

    nodes: List[Node]
    edges: List[Edge]
    response_text: str
    center_node_id: Optional[str] = None


IntentPayload = Union[StoreMemory, QuestionAnswer, MindMap]


# ---------------------------------------------------------------------------
# Decoding helpers
# ---------------------------------------------------------------------------
def strip_fences(raw: str) -> str:
    """Remove markdown code fences the model wraps around JSON."""
    return _FENCE_RE.sub("", raw or "").strip()


def load_json_object(raw: str) -> Dict[str, Any]:
    text = strip_fences(raw)
    if not text:
        raise IntentDecodeError("empty reasoner response", raw=raw)
    try:
        obj = json.loads(text)
    except json.JSONDecodeError as e:
        raise IntentDecodeError(f"reasoner response is not valid JSON: {e}", raw=raw) from e
    if not isinstance(obj, dict):
        raise IntentDecodeError("reasoner response is not a JSON object", raw=raw)
    return obj


def _ident(value: Any, what: str) -> str:
    # bool is an int subclass; "true" is never an id
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise IntentDecodeError(f"{what} must be a string")
    ident = str(value).strip()
    if not ident:
        raise IntentDecodeError(f"{what} must not be empty")
    return ident


def _optional_text(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise IntentDecodeError(f"'{key}' must be a string")
    return value.strip() or None


def decode_node(raw: Any) -> Node:
    if not isinstance(raw, dict):
        raise IntentDecodeError("node entries must be objects")
    node_id = _ident(raw.get("id"), "node id")

    data = raw.get("data")
    label = data.get("label") if isinstance(data, dict) else None
    if label is None:
        label = raw.get("label")
    if not isinstance(label, str) or not label.strip():
        raise IntentDecodeError(f"node {node_id!r} has no label")

    pos = raw.get("position")
    if pos is None:
        position = Position()
    elif isinstance(pos, dict):
        try:
            position = Position(float(pos.get("x", 0)), float(pos.get("y", 0)))
        except (TypeError, ValueError) as e:
            raise IntentDecodeError(f"node {node_id!r} has a non-numeric position") from e
    else:
        raise IntentDecodeError(f"node {node_id!r} position must be an object")

    kind = raw.get("type") or "default"
    if not isinstance(kind, str):
        raise IntentDecodeError(f"node {node_id!r} type must be a string")
    return Node(id=node_id, label=label.strip(), position=position, kind=kind)


def decode_edge(raw: Any) -> Edge:
    if not isinstance(raw, dict):
        raise IntentDecodeError("edge entries must be objects")
    return Edge(
        id=_ident(raw.get("id"), "edge id"),
        source=_ident(raw.get("source"), "edge source"),
        target=_ident(raw.get("target"), "edge target"),
    )


def decode_fragment(data: Dict[str, Any]) -> Tuple[List[Node], List[Edge]]:
    raw_nodes = data.get("nodes") or []
    raw_edges = data.get("edges") or []
    if not isinstance(raw_nodes, list) or not isinstance(raw_edges, list):
        raise IntentDecodeError("'nodes' and 'edges' must be lists")
    return [decode_node(n) for n in raw_nodes], [decode_edge(e) for e in raw_edges]


# ---------------------------------------------------------------------------
# Public decoder
# ---------------------------------------------------------------------------
def decode_intent(raw: str) -> IntentPayload:
    """Parse raw reasoner text into a tagged intent payload."""
    obj = load_json_object(raw)
    try:
        return _decode(obj)
    except IntentDecodeError as e:
        if e.raw is None:
            e.raw = raw
        raise


def _decode(obj: Dict[str, Any]) -> IntentPayload:
    tag = obj.get("intent")
    try:
        intent = Intent(tag)
    except ValueError:
        raise IntentDecodeError(f"unknown or missing intent tag: {tag!r}") from None

    data = obj.get("data")
    if not isinstance(data, dict):
        raise IntentDecodeError("'data' must be an object")

    response_text = _optional_text(data, "responseText")
    center = data.get("centerNodeId")
    center_node_id = None if center in (None, "") else _ident(center, "centerNodeId")

    if intent is Intent.Q_AND_A:
        if not response_text:
            raise IntentDecodeError("Q_AND_A requires a non-empty responseText")
        return QuestionAnswer(response_text=response_text, center_node_id=center_node_id)

    nodes, edges = decode_fragment(data)

    if intent is Intent.STORE_MEMORY:
        if not nodes:
            raise IntentDecodeError("STORE_MEMORY requires at least one node")
        proposed_ids = {n.id for n in nodes}
        if not any(e.source in proposed_ids or e.target in proposed_ids for e in edges):
            raise IntentDecodeError("STORE_MEMORY requires an edge linking the new fact")
        return StoreMemory(
            nodes=nodes,
            edges=edges,
            response_text=response_text or DEFAULT_ACK,
            concept=_optional_text(data, "concept"),
            center_node_id=center_node_id,
        )

    if not nodes:
        raise IntentDecodeError("MIND_MAP requires at least one node")
    if not response_text:
        raise IntentDecodeError("MIND_MAP requires a confirmation responseText")
    return MindMap(nodes=nodes, edges=edges, response_text=response_text, center_node_id=center_node_id)
