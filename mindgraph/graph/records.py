from __future__ import annotations

"""Typed record helpers used by the graph layer.

These dataclasses mirror the stored map document but are intentionally
lightweight. They help us pass structured data around instead of raw dicts.
Nodes serialize in the canvas shape::

    {"id": "n1", "type": "default", "data": {"label": "Rex"},
     "position": {"x": 0, "y": 0}}
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

ANCHOR_NODE_ID = "user-node"


@dataclass(slots=True, frozen=True)
class Position:
    x: float = 0.0
    y: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass(slots=True, frozen=True)
class Node:
    id: str
    label: str
    position: Position = field(default_factory=Position)
    kind: str = "default"    # 'default' | 'input' | anything the canvas knows

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.kind,
            "data": {"label": self.label},
            "position": self.position.to_dict(),
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Node":
        """Lenient loader for stored documents. Strict decoding of model
        output lives in :mod:`mindgraph.parser.intents`."""
        data = raw.get("data") or {}
        pos = raw.get("position") or {}
        return cls(
            id=str(raw["id"]),
            label=str(data.get("label", raw.get("label", ""))),
            position=Position(float(pos.get("x", 0)), float(pos.get("y", 0))),
            kind=str(raw.get("type") or "default"),
        )


@dataclass(slots=True, frozen=True)
class Edge:
    id: str
    source: str
    target: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "source": self.source, "target": self.target}

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Edge":
        return cls(id=str(raw["id"]), source=str(raw["source"]), target=str(raw["target"]))


@dataclass(slots=True)
class Graph:
    """One user's mind map.

    ``revision`` is 0 until the graph is first persisted and is bumped by the
    store on every successful write.
    """

    map_id: str
    owner_id: str
    nodes: List[Node] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)
    revision: int = 0
    title: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def node_ids(self) -> set:
        return {n.id for n in self.nodes}

    def edge_ids(self) -> set:
        return {e.id for e in self.edges}

    def get_node(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def has_anchor(self) -> bool:
        return any(n.id == ANCHOR_NODE_ID for n in self.nodes)

    def dangling_edges(self) -> List[Edge]:
        """Edges whose source or target is not a node of this graph."""
        ids = self.node_ids()
        return [e for e in self.edges if e.source not in ids or e.target not in ids]

    def map_data(self) -> Dict[str, Any]:
        """The stored document body (nodes + edges only)."""
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }


@dataclass(slots=True)
class MapSummary:
    """Row shown in a map listing."""

    map_id: str
    owner_id: str
    title: Optional[str]
    node_count: int
    revision: int
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass(slots=True)
class MemoryPoint:
    """A unit of the semantic memory index.

    ``point_id`` is always freshly generated and never equal to a node id;
    the two identifier spaces are kept apart.
    """

    point_id: str
    vector: List[float]
    owner_id: str
    text: str
    map_id: str
    node_id: Optional[str] = None

    @property
    def payload(self) -> Dict[str, Any]:
        payload = {"ownerId": self.owner_id, "text": self.text, "mapId": self.map_id}
        # Pinecone metadata rejects null values
        if self.node_id is not None:
            payload["nodeId"] = self.node_id
        return payload
