from __future__ import annotations

"""Graph merge engine.

Reconciles a proposed fragment (nodes + edges emitted by the reasoner) with the
current graph. The merge is a pure function: ``current`` is never mutated and
no I/O happens here.

Order of operations
-------------------
1. Anchor guarantee: the ``user-node`` anchor is synthesized if missing,
   before anything else is merged.
2. Deduplication by id: first write wins. A proposed node/edge whose id is
   already present (in the graph, or earlier in the same proposal) is dropped.
   Semantically equal facts with new ids are *not* detected.
3. Survivors are appended in the order they were emitted.
4. Edges pointing at unknown node ids are kept as-is.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Iterable, List, Optional

from .records import ANCHOR_NODE_ID, Edge, Graph, Node, Position

logger = logging.getLogger(__name__)

DEFAULT_ANCHOR_LABEL = "Me"


@dataclass(slots=True)
class MergeResult:
    graph: Graph
    added_node_ids: List[str] = field(default_factory=list)
    added_edge_ids: List[str] = field(default_factory=list)
    anchor_created: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.anchor_created or self.added_node_ids or self.added_edge_ids)

    def added_nodes(self) -> List[Node]:
        wanted = set(self.added_node_ids)
        return [n for n in self.graph.nodes if n.id in wanted]

    def added_edges(self) -> List[Edge]:
        wanted = set(self.added_edge_ids)
        return [e for e in self.graph.edges if e.id in wanted]


def make_anchor(display_name: Optional[str] = None) -> Node:
    return Node(
        id=ANCHOR_NODE_ID,
        label=display_name or DEFAULT_ANCHOR_LABEL,
        position=Position(0.0, 0.0),
        kind="input",
    )


def merge_graph(
    current: Graph,
    proposed_nodes: Iterable[Node] = (),
    proposed_edges: Iterable[Edge] = (),
    owner_display_name: Optional[str] = None,
) -> MergeResult:
    """Merge a proposed fragment into ``current`` and return a new graph."""
    nodes = list(current.nodes)
    edges = list(current.edges)
    result = MergeResult(graph=current)

    # 1) anchor
    if not any(n.id == ANCHOR_NODE_ID for n in nodes):
        nodes.append(make_anchor(owner_display_name))
        result.anchor_created = True

    # 2 + 3) dedup, then append in emitted order
    seen_nodes = {n.id for n in nodes}
    for node in proposed_nodes:
        if node.id in seen_nodes:
            logger.debug("merge: dropping duplicate node id=%s", node.id)
            continue
        seen_nodes.add(node.id)
        nodes.append(node)
        result.added_node_ids.append(node.id)

    seen_edges = {e.id for e in edges}
    for edge in proposed_edges:
        if edge.id in seen_edges:
            logger.debug("merge: dropping duplicate edge id=%s", edge.id)
            continue
        seen_edges.add(edge.id)
        edges.append(edge)
        result.added_edge_ids.append(edge.id)

    if not result.changed:
        return result

    merged = replace(current, nodes=nodes, edges=edges)

    # 4) lenient referential integrity
    dangling = merged.dangling_edges()
    if dangling:
        logger.debug(
            "merge: map=%s keeps %d dangling edge(s): %s",
            current.map_id, len(dangling), [e.id for e in dangling],
        )

    result.graph = merged
    return result
