"""MindGraph graph subsystem (public API).

    from mindgraph.graph import GraphStore, merge_graph

This file stays tiny. Implementation lives in the sibling modules.
"""

from .records import ANCHOR_NODE_ID, Edge, Graph, MapSummary, MemoryPoint, Node, Position
from .merge import MergeResult, merge_graph
from .store import GraphStore

__all__ = [
    "ANCHOR_NODE_ID",
    "Edge",
    "Graph",
    "GraphStore",
    "MapSummary",
    "MemoryPoint",
    "MergeResult",
    "Node",
    "Position",
    "merge_graph",
]
