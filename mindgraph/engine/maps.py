from __future__ import annotations

"""
MindGraph map operations outside the chat turn:

* create / list maps for an owner (dashboard-style listing)
* save a client-edited map, optionally remembering a map-level concept
* generate a map fragment for a prompt, and merge a fragment into a map
"""

import logging
import uuid
from dataclasses import replace
from typing import Any, Iterable, List, Optional, Tuple

from mindgraph.config import Settings
from mindgraph.errors import ValidationError
from mindgraph.graph.merge import MergeResult, merge_graph
from mindgraph.graph.records import Edge, Graph, MapSummary, Node
from mindgraph.llm.openai_wrapper import OpenAIEmbedder, OpenAIReasoner
from mindgraph.parser.parser import FragmentGenerator
from mindgraph.retrieval.semantic import RetrievalAssembler
from mindgraph.vector.embedder import MemorySync
from mindgraph.vector.index import PineconeIndex
from .turn import MapLocks

logger = logging.getLogger(__name__)


def _unique_by_id(items: Iterable[Any]) -> List[Any]:
    seen, out = set(), []
    for item in items:
        if item.id in seen:
            continue
        seen.add(item.id)
        out.append(item)
    return out


class MapService:
    def __init__(
        self,
        settings: Settings,
        store: Any,
        retriever: Any = None,
        generator: Any = None,
        memory_sync: Any = None,
        locks: Optional[MapLocks] = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.retriever = retriever
        self.generator = generator
        self.memory_sync = memory_sync
        self.locks = locks if locks is not None else MapLocks()

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------
    def create_map(self, owner_id: str, title: Optional[str] = None) -> str:
        map_id = self.store.create(owner_id, title=title)
        logger.info("created map %s for owner=%s", map_id, owner_id)
        return map_id

    def list_maps(self, owner_id: str) -> List[MapSummary]:
        if not owner_id:
            raise ValidationError("owner_id is required")
        return self.store.list_maps(owner_id)

    def save_map(
        self,
        owner_id: str,
        nodes: Iterable[Node],
        edges: Iterable[Edge],
        *,
        map_id: Optional[str] = None,
        concept: Optional[str] = None,
        title: Optional[str] = None,
        expected_revision: Optional[int] = None,
    ) -> Graph:
        """Create or overwrite a map with a client-edited graph.

        Without ``expected_revision`` the save overwrites whatever is stored;
        with it, the save is a compare-and-swap like a chat turn. The memory
        point for ``concept`` is written only after the graph write succeeded.
        """
        if not owner_id:
            raise ValidationError("owner_id is required")
        map_id = map_id or str(uuid.uuid4())
        nodes, edges = _unique_by_id(nodes), _unique_by_id(edges)

        with self.locks.hold(map_id):
            current = self.store.get(map_id)
            if current is None:
                graph = Graph(map_id=map_id, owner_id=owner_id, nodes=nodes, edges=edges, title=title)
                stored = self.store.put(graph, expected_revision=0)
            else:
                graph = replace(current, nodes=nodes, edges=edges, title=title or current.title)
                expected = current.revision if expected_revision is None else expected_revision
                stored = self.store.put(graph, expected_revision=expected)

        if concept and self.memory_sync is not None:
            self.memory_sync.remember_map(concept, owner_id, map_id)
        logger.info("saved map %s rev=%d (%d nodes)", map_id, stored.revision, len(stored.nodes))
        return stored

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------
    def generate_fragment(self, prompt: str, owner_id: str) -> Tuple[List[Node], List[Edge]]:
        """Generate (but do not store) a map fragment for ``prompt``."""
        if not prompt or not prompt.strip() or not owner_id:
            raise ValidationError("prompt and owner_id are required")
        context = self.retriever.assemble(prompt, owner_id, self.settings.generate_top_k)
        return self.generator.generate(prompt, context)

    def apply_fragment(
        self,
        map_id: str,
        owner_id: str,
        nodes: Iterable[Node],
        edges: Iterable[Edge],
        owner_display_name: Optional[str] = None,
    ) -> MergeResult:
        """Merge a generated fragment into a stored map (anchor + dedup rules)."""
        if not map_id or not owner_id:
            raise ValidationError("map_id and owner_id are required")
        with self.locks.hold(map_id):
            current = self.store.get(map_id) or Graph(map_id=map_id, owner_id=owner_id)
            merged = merge_graph(current, list(nodes), list(edges), owner_display_name)
            if merged.changed:
                merged.graph = self.store.put(merged.graph, expected_revision=current.revision)
        return merged


def build_map_service(settings: Settings, store: Any, locks: Optional[MapLocks] = None) -> MapService:
    """Wire the production collaborators: OpenAI, Pinecone and SQLite."""
    embedder = OpenAIEmbedder(settings)
    index = PineconeIndex(settings)
    return MapService(
        settings=settings,
        store=store,
        retriever=RetrievalAssembler(embedder, index, settings.collection),
        generator=FragmentGenerator(OpenAIReasoner(settings)),
        memory_sync=MemorySync(embedder, index, store, settings.collection),
        locks=locks,
    )
