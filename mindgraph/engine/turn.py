from __future__ import annotations

"""
MindGraph turn orchestration
============================

One chat turn runs these stages strictly in order::

    RETRIEVING -> CLASSIFYING -> MERGING -> SYNCING_MEMORY? -> PERSISTING -> DONE
                                  (any stage may end in FAILED)

* RETRIEVING never fails the turn; it degrades to an empty context.
* CLASSIFYING failures (bad model output, reasoner down) end the turn before
  anything touches the graph.
* MERGING is pure.
* SYNCING_MEMORY failures are logged and parked for replay; the turn goes on.
* PERSISTING failures end the turn; success is never reported for a graph
  that was not written.

Read-merge-write for a map runs under a per-map lock, and the write itself is
a compare-and-swap on the map revision, so a concurrent writer in another
process makes this turn fail with ``concurrent_modification`` rather than
silently losing an update.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from mindgraph.config import Settings
from mindgraph.errors import MindGraphError, TurnFailed, ValidationError
from mindgraph.graph.merge import merge_graph
from mindgraph.graph.records import Edge, Graph, Node
from mindgraph.graph.store import GraphStore
from mindgraph.llm.openai_wrapper import OpenAIEmbedder, OpenAIReasoner
from mindgraph.parser.intents import Intent, QuestionAnswer, StoreMemory
from mindgraph.parser.parser import IntentRouter
from mindgraph.retrieval.semantic import RetrievalAssembler
from mindgraph.vector.embedder import MemorySync
from mindgraph.vector.index import PineconeIndex

logger = logging.getLogger(__name__)


class TurnState(str, Enum):
    RETRIEVING = "RETRIEVING"
    CLASSIFYING = "CLASSIFYING"
    MERGING = "MERGING"
    SYNCING_MEMORY = "SYNCING_MEMORY"
    PERSISTING = "PERSISTING"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass(slots=True)
class TurnRequest:
    text: str
    map_id: str
    owner_id: str
    owner_display_name: Optional[str] = None

    def validate(self) -> None:
        missing = [
            name for name, value in (
                ("text", self.text), ("map_id", self.map_id), ("owner_id", self.owner_id)
            )
            if not value or not str(value).strip()
        ]
        if missing:
            raise ValidationError(f"missing {', '.join(missing)}")


@dataclass(slots=True)
class TurnResult:
    intent: Intent
    response_text: str
    map_id: str
    center_node_id: Optional[str] = None
    nodes_added: List[Node] = field(default_factory=list)
    edges_added: List[Edge] = field(default_factory=list)
    revision: int = 0
    memory_point_id: Optional[str] = None
    trace: List[TurnState] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "intent": self.intent.value,
            "responseText": self.response_text,
            "nodesAdded": [n.to_dict() for n in self.nodes_added],
            "edgesAdded": [e.to_dict() for e in self.edges_added],
        }
        if self.center_node_id is not None:
            out["centerNodeId"] = self.center_node_id
        return out


class MapLocks:
    """One lock per map id: turns on the same map run one at a time.

    An entry lives only while some caller holds or waits on it.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, List[Any]] = {}    # map_id -> [lock, holders]

    @contextmanager
    def hold(self, map_id: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(map_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[map_id]


class TurnOrchestrator:
    """Runs chat turns against one graph store and one semantic index."""

    def __init__(
        self,
        settings: Settings,
        store: Any,
        retriever: Any,
        router: Any,
        memory_sync: Any,
        locks: Optional[MapLocks] = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.retriever = retriever
        self.router = router
        self.memory_sync = memory_sync
        self.locks = locks if locks is not None else MapLocks()

    def run_turn(self, request: TurnRequest) -> TurnResult:
        trace: List[TurnState] = []

        def enter(state: TurnState) -> TurnState:
            trace.append(state)
            logger.debug("turn map=%s -> %s", request.map_id, state.value)
            return state

        def fail(state: TurnState, error: MindGraphError) -> TurnFailed:
            trace.append(TurnState.FAILED)
            logger.error("turn map=%s failed in %s [%s]: %s", request.map_id, state.value, error.kind, error)
            return TurnFailed(
                f"turn failed: {error}", kind=error.kind, state=state.value, trace=list(trace)
            )

        try:
            request.validate()
        except ValidationError as e:
            logger.warning("rejected turn: %s", e)
            raise TurnFailed(f"invalid request: {e}", kind=e.kind, state=None) from e

        state = enter(TurnState.RETRIEVING)
        context = self.retriever.assemble(request.text, request.owner_id, self.settings.chat_top_k)

        state = enter(TurnState.CLASSIFYING)
        try:
            payload = self.router.classify(request.text, context, request.owner_display_name)
        except MindGraphError as e:
            raise fail(state, e) from e

        with self.locks.hold(request.map_id):
            state = enter(TurnState.MERGING)
            try:
                current = self.store.get(request.map_id)
            except MindGraphError as e:
                raise fail(state, e) from e
            if current is None:
                current = Graph(map_id=request.map_id, owner_id=request.owner_id)

            if isinstance(payload, QuestionAnswer):
                proposed_nodes, proposed_edges = [], []
            else:
                proposed_nodes, proposed_edges = payload.nodes, payload.edges
            merged = merge_graph(current, proposed_nodes, proposed_edges, request.owner_display_name)

            point = None
            if isinstance(payload, StoreMemory) and payload.concept:
                state = enter(TurnState.SYNCING_MEMORY)
                point = self.memory_sync.sync(
                    payload.concept,
                    request.text,
                    request.owner_id,
                    request.map_id,
                    merged.added_node_ids,
                )

            state = enter(TurnState.PERSISTING)
            revision = current.revision
            if merged.changed:
                try:
                    stored = self.store.put(merged.graph, expected_revision=current.revision)
                except MindGraphError as e:
                    raise fail(state, e) from e
                revision = stored.revision

        enter(TurnState.DONE)

        center = payload.center_node_id
        if center is None and isinstance(payload, StoreMemory) and merged.added_node_ids:
            center = merged.added_node_ids[0]

        logger.info(
            "turn map=%s intent=%s +%d node(s) +%d edge(s) rev=%d",
            request.map_id, payload.tag.value,
            len(merged.added_node_ids), len(merged.added_edge_ids), revision,
        )
        return TurnResult(
            intent=payload.tag,
            response_text=payload.response_text,
            map_id=request.map_id,
            center_node_id=center,
            nodes_added=merged.added_nodes(),
            edges_added=merged.added_edges(),
            revision=revision,
            memory_point_id=point.point_id if point else None,
            trace=trace,
        )


def build_orchestrator(
    settings: Settings,
    store: Any = None,
    locks: Optional[MapLocks] = None,
) -> TurnOrchestrator:
    """Wire the production collaborators: OpenAI, Pinecone and SQLite."""
    store = store or GraphStore(settings)
    embedder = OpenAIEmbedder(settings)
    index = PineconeIndex(settings)
    return TurnOrchestrator(
        settings=settings,
        store=store,
        retriever=RetrievalAssembler(embedder, index, settings.collection),
        router=IntentRouter(OpenAIReasoner(settings)),
        memory_sync=MemorySync(embedder, index, store, settings.collection),
        locks=locks,
    )
