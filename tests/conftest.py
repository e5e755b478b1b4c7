"""MindGraph test configuration: in-process fakes for OpenAI and Pinecone."""
import json
import threading

import pytest

from mindgraph.config import Settings
from mindgraph.errors import DependencyUnavailable
from mindgraph.graph.store import GraphStore
from mindgraph.parser.parser import IntentRouter
from mindgraph.retrieval.semantic import RetrievalAssembler
from mindgraph.vector.embedder import MemorySync
from mindgraph.engine.turn import TurnOrchestrator


def intent_json(intent, **data):
    """Build a reasoner answer in the three-intent JSON contract."""
    return json.dumps({"intent": intent, "data": data})


def node_dict(node_id, label, x=0, y=0, kind="default"):
    return {"id": node_id, "type": kind, "data": {"label": label}, "position": {"x": x, "y": y}}


def edge_dict(edge_id, source, target):
    return {"id": edge_id, "source": source, "target": target}


class FakeEmbedder:
    def __init__(self):
        self.calls = []
        self.error = None

    def embed(self, text):
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return [float(len(text)), 1.0, 0.0]


class FakeReasoner:
    """Returns queued answers in order; ``responder`` overrides the queue."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []
        self.responder = None
        self._lock = threading.Lock()

    def generate(self, instruction, context):
        with self._lock:
            self.calls.append((instruction, context))
            if self.responder is not None:
                return self.responder(instruction, context)
            answer = self.responses.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return answer


class FakeIndex:
    """Owner-filtered in-memory vector index. Search ranks by insertion, newest first."""

    def __init__(self):
        self.points = {}
        self.searches = []
        self.search_error = None
        self.upsert_error = None

    def search(self, collection, vector, owner_id, limit):
        self.searches.append((collection, owner_id, limit))
        if self.search_error is not None:
            raise self.search_error
        hits = [
            {"id": pid, "score": 1.0 / (rank + 1), "payload": dict(payload)}
            for rank, (pid, (coll, _, payload)) in enumerate(reversed(list(self.points.items())))
            if coll == collection and payload["ownerId"] == owner_id
        ]
        return hits[:limit]

    def upsert(self, collection, points):
        if self.upsert_error is not None:
            raise self.upsert_error
        for p in points:
            self.points[p.point_id] = (collection, p.vector, p.payload)
        return len(points)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        db_path=str(tmp_path / "mindgraph.db"),
        log_dir=str(tmp_path / "logs"),
        openai_api_key="sk-test",
        pinecone_api_key="pc-test",
    )


@pytest.fixture
def store(settings):
    s = GraphStore(settings)
    yield s
    s.close()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def index():
    return FakeIndex()


@pytest.fixture
def reasoner():
    return FakeReasoner()


@pytest.fixture
def memory_sync(embedder, index, store, settings):
    return MemorySync(embedder, index, store, settings.collection)


@pytest.fixture
def orchestrator(settings, store, embedder, index, reasoner, memory_sync):
    return TurnOrchestrator(
        settings=settings,
        store=store,
        retriever=RetrievalAssembler(embedder, index, settings.collection),
        router=IntentRouter(reasoner),
        memory_sync=memory_sync,
    )


@pytest.fixture
def unavailable():
    return DependencyUnavailable("index unreachable")
