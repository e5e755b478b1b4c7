"""End-to-end chat turns against fakes for the reasoner, embedder and index."""
import re
import threading
import time
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from conftest import edge_dict, intent_json, node_dict
from mindgraph.engine.maps import build_map_service
from mindgraph.engine.turn import MapLocks, TurnOrchestrator, TurnRequest, TurnState, build_orchestrator
from mindgraph.errors import DependencyUnavailable, PersistenceError, TurnFailed
from mindgraph.graph.records import ANCHOR_NODE_ID, Node
from mindgraph.llm.openai_wrapper import OpenAIEmbedder
from mindgraph.parser.intents import Intent
from mindgraph.parser.parser import IntentRouter
from mindgraph.retrieval.semantic import RetrievalAssembler
from mindgraph.vector.embedder import MemorySync


def store_fact(node_id, label, concept=None, ack="Noted."):
    return intent_json(
        "STORE_MEMORY",
        nodes=[node_dict(node_id, label, 150, 0)],
        edges=[edge_dict(f"e-{node_id}", ANCHOR_NODE_ID, node_id)],
        concept=concept or label,
        responseText=ack,
    )


def request(text, map_id="m1", owner_id="u1", name="Alice"):
    return TurnRequest(text=text, map_id=map_id, owner_id=owner_id, owner_display_name=name)


class TestStoreMemory:
    def test_scenario_a_first_fact_on_empty_map(self, orchestrator, reasoner, store, index):
        reasoner.responses.append(store_fact("n1", "Rex", ack="Noted, your dog is Rex."))

        result = orchestrator.run_turn(request("My dog's name is Rex"))

        assert result.intent is Intent.STORE_MEMORY
        assert result.response_text == "Noted, your dog is Rex."
        assert [n.id for n in result.nodes_added] == ["n1"]
        assert [e.id for e in result.edges_added] == ["e-n1"]
        assert result.center_node_id == "n1"
        assert result.revision == 1

        graph = store.get("m1")
        assert [n.id for n in graph.nodes] == [ANCHOR_NODE_ID, "n1"]
        assert graph.get_node(ANCHOR_NODE_ID).label == "Alice"
        assert len(graph.edges) == 1

        assert len(index.points) == 1
        point_id = result.memory_point_id
        _, _, payload = index.points[point_id]
        assert payload["nodeId"] == "n1"
        assert payload["ownerId"] == "u1"
        assert payload["text"] == "My dog's name is Rex"
        assert point_id != "n1"

    def test_trace_lists_every_stage(self, orchestrator, reasoner):
        reasoner.responses.append(store_fact("n1", "Rex"))
        result = orchestrator.run_turn(request("My dog's name is Rex"))
        assert result.trace == [
            TurnState.RETRIEVING,
            TurnState.CLASSIFYING,
            TurnState.MERGING,
            TurnState.SYNCING_MEMORY,
            TurnState.PERSISTING,
            TurnState.DONE,
        ]

    def test_repeated_fact_adds_nothing(self, orchestrator, reasoner, store):
        reasoner.responses.extend([store_fact("n1", "Rex"), store_fact("n1", "Rex")])
        orchestrator.run_turn(request("My dog's name is Rex"))
        result = orchestrator.run_turn(request("My dog's name is Rex"))

        assert result.nodes_added == []
        assert result.revision == 1
        assert len(store.get("m1").nodes) == 2

    def test_memory_sync_failure_does_not_fail_turn(self, orchestrator, reasoner, store, index, unavailable):
        index.upsert_error = unavailable
        reasoner.responses.append(store_fact("n1", "Rex"))

        result = orchestrator.run_turn(request("My dog's name is Rex"))

        assert result.memory_point_id is None
        assert store.get("m1").get_node("n1") is not None
        assert store.pending_memory()[0]["node_id"] == "n1"

    def test_anchor_stays_unique_across_turns(self, orchestrator, reasoner, store):
        reasoner.responses.extend([
            store_fact("n1", "Rex"),
            store_fact("n2", "red cars"),
            intent_json(
                "MIND_MAP",
                nodes=[node_dict(ANCHOR_NODE_ID, "Someone"), node_dict("s1", "Space")],
                edges=[edge_dict("es1", ANCHOR_NODE_ID, "s1")],
                responseText="Here is a map about space.",
            ),
        ])
        for text in ("My dog's name is Rex", "I like red cars", "Map space"):
            orchestrator.run_turn(request(text))

        graph = store.get("m1")
        assert sum(1 for n in graph.nodes if n.id == ANCHOR_NODE_ID) == 1
        assert graph.nodes[0].label == "Alice"
        assert graph.revision == 3


class TestQuestionAnswer:
    def test_scenario_c_answer_from_memory(self, orchestrator, reasoner, store, index):
        reasoner.responses.extend([
            store_fact("n1", "Rex", ack="Noted."),
            intent_json("Q_AND_A", nodes=[], edges=[], responseText="Your dog is Rex.", centerNodeId="n1"),
        ])
        orchestrator.run_turn(request("My dog's name is Rex"))
        before = store.get("m1")

        result = orchestrator.run_turn(request("What is my dog's name?"))

        assert result.intent is Intent.Q_AND_A
        assert result.response_text == "Your dog is Rex."
        assert result.center_node_id == "n1"
        assert result.nodes_added == [] and result.edges_added == []
        assert store.get("m1").revision == before.revision
        assert len(index.points) == 1

        _, context = reasoner.calls[-1]
        assert "My dog's name is Rex" in context
        assert "Current User Input: What is my dog's name?" in context

    def test_scenario_d_index_down_still_answers(self, orchestrator, reasoner, index, unavailable):
        index.search_error = unavailable
        reasoner.responses.append(intent_json("Q_AND_A", responseText="Hi Alice!"))

        result = orchestrator.run_turn(request("Hello"))

        assert result.response_text == "Hi Alice!"
        _, context = reasoner.calls[0]
        assert context.startswith("Context from memories:\n\n")

    def test_first_question_creates_anchor(self, orchestrator, reasoner, store):
        reasoner.responses.append(intent_json("Q_AND_A", responseText="Hello!"))
        result = orchestrator.run_turn(request("Hi"))
        assert result.revision == 1
        assert [n.id for n in store.get("m1").nodes] == [ANCHOR_NODE_ID]
        assert TurnState.SYNCING_MEMORY not in result.trace

    def test_result_dict_shape(self, orchestrator, reasoner):
        reasoner.responses.append(intent_json("Q_AND_A", responseText="Hello!"))
        out = orchestrator.run_turn(request("Hi")).to_dict()
        assert out == {"intent": "Q_AND_A", "responseText": "Hello!", "nodesAdded": [], "edgesAdded": []}


class TestMindMap:
    def test_map_merged_without_memory_point(self, orchestrator, reasoner, store, index):
        reasoner.responses.append(intent_json(
            "MIND_MAP",
            nodes=[node_dict("1", "Space", 250, 5), node_dict("2", "Planets", 100, 100)],
            edges=[edge_dict("e1-2", "1", "2")],
            responseText="Here is your map about space.",
        ))

        result = orchestrator.run_turn(request("Create a map about Space"))

        assert result.intent is Intent.MIND_MAP
        assert [n.id for n in result.nodes_added] == ["1", "2"]
        assert result.center_node_id is None
        assert index.points == {}
        assert len(store.get("m1").nodes) == 3


class TestFailures:
    def test_invalid_request_rejected_before_io(self, orchestrator, reasoner, embedder):
        with pytest.raises(TurnFailed) as excinfo:
            orchestrator.run_turn(request("   "))
        assert excinfo.value.kind == "validation"
        assert excinfo.value.state is None
        assert reasoner.calls == [] and embedder.calls == []

    @pytest.mark.parametrize("field", ["map_id", "owner_id"])
    def test_missing_identity_rejected(self, orchestrator, field):
        req = request("hello")
        setattr(req, field, "")
        with pytest.raises(TurnFailed):
            orchestrator.run_turn(req)

    def test_malformed_intent_leaves_graph_untouched(self, orchestrator, reasoner, store, index):
        reasoner.responses.append(intent_json("STORE_MEMORY", nodes=[], edges=[]))

        with pytest.raises(TurnFailed) as excinfo:
            orchestrator.run_turn(request("My dog's name is Rex"))

        assert excinfo.value.kind == "intent_decode"
        assert excinfo.value.state == TurnState.CLASSIFYING.value
        assert excinfo.value.trace[-1] is TurnState.FAILED
        assert store.get("m1") is None
        assert index.points == {}

    def test_reasoner_outage(self, orchestrator, reasoner, store):
        reasoner.responses.append(DependencyUnavailable("reasoner down"))
        with pytest.raises(TurnFailed) as excinfo:
            orchestrator.run_turn(request("hello"))
        assert excinfo.value.kind == "dependency_unavailable"
        assert store.get("m1") is None

    def test_store_read_failure(self, orchestrator, reasoner, store, monkeypatch):
        reasoner.responses.append(store_fact("n1", "Rex"))

        def broken_get(map_id):
            raise DependencyUnavailable("disk gone")

        monkeypatch.setattr(store, "get", broken_get)
        with pytest.raises(TurnFailed) as excinfo:
            orchestrator.run_turn(request("My dog's name is Rex"))
        assert excinfo.value.state == TurnState.MERGING.value

    def test_corrupt_stored_map_is_classified(self, orchestrator, reasoner, store):
        store.create("u1", map_id="m1")
        store._conn.execute("UPDATE maps SET map_data='{not json' WHERE id='m1'")
        store._conn.commit()
        reasoner.responses.append(store_fact("n1", "Rex"))

        with pytest.raises(TurnFailed) as excinfo:
            orchestrator.run_turn(request("My dog's name is Rex"))
        assert excinfo.value.kind == "persistence"
        assert excinfo.value.state == TurnState.MERGING.value

    def test_empty_embedding_response_does_not_escape(self, settings, store, reasoner, index):
        client = MagicMock()
        client.embeddings.create.return_value = SimpleNamespace(data=[])
        embedder = OpenAIEmbedder(settings, client=client)
        orchestrator = TurnOrchestrator(
            settings=settings,
            store=store,
            retriever=RetrievalAssembler(embedder, index, settings.collection),
            router=IntentRouter(reasoner),
            memory_sync=MemorySync(embedder, index, store, settings.collection),
        )
        reasoner.responses.append(store_fact("n1", "Rex"))

        result = orchestrator.run_turn(request("My dog's name is Rex"))

        assert result.memory_point_id is None
        assert store.get("m1").get_node("n1") is not None
        assert "no vectors" in store.pending_memory()[0]["last_error"]

    def test_persistence_failure_is_not_success(self, orchestrator, reasoner, store, monkeypatch):
        reasoner.responses.append(store_fact("n1", "Rex"))

        def broken_put(graph, expected_revision=None):
            raise PersistenceError("disk full")

        monkeypatch.setattr(store, "put", broken_put)
        with pytest.raises(TurnFailed) as excinfo:
            orchestrator.run_turn(request("My dog's name is Rex"))

        assert excinfo.value.kind == "persistence"
        assert excinfo.value.state == TurnState.PERSISTING.value
        assert isinstance(excinfo.value.__cause__, PersistenceError)

    def test_concurrent_writer_detected(self, orchestrator, reasoner, store, monkeypatch):
        map_id = store.create("u1", map_id="m1")
        reasoner.responses.append(store_fact("n1", "Rex"))
        real_get = store.get

        def get_then_interleave(mid):
            snapshot = real_get(mid)
            other = real_get(mid)
            other.nodes.append(Node("x", "written elsewhere"))
            store.put(other)
            return snapshot

        monkeypatch.setattr(store, "get", get_then_interleave)
        with pytest.raises(TurnFailed) as excinfo:
            orchestrator.run_turn(request("My dog's name is Rex", map_id=map_id))

        assert excinfo.value.kind == "concurrent_modification"
        assert [n.id for n in real_get(map_id).nodes] == ["x"]


class TestConcurrency:
    def test_same_map_turns_do_not_lose_updates(self, settings, store, embedder, index, reasoner, memory_sync):
        def responder(instruction, context):
            n = re.search(r"Current User Input: fact (\d+)", context).group(1)
            return store_fact(f"n{n}", f"fact {n}")

        reasoner.responder = responder
        locks = MapLocks()
        workers = [
            TurnOrchestrator(
                settings=settings,
                store=store,
                retriever=RetrievalAssembler(embedder, index, settings.collection),
                router=IntentRouter(reasoner),
                memory_sync=memory_sync,
                locks=locks,
            )
            for _ in range(2)
        ]
        errors = []

        def run(i):
            try:
                workers[i % 2].run_turn(request(f"fact {i}"))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=run, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        graph = store.get("m1")
        assert len(graph.nodes) == 9
        assert graph.revision == 8
        assert locks._locks == {}


class TestMapLocks:
    def test_entry_dropped_after_release(self):
        locks = MapLocks()
        with locks.hold("m1"):
            with locks.hold("m2"):
                assert set(locks._locks) == {"m1", "m2"}
            assert set(locks._locks) == {"m1"}
        assert locks._locks == {}

    def test_entry_dropped_when_body_raises(self):
        locks = MapLocks()
        with pytest.raises(RuntimeError):
            with locks.hold("m1"):
                raise RuntimeError("boom")
        assert locks._locks == {}

    def test_waiter_keeps_entry_alive(self):
        locks = MapLocks()
        seen = []

        def second():
            with locks.hold("m1"):
                seen.append("second")

        with locks.hold("m1"):
            t = threading.Thread(target=second)
            t.start()
            while locks._locks["m1"][1] < 2:
                time.sleep(0.001)
            seen.append("first")
        t.join()

        assert seen == ["first", "second"]
        assert locks._locks == {}


class TestWiring:
    def test_factories_share_one_lock_table(self, settings, store):
        locks = MapLocks()
        orchestrator = build_orchestrator(settings, store=store, locks=locks)
        service = build_map_service(settings, store, locks=locks)
        assert orchestrator.locks is locks
        assert service.locks is locks
