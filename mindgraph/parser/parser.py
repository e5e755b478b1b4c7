"""
parser.py

LLM-driven intent routing. One reasoner call per turn classifies the user's
message as a fact to store, a question to answer, or a request for a whole
map, and returns the strictly decoded payload. Also hosts the bulk
generation prompt used outside of chat turns.
"""

import logging
from typing import Any, List, Optional, Sequence, Tuple

from mindgraph.errors import IntentDecodeError
from mindgraph.graph.records import ANCHOR_NODE_ID, Edge, Node
from mindgraph.retrieval.semantic import format_context
from .intents import IntentPayload, decode_fragment, decode_intent, load_json_object

logger = logging.getLogger(__name__)


ROUTER_PROMPT = """
You are a conversational second brain for {display_name}. Every message either
adds to their mind map, asks about it, or asks for a new map. Classify the
message into exactly one intent: "STORE_MEMORY", "Q_AND_A" or "MIND_MAP".

STORE_MEMORY - the user states a fact or preference to remember
("I like red cars", "My dog's name is Rex").
  - Create one node for the new fact, with a new unique id.
  - Create an edge from "{anchor_id}" (the node for the user) or from a related
    existing node to the new node.
  - Put the short concept to remember (e.g. "Rex") in "concept".
  - Put a short acknowledgment in "responseText".

Q_AND_A - the user asks a question or greets you ("What is my dog's name?").
  - Answer only from the context below. If it is not there, say you don't know.
  - Put the answer in "responseText".
  - If one node answers the question, put its id in "centerNodeId".
  - Leave "nodes" and "edges" empty.

MIND_MAP - the user asks to brainstorm or map a topic ("Create a map about Space").
  - Produce a small graph: several nodes and the edges between them, laid out
    so positions do not overlap.
  - Put a brief confirmation in "responseText".

Respond with ONE JSON object and nothing else. No markdown, no code fences,
no commentary:
{{
  "intent": "STORE_MEMORY" | "Q_AND_A" | "MIND_MAP",
  "data": {{
    "nodes": [{{"id": "...", "type": "default", "data": {{"label": "..."}}, "position": {{"x": 0, "y": 0}}}}],
    "edges": [{{"id": "...", "source": "...", "target": "..."}}],
    "responseText": "...",
    "centerNodeId": "...",
    "concept": "..."
  }}
}}
"""

GENERATOR_PROMPT = """
You are a mind map generator. Build a mind map for the user's prompt, using the
context from their earlier memories where it helps.

Return ONE JSON object and nothing else (no markdown, no code fences):
{
  "nodes": [{"id": "1", "type": "default", "data": {"label": "Main Concept"}, "position": {"x": 250, "y": 5}}],
  "edges": [{"id": "e1-2", "source": "1", "target": "2"}]
}
Lay the nodes out so they do not overlap.
"""


def build_instruction(display_name: Optional[str]) -> str:
    return ROUTER_PROMPT.format(display_name=display_name or "the user", anchor_id=ANCHOR_NODE_ID)


def build_turn_context(snippets: Sequence[str], user_text: str) -> str:
    memories = format_context(snippets)
    return f"Context from memories:\n{memories}\n\nCurrent User Input: {user_text}\n"


def build_generation_context(snippets: Sequence[str], prompt: str) -> str:
    memories = format_context(snippets, separator="\n\n")
    return f"Context from previous maps:\n{memories}\n\nUser Prompt: {prompt}\n"


class IntentRouter:
    def __init__(self, reasoner: Any) -> None:
        self.reasoner = reasoner

    def classify(
        self,
        user_text: str,
        context: Sequence[str],
        owner_display_name: Optional[str] = None,
    ) -> IntentPayload:
        """One reasoner call; raises IntentDecodeError on a malformed answer."""
        raw = self.reasoner.generate(
            build_instruction(owner_display_name),
            build_turn_context(context, user_text),
        )
        payload = decode_intent(raw)
        logger.info(
            "classified as %s (%d node(s), %d edge(s))",
            payload.tag.value, len(payload.nodes), len(payload.edges),
        )
        return payload


class FragmentGenerator:
    """Bulk map generation outside a chat turn; nothing is persisted here."""

    def __init__(self, reasoner: Any) -> None:
        self.reasoner = reasoner

    def generate(self, prompt: str, context: Sequence[str]) -> Tuple[List[Node], List[Edge]]:
        raw = self.reasoner.generate(GENERATOR_PROMPT, build_generation_context(context, prompt))
        nodes, edges = decode_fragment(load_json_object(raw))
        if not nodes:
            raise IntentDecodeError("generated map has no nodes", raw=raw)
        logger.info("generated fragment: %d node(s), %d edge(s)", len(nodes), len(edges))
        return nodes, edges
