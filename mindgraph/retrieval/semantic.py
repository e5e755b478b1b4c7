"""
Semantic retrieval: grounding context for a turn.

Retrieval is best-effort. If embedding or the index fails, or nothing matches,
the turn continues with an empty context.
"""
import logging
from typing import Any, List, Sequence

from mindgraph.errors import MindGraphError

logger = logging.getLogger(__name__)


class RetrievalAssembler:
    def __init__(self, embedder: Any, index: Any, collection: str = "mindmaps") -> None:
        self.embedder = embedder
        self.index = index
        self.collection = collection

    def assemble(self, query_text: str, owner_id: str, limit: int = 5) -> List[str]:
        """Up to ``limit`` prior snippets owned by ``owner_id``, most similar first."""
        try:
            vector = self.embedder.embed(query_text)
            hits = self.index.search(self.collection, vector, owner_id, limit)
        except MindGraphError as e:
            logger.warning("retrieval degraded to empty context: %s", e)
            return []

        snippets = []
        for hit in hits[:limit]:
            payload = hit.get("payload") or {}
            # never surface another owner's memory, even if the filter was ignored
            if payload.get("ownerId") not in (None, owner_id):
                continue
            text = payload.get("text")
            if text:
                snippets.append(str(text))
        logger.debug("retrieved %d snippet(s) for owner=%s", len(snippets), owner_id)
        return snippets


def format_context(snippets: Sequence[str], separator: str = "\n") -> str:
    return separator.join(snippets)
