from __future__ import annotations

"""
MindGraph Memory Sync
Embeds a stored fact and upserts it into the semantic index, linked to the
graph node that represents it.

The graph is the source of truth. A failed upsert never rolls back the graph
write; the point is parked in the store's outbox and ``replay_pending`` pushes
it again later under the same point id, so replays are idempotent.
"""

import logging
import uuid
from typing import Any, List, Optional, Sequence, Tuple

from mindgraph.errors import MindGraphError
from mindgraph.graph.records import MemoryPoint

logger = logging.getLogger(__name__)


class MemorySync:
    def __init__(self, embedder: Any, index: Any, store: Any = None, collection: str = "mindmaps") -> None:
        self.embedder = embedder
        self.index = index
        self.store = store
        self.collection = collection

    def sync(
        self,
        concept: Optional[str],
        user_text: str,
        owner_id: str,
        map_id: str,
        added_node_ids: Sequence[str] = (),
    ) -> Optional[MemoryPoint]:
        """Write one memory point for a STORE_MEMORY turn.

        The point links to the first node this turn added; if the merge added
        none, a fresh id is used instead. Returns the written point, or None if
        there was nothing to write or the write failed.
        """
        if not concept or not concept.strip():
            return None
        node_id = added_node_ids[0] if added_node_ids else str(uuid.uuid4())
        return self._write(concept.strip(), user_text, owner_id, map_id, node_id)

    def remember_map(self, concept: str, owner_id: str, map_id: str) -> Optional[MemoryPoint]:
        """Map-level memory written on a manual save; not tied to a node."""
        if not concept or not concept.strip():
            return None
        return self._write(concept.strip(), concept.strip(), owner_id, map_id, None)

    def _write(
        self,
        concept: str,
        text: str,
        owner_id: str,
        map_id: str,
        node_id: Optional[str],
        point_id: Optional[str] = None,
    ) -> Optional[MemoryPoint]:
        point_id = point_id or str(uuid.uuid4())
        try:
            vector = self.embedder.embed(concept)
            point = MemoryPoint(
                point_id=point_id,
                vector=vector,
                owner_id=owner_id,
                text=text,
                map_id=map_id,
                node_id=node_id,
            )
            self.index.upsert(self.collection, [point])
        except MindGraphError as e:
            logger.warning("memory sync failed for map=%s node=%s: %s", map_id, node_id, e)
            self._park(point_id, owner_id, map_id, node_id, concept, text, e)
            return None

        logger.info("memory point %s upserted (map=%s node=%s)", point_id, map_id, node_id)
        return point

    def _park(self, point_id, owner_id, map_id, node_id, concept, text, error) -> None:
        if self.store is None:
            return
        try:
            self.store.enqueue_memory(
                point_id=point_id,
                collection=self.collection,
                owner_id=owner_id,
                map_id=map_id,
                node_id=node_id,
                concept=concept,
                text=text,
                error=str(error),
            )
        except Exception:
            logger.exception("could not queue memory point %s for replay", point_id)

    def replay_pending(self, limit: int = 50) -> Tuple[int, int]:
        """Retry queued memory points. Returns ``(replayed, still_failing)``."""
        if self.store is None:
            return 0, 0
        replayed, failed = 0, 0
        for row in self.store.pending_memory(limit=limit):
            point = self._write(
                row["concept"],
                row["text"],
                row["owner_id"],
                row["map_id"],
                row["node_id"],
                point_id=row["point_id"],
            )
            if point is None:
                failed += 1
                continue
            self.store.discard_memory(row["point_id"])
            replayed += 1
        if replayed or failed:
            logger.info("memory replay: %d replayed, %d still failing", replayed, failed)
        return replayed, failed
