from __future__ import annotations

"""
MindGraph semantic memory index (Pinecone)

A "collection" is a Pinecone namespace inside the configured index. Every
memory point carries ``ownerId`` metadata and every search is filtered to a
single owner.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from pinecone import Pinecone, ServerlessSpec

from mindgraph.config import Settings
from mindgraph.errors import DependencyUnavailable
from mindgraph.graph.records import MemoryPoint

logger = logging.getLogger(__name__)


def _field(obj: Any, name: str, default: Any = None) -> Any:
    # Pinecone responses are models; fakes and older clients hand back dicts.
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def owner_filter(owner_id: str) -> Dict[str, Any]:
    return {"ownerId": {"$eq": owner_id}}


def ensure_index(settings: Settings, pc: Optional[Pinecone] = None) -> bool:
    """Create the serverless index if it doesn't exist. Returns True if created."""
    try:
        pc = pc or Pinecone(api_key=settings.pinecone_api_key)
        if settings.pinecone_index in [index.name for index in pc.list_indexes()]:
            return False

        pc.create_index(
            name=settings.pinecone_index,
            dimension=settings.embed_dim,
            metric="cosine",
            spec=ServerlessSpec(cloud=settings.pinecone_cloud, region=settings.pinecone_region),
        )
    except Exception as e:
        raise DependencyUnavailable(f"pinecone index setup failed: {e}") from e
    logger.info("created pinecone index %s (dim=%d)", settings.pinecone_index, settings.embed_dim)
    return True


class PineconeIndex:
    def __init__(self, settings: Settings, index: Any = None) -> None:
        self.settings = settings
        self._index = index

    @property
    def index(self) -> Any:
        if self._index is None:
            try:
                pc = Pinecone(api_key=self.settings.pinecone_api_key)
                self._index = pc.Index(self.settings.pinecone_index)
            except Exception as e:
                raise DependencyUnavailable(f"pinecone index unavailable: {e}") from e
        return self._index

    def search(
        self,
        collection: str,
        vector: List[float],
        owner_id: str,
        limit: int,
    ) -> List[Dict[str, Any]]:
        """Top-``limit`` points for ``owner_id``, most similar first.

        Each hit is ``{"id", "score", "payload"}``.
        """
        try:
            result = self.index.query(
                vector=vector,
                top_k=limit,
                include_metadata=True,
                filter=owner_filter(owner_id),
                namespace=collection,
            )
        except DependencyUnavailable:
            raise
        except Exception as e:
            raise DependencyUnavailable(f"pinecone query failed: {e}") from e

        hits = []
        for match in _field(result, "matches") or []:
            hits.append({
                "id": _field(match, "id"),
                "score": _field(match, "score", 0.0),
                "payload": dict(_field(match, "metadata") or {}),
            })
        hits.sort(key=lambda h: h["score"] or 0.0, reverse=True)
        return hits

    def upsert(self, collection: str, points: Iterable[MemoryPoint]) -> int:
        vectors = [
            {"id": p.point_id, "values": p.vector, "metadata": p.payload}
            for p in points
        ]
        if not vectors:
            return 0
        try:
            self.index.upsert(vectors=vectors, namespace=collection)
        except DependencyUnavailable:
            raise
        except Exception as e:
            raise DependencyUnavailable(f"pinecone upsert failed: {e}") from e
        return len(vectors)
