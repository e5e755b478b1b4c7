from __future__ import annotations

"""
MindGraph Graph Store
=====================

Keyed repository for mind maps over a SQLite database (path provided via
Settings). Each map row holds the full node/edge document plus ownership,
timestamps and a ``revision`` counter.

    • ``get(map_id)``                -> Graph | None
    • ``create(owner_id)``           -> map id of a new, empty map
    • ``put(graph, expected_revision)`` -> compare-and-swap write
    • ``list_maps(owner_id)``        -> MapSummary rows, newest first
    • memory outbox helpers          -> queued memory points awaiting replay

Writes are optimistic: ``put`` only succeeds when the stored revision still
equals the revision the caller read. A stale write raises
:class:`~mindgraph.errors.ConcurrentModificationError` instead of silently
overwriting a newer snapshot.

Usage (quick):
    from mindgraph.config import load_settings
    from mindgraph.graph import GraphStore

    store = GraphStore(load_settings())
    map_id = store.create("user-1")
    graph = store.get(map_id)
"""

import json
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from mindgraph.config import Settings
from mindgraph.errors import (
    ConcurrentModificationError,
    DependencyUnavailable,
    PersistenceError,
    ValidationError,
)
from .records import Edge, Graph, MapSummary, Node
from .schema import bootstrap

_MAP_COLUMNS = "id, owner_id, title, map_data, revision, created_at, updated_at"


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _row_to_graph(row) -> Graph:
    map_id, owner_id, title, map_data, revision, created_at, updated_at = row
    try:
        doc = json.loads(map_data) if map_data else {}
        nodes = [Node.from_dict(n) for n in doc.get("nodes") or []]
        edges = [Edge.from_dict(e) for e in doc.get("edges") or []]
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        raise PersistenceError(f"stored map {map_id!r} is corrupt: {e}") from e
    return Graph(
        map_id=map_id,
        owner_id=owner_id,
        nodes=nodes,
        edges=edges,
        revision=revision,
        title=title,
        created_at=created_at,
        updated_at=updated_at,
    )


class GraphStore:
    """
    Persistent map repository over a SQLite database.

    Notes
    -----
    * Connection created once per instance; guarded by an RLock.
    * bootstrap() called on init to ensure schema exists.
    """

    def __init__(self, settings: Settings, *, readonly: bool = False) -> None:
        self.settings = settings
        self.db_path = settings.db_path
        self.readonly = readonly

        self._lock = threading.RLock()
        try:
            self._conn = self._connect()
            if not readonly:
                bootstrap(self._conn)
        except sqlite3.Error as e:
            raise DependencyUnavailable(f"graph store unavailable at {self.db_path}: {e}") from e

    # ------------------------------------------------------------------
    # Connection mgmt
    # ------------------------------------------------------------------
    def _connect(self) -> sqlite3.Connection:
        if self.readonly:
            path = f"file:{self.db_path}?mode=ro"
            return sqlite3.connect(path, uri=True, check_same_thread=False)
        return sqlite3.connect(self.db_path, check_same_thread=False)

    def close(self) -> None:
        """Close the underlying sqlite connection."""
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "GraphStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Maps
    # ------------------------------------------------------------------
    def get(self, map_id: str) -> Optional[Graph]:
        """Return the stored graph for ``map_id`` or None if absent."""
        try:
            with self._lock:
                cur = self._conn.cursor()
                cur.execute(f"SELECT {_MAP_COLUMNS} FROM maps WHERE id=?", (map_id,))
                row = cur.fetchone()
        except sqlite3.Error as e:
            raise DependencyUnavailable(f"graph store read failed for {map_id!r}: {e}") from e
        return _row_to_graph(row) if row else None

    def create(self, owner_id: str, title: Optional[str] = None, map_id: Optional[str] = None) -> str:
        """Insert an empty map owned by ``owner_id`` and return its id."""
        if not owner_id:
            raise ValidationError("owner_id is required to create a map")
        graph = Graph(map_id=map_id or str(uuid.uuid4()), owner_id=owner_id, title=title)
        return self.put(graph, expected_revision=0).map_id

    def put(self, graph: Graph, expected_revision: Optional[int] = None) -> Graph:
        """Write ``graph`` if the stored revision equals ``expected_revision``.

        ``expected_revision`` defaults to ``graph.revision``; 0 means the map
        must not exist yet. Returns the graph as stored (new revision and
        timestamps).
        """
        expected = graph.revision if expected_revision is None else expected_revision
        doc = json.dumps(graph.map_data())
        now = _utcnow()

        with self._lock:
            try:
                cur = self._conn.cursor()
                if expected == 0:
                    cur.execute(
                        "INSERT OR IGNORE INTO maps(id, owner_id, title, map_data, revision, created_at, updated_at) "
                        "VALUES(?,?,?,?,1,?,?)",
                        (graph.map_id, graph.owner_id, graph.title, doc, now, now),
                    )
                else:
                    cur.execute(
                        "UPDATE maps SET map_data=?, title=COALESCE(?, title), "
                        "revision=revision+1, updated_at=? "
                        "WHERE id=? AND revision=?",
                        (doc, graph.title, now, graph.map_id, expected),
                    )
                if cur.rowcount != 1:
                    self._conn.rollback()
                    cur.execute("SELECT revision FROM maps WHERE id=?", (graph.map_id,))
                    row = cur.fetchone()
                    raise ConcurrentModificationError(graph.map_id, expected, row[0] if row else None)
                self._conn.commit()

                cur.execute(f"SELECT {_MAP_COLUMNS} FROM maps WHERE id=?", (graph.map_id,))
                row = cur.fetchone()
            except sqlite3.Error as e:
                self._conn.rollback()
                raise PersistenceError(f"failed to write map {graph.map_id!r}: {e}") from e

        return _row_to_graph(row)

    def list_maps(self, owner_id: str) -> List[MapSummary]:
        """List ``owner_id``'s maps, most recently updated first."""
        try:
            with self._lock:
                cur = self._conn.cursor()
                cur.execute(
                    f"SELECT {_MAP_COLUMNS} FROM maps WHERE owner_id=? "
                    "ORDER BY updated_at DESC, id",
                    (owner_id,),
                )
                rows = cur.fetchall()
        except sqlite3.Error as e:
            raise DependencyUnavailable(f"graph store listing failed: {e}") from e

        summaries = []
        for row in rows:
            g = _row_to_graph(row)
            summaries.append(
                MapSummary(
                    map_id=g.map_id,
                    owner_id=g.owner_id,
                    title=g.title,
                    node_count=len(g.nodes),
                    revision=g.revision,
                    created_at=g.created_at,
                    updated_at=g.updated_at,
                )
            )
        return summaries

    # ------------------------------------------------------------------
    # Memory outbox
    # ------------------------------------------------------------------
    def enqueue_memory(
        self,
        *,
        point_id: str,
        collection: str,
        owner_id: str,
        map_id: str,
        node_id: Optional[str],
        concept: str,
        text: str,
        error: Optional[str] = None,
    ) -> None:
        """Queue a memory point whose upsert failed. Re-queuing bumps attempts."""
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(
                "INSERT INTO memory_outbox(point_id, collection, owner_id, map_id, node_id, concept, text, last_error, created_at) "
                "VALUES(?,?,?,?,?,?,?,?,?) "
                "ON CONFLICT(point_id) DO UPDATE SET attempts=attempts+1, last_error=excluded.last_error",
                (point_id, collection, owner_id, map_id, node_id, concept, text, error, _utcnow()),
            )
            self._conn.commit()

    def pending_memory(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Return queued memory points, oldest first."""
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(
                "SELECT point_id, collection, owner_id, map_id, node_id, concept, text, attempts, last_error "
                "FROM memory_outbox ORDER BY created_at, point_id LIMIT ?",
                (limit,),
            )
            cols = [c[0] for c in cur.description]
            return [dict(zip(cols, row)) for row in cur.fetchall()]

    def discard_memory(self, point_id: str) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM memory_outbox WHERE point_id=?", (point_id,))
            self._conn.commit()
