from __future__ import annotations

"""Error taxonomy for the MindGraph core.

Every error carries a short ``kind`` string so callers (CLI, telemetry) can
classify a failure without matching on exception types.
"""

from typing import Any, List, Optional


class MindGraphError(RuntimeError):
    """Base class for all classified MindGraph failures."""

    kind = "internal"


class ValidationError(MindGraphError):
    """Request is missing text, map id or owner. Raised before any I/O."""

    kind = "validation"


class DependencyUnavailable(MindGraphError):
    """Embedding service, semantic index or graph store could not be reached."""

    kind = "dependency_unavailable"


class DependencyTimeout(DependencyUnavailable):
    """An external call exceeded its deadline."""

    kind = "dependency_timeout"


class IntentDecodeError(MindGraphError):
    """Reasoner output does not fit the three-intent contract."""

    kind = "intent_decode"

    def __init__(self, message: str, raw: Optional[str] = None) -> None:
        super().__init__(message)
        self.raw = raw


class ConcurrentModificationError(MindGraphError):
    """The map was written by someone else since it was read."""

    kind = "concurrent_modification"

    def __init__(self, map_id: str, expected: int, actual: Optional[int]) -> None:
        super().__init__(
            f"map {map_id!r} changed underneath this write "
            f"(expected revision {expected}, found {actual})"
        )
        self.map_id = map_id
        self.expected = expected
        self.actual = actual


class PersistenceError(MindGraphError):
    """Graph write failed."""

    kind = "persistence"


class TurnFailed(MindGraphError):
    """A chat turn aborted. ``kind`` and ``state`` describe where and why.

    The classified cause is chained as ``__cause__``. ``state`` is None when
    the request was rejected before the pipeline started.
    """

    def __init__(
        self,
        message: str,
        *,
        kind: str,
        state: Optional[str],
        trace: Optional[List[Any]] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.state = state
        self.trace = trace or []
