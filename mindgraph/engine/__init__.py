"""MindGraph engine (public API).

    from mindgraph.engine import TurnOrchestrator, TurnRequest
"""

from .turn import (
    MapLocks,
    TurnOrchestrator,
    TurnRequest,
    TurnResult,
    TurnState,
    build_orchestrator,
)
from .maps import MapService, build_map_service

__all__ = [
    "MapLocks",
    "MapService",
    "TurnOrchestrator",
    "TurnRequest",
    "TurnResult",
    "TurnState",
    "build_map_service",
    "build_orchestrator",
]
