"""MindGraph package bootstrap (minimal).

Conversational memory orchestration for chat-built mind maps. The turn
pipeline lives in :mod:`mindgraph.engine.turn`; metadata lives in
:mod:`mindgraph._initbase`.
"""

from ._initbase import __version__  # re-export version string

__all__ = ["__version__"]
