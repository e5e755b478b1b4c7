"""MindGraph base package metadata.

Package-level metadata lives here, *separate* from ``__init__.py``, so that
importing the package stays free of side effects.
"""

from importlib import metadata as _metadata

try:  # When installed via pip / build backend
    __version__ = _metadata.version("mindgraph")
except Exception:  # Local checkout fallback
    __version__ = "0.0.0-dev"
