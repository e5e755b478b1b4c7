from .semantic import RetrievalAssembler, format_context

__all__ = ["RetrievalAssembler", "format_context"]
