from .embedder import MemorySync
from .index import PineconeIndex, ensure_index, owner_filter

__all__ = ["MemorySync", "PineconeIndex", "ensure_index", "owner_filter"]
