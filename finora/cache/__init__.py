"""Record storage and freshness checks."""

from .freshness import is_fresh
from .store import DocumentStore, MemoryStore, ValkeyStore

__all__ = ["DocumentStore", "MemoryStore", "ValkeyStore", "is_fresh"]
