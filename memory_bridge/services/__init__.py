"""Business logic services."""

from .store import MemoryStore, MemoryRecord, UpsertResult

__all__ = ["MemoryStore", "MemoryRecord", "UpsertResult"]
