"""
Memory retrieval.

Substring, tag, type and same-day queries over the store, all ranked by
most recent update first.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from memory_bridge.memory.normalizer import normalize
from memory_bridge.models.memory import Memory
from memory_bridge.services.store import MemoryStore

logger = logging.getLogger(__name__)

DEFAULT_RECALL_LIMIT = 5


@dataclass
class RecallResult:
    """
    Outcome of a recall query.

    Nothing matching is a normal result: found is False and memories is empty.
    """
    query: str
    memories: List[Memory] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return bool(self.memories)


def rank_by_recency(memories: List[Memory]) -> List[Memory]:
    """Order memories by last_updated, then created_at, newest first."""
    return sorted(
        memories,
        key=lambda memory: (memory.last_updated, memory.created_at),
        reverse=True
    )


class MemoryRetriever:
    """
    Read-side queries over the memory store.

    Ordering is applied in the database and re-asserted here so every
    caller sees the same ranking regardless of backend.
    """

    def __init__(self, store: MemoryStore):
        self.store = store

    async def recall(self, query: str, limit: int = DEFAULT_RECALL_LIMIT) -> RecallResult:
        """
        Find memories whose normalized text contains the normalized query.

        Args:
            query: Search text (case and surrounding whitespace are ignored)
            limit: Maximum number of memories to return

        Returns:
            RecallResult: Matches, most recently updated first

        Example:
            >>> result = await retriever.recall("adam", limit=5)
            >>> result.found
            True
        """
        start_time = time.time()

        fragment = normalize(query)
        memories = await self.store.search_text_norm(fragment, limit)
        result = RecallResult(query=query, memories=rank_by_recency(memories)[:limit])

        logger.info(
            f"Recall '{fragment}' returned {len(result.memories)} memories "
            f"in {(time.time() - start_time) * 1000:.1f}ms"
        )
        return result

    async def list_all(self, limit: int) -> List[Memory]:
        return rank_by_recency(await self.store.list_all(limit))

    async def by_tag(self, tag: str, limit: Optional[int] = None) -> List[Memory]:
        return rank_by_recency(await self.store.list_by_tag(tag.strip(), limit))

    async def by_type(self, memory_type: str, limit: Optional[int] = None) -> List[Memory]:
        return rank_by_recency(await self.store.list_by_type(memory_type.strip(), limit))

    async def today(self, now: Optional[datetime] = None) -> List[Memory]:
        return rank_by_recency(await self.store.list_created_today(now))

    async def latest(self, limit: int) -> List[Memory]:
        """Most recent memories, oldest first, for stream snapshots."""
        return list(reversed(await self.list_all(limit)))
