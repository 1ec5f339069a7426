"""
Live change feed for connected clients.

Each subscription sends a welcome event, the latest memories and an
optional AI summary, then re-queries on a fixed interval and pushes
changed memories or a keepalive. Delivery is best-effort and at most once;
the latency bound is one interval.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple

from memory_bridge.core.exceptions import StorageError
from memory_bridge.memory.retriever import MemoryRetriever
from memory_bridge.memory.summarizer import MemorySummarizer
from memory_bridge.models.memory import Memory
from memory_bridge.models.schemas import MemoryResponse

logger = logging.getLogger(__name__)

WELCOME_EVENT = "mcp_welcome"
ITEM_EVENT = "memory_item"
SUMMARY_EVENT = "synth_summary"
KEEPALIVE = ": ping\n\n"

WELCOME_MESSAGE = "Memory bridge connected"

Snapshot = Dict[str, datetime]


def format_event(event: str, payload: Dict) -> str:
    """Frame one typed server-sent event."""
    return f"event: {event}\ndata: {json.dumps(payload, default=str)}\n\n"


def snapshot_of(memories: List[Memory]) -> Snapshot:
    return {memory.id: memory.last_updated for memory in memories}


def changed_since(memories: List[Memory], previous: Snapshot) -> List[Memory]:
    """Memories that are new or were updated since the previous snapshot, in input order."""
    return [memory for memory in memories if previous.get(memory.id) != memory.last_updated]


def memory_event(memory: Memory) -> str:
    item = MemoryResponse.model_validate(memory).model_dump(mode="json")
    return format_event(ITEM_EVENT, {"type": ITEM_EVENT, "item": item})


class ChangeStream:
    """
    Produces per-subscriber server-sent event streams.

    The only per-subscription state is the last snapshot and the interval
    timer inside the generator; closing the generator cancels both.
    """

    def __init__(
        self,
        retriever: MemoryRetriever,
        summarizer: Optional[MemorySummarizer] = None,
        interval_seconds: float = 20.0,
        summary_item_count: int = 25
    ):
        """
        Initialize the change stream.

        Args:
            retriever: Read-side queries used for every snapshot
            summarizer: Optional AI summarizer
            interval_seconds: Delay between re-queries
            summary_item_count: Most recent items fed to the summarizer
        """
        self.retriever = retriever
        self.summarizer = summarizer
        self.interval_seconds = interval_seconds
        self.summary_item_count = summary_item_count
        # Latest summary keyed by the snapshot it describes, shared by all subscribers
        self._summary_cache: Optional[Tuple[frozenset, Optional[str]]] = None
        self._summary_lock = asyncio.Lock()

    async def _summary_event(self, memories: List[Memory]) -> Optional[str]:
        if self.summarizer is None or not memories:
            return None
        newest_first = list(reversed(memories))[:self.summary_item_count]
        summary = await self._shared_summary(newest_first)
        if not summary:
            return None
        return format_event(SUMMARY_EVENT, {"type": SUMMARY_EVENT, "text": summary})

    async def _shared_summary(self, memories: List[Memory]) -> Optional[str]:
        """
        Summarize once per distinct set of memories.

        Subscribers that observe the same change wait on the lock and reuse
        the result instead of issuing their own model call.
        """
        key = frozenset((memory.id, memory.last_updated) for memory in memories)
        async with self._summary_lock:
            if self._summary_cache is not None and self._summary_cache[0] == key:
                return self._summary_cache[1]
            summary = await self.summarizer.summarize(memories)
            self._summary_cache = (key, summary)
            return summary

    async def _poll(self, limit: int, previous: Snapshot) -> Tuple[List[str], Snapshot]:
        """
        Re-query the latest memories and render whatever changed.

        Returns:
            Tuple[List[str], Snapshot]: Frames to send (a keepalive when
            nothing changed) and the snapshot to compare against next time
        """
        try:
            memories = await self.retriever.latest(limit)
        except StorageError as e:
            logger.warning(f"Change stream poll failed: {e}")
            return [KEEPALIVE], previous

        changed = changed_since(memories, previous)
        if not changed:
            return [KEEPALIVE], previous

        frames = [memory_event(memory) for memory in changed]
        summary = await self._summary_event(memories)
        if summary:
            frames.append(summary)
        return frames, snapshot_of(memories)

    async def subscribe(
        self,
        limit: int,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None
    ) -> AsyncIterator[str]:
        """
        Generate the event stream for one subscriber.

        Args:
            limit: Number of recent memories per snapshot
            is_disconnected: Awaitable check for client disconnect

        Yields:
            str: Framed server-sent events
        """
        welcome = {
            "type": WELCOME_EVENT,
            "ts": datetime.now(timezone.utc).isoformat(),
            "msg": WELCOME_MESSAGE
        }
        yield format_event(WELCOME_EVENT, welcome)

        try:
            memories = await self.retriever.latest(limit)
        except StorageError as e:
            # Headers are already sent; stay open and let the next poll catch up
            logger.warning(f"Change stream initial snapshot failed: {e}")
            memories = None

        if memories is None:
            yield KEEPALIVE
        else:
            for memory in memories:
                yield memory_event(memory)

            summary = await self._summary_event(memories)
            if summary:
                yield summary

        snapshot = snapshot_of(memories or [])
        try:
            while True:
                await asyncio.sleep(self.interval_seconds)
                if is_disconnected is not None and await is_disconnected():
                    break
                frames, snapshot = await self._poll(limit, snapshot)
                for frame in frames:
                    yield frame
        except asyncio.CancelledError:
            logger.debug("Change stream subscriber disconnected")
            raise
        finally:
            logger.debug("Change stream subscription closed")
