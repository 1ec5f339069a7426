"""
Core memory service for business logic.

Coordinates normalization, duplicate detection, embedding and storage
to ingest memories under one configured duplicate policy.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from memory_bridge.core.config import DuplicatePolicy
from memory_bridge.core.exceptions import (
    EmbeddingUnavailable, MemoryNotFound, MemoryValidationError
)
from memory_bridge.memory.deduplicator import DuplicateCheck, DuplicateStatus, MemoryDeduplicator
from memory_bridge.memory.embedder import EmbeddingService
from memory_bridge.memory.normalizer import normalize
from memory_bridge.models.memory import Memory
from memory_bridge.models.schemas import MemoryCreate
from memory_bridge.services.store import MemoryRecord, MemoryStore

logger = logging.getLogger(__name__)

DUPLICATE_ERROR = "duplicate"
SEMANTIC_DUPLICATE_ERROR = "semantic duplicate"


@dataclass
class IngestResult:
    """
    Outcome of an ingest.

    ok=True: a row was created, or refreshed under the upsert policy.
    ok=False: a duplicate blocked the write; existing_* describe it.
    """
    ok: bool
    id: Optional[str] = None
    last_updated: Optional[datetime] = None
    updated: Optional[bool] = None
    error: Optional[str] = None
    existing_id: Optional[str] = None
    existing_text: Optional[str] = None
    similarity: Optional[float] = None

    def to_response(self) -> dict:
        """Render into the POST /memories body, omitting unset fields."""
        body = {"ok": self.ok}
        if self.ok:
            body["id"] = self.id
            body["last_updated"] = self.last_updated
            if self.updated is not None:
                body["updated"] = self.updated
        else:
            body["error"] = self.error
            body["existing"] = {"id": self.existing_id, "text": self.existing_text}
            if self.similarity is not None:
                body["similarity"] = self.similarity
        return body


class MemoryService:
    """
    High-level memory management service.

    Every insert path, including a lost race on the text_norm constraint,
    resolves through the same duplicate policy.
    """

    def __init__(
        self,
        store: MemoryStore,
        deduplicator: MemoryDeduplicator,
        embedding_service: Optional[EmbeddingService] = None,
        duplicate_policy: DuplicatePolicy = DuplicatePolicy.REJECT,
        enable_semantic_dedup: bool = True,
        max_text_length: int = 5000
    ):
        """
        Initialize memory service.

        Args:
            store: Memory store
            deduplicator: Exact and semantic duplicate detector
            embedding_service: Optional embedding provider
            duplicate_policy: reject or upsert exact duplicates
            enable_semantic_dedup: Whether to compute embeddings and run the semantic scan
            max_text_length: Longest accepted memory text
        """
        self.store = store
        self.deduplicator = deduplicator
        self.embedding_service = embedding_service
        self.duplicate_policy = DuplicatePolicy(duplicate_policy)
        self.enable_semantic_dedup = enable_semantic_dedup
        self.max_text_length = max_text_length

    @property
    def update_existing(self) -> bool:
        return self.duplicate_policy == DuplicatePolicy.UPSERT

    async def ingest(self, request: MemoryCreate) -> IngestResult:
        """
        Store a memory unless it duplicates an existing one.

        Args:
            request: Validated ingest request

        Returns:
            IngestResult: Created/updated id, or the duplicate that blocked it

        Raises:
            MemoryValidationError: If text is empty or too long
            StorageError: If the store fails

        Example:
            >>> result = await service.ingest(MemoryCreate(text="Meeting with Adam at 4pm"))
            >>> result.ok
            True
        """
        start_time = time.time()

        text = (request.text or "").strip()
        if not text:
            raise MemoryValidationError("text is required")
        if len(text) > self.max_text_length:
            raise MemoryValidationError(
                f"text too long. Maximum {self.max_text_length} characters allowed."
            )

        text_norm = normalize(text)
        record = MemoryRecord(
            text=text,
            text_norm=text_norm,
            type=request.type,
            tags=list(request.tags),
            source=request.source,
            ts=request.ts,
        )

        exact = await self.deduplicator.check_exact(text_norm)
        if exact.is_duplicate:
            if not self.update_existing:
                logger.info(f"Rejected duplicate of memory {exact.existing_id}")
                return self._duplicate(exact)
            return await self._write(record, start_time)

        record.embedding = await self._embed(text)
        if record.embedding:
            semantic = await self.deduplicator.check_semantic(record.embedding)
            if semantic.is_duplicate:
                return self._duplicate(semantic)

        return await self._write(record, start_time)

    async def _embed(self, text: str) -> Optional[List[float]]:
        """Compute an embedding, or None when the provider is absent or failing."""
        if not self.enable_semantic_dedup or self.embedding_service is None:
            return None
        try:
            return await self.embedding_service.embed(text)
        except EmbeddingUnavailable as e:
            logger.warning(f"Embedding unavailable, skipping semantic dedup: {e}")
            return None

    async def _write(self, record: MemoryRecord, start_time: float) -> IngestResult:
        result = await self.store.upsert(record, update_existing=self.update_existing)
        processing_time_ms = (time.time() - start_time) * 1000

        if result.created:
            logger.info(f"Stored memory {result.id} in {processing_time_ms:.1f}ms")
            return IngestResult(ok=True, id=result.id, last_updated=result.last_updated)

        if self.update_existing:
            logger.info(f"Updated memory {result.id} in {processing_time_ms:.1f}ms")
            return IngestResult(ok=True, id=result.id, last_updated=result.last_updated, updated=True)

        # A concurrent ingest won the text_norm constraint
        existing = await self.store.get_by_id(result.id)
        return self._duplicate(DuplicateCheck(
            status=DuplicateStatus.EXACT,
            existing_id=result.id,
            existing_text=existing.text if existing else record.text
        ))

    @staticmethod
    def _duplicate(check: DuplicateCheck) -> IngestResult:
        error = DUPLICATE_ERROR if check.status == DuplicateStatus.EXACT else SEMANTIC_DUPLICATE_ERROR
        return IngestResult(
            ok=False,
            error=error,
            existing_id=check.existing_id,
            existing_text=check.existing_text,
            similarity=check.similarity
        )

    async def get_memory(self, memory_id: str) -> Memory:
        """
        Fetch one memory.

        Raises:
            MemoryNotFound: If no memory has this id
        """
        memory = await self.store.get_by_id(memory_id)
        if memory is None:
            raise MemoryNotFound(memory_id)
        return memory

    async def delete_memory(self, memory_id: str) -> bool:
        """
        Delete one memory.

        Raises:
            MemoryNotFound: If no memory has this id
        """
        if not await self.store.delete_by_id(memory_id):
            raise MemoryNotFound(memory_id)
        return True
