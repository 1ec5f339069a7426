"""
Memory deduplication logic.

Decides whether incoming text already exists, either exactly (same
normalized text) or semantically (an embedding too close to a stored one).
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

import numpy as np

from memory_bridge.services.store import MemoryStore

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.9


class DuplicateStatus(str, Enum):
    UNIQUE = "unique"
    EXACT = "exact_duplicate"
    SEMANTIC = "semantic_duplicate"


@dataclass
class DuplicateCheck:
    """
    Result of a duplicate check.

    Attributes:
        status: unique, exact_duplicate, or semantic_duplicate
        existing_id: Id of the matching memory, if any
        existing_text: Text of the matching memory, if any
        similarity: Cosine similarity for semantic matches
    """
    status: DuplicateStatus
    existing_id: Optional[str] = None
    existing_text: Optional[str] = None
    similarity: Optional[float] = None

    @property
    def is_duplicate(self) -> bool:
        return self.status != DuplicateStatus.UNIQUE


UNIQUE = DuplicateCheck(status=DuplicateStatus.UNIQUE)


def cosine_similarity(vec1: List[float], vec2: List[float]) -> Optional[float]:
    """
    Calculate cosine similarity between two vectors.

    Args:
        vec1: First vector
        vec2: Second vector

    Returns:
        Optional[float]: Similarity in [-1, 1], or None when the vectors
        differ in length or either has zero norm
    """
    if len(vec1) != len(vec2) or len(vec1) == 0:
        return None

    v1 = np.asarray(vec1, dtype=float)
    v2 = np.asarray(vec2, dtype=float)

    norm_v1 = np.linalg.norm(v1)
    norm_v2 = np.linalg.norm(v2)

    if norm_v1 == 0 or norm_v2 == 0:
        return None

    return float(np.dot(v1, v2) / (norm_v1 * norm_v2))


def exceeds_threshold(similarity: Optional[float], threshold: float) -> bool:
    """A score equal to the threshold is not a duplicate."""
    return similarity is not None and similarity > threshold


class MemoryDeduplicator:
    """
    Handles exact and semantic duplicate detection.

    The semantic scan compares against every stored embedding, which is
    linear in the number of embedded memories.
    """

    def __init__(self, store: MemoryStore, similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD):
        """
        Initialize deduplicator.

        Args:
            store: Memory store to check against
            similarity_threshold: Cosine similarity above which memories are duplicates
        """
        self.store = store
        self.similarity_threshold = similarity_threshold

    async def check_exact(self, text_norm: str) -> DuplicateCheck:
        """
        Look up the normalized text in the store.

        Args:
            text_norm: Normalized text of the incoming memory

        Returns:
            DuplicateCheck: exact_duplicate with the stored memory, or unique
        """
        existing = await self.store.get_by_text_norm(text_norm)
        if existing is None:
            return UNIQUE

        logger.debug(f"Exact duplicate of memory {existing.id}")
        return DuplicateCheck(
            status=DuplicateStatus.EXACT,
            existing_id=existing.id,
            existing_text=existing.text
        )

    async def check_semantic(self, embedding: Optional[List[float]]) -> DuplicateCheck:
        """
        Compare an embedding against every stored embedding.

        Args:
            embedding: Vector of the incoming memory, or None

        Returns:
            DuplicateCheck: semantic_duplicate with the best match above the
            threshold, or unique
        """
        if not embedding:
            return UNIQUE

        candidates = await self.store.list_all_embedded()
        if not candidates:
            return UNIQUE

        best_match = None
        best_similarity = None
        for candidate in candidates:
            similarity = cosine_similarity(embedding, candidate.embedding)
            if not exceeds_threshold(similarity, self.similarity_threshold):
                continue
            if best_similarity is None or similarity > best_similarity:
                best_match, best_similarity = candidate, similarity

        if best_match is None:
            return UNIQUE

        logger.info(
            f"Semantic duplicate of memory {best_match.id} "
            f"(similarity {best_similarity:.4f} > {self.similarity_threshold})"
        )
        return DuplicateCheck(
            status=DuplicateStatus.SEMANTIC,
            existing_id=best_match.id,
            existing_text=best_match.text,
            similarity=best_similarity
        )

    async def check(self, text_norm: str, embedding: Optional[List[float]] = None) -> DuplicateCheck:
        """
        Check if a memory is new, an exact duplicate, or a semantic duplicate.

        Args:
            text_norm: Normalized text of the incoming memory
            embedding: Optional vector of the incoming memory

        Returns:
            DuplicateCheck: Exact matches take precedence over semantic ones

        Example:
            >>> result = await dedup.check("meeting with adam", embedding)
            >>> if result.status == DuplicateStatus.EXACT:
            ...     # Report or refresh the existing memory
        """
        exact = await self.check_exact(text_norm)
        if exact.is_duplicate:
            return exact
        return await self.check_semantic(embedding)
