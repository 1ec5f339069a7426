"""Memory processing components."""

from .normalizer import normalize
from .deduplicator import MemoryDeduplicator, DuplicateCheck, DuplicateStatus, cosine_similarity
from .embedder import EmbeddingService
from .retriever import MemoryRetriever, RecallResult
from .summarizer import MemorySummarizer

__all__ = [
    "normalize",
    "MemoryDeduplicator",
    "DuplicateCheck",
    "DuplicateStatus",
    "cosine_similarity",
    "EmbeddingService",
    "MemoryRetriever",
    "RecallResult",
    "MemorySummarizer",
]
