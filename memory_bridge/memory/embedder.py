"""
Embedding service for converting text to vectors.

Provides embedding generation using Gemini text-embedding-004 with an
optional local sentence-transformers fallback. Any failure surfaces as
EmbeddingUnavailable so ingestion can continue without a vector.
"""

import asyncio
import logging
import time
from typing import List, Optional

import google.generativeai as genai

from memory_bridge.core.config import Settings
from memory_bridge.core.exceptions import EmbeddingUnavailable
from memory_bridge.core.rate_limiter import RateLimiter, get_embedding_with_retry

logger = logging.getLogger(__name__)


class EmbeddingService:
    """
    Service for generating text embeddings.

    Provides embeddings using the Gemini API, falling back to a local
    sentence-transformers model when one is configured.
    """

    def __init__(self, settings: Settings, rate_limiter: Optional[RateLimiter] = None):
        """
        Initialize embedding service.

        Args:
            settings: Application settings
            rate_limiter: Limiter shared with other Gemini callers
        """
        self.api_key = settings.gemini_api_key
        self.gemini_model = settings.gemini_embedding_model
        self.max_retries = settings.gemini_max_retries
        self.rate_limiter = rate_limiter or RateLimiter(settings.gemini_rate_limit_per_minute)
        self.fallback_model_name = settings.embedding_fallback_model
        self.fallback_model = None

        if self.api_key:
            genai.configure(api_key=self.api_key)

    @property
    def gemini_available(self) -> bool:
        return bool(self.api_key)

    @property
    def available(self) -> bool:
        return self.gemini_available or bool(self.fallback_model_name)

    def _load_fallback(self):
        """
        Load the sentence-transformers fallback on first use.

        This provides a local alternative when the API is unset or failing.
        """
        if self.fallback_model is None:
            from sentence_transformers import SentenceTransformer

            self.fallback_model = SentenceTransformer(self.fallback_model_name)
            logger.info(f"Fallback embedding model {self.fallback_model_name} initialized")
        return self.fallback_model

    async def embed(self, text: str) -> List[float]:
        """
        Get embedding for text.

        Args:
            text: Text to embed

        Returns:
            List[float]: Embedding vector

        Raises:
            EmbeddingUnavailable: If no provider is configured or every provider failed

        Example:
            >>> service = EmbeddingService(settings)
            >>> embedding = await service.embed("I love coffee")
            >>> print(len(embedding))  # 768 (Gemini)
        """
        if not text or not text.strip():
            raise EmbeddingUnavailable("Cannot embed empty text")

        if not self.available:
            raise EmbeddingUnavailable("No embedding provider configured")

        start_time = time.time()
        text = text.strip()

        if self.gemini_available:
            try:
                embedding = await get_embedding_with_retry(
                    self.rate_limiter, self.gemini_model, text, max_retries=self.max_retries
                )
                if embedding:
                    logger.debug(f"Generated Gemini embedding in {time.time() - start_time:.2f}s")
                    return embedding
                logger.warning("Gemini returned an empty embedding")
            except Exception as e:
                logger.warning(f"Gemini embedding failed: {e}")
                if not self.fallback_model_name:
                    raise EmbeddingUnavailable(f"Embedding generation failed: {e}") from e

        if self.fallback_model_name:
            try:
                model = await asyncio.to_thread(self._load_fallback)
                vector = await asyncio.to_thread(model.encode, text)
                embedding = [float(x) for x in vector]
            except Exception as e:
                raise EmbeddingUnavailable(f"Fallback embedding failed: {e}") from e
            if embedding:
                logger.debug(f"Generated fallback embedding in {time.time() - start_time:.2f}s")
                return embedding

        raise EmbeddingUnavailable("Embedding provider returned no vector")

