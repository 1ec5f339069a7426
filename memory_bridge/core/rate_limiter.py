"""
Rate limiting for external API calls.

Implements rate limiting with exponential backoff for the Gemini API
used by the embedding provider and the stream summarizer.
"""

import asyncio
import logging
import time
from functools import wraps
from typing import Any, Callable, Dict, List

import google.generativeai as genai
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential
)

logger = logging.getLogger(__name__)


class RateLimitError(Exception):
    """Custom exception for rate limiting errors."""
    pass


class APIQuotaError(Exception):
    """Custom exception for API quota errors."""
    pass


class RateLimiter:
    """
    Rate limiter for API calls with request tracking.

    Tracks API calls per minute and spaces requests evenly to prevent
    quota exhaustion.
    """

    def __init__(self, max_requests_per_minute: int = 15):
        """
        Initialize rate limiter.

        Args:
            max_requests_per_minute: Maximum requests allowed per minute
        """
        self.max_requests_per_minute = max_requests_per_minute
        self.requests: Dict[int, int] = {}  # minute -> request_count
        self.last_request_time = 0.0
        self.min_interval = 60.0 / max_requests_per_minute  # Seconds between requests
        self._lock = asyncio.Lock()

    def _get_current_minute(self) -> int:
        """Get current minute as integer for tracking."""
        return int(time.time() // 60)

    def _cleanup_old_requests(self) -> None:
        """Remove request counts older than 1 minute."""
        current_minute = self._get_current_minute()
        self.requests = {minute: count for minute, count in self.requests.items()
                         if minute >= current_minute}

    def get_requests_this_minute(self) -> int:
        """
        Get number of requests made in current minute.

        Returns:
            int: Number of requests in current minute
        """
        self._cleanup_old_requests()
        current_minute = self._get_current_minute()
        return self.requests.get(current_minute, 0)

    def can_make_request(self) -> bool:
        """
        Check if a request can be made without exceeding rate limit.

        Returns:
            bool: True if request can be made, False otherwise
        """
        return self.get_requests_this_minute() < self.max_requests_per_minute

    def record_request(self) -> None:
        """Record that a request was made."""
        current_minute = self._get_current_minute()
        self.requests[current_minute] = self.requests.get(current_minute, 0) + 1
        logger.debug(f"Recorded request. Count this minute: {self.requests[current_minute]}")

    def get_wait_time_until_available(self) -> float:
        """
        Get time to wait until next request can be made.

        Returns:
            float: Seconds to wait, 0 if request can be made immediately
        """
        if self.can_make_request():
            return 0.0

        # Calculate time until next minute starts
        seconds_in_minute = time.time() % 60
        return 60.0 - seconds_in_minute

    async def acquire(self) -> None:
        """
        Wait until a request slot is available, then record the request.

        Ensures a minimum interval between requests and never exceeds the
        per-minute budget.
        """
        async with self._lock:
            time_since_last = time.time() - self.last_request_time
            if time_since_last < self.min_interval:
                wait_time = self.min_interval - time_since_last
                logger.debug(f"Rate limiting: waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)

            if not self.can_make_request():
                wait_time = self.get_wait_time_until_available()
                logger.warning(f"Rate limit reached, waiting {wait_time:.1f}s")
                await asyncio.sleep(wait_time)

            self.record_request()
            self.last_request_time = time.time()


def classify_gemini_error(e: Exception) -> Exception:
    """
    Map a raw Gemini exception onto the retry taxonomy.

    Args:
        e: Exception raised by the Gemini client

    Returns:
        Exception: RateLimitError, APIQuotaError, or the original exception
    """
    error_message = str(e).lower()

    # Check for quota exhaustion
    if "quota exceeded" in error_message or "billing" in error_message:
        return APIQuotaError(f"API quota exhausted: {e}")

    # Check for rate limiting
    if "quota" in error_message or "rate limit" in error_message or "429" in error_message:
        return RateLimitError(f"API rate limit exceeded: {e}")

    return e


def handle_gemini_errors(func: Callable) -> Callable:
    """
    Decorator to handle common Gemini API errors.

    Args:
        func: Function to wrap

    Returns:
        Callable: Wrapped function with error handling
    """
    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except (RateLimitError, APIQuotaError):
            raise
        except Exception as e:
            classified = classify_gemini_error(e)
            if classified is e:
                logger.error(f"Unexpected API error: {e}")
                raise
            logger.warning(f"Gemini API limit hit: {classified}")
            raise classified from e

    return wrapper


async def _with_retry(max_retries: int, func: Callable, *args, **kwargs) -> Any:
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(max_retries),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        retry=retry_if_exception_type(RateLimitError),
        reraise=True
    ):
        with attempt:
            return await func(*args, **kwargs)


@handle_gemini_errors
async def _generate_content(limiter: RateLimiter, model_name: str, prompt: str, **kwargs) -> Any:
    await limiter.acquire()

    model = genai.GenerativeModel(model_name)
    logger.debug(f"Calling Gemini API: {model_name}")
    response = await model.generate_content_async(prompt, **kwargs)
    logger.debug("Gemini API call successful")
    return response


@handle_gemini_errors
async def _embed_content(limiter: RateLimiter, model_name: str, text: str) -> List[float]:
    await limiter.acquire()

    logger.debug("Calling Gemini embedding API")
    response = await asyncio.to_thread(
        genai.embed_content,
        model=model_name,
        content=text,
        task_type="retrieval_document"
    )
    logger.debug("Gemini embedding API call successful")
    return list(response['embedding'])


async def call_gemini_with_retry(
    limiter: RateLimiter,
    model_name: str,
    prompt: str,
    max_retries: int = 3,
    **kwargs
) -> Any:
    """
    Call Gemini API with retry logic and rate limiting.

    Args:
        limiter: Shared rate limiter
        model_name: Gemini model name
        prompt: Text prompt to send
        max_retries: Attempts before giving up on rate limit errors
        **kwargs: Additional model parameters

    Returns:
        Any: Model response

    Raises:
        RateLimitError: If rate limit is exceeded after retries
        APIQuotaError: If API quota is exhausted
        Exception: For other API errors

    Example:
        >>> response = await call_gemini_with_retry(
        ...     limiter, "gemini-1.5-flash", "Summarize: ..."
        ... )
    """
    return await _with_retry(max_retries, _generate_content, limiter, model_name, prompt, **kwargs)


async def get_embedding_with_retry(
    limiter: RateLimiter,
    model_name: str,
    text: str,
    max_retries: int = 3
) -> List[float]:
    """
    Get text embedding with retry logic and rate limiting.

    Args:
        limiter: Shared rate limiter
        model_name: Gemini embedding model name
        text: Text to embed
        max_retries: Attempts before giving up on rate limit errors

    Returns:
        List[float]: Embedding vector

    Raises:
        RateLimitError: If rate limit is exceeded after retries
        APIQuotaError: If API quota is exhausted

    Example:
        >>> embedding = await get_embedding_with_retry(limiter, "models/text-embedding-004", "I love coffee")
        >>> print(len(embedding))  # 768
    """
    return await _with_retry(max_retries, _embed_content, limiter, model_name, text)
