"""
AI summaries of recent memories.

Produces the short natural-language digest pushed to change stream
subscribers. Summaries are best-effort: any failure yields None.
"""

import json
import logging
from typing import List, Optional

from memory_bridge.core.config import Settings
from memory_bridge.core.rate_limiter import RateLimiter, call_gemini_with_retry
from memory_bridge.models.memory import Memory

logger = logging.getLogger(__name__)

SUMMARY_PROMPT = "Summarize these memory items into 3 bullets:\n\n{items}"


class MemorySummarizer:
    """
    Summarizes recent memories with Gemini.

    Only constructed when an API key is configured and stream summaries
    are enabled.
    """

    def __init__(self, settings: Settings, rate_limiter: Optional[RateLimiter] = None):
        """Initialize memory summarizer."""
        self.model_name = settings.gemini_summary_model
        self.max_items = settings.summary_item_count
        self.max_retries = settings.gemini_max_retries
        self.rate_limiter = rate_limiter or RateLimiter(settings.gemini_rate_limit_per_minute)

    def build_prompt(self, memories: List[Memory]) -> str:
        """
        Render memories into the summary prompt.

        Args:
            memories: Memories to summarize, most recent first

        Returns:
            str: Prompt text listing id, ts, text and tags of each memory
        """
        items = [
            {
                "id": memory.id,
                "ts": memory.ts.isoformat() if memory.ts else None,
                "text": memory.text,
                "tags": list(memory.tags or []),
            }
            for memory in memories[:self.max_items]
        ]
        return SUMMARY_PROMPT.format(items=json.dumps(items, indent=2))

    async def summarize(self, memories: List[Memory]) -> Optional[str]:
        """
        Summarize memories into a short digest.

        Args:
            memories: Memories to summarize, most recent first

        Returns:
            Optional[str]: Summary text, or None if there is nothing to
            summarize or the model call failed
        """
        if not memories:
            return None

        try:
            response = await call_gemini_with_retry(
                self.rate_limiter,
                self.model_name,
                self.build_prompt(memories),
                max_retries=self.max_retries,
                generation_config={"max_output_tokens": 200}
            )
            summary = (response.text or "").strip()
        except Exception as e:
            logger.warning(f"Memory summarization failed: {e}")
            return None

        return summary or None
