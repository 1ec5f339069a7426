"""
Embedding provider and summarizer tests.

Gemini calls are replaced with monkeypatched coroutines; nothing here
touches the network.
"""

from datetime import datetime

import pytest

from memory_bridge.core.exceptions import EmbeddingUnavailable
from memory_bridge.memory import embedder as embedder_module
from memory_bridge.memory import summarizer as summarizer_module
from memory_bridge.memory.embedder import EmbeddingService
from memory_bridge.memory.summarizer import MemorySummarizer
from memory_bridge.models.memory import Memory


def make_memory(memory_id: str, text: str, tags=None, ts=None) -> Memory:
    return Memory(id=memory_id, text=text, text_norm=text.lower(), tags=tags or [], ts=ts)


class TestEmbeddingService:

    async def test_unconfigured_provider_is_unavailable(self, settings):
        service = EmbeddingService(settings)

        assert service.available is False
        with pytest.raises(EmbeddingUnavailable):
            await service.embed("anything")

    async def test_gemini_vector_is_returned(self, settings, monkeypatch):
        async def fake_embedding(limiter, model_name, text, max_retries=3):
            return [0.5, 0.5]

        monkeypatch.setattr(embedder_module, "get_embedding_with_retry", fake_embedding)
        service = EmbeddingService(settings.model_copy(update={"gemini_api_key": "test-key"}))

        assert service.available is True
        assert await service.embed("  coffee ") == [0.5, 0.5]

    async def test_gemini_failure_becomes_unavailable(self, settings, monkeypatch):
        async def failing_embedding(limiter, model_name, text, max_retries=3):
            raise RuntimeError("upstream timeout")

        monkeypatch.setattr(embedder_module, "get_embedding_with_retry", failing_embedding)
        service = EmbeddingService(settings.model_copy(update={"gemini_api_key": "test-key"}))

        with pytest.raises(EmbeddingUnavailable):
            await service.embed("coffee")

    async def test_empty_text_is_not_embedded(self, settings):
        service = EmbeddingService(settings.model_copy(update={"gemini_api_key": "test-key"}))

        with pytest.raises(EmbeddingUnavailable):
            await service.embed("   ")


class TestMemorySummarizer:

    def test_prompt_lists_items(self, settings):
        summarizer = MemorySummarizer(settings)
        memories = [
            make_memory("1", "Meeting with Adam", tags=["work"], ts=datetime(2024, 5, 1, 16, 0)),
            make_memory("2", "Buy milk"),
        ]

        prompt = summarizer.build_prompt(memories)

        assert prompt.startswith("Summarize these memory items into 3 bullets:")
        assert '"Meeting with Adam"' in prompt
        assert '"2024-05-01T16:00:00"' in prompt
        assert '"work"' in prompt

    def test_prompt_is_capped(self, settings):
        summarizer = MemorySummarizer(settings.model_copy(update={"summary_item_count": 1}))

        prompt = summarizer.build_prompt([make_memory("1", "first"), make_memory("2", "second")])

        assert '"first"' in prompt
        assert '"second"' not in prompt

    async def test_summary_text(self, settings, monkeypatch):
        class Response:
            text = "  - a\n- b\n- c  "

        async def fake_call(limiter, model_name, prompt, max_retries=3, **kwargs):
            assert kwargs["generation_config"] == {"max_output_tokens": 200}
            return Response()

        monkeypatch.setattr(summarizer_module, "call_gemini_with_retry", fake_call)

        summary = await MemorySummarizer(settings).summarize([make_memory("1", "x")])

        assert summary == "- a\n- b\n- c"

    async def test_failure_yields_none(self, settings, monkeypatch):
        async def failing_call(*args, **kwargs):
            raise RuntimeError("quota")

        monkeypatch.setattr(summarizer_module, "call_gemini_with_retry", failing_call)

        assert await MemorySummarizer(settings).summarize([make_memory("1", "x")]) is None

    async def test_nothing_to_summarize(self, settings):
        assert await MemorySummarizer(settings).summarize([]) is None
