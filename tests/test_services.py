"""Tests for the OpenAI embedder and the Claude streaming generator.

Unit tests patch the SDK clients. Tests that call the live APIs are marked
@pytest.mark.expensive and skipped when the keys are not configured.
"""

from __future__ import annotations

import asyncio
import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.ingestion.embeddings import OpenAIEmbedder
from src.retrieval.generation import AnthropicGenerator


def _embedding_response(vectors: list[list[float]]) -> MagicMock:
    response = MagicMock()
    response.data = [MagicMock(embedding=v) for v in vectors]
    return response


class TestOpenAIEmbedder:
    @patch("src.ingestion.embeddings.AsyncOpenAI")
    def test_sdk_retries_disabled(self, mock_openai_cls: MagicMock) -> None:
        OpenAIEmbedder(api_key="sk-test", timeout=12.0)
        mock_openai_cls.assert_called_once_with(api_key="sk-test", timeout=12.0, max_retries=0)

    @patch("src.ingestion.embeddings.AsyncOpenAI")
    def test_embed_passes_dimensions(self, mock_openai_cls: MagicMock) -> None:
        mock_client = MagicMock()
        mock_client.embeddings.create = AsyncMock(return_value=_embedding_response([[0.1, 0.2]]))
        mock_openai_cls.return_value = mock_client

        embedder = OpenAIEmbedder(api_key="sk-test", dimensions=2)
        result = asyncio.run(embedder.embed("hello"))

        assert result == [0.1, 0.2]
        mock_client.embeddings.create.assert_awaited_once_with(
            input=["hello"], model="text-embedding-3-small", dimensions=2
        )

    @patch("src.ingestion.embeddings.AsyncOpenAI")
    def test_embed_without_dimensions(self, mock_openai_cls: MagicMock) -> None:
        mock_client = MagicMock()
        mock_client.embeddings.create = AsyncMock(return_value=_embedding_response([[1.0]]))
        mock_openai_cls.return_value = mock_client

        asyncio.run(OpenAIEmbedder(api_key="sk-test").embed("hello"))

        mock_client.embeddings.create.assert_awaited_once_with(
            input=["hello"], model="text-embedding-3-small"
        )

    @patch("src.ingestion.embeddings.AsyncOpenAI")
    def test_empty_response_raises(self, mock_openai_cls: MagicMock) -> None:
        mock_client = MagicMock()
        mock_client.embeddings.create = AsyncMock(return_value=_embedding_response([]))
        mock_openai_cls.return_value = mock_client

        with pytest.raises(ValueError, match="No embedding returned"):
            asyncio.run(OpenAIEmbedder(api_key="sk-test").embed("hello"))


class _FakeMessageStream:
    """Async context manager mimicking ``client.messages.stream(...)``."""

    def __init__(self, pieces: list[str]) -> None:
        self.pieces = pieces

    async def __aenter__(self) -> _FakeMessageStream:
        return self

    async def __aexit__(self, *exc: object) -> None:
        return None

    @property
    def text_stream(self):
        async def gen():
            for piece in self.pieces:
                yield piece

        return gen()


class TestAnthropicGenerator:
    @patch("src.retrieval.generation.AsyncAnthropic")
    def test_streams_text_deltas(self, mock_anthropic_cls: MagicMock) -> None:
        mock_client = MagicMock()
        mock_client.messages.stream.return_value = _FakeMessageStream(["Hello", " there"])
        mock_anthropic_cls.return_value = mock_client

        generator = AnthropicGenerator(api_key="sk-ant-test", model="claude-test", max_tokens=50)

        async def collect() -> list[str]:
            return [text async for text in generator.stream("the prompt")]

        assert asyncio.run(collect()) == ["Hello", " there"]
        mock_client.messages.stream.assert_called_once_with(
            model="claude-test",
            max_tokens=50,
            messages=[{"role": "user", "content": "the prompt"}],
        )


# ---------------------------------------------------------------------------
# Live API tests
# ---------------------------------------------------------------------------


@pytest.mark.expensive
@pytest.mark.skipif(not os.environ.get("OPENAI_API_KEY"), reason="OPENAI_API_KEY not set")
def test_live_embedding_dimensions() -> None:
    embedder = OpenAIEmbedder(api_key=os.environ["OPENAI_API_KEY"], dimensions=1536)
    vector = asyncio.run(embedder.embed("We decided to launch the beta in March."))
    assert len(vector) == 1536


@pytest.mark.expensive
@pytest.mark.skipif(not os.environ.get("ANTHROPIC_API_KEY"), reason="ANTHROPIC_API_KEY not set")
def test_live_generation_streams() -> None:
    generator = AnthropicGenerator(api_key=os.environ["ANTHROPIC_API_KEY"], max_tokens=20)

    async def collect() -> str:
        return "".join([text async for text in generator.stream("Reply with the word: ready")])

    assert asyncio.run(collect()).strip()
