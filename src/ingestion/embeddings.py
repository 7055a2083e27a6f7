"""Embedding helpers using OpenAI text-embedding-3-small."""

from __future__ import annotations

from typing import Protocol

from openai import AsyncOpenAI


class Embedder(Protocol):
    """Anything that can turn a piece of text into a fixed-length vector."""

    async def embed(self, text: str) -> list[float]: ...


class OpenAIEmbedder:
    """Embeds text with the OpenAI embeddings API.

    The SDK's own retries are disabled: failed calls go back to the durable
    embedding queue, which owns the retry policy.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        dimensions: int | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.model = model
        self.dimensions = dimensions
        self.client = AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    async def embed(self, text: str) -> list[float]:
        if self.dimensions:
            response = await self.client.embeddings.create(
                input=[text], model=self.model, dimensions=self.dimensions
            )
        else:
            response = await self.client.embeddings.create(input=[text], model=self.model)

        if not response.data:
            raise ValueError("No embedding returned from API")
        return response.data[0].embedding
