"""Claude-powered streaming answer generation."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Protocol

from anthropic import AsyncAnthropic


class Generator(Protocol):
    """A streaming text-generation service: prompt in, text deltas out."""

    def stream(self, prompt: str) -> AsyncGenerator[str, None]: ...


class AnthropicGenerator:
    """Streams answers from the Anthropic Messages API."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-20250514",
        max_tokens: int = 1024,
        timeout: float = 60.0,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self.client = AsyncAnthropic(api_key=api_key, timeout=timeout)

    async def stream(self, prompt: str) -> AsyncGenerator[str, None]:
        """Yield text deltas for a single-turn prompt."""
        async with self.client.messages.stream(
            model=self.model,
            max_tokens=self.max_tokens,
            messages=[{"role": "user", "content": prompt}],
        ) as response:
            async for text in response.text_stream:
                yield text
