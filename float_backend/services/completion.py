"""
Text-completion backends for the rule compiler fallback.

One call shape: complete(prompt) -> str. Output is untrusted text; callers
parse and validate it themselves.

  OllamaCompletion    — local Ollama /api/chat, JSON mode, low temperature
  AnthropicCompletion — Anthropic Messages API
  MockCompletion      — canned replies for tests, no network
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

import anthropic
import httpx

from float_backend.config import Settings

logger = logging.getLogger(__name__)

RULE_TEMPERATURE = 0.1


class CompletionUnavailable(Exception):
    """The completion backend could not produce a reply."""


class CompletionService:
    """Abstract completion backend."""

    name = "completion"

    async def complete(self, prompt: str) -> str:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class OllamaCompletion(CompletionService):
    """Calls a local Ollama server over HTTP."""

    name = "ollama"

    def __init__(self, base_url: str, model: str, timeout_sec: float = 60.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout_sec = timeout_sec

    async def complete(self, prompt: str) -> str:
        body = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "stream": False,
            "format": "json",
            "options": {"temperature": RULE_TEMPERATURE},
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_sec) as client:
                response = await client.post(f"{self.base_url}/api/chat", json=body)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise CompletionUnavailable(f"ollama request failed: {e}") from e

        message = data.get("message") if isinstance(data, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            raise CompletionUnavailable("ollama response had no message content")
        return content


class AnthropicCompletion(CompletionService):
    """Calls the Anthropic Messages API."""

    name = "anthropic"

    def __init__(self, api_key: str, model: str, timeout_sec: float = 60.0, max_tokens: int = 1024) -> None:
        self.client = anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout_sec)
        self.model = model
        self.max_tokens = max_tokens

    async def complete(self, prompt: str) -> str:
        try:
            message = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=RULE_TEMPERATURE,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as e:
            raise CompletionUnavailable(f"anthropic request failed: {e}") from e

        return "".join(block.text for block in message.content if getattr(block, "type", None) == "text")

    async def close(self) -> None:
        await self.client.close()


class MockCompletion(CompletionService):
    """
    Returns canned replies in order, repeating the last one.

    A reply that is an Exception instance is raised instead of returned.
    Every prompt is recorded in .prompts.
    """

    name = "mock"

    def __init__(self, replies: Iterable[str | Exception] = ()) -> None:
        self.replies = list(replies)
        self.prompts: list[str] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if not self.replies:
            raise CompletionUnavailable("mock completion has no replies configured")
        index = min(len(self.prompts), len(self.replies)) - 1
        reply = self.replies[index]
        if isinstance(reply, Exception):
            raise reply
        return reply


def get_completion(settings: Settings) -> CompletionService | None:
    """
    Return the configured completion backend.

    - FLOAT_COMPLETION_PROVIDER=mock       → MockCompletion (no replies; always unavailable)
    - FLOAT_COMPLETION_PROVIDER=anthropic  → AnthropicCompletion when ANTHROPIC_API_KEY is set
    - FLOAT_COMPLETION_PROVIDER=ollama     → OllamaCompletion (default)
    - FLOAT_COMPLETION_PROVIDER=none       → None (fast path only)
    """
    provider = settings.COMPLETION_PROVIDER
    if provider == "none":
        return None
    if provider == "mock":
        return MockCompletion()
    if provider == "anthropic":
        if not settings.ANTHROPIC_API_KEY:
            logger.warning("completion: ANTHROPIC_API_KEY not set, fallback compiler disabled")
            return None
        return AnthropicCompletion(
            api_key=settings.ANTHROPIC_API_KEY,
            model=settings.COMPLETION_MODEL or settings.ANTHROPIC_MODEL,
            timeout_sec=settings.COMPLETION_TIMEOUT_SEC,
        )
    if provider != "ollama":
        logger.warning("completion: unknown provider %r, using ollama", provider)
    return OllamaCompletion(
        base_url=settings.OLLAMA_URL,
        model=settings.COMPLETION_MODEL or settings.OLLAMA_MODEL,
        timeout_sec=settings.COMPLETION_TIMEOUT_SEC,
    )
