"""
Tests for the completion backends and the provider factory.

Ollama is exercised against an httpx.MockTransport; Anthropic with the SDK
call patched out. Nothing touches the network.
"""

from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import anthropic
import httpx
import pytest

from float_backend.config import Settings
from float_backend.services.completion import (
    AnthropicCompletion,
    CompletionUnavailable,
    MockCompletion,
    OllamaCompletion,
    get_completion,
)

_RealAsyncClient = httpx.AsyncClient


def _with_transport(handler):
    """Patch httpx.AsyncClient so every client the code builds uses a mock transport."""

    def factory(*args, **kwargs):
        return _RealAsyncClient(*args, transport=httpx.MockTransport(handler), **kwargs)

    return patch("httpx.AsyncClient", side_effect=factory)


class TestOllamaCompletion:
    @pytest.mark.asyncio
    async def test_posts_chat_in_json_mode(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"message": {"role": "assistant", "content": '{"name": "x"}'}})

        with _with_transport(handler):
            reply = await OllamaCompletion("http://ollama:11434/", "llama3.1").complete("parse this")

        assert reply == '{"name": "x"}'
        assert seen["url"] == "http://ollama:11434/api/chat"
        assert seen["body"]["model"] == "llama3.1"
        assert seen["body"]["format"] == "json"
        assert seen["body"]["stream"] is False
        assert seen["body"]["options"] == {"temperature": 0.1}
        assert seen["body"]["messages"] == [{"role": "user", "content": "parse this"}]

    @pytest.mark.asyncio
    async def test_http_error_is_unavailable(self):
        with _with_transport(lambda request: httpx.Response(500, text="model not loaded")):
            with pytest.raises(CompletionUnavailable):
                await OllamaCompletion("http://ollama:11434", "llama3.1").complete("p")

    @pytest.mark.asyncio
    async def test_connection_error_is_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with _with_transport(handler):
            with pytest.raises(CompletionUnavailable):
                await OllamaCompletion("http://ollama:11434", "llama3.1").complete("p")

    @pytest.mark.asyncio
    async def test_missing_content_is_unavailable(self):
        with _with_transport(lambda request: httpx.Response(200, json={"done": True})):
            with pytest.raises(CompletionUnavailable):
                await OllamaCompletion("http://ollama:11434", "llama3.1").complete("p")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [["not", "an", "object"], {"message": "plain text"}, "just a string"])
    async def test_non_object_body_is_unavailable(self, body):
        with _with_transport(lambda request: httpx.Response(200, json=body)):
            with pytest.raises(CompletionUnavailable, match="no message content"):
                await OllamaCompletion("http://ollama:11434", "llama3.1").complete("p")


class TestAnthropicCompletion:
    @pytest.mark.asyncio
    async def test_joins_text_blocks(self):
        service = AnthropicCompletion(api_key="test-key", model="claude-test")
        message = SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text='{"name": '),
                SimpleNamespace(type="text", text='"x"}'),
            ]
        )
        with patch.object(service.client.messages, "create", new=AsyncMock(return_value=message)) as create:
            reply = await service.complete("parse this")

        assert reply == '{"name": "x"}'
        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["temperature"] == 0.1
        assert kwargs["messages"] == [{"role": "user", "content": "parse this"}]

    @pytest.mark.asyncio
    async def test_api_error_is_unavailable(self):
        service = AnthropicCompletion(api_key="test-key", model="claude-test")
        error = anthropic.APIConnectionError(request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"))
        with patch.object(service.client.messages, "create", new=AsyncMock(side_effect=error)):
            with pytest.raises(CompletionUnavailable):
                await service.complete("p")


class TestMockCompletion:
    @pytest.mark.asyncio
    async def test_replies_in_order_then_repeats_last(self):
        mock = MockCompletion(["one", "two"])
        assert [await mock.complete("a"), await mock.complete("b"), await mock.complete("c")] == ["one", "two", "two"]
        assert mock.prompts == ["a", "b", "c"]
        assert mock.calls == 3

    @pytest.mark.asyncio
    async def test_exception_reply_is_raised(self):
        mock = MockCompletion([CompletionUnavailable("offline")])
        with pytest.raises(CompletionUnavailable, match="offline"):
            await mock.complete("a")

    @pytest.mark.asyncio
    async def test_no_replies_is_unavailable(self):
        with pytest.raises(CompletionUnavailable):
            await MockCompletion().complete("a")


class TestGetCompletion:
    def test_default_is_ollama(self):
        with patch.object(Settings, "COMPLETION_PROVIDER", "ollama"), patch.object(Settings, "COMPLETION_MODEL", ""):
            service = get_completion(Settings())
        assert isinstance(service, OllamaCompletion)
        assert service.model == Settings.OLLAMA_MODEL

    def test_model_override(self):
        with patch.object(Settings, "COMPLETION_PROVIDER", "ollama"), patch.object(
            Settings, "COMPLETION_MODEL", "qwen2.5-coder"
        ):
            service = get_completion(Settings())
        assert service.model == "qwen2.5-coder"

    def test_mock(self):
        with patch.object(Settings, "COMPLETION_PROVIDER", "mock"):
            assert isinstance(get_completion(Settings()), MockCompletion)

    def test_none_disables_fallback(self):
        with patch.object(Settings, "COMPLETION_PROVIDER", "none"):
            assert get_completion(Settings()) is None

    def test_anthropic_needs_key(self):
        with patch.object(Settings, "COMPLETION_PROVIDER", "anthropic"), patch.object(
            Settings, "ANTHROPIC_API_KEY", ""
        ):
            assert get_completion(Settings()) is None

    def test_anthropic_with_key(self):
        with patch.object(Settings, "COMPLETION_PROVIDER", "anthropic"), patch.object(
            Settings, "ANTHROPIC_API_KEY", "test-key"
        ), patch.object(Settings, "COMPLETION_MODEL", ""):
            service = get_completion(Settings())
        assert isinstance(service, AnthropicCompletion)
        assert service.model == Settings.ANTHROPIC_MODEL
