"""
External tool gateway.

Holds one connection per configured tool provider and exposes a single
async call: invoke(provider, tool, args) -> payload.

Connections are opened eagerly by start(). A provider that fails to connect
is marked unavailable and the gateway keeps going (degraded mode); invoking
it fails fast with ProviderUnavailable instead of being attempted.
Every call is bounded by a timeout and issued at most once.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from contextlib import AsyncExitStack
from typing import Any

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client

from float_backend.config import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class GatewayError(Exception):
    """An external tool call failed or timed out."""

    def __init__(self, message: str, *, provider: str | None = None, tool: str | None = None) -> None:
        super().__init__(message)
        self.provider = provider
        self.tool = tool


class ProviderUnavailable(GatewayError):
    """The provider is not connected; the call was not attempted."""


# ---------------------------------------------------------------------------
# Provider protocol
# ---------------------------------------------------------------------------


class ToolProvider:
    """
    Abstract provider interface.
    Implement with an MCP client for production, or in-process handlers for tests.
    """

    def __init__(self, name: str) -> None:
        self.name = name

    async def connect(self) -> None:
        """Open the connection. Raise on failure."""
        raise NotImplementedError

    async def call_tool(self, tool: str, args: dict[str, Any]) -> Any:
        """Run one tool and return its structured result."""
        raise NotImplementedError

    async def list_tools(self) -> list[str]:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class StaticProvider(ToolProvider):
    """In-process provider backed by plain callables (sync or async)."""

    def __init__(
        self,
        name: str,
        handlers: dict[str, Callable[..., Any | Awaitable[Any]]] | None = None,
        *,
        connect_error: Exception | None = None,
    ) -> None:
        super().__init__(name)
        self.handlers = dict(handlers or {})
        self.connect_error = connect_error
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def connect(self) -> None:
        if self.connect_error is not None:
            raise self.connect_error

    async def call_tool(self, tool: str, args: dict[str, Any]) -> Any:
        self.calls.append((tool, args))
        handler = self.handlers.get(tool)
        if handler is None:
            raise GatewayError(f"unknown tool: {tool}", provider=self.name, tool=tool)
        result = handler(**args)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def list_tools(self) -> list[str]:
        return sorted(self.handlers)


class McpStdioProvider(ToolProvider):
    """MCP server spawned as a subprocess and spoken to over stdio."""

    def __init__(self, name: str, command: str, args: list[str], env: dict[str, str] | None = None) -> None:
        super().__init__(name)
        self.params = StdioServerParameters(command=command, args=args, env=env)
        self._stack: AsyncExitStack | None = None
        self._session: ClientSession | None = None

    async def connect(self) -> None:
        stack = AsyncExitStack()
        try:
            read, write = await stack.enter_async_context(stdio_client(self.params))
            session = await stack.enter_async_context(ClientSession(read, write))
            await session.initialize()
        except BaseException:
            await stack.aclose()
            raise
        self._stack = stack
        self._session = session

    async def call_tool(self, tool: str, args: dict[str, Any]) -> Any:
        if self._session is None:
            raise ProviderUnavailable(f"{self.name} is not connected", provider=self.name, tool=tool)
        result = await self._session.call_tool(tool, arguments=args)
        payload = result.model_dump(mode="json", exclude_none=True)
        if result.isError:
            texts = [c.get("text", "") for c in payload.get("content", []) if isinstance(c, dict)]
            raise GatewayError(
                f"{tool} returned an error: {' '.join(texts)[:500]}",
                provider=self.name,
                tool=tool,
            )
        return payload

    async def list_tools(self) -> list[str]:
        if self._session is None:
            raise ProviderUnavailable(f"{self.name} is not connected", provider=self.name)
        listing = await self._session.list_tools()
        return [t.name for t in listing.tools]

    async def close(self) -> None:
        if self._stack is not None:
            await self._stack.aclose()
        self._stack = None
        self._session = None


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------


class ToolGateway:
    """Routes tool calls to named providers with timeouts and graceful degradation."""

    def __init__(
        self,
        providers: list[ToolProvider],
        *,
        timeout_sec: float = 30.0,
        connect_timeout_sec: float = 15.0,
    ) -> None:
        self._providers: dict[str, ToolProvider] = {p.name: p for p in providers}
        self._available: set[str] = set()
        self._errors: dict[str, str] = {}
        self.timeout_sec = timeout_sec
        self.connect_timeout_sec = connect_timeout_sec

    async def start(self) -> None:
        """Connect every provider. Failures degrade that provider only."""
        for name, provider in self._providers.items():
            logger.info("gateway: connecting provider %s", name)
            try:
                async with asyncio.timeout(self.connect_timeout_sec):
                    await provider.connect()
            except Exception as e:
                self._available.discard(name)
                self._errors[name] = str(e) or type(e).__name__
                logger.error("gateway: provider %s unavailable: %s", name, self._errors[name])
                continue
            self._available.add(name)
            self._errors.pop(name, None)
            logger.info("gateway: provider %s connected", name)

    def is_available(self, provider: str) -> bool:
        return provider in self._available

    def status(self) -> dict[str, dict[str, Any]]:
        return {
            name: {"available": name in self._available, "error": self._errors.get(name)}
            for name in self._providers
        }

    async def invoke(self, provider: str, tool: str, args: dict[str, Any]) -> Any:
        """
        Call one tool once. Raises ProviderUnavailable without calling when the
        provider is absent, GatewayError on failure or timeout.
        """
        if provider not in self._available:
            raise ProviderUnavailable(f"provider unavailable: {provider}", provider=provider, tool=tool)

        logger.debug("gateway: invoking %s.%s", provider, tool)
        try:
            async with asyncio.timeout(self.timeout_sec):
                return await self._providers[provider].call_tool(tool, args)
        except GatewayError:
            raise
        except TimeoutError as e:
            raise GatewayError(
                f"{provider}.{tool} timed out after {self.timeout_sec}s",
                provider=provider,
                tool=tool,
            ) from e
        except Exception as e:
            raise GatewayError(f"{provider}.{tool} failed: {e}", provider=provider, tool=tool) from e

    async def list_tools(self, provider: str) -> list[str]:
        if provider not in self._available:
            raise ProviderUnavailable(f"provider unavailable: {provider}", provider=provider)
        return await self._providers[provider].list_tools()

    async def close(self) -> None:
        for name, provider in self._providers.items():
            try:
                await provider.close()
            except Exception as e:
                logger.warning("gateway: error closing provider %s: %s", name, e)
        self._available.clear()


def build_gateway(settings: Settings) -> ToolGateway:
    """Gateway with the providers enabled in settings."""
    providers: list[ToolProvider] = []
    if settings.CHROMA_ENABLED:
        providers.append(McpStdioProvider("chroma", settings.CHROMA_COMMAND, settings.chroma_argv))
    return ToolGateway(
        providers,
        timeout_sec=settings.GATEWAY_TIMEOUT_SEC,
        connect_timeout_sec=settings.GATEWAY_CONNECT_TIMEOUT_SEC,
    )
