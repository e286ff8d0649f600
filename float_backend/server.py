"""
Float MCP server.

Entry point for the stdio tool server. Exposes three tools:

  float_dispatch       — run one action through the store
  middleware_register  — compile a natural-language rule and register it
  state_get            — current state as JSON

stdout carries the protocol, so logs go to stderr.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from pydantic import ValidationError as SchemaError

from float_backend.config import Settings, settings
from float_backend.models import ActionIn
from float_backend.services.compiler import CompileFailure, build_compiler
from float_backend.services.completion import get_completion
from float_backend.services.effects import default_effects
from float_backend.services.gateway import build_gateway
from float_backend.services.store import FloatStore, RecursionLimitExceeded
from float_engine.kernel.rules import Rule
from float_engine.kernel.validation import ValidationError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Response text
# ---------------------------------------------------------------------------


def format_dispatched(action: dict[str, Any], state: dict[str, Any]) -> str:
    return f"Dispatched: {json.dumps(action, indent=2)}\n\nUpdated State: {json.dumps(state, indent=2, default=str)}"


def format_registered(rule: Rule) -> str:
    parsed_via = "regex pattern" if rule.compiled_by == "fast_path" else "completion fallback"
    return (
        f"🎯 Registered middleware: {rule.name}\n"
        f"{'Condition' if rule.trigger.kind == 'condition' else 'Pattern'}: {rule.trigger.source}\n"
        f"Actions: {len(rule.actions)} actions\n\n"
        f"Parsed via: {parsed_via}"
    )


def format_failure(failure: CompileFailure) -> str:
    hints = "\n".join(f'- "{hint}"' for hint in failure.hints)
    return f'❌ Could not parse middleware from: "{failure.text}"\n\nTry patterns like:\n{hints}'


def format_state(state: dict[str, Any]) -> str:
    return json.dumps(state, indent=2, default=str)


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


def create_server(store: FloatStore) -> FastMCP:
    """Tool server bound to one store. The gateway is started and closed with the server."""

    @asynccontextmanager
    async def lifespan(_server: FastMCP) -> AsyncIterator[None]:
        await store.gateway.start()
        logger.info("server: gateway status %s", store.gateway.status())
        try:
            yield
        finally:
            await store.close()
            logger.info("server: gateway closed")

    server = FastMCP("float-redux", lifespan=lifespan)

    @server.tool()
    async def float_dispatch(action: dict[str, Any]) -> str:
        """Dispatch an action ({type, payload}) to the Float store."""
        try:
            incoming = ActionIn.model_validate(action)
        except SchemaError as e:
            raise ToolError(f"Error: invalid action: {e}") from e

        logger.info("server: float_dispatch %s", incoming.type)
        try:
            result = await store.dispatch(incoming.model_dump(exclude_none=True))
        except ValidationError as e:
            raise ToolError(f"Error: {e}") from e
        except RecursionLimitExceeded as e:
            raise ToolError(f"Error: {e}") from e

        for diagnostic in result.diagnostics:
            logger.info("server: %s: %s", diagnostic.kind, diagnostic.message)
        return format_dispatched(incoming.model_dump(exclude_none=True), result.state)

    @server.tool()
    async def middleware_register(description: str) -> str:
        """Register middleware from a natural-language description."""
        logger.info("server: middleware_register %r", description)
        compiled = await store.register_rule(description)
        if isinstance(compiled, CompileFailure):
            logger.warning("server: could not parse middleware: %s", compiled.reason)
            return format_failure(compiled)
        return format_registered(compiled)

    @server.tool()
    async def state_get() -> str:
        """Get the current Float store state."""
        return format_state(store.get_state())

    return server


def build_store(config: Settings) -> FloatStore:
    gateway = build_gateway(config)
    compiler = build_compiler(get_completion(config), timeout_sec=config.COMPLETION_TIMEOUT_SEC)
    return FloatStore.from_settings(config, gateway, compiler, default_effects(config))


def configure_logging(level: str) -> None:
    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def serve(config: Settings) -> None:
    logger.info("server: starting Float MCP server")
    server = create_server(build_store(config))
    await server.run_stdio_async()


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    try:
        asyncio.run(serve(settings))
    except KeyboardInterrupt:
        logger.info("server: interrupted")


if __name__ == "__main__":
    main()
