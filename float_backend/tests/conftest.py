"""
Pytest configuration and fixtures for Float backend tests.

No network and no subprocesses: the chroma provider is an in-process
StaticProvider and the completion fallback is a MockCompletion.
"""

from __future__ import annotations

import pytest
import pytest_asyncio

from float_backend.services.compiler import CompletionStrategy, FastPathStrategy, RuleCompiler
from float_backend.services.completion import MockCompletion
from float_backend.services.effects import bridge_restore_effect, search_effect
from float_backend.services.gateway import StaticProvider, ToolGateway
from float_backend.services.store import FloatStore


def query_result(collection_name, query_texts, n_results, where=None):
    """Shape of a chroma_query_documents reply, trimmed."""
    return {
        "collection": collection_name,
        "documents": [[f"doc for {q}" for q in query_texts]],
        "n_results": n_results,
        "where": where,
    }


@pytest.fixture
def chroma() -> StaticProvider:
    return StaticProvider("chroma", {"chroma_query_documents": query_result})


@pytest.fixture
def completion() -> MockCompletion:
    return MockCompletion()


@pytest.fixture
def compiler(completion: MockCompletion) -> RuleCompiler:
    return RuleCompiler([FastPathStrategy(), CompletionStrategy(completion, timeout_sec=1.0)])


@pytest.fixture
def effects():
    return [
        search_effect("float_dispatch_bay", 5),
        bridge_restore_effect("float_continuity_anchors", 10),
    ]


@pytest_asyncio.fixture
async def gateway(chroma: StaticProvider):
    gw = ToolGateway([chroma], timeout_sec=1.0, connect_timeout_sec=1.0)
    await gw.start()
    yield gw
    await gw.close()


@pytest_asyncio.fixture
async def store(gateway: ToolGateway, compiler: RuleCompiler, effects):
    s = FloatStore(gateway, compiler, effects, max_depth=16, max_steps=256)
    yield s
    await s.settle()


@pytest_asyncio.fixture
async def degraded_store(compiler: RuleCompiler, effects):
    """Store whose chroma provider failed to connect."""
    broken = StaticProvider("chroma", connect_error=ConnectionRefusedError("chroma-mcp not installed"))
    gw = ToolGateway([broken], timeout_sec=1.0, connect_timeout_sec=1.0)
    await gw.start()
    s = FloatStore(gw, compiler, effects)
    yield s
    await s.close()
