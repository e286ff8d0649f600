"""
Side-effect interceptors.

Each Effect watches some action types. On a match it names a gateway call
(provider, tool, args) and how to turn the tool result into a completion
action. The store schedules the call and dispatches the completion action
when the result comes back; nothing here does I/O.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from float_backend.config import Settings
from float_engine.kernel.actions import restore_complete, search_complete
from float_engine.kernel.types import Action

QUERY_TOOL = "chroma_query_documents"


@dataclass(frozen=True)
class EffectCall:
    provider: str
    tool: str
    args: dict[str, Any]


@dataclass(frozen=True)
class Effect:
    """
    name:        label used in logs and diagnostics
    action_types: action types this effect intercepts
    provider:    gateway provider name
    tool:        tool to call on the provider
    build_args:  action -> tool arguments, or None to skip this action
    complete:    (action, result) -> completion action
    """

    name: str
    action_types: frozenset[str]
    provider: str
    tool: str
    build_args: Callable[[Action], dict[str, Any] | None]
    complete: Callable[[Action, Any], Action]

    def plan(self, action: Action) -> EffectCall | None:
        if action.type not in self.action_types:
            return None
        args = self.build_args(action)
        if args is None:
            return None
        return EffectCall(provider=self.provider, tool=self.tool, args=args)


def _payload_str(action: Action, key: str) -> str | None:
    if not isinstance(action.payload, dict):
        return None
    value = action.payload.get(key)
    return value if isinstance(value, str) and value else None


def search_effect(collection: str, n_results: int, provider: str = "chroma") -> Effect:
    def build_args(action: Action) -> dict[str, Any] | None:
        query = _payload_str(action, "query")
        if query is None:
            return None
        return {
            "collection_name": _payload_str(action, "collection") or collection,
            "query_texts": [query],
            "n_results": n_results if action.payload.get("n_results") is None else action.payload["n_results"],
        }

    return Effect(
        name="search",
        action_types=frozenset({"chroma/search", "vault/search"}),
        provider=provider,
        tool=QUERY_TOOL,
        build_args=build_args,
        complete=lambda _action, result: search_complete(result),
    )


def bridge_restore_effect(collection: str, n_results: int, provider: str = "chroma") -> Effect:
    def build_args(action: Action) -> dict[str, Any] | None:
        bridge_id = _payload_str(action, "bridge_id")
        if bridge_id is None:
            return None
        return {
            "collection_name": collection,
            "query_texts": [f"bridge {bridge_id}", bridge_id],
            "where": {"bridge_id": bridge_id},
            "n_results": n_results,
        }

    return Effect(
        name="bridge_restore",
        action_types=frozenset({"bridges/restore"}),
        provider=provider,
        tool=QUERY_TOOL,
        build_args=build_args,
        complete=lambda action, result: restore_complete(action.payload["bridge_id"], result),
    )


def default_effects(settings: Settings) -> list[Effect]:
    """The interceptor table in evaluation order."""
    return [
        search_effect(settings.SEARCH_COLLECTION, settings.SEARCH_RESULTS),
        bridge_restore_effect(settings.BRIDGE_COLLECTION, settings.BRIDGE_RESULTS),
    ]
