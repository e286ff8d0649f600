"""
Float Kernel — Action Construction

Factory functions for creating well-formed actions.
Used by the pipeline to synthesize completion actions from tool results,
by the compiler to build rule action lists, and by tests to build actions concisely.
"""

from __future__ import annotations

from typing import Any

from float_engine.kernel.types import Action


def make_action(type: str, payload: Any = None) -> Action:
    """Build an Action from a type string and optional payload."""
    return Action(type=type, payload=payload)


def search_complete(result: Any) -> Action:
    return Action(type="vault/search_complete", payload=result)


def restore_complete(bridge_id: str, context: Any) -> Action:
    return Action(
        type="bridges/restore_complete",
        payload={"bridge_id": bridge_id, "context": context},
    )


def register(descriptor: dict[str, Any]) -> Action:
    """Internal action that mirrors a rule descriptor into state."""
    return Action(type="middleware/register", payload=descriptor)


def actions_from_dicts(items: list[dict[str, Any]]) -> list[Action]:
    """
    Convert raw {type, payload} dicts (compiler templates, LLM output)
    into Actions. Caller is responsible for validating shape first.
    """
    return [Action(type=item["type"], payload=item.get("payload")) for item in items]
