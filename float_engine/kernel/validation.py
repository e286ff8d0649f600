"""
Float Kernel — Action Validation

Validates actions before they reach the pipeline.
Validation is structural (well-formed?) not semantic (will it change anything?).
The reducer handles the rest and never raises.

Unknown domains and unknown verbs pass: the reducer ignores them, and rules
may react to action types nobody declared up front.
"""

from __future__ import annotations

from typing import Any

from float_engine.kernel.types import RESERVED_TYPES, Action


class ValidationError(Exception):
    """Action rejected before it reached the pipeline. Carries every problem found."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__("; ".join(errors))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def validate_action(raw: Any, *, allow_reserved: bool = False) -> list[str]:
    """
    Validate a raw action (dict or Action).
    Returns a list of error strings. Empty list = valid.
    """
    errors: list[str] = []

    if isinstance(raw, Action):
        action_type, payload = raw.type, raw.payload
    elif isinstance(raw, dict):
        action_type, payload = raw.get("type"), raw.get("payload")
    else:
        return ["Action must be an object with a 'type' field"]

    if not isinstance(action_type, str) or not action_type.strip():
        errors.append("Action 'type' is required and must be a non-empty string")
        return errors
    action_type = action_type.strip()

    if action_type in RESERVED_TYPES and not allow_reserved:
        errors.append(f"Action type is reserved for internal use: {action_type}")
        return errors

    validator = _VALIDATORS.get(action_type)
    if validator:
        errors.extend(validator(payload))

    return errors


def parse_action(raw: Any, *, allow_reserved: bool = False) -> Action:
    """Validate and convert to an Action. Raises ValidationError."""
    errors = validate_action(raw, allow_reserved=allow_reserved)
    if errors:
        raise ValidationError(errors)
    if isinstance(raw, Action):
        if raw.type == raw.type.strip():
            return raw
        return Action(type=raw.type.strip(), payload=raw.payload)
    return Action(type=raw["type"].strip(), payload=raw.get("payload"))


# ---------------------------------------------------------------------------
# Per-verb validators
# ---------------------------------------------------------------------------


def _require_str(p: Any, key: str, action_type: str) -> list[str]:
    if not isinstance(p, dict):
        return [f"{action_type} requires an object payload"]
    value = p.get(key)
    if not isinstance(value, str) or not value:
        return [f"{action_type} requires '{key}' (non-empty string)"]
    return []


def _validate_context_load(p: Any) -> list[str]:
    return _require_str(p, "context", "context/load")


def _validate_context_unload(p: Any) -> list[str]:
    return _require_str(p, "context", "context/unload")


def _validate_context_nest(p: Any) -> list[str]:
    return _require_str(p, "parent", "context/nest") + _require_str(p, "child", "context/nest")


def _validate_context_store(p: Any) -> list[str]:
    errors = _require_str(p, "context", "context/store")
    if not errors and "data" not in p:
        errors.append("context/store requires 'data'")
    return errors


def _validate_brain_load(p: Any) -> list[str]:
    if not isinstance(p, dict) or "data" not in p:
        return ["brain/load requires 'data'"]
    return []


def _validate_vault_search(p: Any) -> list[str]:
    errors = _require_str(p, "query", "vault/search")
    if errors:
        return errors
    n_results = p.get("n_results")
    if n_results is not None and (not isinstance(n_results, int) or isinstance(n_results, bool) or n_results < 1):
        errors.append("vault/search 'n_results' must be a positive integer")
    return errors


def _validate_chroma_search(p: Any) -> list[str]:
    return [e.replace("vault/search", "chroma/search") for e in _validate_vault_search(p)]


def _validate_vault_touch(p: Any) -> list[str]:
    return _require_str(p, "file", "vault/touch")


def _validate_bridges_restore(p: Any) -> list[str]:
    return _require_str(p, "bridge_id", "bridges/restore")


def _validate_bridges_restore_complete(p: Any) -> list[str]:
    errors = _require_str(p, "bridge_id", "bridges/restore_complete")
    if not errors and "context" not in p:
        errors.append("bridges/restore_complete requires 'context'")
    return errors


def _validate_middleware_register(p: Any) -> list[str]:
    if not isinstance(p, dict):
        return ["middleware/register requires an object payload"]
    errors: list[str] = []
    if not isinstance(p.get("name"), str) or not p["name"]:
        errors.append("middleware/register requires 'name'")
    if not p.get("pattern") and not p.get("condition"):
        errors.append("middleware/register requires 'pattern' or 'condition'")
    actions = p.get("actions")
    if not isinstance(actions, list) or not actions:
        errors.append("middleware/register requires a non-empty 'actions' list")
    return errors


# ---------------------------------------------------------------------------
# Dispatch table
# ---------------------------------------------------------------------------

_VALIDATORS: dict[str, Any] = {
    "context/load": _validate_context_load,
    "context/unload": _validate_context_unload,
    "context/nest": _validate_context_nest,
    "context/store": _validate_context_store,
    "brain/load": _validate_brain_load,
    "vault/search": _validate_vault_search,
    "vault/touch": _validate_vault_touch,
    "chroma/search": _validate_chroma_search,
    "bridges/restore": _validate_bridges_restore,
    "bridges/restore_complete": _validate_bridges_restore_complete,
    "middleware/register": _validate_middleware_register,
}
