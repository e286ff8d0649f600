"""
Float Kernel — Reducer

Pure function: (state, action) → ReduceResult
No side effects. No IO. No tool calls. Deterministic.

Every handler is slice-local: it reads and writes only state[<its slice>].
Unknown domains and unknown verbs of a known domain are no-ops (applied=False),
never errors. Given the same sequence of actions, produces the same state every time.
"""

from __future__ import annotations

import copy
from typing import Any

from float_engine.kernel.types import RECENT_FILES_LIMIT, Action, ReduceResult, split_type

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def empty_state() -> dict[str, Any]:
    """The initial state at process start, before any action."""
    return {
        "context": {
            "active": [],
            "hierarchy": {},
            "data": {},
        },
        "brain": {
            "current_context": None,
            "loaded_data": None,
            "focus_state": "idle",
        },
        "vault": {
            "search_results": [],
            "recent_files": [],
        },
        "bridges": {
            "active_bridge": None,
            "restored_context": None,
            "available_bridges": [],
        },
        "middleware": {
            "registered": [],
        },
    }


def reduce(state: dict[str, Any], action: Action) -> ReduceResult:
    """
    Apply one action to the current state.
    Returns new state + applied flag.

    Pure function. The input state is never modified; only the addressed
    slice is deep-copied, the other slices are shared with the input.
    """
    domain, verb = split_type(action.type)
    if domain is None:
        return ReduceResult(state=state, applied=False, reason=f"NOT_NAMESPACED: {action.type}")

    handlers = _HANDLERS.get(domain)
    if handlers is None or domain not in state:
        return ReduceResult(state=state, applied=False, reason=f"UNKNOWN_DOMAIN: {domain}")

    handler = handlers.get(verb)
    if handler is None:
        return ReduceResult(state=state, applied=False, reason=f"UNKNOWN_VERB: {action.type}")

    payload = action.payload if isinstance(action.payload, dict) else {}
    slice_state = copy.deepcopy(state[domain])
    try:
        applied = handler(slice_state, payload, action.payload)
    except (TypeError, ValueError, KeyError, AttributeError) as e:
        # Payloads are validated upstream; a malformed one is dropped, not raised.
        return ReduceResult(state=state, applied=False, reason=f"MALFORMED_PAYLOAD: {e}")

    if not applied:
        return ReduceResult(state=state, applied=False, reason=f"NO_CHANGE: {action.type}")

    new_state = dict(state)
    new_state[domain] = slice_state
    return ReduceResult(state=new_state, applied=True)


def replay(actions: list[Action], state: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Rebuild state by reducing over all actions.
    replay(actions) == reduce(reduce(reduce(empty(), a1), a2), a3)...
    """
    state = state if state is not None else empty_state()
    for action in actions:
        state = reduce(state, action).state
    return state


# ---------------------------------------------------------------------------
# context
# ---------------------------------------------------------------------------
# Handler signature: (slice, payload_dict, raw_payload) -> bool (True = changed)


def _context_load(s: dict, p: dict, _raw: Any) -> bool:
    ctx = p.get("context")
    if not isinstance(ctx, str) or ctx in s["active"]:
        return False
    s["active"].append(ctx)
    return True


def _context_unload(s: dict, p: dict, _raw: Any) -> bool:
    ctx = p.get("context")
    if ctx not in s["active"]:
        return False
    s["active"] = [c for c in s["active"] if c != ctx]
    return True


def _context_nest(s: dict, p: dict, _raw: Any) -> bool:
    parent, child = p.get("parent"), p.get("child")
    if not isinstance(parent, str) or not isinstance(child, str):
        return False
    children = s["hierarchy"].setdefault(parent, [])
    if child in children:
        return False
    children.append(child)
    return True


def _context_store(s: dict, p: dict, _raw: Any) -> bool:
    ctx = p.get("context")
    if not isinstance(ctx, str):
        return False
    s["data"][ctx] = copy.deepcopy(p.get("data"))
    return True


# ---------------------------------------------------------------------------
# brain
# ---------------------------------------------------------------------------


def _brain_boot(s: dict, _p: dict, raw: Any) -> bool:
    s["current_context"] = copy.deepcopy(raw)
    s["focus_state"] = "active"
    return True


def _brain_boost_focus(s: dict, _p: dict, _raw: Any) -> bool:
    s["focus_state"] = "boosted"
    return True


def _brain_load(s: dict, p: dict, _raw: Any) -> bool:
    if "data" not in p:
        return False
    s["loaded_data"] = copy.deepcopy(p["data"])
    return True


def _brain_rest(s: dict, _p: dict, _raw: Any) -> bool:
    s["focus_state"] = "idle"
    return True


# ---------------------------------------------------------------------------
# vault
# ---------------------------------------------------------------------------


def _vault_search(s: dict, p: dict, _raw: Any) -> bool:
    query = p.get("query")
    if not isinstance(query, str):
        return False
    s["search_results"] = [f"Searching for: {query}..."]
    return True


def _vault_search_complete(s: dict, _p: dict, raw: Any) -> bool:
    # Tool results arrive in whatever shape the provider returns.
    if raw is None:
        s["search_results"] = []
    elif isinstance(raw, list):
        s["search_results"] = copy.deepcopy(raw)
    else:
        s["search_results"] = [copy.deepcopy(raw)]
    return True


def _vault_touch(s: dict, p: dict, _raw: Any) -> bool:
    file_id = p.get("file")
    if not isinstance(file_id, str):
        return False
    recent = [f for f in s["recent_files"] if f != file_id]
    recent.insert(0, file_id)
    s["recent_files"] = recent[:RECENT_FILES_LIMIT]
    return True


# ---------------------------------------------------------------------------
# bridges
# ---------------------------------------------------------------------------


def _bridges_restore(s: dict, p: dict, _raw: Any) -> bool:
    bridge_id = p.get("bridge_id")
    if not isinstance(bridge_id, str):
        return False
    s["active_bridge"] = bridge_id
    return True


def _bridges_restore_complete(s: dict, p: dict, _raw: Any) -> bool:
    bridge_id = p.get("bridge_id")
    if not isinstance(bridge_id, str):
        return False
    s["active_bridge"] = bridge_id
    s["restored_context"] = copy.deepcopy(p.get("context"))
    if bridge_id not in s["available_bridges"]:
        s["available_bridges"].append(bridge_id)
    return True


# ---------------------------------------------------------------------------
# middleware
# ---------------------------------------------------------------------------


def _middleware_register(s: dict, p: dict, _raw: Any) -> bool:
    if not p.get("name"):
        return False
    s["registered"].append(copy.deepcopy(p))
    return True


# ---------------------------------------------------------------------------
# Dispatch table: domain -> verb -> handler
# ---------------------------------------------------------------------------

_HANDLERS: dict[str, dict[str, Any]] = {
    "context": {
        "load": _context_load,
        "unload": _context_unload,
        "nest": _context_nest,
        "store": _context_store,
    },
    "brain": {
        "boot": _brain_boot,
        "boost_focus": _brain_boost_focus,
        "load": _brain_load,
        "rest": _brain_rest,
    },
    "vault": {
        "search": _vault_search,
        "search_complete": _vault_search_complete,
        "touch": _vault_touch,
    },
    "bridges": {
        "restore": _bridges_restore,
        "restore_complete": _bridges_restore_complete,
    },
    "middleware": {
        "register": _middleware_register,
    },
}
