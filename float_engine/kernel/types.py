"""
Float Kernel — Shared Types

Data classes used across validation, reducer, rules and the dispatch pipeline.
These are the contracts that bind the kernel together.

State shape (plain dicts, one entry per slice):
- context:    active ids (ordered, unique), hierarchy parent -> children, data by id
- brain:      current_context, loaded_data, focus_state
- vault:      search_results, recent_files
- bridges:    active_bridge, restored_context, available_bridges
- middleware: registered rule descriptors (mirror of the rule store)
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

# ---------------------------------------------------------------------------
# Regex patterns
# ---------------------------------------------------------------------------

# <domain>/<verb>; dots and dashes allowed. Convention only, see split_type().
ACTION_TYPE_PATTERN = re.compile(r"^([A-Za-z0-9_.\-]+)/([A-Za-z0-9_.\-]+)$")


# ---------------------------------------------------------------------------
# Slice vocabulary
# ---------------------------------------------------------------------------

FOCUS_STATES: set[str] = {"idle", "active", "boosted"}

# Only the pipeline may emit these; callers are rejected at the boundary.
RESERVED_TYPES: set[str] = {"middleware/register"}

RECENT_FILES_LIMIT = 20


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Action:
    """
    A discrete, typed request for a state change.
    The reducer reads only `type` and `payload`.
    """

    type: str
    payload: Any = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"type": self.type}
        if self.payload is not None:
            d["payload"] = self.payload
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Action:
        return cls(type=d["type"], payload=d.get("payload"))


@dataclass
class ReduceResult:
    """
    Result of applying one action to a state.
    The reducer never throws; it always returns one of these.
    """

    state: dict[str, Any]
    applied: bool
    reason: str | None = None


@dataclass
class Diagnostic:
    """A non-fatal issue raised while processing a dispatch."""

    kind: str  # provider_unavailable | gateway_error | eval_failure | invalid_action | recursion_limit
    message: str
    action_type: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "action_type": self.action_type,
            "details": self.details,
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def split_type(action_type: str) -> tuple[str | None, str | None]:
    """Split 'domain/verb' into its parts. Returns (None, None) when not namespaced."""
    match = ACTION_TYPE_PATTERN.match(action_type or "")
    if not match:
        return None, None
    return match.group(1), match.group(2)
