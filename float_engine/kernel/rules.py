"""
Float Kernel — Rules and the Rule Store

A rule maps matching actions to a list of further actions.
Its trigger is one of two variants:

  PatternTrigger   — regex over action.type, written "/body/flags" or bare
  PredicateTrigger — sandboxed expression over the whole action (see expressions.py)

Both keep their source text and compile lazily on first use; the compiled
form (or the compile error) is cached on the trigger, so every rule instance
compiles at most once.

The RuleStore is an append log owned by the dispatch pipeline. Reducers only
ever see the descriptors mirrored into state["middleware"]["registered"].
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from float_engine.kernel.actions import actions_from_dicts
from float_engine.kernel.expressions import CompiledPredicate, ExpressionError, compile_predicate
from float_engine.kernel.types import Action

MAX_PATTERN_CHARS = 500

_SLASHED = re.compile(r"^/(.*)/([a-z]*)$", re.DOTALL)

_REGEX_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "g": 0,  # global has no meaning for a single test
    "u": 0,
}


class RuleError(ValueError):
    """A rule descriptor does not have the shape of a rule."""


# ---------------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------------


class Trigger:
    """Base for the two trigger variants. Subclasses implement _compile/_test."""

    kind = "trigger"

    def __init__(self, source: str) -> None:
        if not isinstance(source, str) or not source.strip():
            raise RuleError(f"{self.kind} must be a non-empty string")
        self.source = source
        self._compiled: Any = None
        self._error: str | None = None

    @property
    def is_compiled(self) -> bool:
        return self._compiled is not None

    def matches(self, action: Action) -> bool:
        """Raises ExpressionError if the trigger cannot be compiled or evaluated."""
        if self._error is not None:
            raise ExpressionError(self._error)
        if self._compiled is None:
            try:
                self._compiled = self._compile()
            except ExpressionError as e:
                self._error = str(e)
                raise
        return self._test(action)

    def _compile(self) -> Any:  # pragma: no cover - interface
        raise NotImplementedError

    def _test(self, action: Action) -> bool:  # pragma: no cover - interface
        raise NotImplementedError

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and self.source == other.source  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash((self.kind, self.source))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.source!r})"


class PatternTrigger(Trigger):
    kind = "pattern"

    def _compile(self) -> re.Pattern[str]:
        if len(self.source) > MAX_PATTERN_CHARS:
            raise ExpressionError(f"pattern longer than {MAX_PATTERN_CHARS} characters")
        body, flags = self.source, 0
        match = _SLASHED.match(self.source)
        if match:
            body = match.group(1)
            for flag in match.group(2):
                if flag not in _REGEX_FLAGS:
                    raise ExpressionError(f"unsupported regex flag: {flag}")
                flags |= _REGEX_FLAGS[flag]
        try:
            return re.compile(body, flags)
        except re.error as e:
            raise ExpressionError(f"invalid pattern: {e}") from e

    def _test(self, action: Action) -> bool:
        return bool(self._compiled.search(action.type))


class PredicateTrigger(Trigger):
    kind = "condition"

    def _compile(self) -> CompiledPredicate:
        return compile_predicate(self.source)

    def _test(self, action: Action) -> bool:
        return self._compiled.evaluate(action)


def trigger_from_dict(d: dict[str, Any]) -> Trigger:
    """
    Pick the trigger variant from a raw descriptor.
    When both 'condition' and 'pattern' are present, 'condition' wins.
    """
    condition = d.get("condition")
    if condition:
        return PredicateTrigger(condition)
    pattern = d.get("pattern")
    if pattern:
        return PatternTrigger(pattern)
    raise RuleError("rule needs a 'condition' or a 'pattern'")


# ---------------------------------------------------------------------------
# Rule
# ---------------------------------------------------------------------------


@dataclass
class Rule:
    name: str
    trigger: Trigger
    actions: list[Action]
    compiled_by: str = "fast_path"  # fast_path | completion | descriptor
    description: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise RuleError("rule name must be a non-empty string")
        if not self.actions:
            raise RuleError("rule needs at least one action")

    def matches(self, action: Action) -> bool:
        return self.trigger.matches(action)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "name": self.name,
            self.trigger.kind: self.trigger.source,
            "actions": [a.to_dict() for a in self.actions],
            "compiled_by": self.compiled_by,
        }
        if self.description is not None:
            d["description"] = self.description
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any], *, compiled_by: str = "descriptor") -> Rule:
        if not isinstance(d, dict):
            raise RuleError("rule descriptor must be an object")
        raw_actions = d.get("actions")
        if not isinstance(raw_actions, list) or not all(
            isinstance(a, dict) and isinstance(a.get("type"), str) and a["type"] for a in raw_actions
        ):
            raise RuleError("rule 'actions' must be a list of {type, payload} objects")
        return cls(
            name=d.get("name", ""),
            trigger=trigger_from_dict(d),
            actions=actions_from_dicts(raw_actions),
            compiled_by=d.get("compiled_by", compiled_by),
            description=d.get("description"),
        )


# ---------------------------------------------------------------------------
# Rule Store
# ---------------------------------------------------------------------------


@dataclass
class RuleStore:
    """
    Ordered, append-only collection of compiled rules.
    Same-named rules are kept as separate entries.
    """

    _rules: list[Rule] = field(default_factory=list)

    def append(self, rule: Rule) -> int:
        """Append and return the rule's position."""
        self._rules.append(rule)
        return len(self._rules) - 1

    def snapshot(self) -> tuple[Rule, ...]:
        """Immutable view for one dispatch; later appends don't affect it."""
        return tuple(self._rules)

    def find(self, name: str) -> list[Rule]:
        return [r for r in self._rules if r.name == name]

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self):
        return iter(tuple(self._rules))
