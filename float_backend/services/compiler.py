"""
Rule Compiler — natural language to Rule.

Strategies are tried in order; the first one that produces a rule wins.

  FastPathStrategy   — fixed regex templates, no I/O
  CompletionStrategy — asks a completion backend for a JSON descriptor,
                       then validates it like any other untrusted input

Nothing here raises for a bad description: compile() returns a
CompileFailure carrying the reasons and some example phrasings.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError as SchemaError

from float_backend.models import RuleSpec
from float_backend.services.completion import CompletionService, CompletionUnavailable
from float_engine.kernel.actions import make_action
from float_engine.kernel.rules import PatternTrigger, PredicateTrigger, Rule, RuleError

logger = logging.getLogger(__name__)

EXAMPLE_PHRASINGS: tuple[str, ...] = (
    "when actions contain burp, search chroma and structure response",
    "if someone mentions airbender, load avatar context",
    "on bridge restore, validate and notify",
)


class NoMatch(Exception):
    """A strategy could not produce a rule. The message says why."""


@dataclass
class CompileFailure:
    """Returned (never raised) when no strategy produced a rule."""

    text: str
    reason: str
    hints: list[str] = field(default_factory=lambda: list(EXAMPLE_PHRASINGS))


# ---------------------------------------------------------------------------
# Strategy base
# ---------------------------------------------------------------------------


class CompilerStrategy:
    name = "strategy"

    async def attempt(self, text: str) -> Rule:
        """Return a rule or raise NoMatch."""
        raise NotImplementedError

    async def try_compile(self, text: str) -> Rule | None:
        try:
            return await self.attempt(text)
        except NoMatch as e:
            logger.debug("compiler: %s gave up: %s", self.name, e)
            return None


# ---------------------------------------------------------------------------
# Fast path
# ---------------------------------------------------------------------------


def _mention_loader(m: re.Match[str], text: str) -> Rule:
    topic, context = m.group(1), m.group(2)
    return Rule(
        name=f"{topic}_context_loader",
        trigger=PatternTrigger(f"/{re.escape(topic)}/i"),
        actions=[
            make_action("context/load", {"context": context}),
            make_action("brain/boost_focus", {"reason": f"{topic}_mentioned"}),
        ],
        compiled_by="fast_path",
        description=text,
    )


def _contains_search(m: re.Match[str], text: str) -> Rule:
    word, target = m.group(1), m.group(2)
    return Rule(
        name=f"{word}_{target}_middleware",
        # Never fires on tool results or on its own output.
        trigger=PredicateTrigger(
            'not action.type.endswith("_complete")'
            f' and action.type not in ["{target}/search", "brain/boost_focus"]'
            f' and ("{word}" in action.type or "{word}" in text(action.payload))'
        ),
        actions=[
            make_action(f"{target}/search", {"query": word}),
            make_action("brain/boost_focus", {"reason": f"{word}_triggered"}),
        ],
        compiled_by="fast_path",
        description=text,
    )


FAST_PATH_TEMPLATES: list[tuple[re.Pattern[str], Callable[[re.Match[str], str], Rule]]] = [
    (
        re.compile(r"\b(?:when|if)\b.*\bmentions?\s+([\w-]+).*\bload\s+([\w-]+)\s+context", re.IGNORECASE),
        _mention_loader,
    ),
    (
        re.compile(r"\bwhen\b.*\bactions?\b.*\bcontains?\s+['\"]?(\w+)['\"]?.*\bsearch\s+(\w+)", re.IGNORECASE),
        _contains_search,
    ),
]


class FastPathStrategy(CompilerStrategy):
    """Ordered regex templates. First match wins."""

    name = "fast_path"

    def __init__(
        self,
        templates: list[tuple[re.Pattern[str], Callable[[re.Match[str], str], Rule]]] | None = None,
    ) -> None:
        self.templates = templates if templates is not None else FAST_PATH_TEMPLATES

    async def attempt(self, text: str) -> Rule:
        for regex, build in self.templates:
            m = regex.search(text)
            if m:
                return build(m, text)
        raise NoMatch("no template matched")


# ---------------------------------------------------------------------------
# Completion fallback
# ---------------------------------------------------------------------------

RULE_PROMPT = """Parse this natural language into a middleware rule:

"{text}"

Return JSON with this exact structure:
{{
  "name": "descriptive_rule_name",
  "condition": "expression over the action that decides when the rule fires",
  "actions": [
    {{"type": "domain/verb", "payload": {{"key": "value"}}}}
  ]
}}

The condition may use: action.type, action.payload, text(x) (x as JSON),
lower(x), contains(a, b), "x" in y, and, or, not, ==, !=.

Examples:
- "when actions contain burp" -> condition: "'burp' in action.type or 'burp' in text(action.payload)"
- "if someone mentions Redux" -> condition: "'redux' in lower(text(action))"
- "on bridge restore" -> condition: "'bridge' in action.type and 'restore' in action.type"

Known action types: context/load, context/unload, brain/boost_focus, vault/search,
chroma/search, bridges/restore.

Only return valid JSON, no explanation."""


def extract_json(content: str) -> str:
    """Pull a JSON body out of a reply, tolerating markdown code fences."""
    content = content.strip()
    if "```json" in content:
        start = content.find("```json") + 7
        end = content.find("```", start)
        if end > start:
            return content[start:end].strip()
    elif "```" in content:
        start = content.find("```") + 3
        end = content.find("```", start)
        if end > start:
            return content[start:end].strip()
    return content


class CompletionStrategy(CompilerStrategy):
    """Asks a completion backend for a rule descriptor. Output is untrusted."""

    name = "completion"

    def __init__(self, service: CompletionService, timeout_sec: float = 60.0) -> None:
        self.service = service
        self.timeout_sec = timeout_sec

    def build_prompt(self, text: str) -> str:
        return RULE_PROMPT.format(text=text)

    async def attempt(self, text: str) -> Rule:
        try:
            async with asyncio.timeout(self.timeout_sec):
                reply = await self.service.complete(self.build_prompt(text))
        except TimeoutError as e:
            raise NoMatch(f"completion timed out after {self.timeout_sec}s") from e
        except CompletionUnavailable as e:
            raise NoMatch(str(e)) from e
        except Exception as e:
            logger.warning("compiler: completion backend %s failed: %r", self.service.name, e)
            raise NoMatch(f"completion failed: {type(e).__name__}: {e}") from e

        if not isinstance(reply, str):
            raise NoMatch(f"completion reply was not text: {type(reply).__name__}")

        try:
            data: Any = json.loads(extract_json(reply))
        except json.JSONDecodeError as e:
            logger.warning("compiler: completion returned invalid JSON: %s", e)
            logger.debug("compiler: raw completion (first 500): %s", reply[:500])
            raise NoMatch(f"completion returned invalid JSON: {e}") from e

        try:
            spec = RuleSpec.model_validate(data)
            rule = Rule.from_dict(spec.to_descriptor(), compiled_by="completion")
        except (SchemaError, RuleError) as e:
            logger.warning("compiler: completion returned an invalid rule: %s", e)
            raise NoMatch(f"completion returned an invalid rule: {e}") from e

        if rule.description is None:
            rule.description = text
        return rule


# ---------------------------------------------------------------------------
# Compiler
# ---------------------------------------------------------------------------


class RuleCompiler:
    """Runs strategies in order and reports why each one missed."""

    def __init__(self, strategies: list[CompilerStrategy]) -> None:
        self.strategies = strategies

    async def compile(self, text: str) -> Rule | CompileFailure:
        if not isinstance(text, str) or not text.strip():
            return CompileFailure(text=text or "", reason="description is empty")

        reasons: list[str] = []
        for strategy in self.strategies:
            try:
                rule = await strategy.attempt(text)
            except NoMatch as e:
                reasons.append(f"{strategy.name}: {e}")
                continue
            logger.info("compiler: %s compiled %r -> %s", strategy.name, text, rule.name)
            return rule

        if not self.strategies:
            reasons.append("no strategies configured")
        logger.warning("compiler: could not compile %r (%s)", text, "; ".join(reasons))
        return CompileFailure(text=text, reason="; ".join(reasons))


def build_compiler(completion: CompletionService | None, timeout_sec: float = 60.0) -> RuleCompiler:
    """Fast path first, then the completion fallback when a backend is configured."""
    strategies: list[CompilerStrategy] = [FastPathStrategy()]
    if completion is not None:
        strategies.append(CompletionStrategy(completion, timeout_sec=timeout_sec))
    return RuleCompiler(strategies)
