"""
Float Store — the dispatch pipeline.

One writer, one lock. Every action goes through the same chain:

  1. Side effects   — matching Effects schedule a gateway call as a task.
                      The result comes back later as its own dispatch.
  2. Rules          — every matching rule re-dispatches its actions, in order,
                      through this same chain, before the action itself lands.
  3. Reducer        — the action is reduced and committed.

Stages 2 and 3 run without awaiting, so reducer applications never interleave.
The cascade is walked with an explicit stack; depth and step counts are
bounded and exceeding either raises RecursionLimitExceeded. Actions already
committed when the limit trips stay committed.

Rules are matched against a snapshot of the rule store taken when the
top-level dispatch starts.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any

from float_backend.config import Settings
from float_backend.services.compiler import CompileFailure, RuleCompiler
from float_backend.services.effects import Effect, EffectCall
from float_backend.services.gateway import GatewayError, ProviderUnavailable, ToolGateway
from float_engine.kernel.actions import register
from float_engine.kernel.expressions import ExpressionError
from float_engine.kernel.reducer import empty_state, reduce
from float_engine.kernel.rules import Rule, RuleStore
from float_engine.kernel.types import Action, Diagnostic
from float_engine.kernel.validation import ValidationError, parse_action, validate_action

logger = logging.getLogger(__name__)


class RecursionLimitExceeded(Exception):
    """A cascade went deeper or longer than allowed. Already-committed steps are kept."""

    def __init__(self, message: str, *, action_type: str, depth: int, steps: int) -> None:
        super().__init__(message)
        self.action_type = action_type
        self.depth = depth
        self.steps = steps


@dataclass
class DispatchResult:
    state: dict[str, Any]
    committed: list[Action] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)
    scheduled: list[EffectCall] = field(default_factory=list)


@dataclass
class _Frame:
    action: Action
    depth: int
    expanded: bool = False


class FloatStore:
    """
    Owns state, the rule store and the pending effect tasks.

    dispatch() returns once the synchronous cascade is committed. Gateway
    results arrive later; await settle() to wait for them.
    """

    def __init__(
        self,
        gateway: ToolGateway,
        compiler: RuleCompiler,
        effects: list[Effect],
        *,
        max_depth: int = 16,
        max_steps: int = 256,
        diagnostics_limit: int = 200,
    ) -> None:
        self.gateway = gateway
        self.compiler = compiler
        self.effects = list(effects)
        self.max_depth = max_depth
        self.max_steps = max_steps
        self.diagnostics: deque[Diagnostic] = deque(maxlen=diagnostics_limit)
        self._state = empty_state()
        self._rules = RuleStore()
        self._lock = asyncio.Lock()
        self._pending: set[asyncio.Task] = set()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        gateway: ToolGateway,
        compiler: RuleCompiler,
        effects: list[Effect],
    ) -> FloatStore:
        return cls(
            gateway,
            compiler,
            effects,
            max_depth=settings.MAX_CASCADE_DEPTH,
            max_steps=settings.MAX_CASCADE_STEPS,
            diagnostics_limit=settings.DIAGNOSTICS_LIMIT,
        )

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    @property
    def rules(self) -> tuple[Rule, ...]:
        return self._rules.snapshot()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def get_state(self) -> dict[str, Any]:
        return copy.deepcopy(self._state)

    async def dispatch(self, action: Action | dict[str, Any]) -> DispatchResult:
        """
        Validate and run one action through the pipeline.

        Raises ValidationError (nothing changes) or RecursionLimitExceeded.
        """
        parsed = parse_action(action)
        async with self._lock:
            return self._run(parsed, self._rules.snapshot())

    async def register_rule(self, description: str) -> Rule | CompileFailure:
        """
        Compile a description and, on success, add the rule and mirror it into state.

        The registration action runs through the pipeline so existing rules can
        react to it. If that reaction trips the recursion guard, the reaction is
        cut short but the registration itself still lands: the rule store and
        the state mirror never disagree.
        """
        compiled = await self.compiler.compile(description)
        if isinstance(compiled, CompileFailure):
            return compiled

        async with self._lock:
            rules = self._rules.snapshot()
            position = self._rules.append(compiled)
            action = parse_action(register(compiled.to_dict()), allow_reserved=True)
            try:
                self._run(action, rules)
            except RecursionLimitExceeded as e:
                logger.error("store: reaction to registering %s halted: %s", compiled.name, e)
                self._commit(action)
        logger.info(
            "store: registered rule %s at %d (%s, via %s)",
            compiled.name,
            position,
            compiled.trigger.kind,
            compiled.compiled_by,
        )
        return compiled

    async def settle(self) -> None:
        """Wait for every scheduled effect, including ones scheduled by their completions."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        await self.settle()
        await self.gateway.close()

    # -----------------------------------------------------------------------
    # Cascade
    # -----------------------------------------------------------------------

    def _run(self, action: Action, rules: tuple[Rule, ...]) -> DispatchResult:
        result = DispatchResult(state=self._state)
        stack: list[_Frame] = [_Frame(action, 0)]
        steps = 0

        while stack:
            frame = stack.pop()

            if frame.expanded:
                self._commit(frame.action)
                result.committed.append(frame.action)
                continue

            steps += 1
            if steps > self.max_steps or frame.depth > self.max_depth:
                self._trip(frame, steps, result)

            self._schedule_effects(frame.action, result)
            children = self._match_rules(frame.action, rules, result)

            frame.expanded = True
            stack.append(frame)
            for child in reversed(children):
                stack.append(_Frame(child, frame.depth + 1))

        result.state = copy.deepcopy(self._state)
        return result

    def _commit(self, action: Action) -> None:
        reduced = reduce(self._state, action)
        if reduced.applied:
            self._state = reduced.state
        else:
            logger.debug("store: %s not applied (%s)", action.type, reduced.reason)

    def _trip(self, frame: _Frame, steps: int, result: DispatchResult) -> None:
        if frame.depth > self.max_depth:
            message = f"cascade depth exceeded {self.max_depth} at {frame.action.type}"
        else:
            message = f"cascade exceeded {self.max_steps} actions at {frame.action.type}"
        logger.error("store: %s", message)
        self._record(
            result,
            Diagnostic(
                kind="recursion_limit",
                message=message,
                action_type=frame.action.type,
                details={"depth": frame.depth, "steps": steps},
            ),
        )
        raise RecursionLimitExceeded(message, action_type=frame.action.type, depth=frame.depth, steps=steps)

    def _schedule_effects(self, action: Action, result: DispatchResult) -> None:
        for effect in self.effects:
            call = effect.plan(action)
            if call is None:
                continue
            if not self.gateway.is_available(call.provider):
                logger.error("store: %s skipped for %s, provider %s unavailable", effect.name, action.type, call.provider)
                self._record(
                    result,
                    Diagnostic(
                        kind="provider_unavailable",
                        message=f"provider unavailable: {call.provider}",
                        action_type=action.type,
                        details={"effect": effect.name, "tool": call.tool},
                    ),
                )
                continue
            logger.info("store: %s scheduled %s.%s for %s", effect.name, call.provider, call.tool, action.type)
            task = asyncio.get_running_loop().create_task(self._run_effect(effect, call, action))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            result.scheduled.append(call)

    def _match_rules(self, action: Action, rules: tuple[Rule, ...], result: DispatchResult) -> list[Action]:
        children: list[Action] = []
        for rule in rules:
            try:
                matched = rule.matches(action)
            except ExpressionError as e:
                logger.warning("store: rule %s failed to evaluate on %s: %s", rule.name, action.type, e)
                self._record(
                    result,
                    Diagnostic(
                        kind="eval_failure",
                        message=str(e),
                        action_type=action.type,
                        details={"rule": rule.name},
                    ),
                )
                continue
            if not matched:
                continue

            logger.info("store: rule %s matched %s", rule.name, action.type)
            for child in rule.actions:
                errors = validate_action(child)
                if errors:
                    logger.warning("store: rule %s emitted invalid action %s: %s", rule.name, child.type, errors[0])
                    self._record(
                        result,
                        Diagnostic(
                            kind="invalid_action",
                            message=errors[0],
                            action_type=child.type,
                            details={"rule": rule.name},
                        ),
                    )
                    continue
                children.append(child)
        return children

    # -----------------------------------------------------------------------
    # Effects
    # -----------------------------------------------------------------------

    async def _run_effect(self, effect: Effect, call: EffectCall, action: Action) -> None:
        try:
            payload = await self.gateway.invoke(call.provider, call.tool, call.args)
        except ProviderUnavailable as e:
            logger.error("store: %s for %s dropped: %s", effect.name, action.type, e)
            self._record(
                None,
                Diagnostic(kind="provider_unavailable", message=str(e), action_type=action.type),
            )
            return
        except GatewayError as e:
            logger.error("store: %s for %s failed: %s", effect.name, action.type, e)
            self._record(
                None,
                Diagnostic(
                    kind="gateway_error",
                    message=str(e),
                    action_type=action.type,
                    details={"effect": effect.name, "tool": call.tool},
                ),
            )
            return

        completion = effect.complete(action, payload)
        logger.info("store: %s completed for %s, dispatching %s", effect.name, action.type, completion.type)
        try:
            await self.dispatch(completion)
        except (RecursionLimitExceeded, ValidationError) as e:
            logger.error("store: completion %s for %s rejected: %s", completion.type, action.type, e)
            if isinstance(e, ValidationError):
                self._record(
                    None,
                    Diagnostic(kind="invalid_action", message=str(e), action_type=completion.type),
                )

    def _record(self, result: DispatchResult | None, diagnostic: Diagnostic) -> None:
        self.diagnostics.append(diagnostic)
        if result is not None:
            result.diagnostics.append(diagnostic)
