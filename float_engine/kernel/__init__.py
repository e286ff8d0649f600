"""
Float Kernel — the pure engine.

Components:
  validation  — structural checks on actions before they reach the pipeline
  reducer     — (state, action) → state  (pure, deterministic, slice-local)
  expressions — sandboxed predicate evaluator for rule conditions
  rules       — rule model, trigger variants, append-only rule store
"""

from float_engine.kernel.expressions import ExpressionError, compile_predicate
from float_engine.kernel.reducer import empty_state, reduce, replay
from float_engine.kernel.rules import PatternTrigger, PredicateTrigger, Rule, RuleError, RuleStore
from float_engine.kernel.types import Action, Diagnostic, ReduceResult
from float_engine.kernel.validation import ValidationError, parse_action, validate_action

__all__ = [
    "Action",
    "Diagnostic",
    "ReduceResult",
    "ValidationError",
    "validate_action",
    "parse_action",
    "reduce",
    "replay",
    "empty_state",
    "ExpressionError",
    "compile_predicate",
    "Rule",
    "RuleError",
    "RuleStore",
    "PatternTrigger",
    "PredicateTrigger",
]
