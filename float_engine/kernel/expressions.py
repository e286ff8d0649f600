"""
Float Kernel — Sandboxed Predicate Expressions

Rule predicates are stored as text and evaluated against an action here.
The text is parsed with `ast` and walked over a whitelist of node types.
Nothing is ever passed to eval/exec, and no attribute of a Python object is
ever looked up by name: attribute access is a dict lookup on action data.

Grammar (Python expression syntax):
  - boolean ops:  and, or, not
  - comparisons:  == != < <= > >= in, not in, is, is not
  - literals:     strings, numbers, True/False/None, lists, tuples
  - names:        action, type (= action.type), payload (= action.payload)
  - access:       action.payload.query, payload["query"], items[0]
  - `+` on two strings or two numbers
  - string methods: lower upper strip startswith endswith includes
  - helpers:      text(x) (JSON), lower(x), len(x), str(x), contains(haystack, needle)

Models tend to answer in JavaScript, so `||`, `&&`, `!`, `===`, `!==`,
`true/false/null`, `.includes(...)`, `.toLowerCase()`, `.length` and
`JSON.stringify(...)` are accepted and normalized before parsing.
"""

from __future__ import annotations

import ast
import json
import operator
import re
from typing import Any

from float_engine.kernel.types import Action

MAX_SOURCE_CHARS = 2000
MAX_NODES = 256
MAX_STRING_CHARS = 100_000


class ExpressionError(ValueError):
    """Predicate text could not be compiled or evaluated."""


# ---------------------------------------------------------------------------
# Normalization (JS-isms → Python)
# ---------------------------------------------------------------------------

_STRING_LITERAL = re.compile(r"""('(?:\\.|[^'\\])*'|"(?:\\.|[^"\\])*")""")

_CODE_REWRITES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"!=="), "!="),
    (re.compile(r"==="), "=="),
    (re.compile(r"&&"), " and "),
    (re.compile(r"\|\|"), " or "),
    (re.compile(r"!(?!=)"), " not "),
    (re.compile(r"\bJSON\s*\.\s*stringify\s*\("), "text("),
    (re.compile(r"\btrue\b"), "True"),
    (re.compile(r"\bfalse\b"), "False"),
    (re.compile(r"\b(?:null|undefined)\b"), "None"),
]


def normalize(source: str) -> str:
    """Rewrite JS-style operators outside of string literals."""
    parts = _STRING_LITERAL.split(source)
    out: list[str] = []
    for i, part in enumerate(parts):
        if i % 2 == 1:
            out.append(part)  # string literal, untouched
            continue
        for pattern, repl in _CODE_REWRITES:
            part = pattern.sub(repl, part)
        out.append(part)
    return "".join(out).strip()


# ---------------------------------------------------------------------------
# Whitelist
# ---------------------------------------------------------------------------

_COMPARE_OPS: dict[type, Any] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
    ast.In: lambda a, b: _contains(b, a),
    ast.NotIn: lambda a, b: not _contains(b, a),
}

_ALLOWED_NODES: tuple[type, ...] = (
    ast.Expression,
    ast.BoolOp,
    ast.And,
    ast.Or,
    ast.UnaryOp,
    ast.Not,
    ast.USub,
    ast.BinOp,
    ast.Add,
    ast.Compare,
    ast.Constant,
    ast.Name,
    ast.Load,
    ast.Attribute,
    ast.Subscript,
    ast.Call,
    ast.List,
    ast.Tuple,
    *_COMPARE_OPS.keys(),
)

_NAMES = {"action", "type", "payload"}

_METHODS = {
    "lower",
    "upper",
    "strip",
    "startswith",
    "endswith",
    "includes",
    "toLowerCase",
    "toUpperCase",
    "get",
}

_FUNCTIONS = {"text", "lower", "len", "str", "contains"}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


class CompiledPredicate:
    """A validated predicate tree. Evaluation never touches Python internals."""

    __slots__ = ("source", "_tree")

    def __init__(self, source: str, tree: ast.Expression) -> None:
        self.source = source
        self._tree = tree

    def __call__(self, action: Action) -> bool:
        return self.evaluate(action)

    def evaluate(self, action: Action) -> bool:
        env = {
            "action": {"type": action.type, "payload": action.payload},
            "type": action.type,
            "payload": action.payload,
        }
        try:
            return bool(_eval(self._tree.body, env))
        except ExpressionError:
            raise
        except (TypeError, ValueError, AttributeError, RecursionError) as e:
            raise ExpressionError(f"evaluation failed: {e}") from e

    def __repr__(self) -> str:  # pragma: no cover
        return f"CompiledPredicate({self.source!r})"


def compile_predicate(source: str) -> CompiledPredicate:
    """
    Parse and validate predicate text.
    Raises ExpressionError for anything outside the grammar.
    """
    if not isinstance(source, str) or not source.strip():
        raise ExpressionError("empty expression")
    if len(source) > MAX_SOURCE_CHARS:
        raise ExpressionError(f"expression longer than {MAX_SOURCE_CHARS} characters")

    normalized = normalize(source)
    try:
        tree = ast.parse(normalized, mode="eval")
    except (SyntaxError, ValueError, RecursionError) as e:
        raise ExpressionError(f"syntax error: {e}") from e

    count = 0
    for node in ast.walk(tree):
        count += 1
        if count > MAX_NODES:
            raise ExpressionError(f"expression has more than {MAX_NODES} nodes")
        _check_node(node)

    return CompiledPredicate(source, tree)


def evaluate(source: str, action: Action) -> bool:
    """One-shot compile + evaluate. Raises ExpressionError."""
    return compile_predicate(source).evaluate(action)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _check_node(node: ast.AST) -> None:
    if not isinstance(node, _ALLOWED_NODES):
        raise ExpressionError(f"unsupported syntax: {type(node).__name__}")

    if isinstance(node, ast.Constant) and not isinstance(node.value, (str, int, float, bool, type(None))):
        raise ExpressionError(f"unsupported literal: {node.value!r}")

    if isinstance(node, ast.Name) and node.id not in _NAMES | _FUNCTIONS:
        raise ExpressionError(f"unknown name: {node.id}")

    if isinstance(node, ast.Attribute) and node.attr.startswith("_"):
        raise ExpressionError(f"private attribute: {node.attr}")

    if isinstance(node, ast.Call):
        if node.keywords:
            raise ExpressionError("keyword arguments are not supported")
        func = node.func
        if isinstance(func, ast.Name):
            if func.id not in _FUNCTIONS:
                raise ExpressionError(f"unknown function: {func.id}")
        elif isinstance(func, ast.Attribute):
            if func.attr not in _METHODS:
                raise ExpressionError(f"unknown method: {func.attr}")
        else:
            raise ExpressionError("unsupported call target")


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def _eval(node: ast.AST, env: dict[str, Any]) -> Any:
    if isinstance(node, ast.Constant):
        return node.value

    if isinstance(node, ast.Name):
        if node.id in _FUNCTIONS:
            raise ExpressionError(f"function used as value: {node.id}")
        return env[node.id]

    if isinstance(node, ast.BoolOp):
        if isinstance(node.op, ast.And):
            result: Any = True
            for value in node.values:
                result = _eval(value, env)
                if not result:
                    return result
            return result
        result = False
        for value in node.values:
            result = _eval(value, env)
            if result:
                return result
        return result

    if isinstance(node, ast.UnaryOp):
        operand = _eval(node.operand, env)
        if isinstance(node.op, ast.Not):
            return not operand
        if isinstance(operand, bool) or not isinstance(operand, (int, float)):
            raise ExpressionError("unary minus needs a number")
        return -operand

    if isinstance(node, ast.BinOp):
        left, right = _eval(node.left, env), _eval(node.right, env)
        if isinstance(left, str) and isinstance(right, str):
            if len(left) + len(right) > MAX_STRING_CHARS:
                raise ExpressionError("string too long")
            return left + right
        if _is_number(left) and _is_number(right):
            return left + right
        raise ExpressionError("'+' needs two strings or two numbers")

    if isinstance(node, ast.Compare):
        left = _eval(node.left, env)
        for op, comparator in zip(node.ops, node.comparators):
            right = _eval(comparator, env)
            if not _COMPARE_OPS[type(op)](left, right):
                return False
            left = right
        return True

    if isinstance(node, ast.Attribute):
        return _get_field(_eval(node.value, env), node.attr)

    if isinstance(node, ast.Subscript):
        return _get_item(_eval(node.value, env), _eval(node.slice, env))

    if isinstance(node, (ast.List, ast.Tuple)):
        return [_eval(elt, env) for elt in node.elts]

    if isinstance(node, ast.Call):
        args = [_eval(arg, env) for arg in node.args]
        if isinstance(node.func, ast.Name):
            return _call_function(node.func.id, args)
        target = _eval(node.func.value, env)
        return _call_method(target, node.func.attr, args)

    raise ExpressionError(f"unsupported syntax: {type(node).__name__}")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _contains(haystack: Any, needle: Any) -> bool:
    if isinstance(haystack, str):
        if not isinstance(needle, str):
            raise ExpressionError("'in' on a string needs a string")
        return needle in haystack
    if isinstance(haystack, (list, dict)):
        return needle in haystack
    if haystack is None:
        return False
    raise ExpressionError(f"'in' not supported on {type(haystack).__name__}")


def _get_field(value: Any, name: str) -> Any:
    if name == "length" and isinstance(value, (str, list, dict)):
        return len(value)
    if isinstance(value, dict):
        return value.get(name)
    if value is None:
        raise ExpressionError(f"cannot read '{name}' of None")
    raise ExpressionError(f"cannot read '{name}' of {type(value).__name__}")


def _get_item(value: Any, key: Any) -> Any:
    if isinstance(value, dict):
        if not isinstance(key, (str, int, float, bool, type(None))):
            raise ExpressionError("unsupported key type")
        return value.get(key)
    if isinstance(value, (list, str)):
        if not isinstance(key, int) or isinstance(key, bool):
            raise ExpressionError("index must be an integer")
        if -len(value) <= key < len(value):
            return value[key]
        return None
    if value is None:
        raise ExpressionError("cannot index None")
    raise ExpressionError(f"cannot index {type(value).__name__}")


def _text(value: Any) -> str:
    return json.dumps(value, default=str, ensure_ascii=False)


def _call_function(name: str, args: list[Any]) -> Any:
    if name == "contains":
        if len(args) != 2:
            raise ExpressionError("contains() takes 2 arguments")
        return _contains(args[0], args[1])
    if len(args) != 1:
        raise ExpressionError(f"{name}() takes 1 argument")
    (arg,) = args
    if name == "text":
        return _text(arg)
    if name == "str":
        return arg if isinstance(arg, str) else _text(arg)
    if name == "lower":
        if not isinstance(arg, str):
            raise ExpressionError("lower() needs a string")
        return arg.lower()
    if name == "len":
        if not isinstance(arg, (str, list, dict)):
            raise ExpressionError("len() needs a string, list or object")
        return len(arg)
    raise ExpressionError(f"unknown function: {name}")


def _call_method(target: Any, name: str, args: list[Any]) -> Any:
    if name == "includes":
        if len(args) != 1:
            raise ExpressionError("includes() takes 1 argument")
        return _contains(target, args[0])

    if name == "get":
        if not isinstance(target, dict) or not 1 <= len(args) <= 2:
            raise ExpressionError("get() needs an object and 1-2 arguments")
        return target.get(*args)

    if not isinstance(target, str):
        raise ExpressionError(f"{name}() needs a string")

    if name in ("lower", "toLowerCase", "upper", "toUpperCase", "strip"):
        if args:
            raise ExpressionError(f"{name}() takes no arguments")
        if name in ("lower", "toLowerCase"):
            return target.lower()
        if name in ("upper", "toUpperCase"):
            return target.upper()
        return target.strip()

    # startswith / endswith
    if len(args) != 1 or not isinstance(args[0], str):
        raise ExpressionError(f"{name}() takes 1 string argument")
    return target.startswith(args[0]) if name == "startswith" else target.endswith(args[0])
