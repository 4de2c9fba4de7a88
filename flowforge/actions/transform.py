"""Restricted expression evaluator for ``transform`` actions.

Expressions are parsed with :mod:`ast` and walked node by node; nothing is
compiled or handed to ``eval``. The payload is bound as ``data`` and the value
at ``config.input`` (a dotted path into the payload) as ``value``. Mapping keys
can be read with attribute syntax, so ``data.httpResponse.status`` works.
"""

from __future__ import annotations

import ast
import logging
import operator
from typing import Any, Callable, Mapping

from ..contracts import TransformActionConfig
from ..errors import ActionExecutionError

logger = logging.getLogger(__name__)

MAX_EXPRESSION_LENGTH = 4096
MAX_POWER_EXPONENT = 100
MAX_SEQUENCE_LENGTH = 100_000


class TransformError(ValueError):
    """The expression is not allowed or failed while evaluating."""


SAFE_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "abs": abs,
    "all": all,
    "any": any,
    "bool": bool,
    "dict": dict,
    "float": float,
    "int": int,
    "len": len,
    "list": list,
    "max": max,
    "min": min,
    "round": round,
    "sorted": sorted,
    "str": str,
    "sum": sum,
    "tuple": tuple,
}

SAFE_CONSTANTS: dict[str, Any] = {"True": True, "False": False, "None": None}

SAFE_METHODS: dict[type, frozenset[str]] = {
    str: frozenset(
        {
            "capitalize", "endswith", "find", "join", "lower", "lstrip",
            "replace", "rstrip", "split", "startswith", "strip", "title", "upper",
        }
    ),
    dict: frozenset({"get", "items", "keys", "values"}),
    list: frozenset({"count", "index"}),
    tuple: frozenset({"count", "index"}),
}

_BINARY_OPS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS: dict[type, Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
    ast.Not: operator.not_,
}

_COMPARE_OPS: dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}


def resolve_path(payload: Mapping[str, Any], path: str | None) -> Any:
    """Return the value at dotted ``path`` inside ``payload`` or ``None``."""

    if not path:
        return None
    current: Any = payload
    for part in path.split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        elif isinstance(current, (list, tuple)) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return None
    return current


class SafeExpressionEvaluator:
    """Evaluate a single Python expression against a fixed set of names."""

    def __init__(self, names: Mapping[str, Any]) -> None:
        self.names = {**SAFE_CONSTANTS, **names}

    def evaluate(self, expression: str) -> Any:
        expression = expression.strip()
        if not expression:
            raise TransformError("Transformation expression is empty")
        if len(expression) > MAX_EXPRESSION_LENGTH:
            raise TransformError("Transformation expression is too long")
        try:
            tree = ast.parse(expression, mode="eval")
        except SyntaxError as e:
            raise TransformError(f"Invalid expression: {e.msg}") from e
        return self._eval(tree.body)

    # ------------------------------------------------------------------
    def _eval(self, node: ast.AST) -> Any:
        handler = getattr(self, f"_eval_{type(node).__name__}", None)
        if handler is None:
            raise TransformError(f"{type(node).__name__} is not allowed in transformations")
        return handler(node)

    def _eval_Constant(self, node: ast.Constant) -> Any:
        return node.value

    def _eval_Name(self, node: ast.Name) -> Any:
        if node.id.startswith("_"):
            raise TransformError(f"Name {node.id!r} is not allowed")
        if node.id in self.names:
            return self.names[node.id]
        if node.id in SAFE_FUNCTIONS:
            return SAFE_FUNCTIONS[node.id]
        raise TransformError(f"Unknown name {node.id!r}")

    def _eval_Attribute(self, node: ast.Attribute) -> Any:
        if node.attr.startswith("_"):
            raise TransformError(f"Attribute {node.attr!r} is not allowed")
        target = self._eval(node.value)
        if isinstance(target, Mapping):
            if node.attr in target:
                return target[node.attr]
            # Fall through so dict methods like ``data.get`` stay reachable.
        for kind, methods in SAFE_METHODS.items():
            if isinstance(target, kind) and node.attr in methods:
                return getattr(target, node.attr)
        if isinstance(target, Mapping):
            return None
        raise TransformError(
            f"Attribute {node.attr!r} is not allowed on {type(target).__name__}"
        )

    def _eval_Subscript(self, node: ast.Subscript) -> Any:
        target = self._eval(node.value)
        key = self._eval(node.slice)
        try:
            return target[key]
        except (KeyError, IndexError, TypeError) as e:
            raise TransformError(f"Cannot index {type(target).__name__} with {key!r}") from e

    def _eval_Slice(self, node: ast.Slice) -> slice:
        return slice(
            self._eval(node.lower) if node.lower else None,
            self._eval(node.upper) if node.upper else None,
            self._eval(node.step) if node.step else None,
        )

    def _eval_BinOp(self, node: ast.BinOp) -> Any:
        op = _BINARY_OPS.get(type(node.op))
        if op is None:
            raise TransformError(f"Operator {type(node.op).__name__} is not allowed")
        left = self._eval(node.left)
        right = self._eval(node.right)
        if isinstance(node.op, ast.Pow) and isinstance(right, (int, float)):
            if abs(right) > MAX_POWER_EXPONENT:
                raise TransformError("Exponent is too large")
        if isinstance(node.op, ast.Mult):
            for seq, count in ((left, right), (right, left)):
                if isinstance(seq, (str, list, tuple)) and isinstance(count, int):
                    if len(seq) * count > MAX_SEQUENCE_LENGTH:
                        raise TransformError("Result is too large")
        return op(left, right)

    def _eval_UnaryOp(self, node: ast.UnaryOp) -> Any:
        op = _UNARY_OPS.get(type(node.op))
        if op is None:
            raise TransformError(f"Operator {type(node.op).__name__} is not allowed")
        return op(self._eval(node.operand))

    def _eval_BoolOp(self, node: ast.BoolOp) -> Any:
        result: Any = None
        for value_node in node.values:
            result = self._eval(value_node)
            if isinstance(node.op, ast.And) and not result:
                return result
            if isinstance(node.op, ast.Or) and result:
                return result
        return result

    def _eval_Compare(self, node: ast.Compare) -> bool:
        left = self._eval(node.left)
        for op_node, comparator in zip(node.ops, node.comparators):
            right = self._eval(comparator)
            if not _COMPARE_OPS[type(op_node)](left, right):
                return False
            left = right
        return True

    def _eval_IfExp(self, node: ast.IfExp) -> Any:
        return self._eval(node.body) if self._eval(node.test) else self._eval(node.orelse)

    def _eval_Call(self, node: ast.Call) -> Any:
        func = self._eval(node.func)
        if not callable(func):
            raise TransformError("Only whitelisted functions can be called")
        args = [self._eval(a) for a in node.args]
        kwargs = {}
        for keyword in node.keywords:
            if keyword.arg is None:
                raise TransformError("Keyword unpacking is not allowed")
            kwargs[keyword.arg] = self._eval(keyword.value)
        return func(*args, **kwargs)

    def _eval_List(self, node: ast.List) -> list[Any]:
        return [self._eval(e) for e in node.elts]

    def _eval_Tuple(self, node: ast.Tuple) -> tuple[Any, ...]:
        return tuple(self._eval(e) for e in node.elts)

    def _eval_Dict(self, node: ast.Dict) -> dict[Any, Any]:
        result: dict[Any, Any] = {}
        for key, value in zip(node.keys, node.values):
            if key is None:
                merged = self._eval(value)
                if not isinstance(merged, Mapping):
                    raise TransformError("Only mappings can be unpacked with **")
                result.update(merged)
            else:
                result[self._eval(key)] = self._eval(value)
        return result

    def _eval_JoinedStr(self, node: ast.JoinedStr) -> str:
        return "".join(str(self._eval(v)) for v in node.values)

    def _eval_FormattedValue(self, node: ast.FormattedValue) -> str:
        value = self._eval(node.value)
        if node.format_spec is not None:
            return format(value, self._eval(node.format_spec))
        return format(value)


class ExpressionTransformProvider:
    async def evaluate_transform(
        self, config: TransformActionConfig, payload: dict[str, Any]
    ) -> Any:
        evaluator = SafeExpressionEvaluator(
            {"data": payload, "value": resolve_path(payload, config.input)}
        )
        try:
            return evaluator.evaluate(config.transformation)
        except TransformError as e:
            raise ActionExecutionError("transform", e, f"Transformation failed: {e}") from e
        except Exception as e:
            raise ActionExecutionError(
                "transform", e, f"Transformation failed: {type(e).__name__}: {e}"
            ) from e
