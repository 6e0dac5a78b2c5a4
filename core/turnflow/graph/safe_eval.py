"""
Safe expression evaluation (AST whitelist).

Evaluates the small arithmetic/comparison expressions authors write in
data-store field logic, e.g. ``hp - damage`` or ``score > 10 and not dead``.
Only literals, names from the supplied context, dotted/indexed access into
context values, arithmetic, comparisons, boolean logic, conditional
expressions and a handful of pure builtins are accepted. Anything else
raises :class:`SafeEvalError`, as do nesting, powers and repeats that
exceed the size limits.
"""

import ast
import operator
from collections.abc import Mapping
from typing import Any


class SafeEvalError(ValueError):
    """Raised when an expression uses a construct outside the whitelist."""


_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
    ast.Not: operator.not_,
}

_COMPARE_OPS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
}

SAFE_FUNCTIONS = {
    "abs": abs,
    "min": min,
    "max": max,
    "round": round,
    "int": int,
    "float": float,
    "str": str,
    "bool": bool,
    "len": len,
}

# Lowercase JSON/JS-style literals authors tend to type
_LITERAL_NAMES = {"true": True, "false": False, "null": None, "None": None}

MAX_EXPRESSION_LENGTH = 2000
MAX_POWER_EXPONENT = 100
MAX_INT_BITS = 4096
MAX_SEQUENCE_LENGTH = 10_000


def safe_eval(expression: str, context: Mapping[str, Any] | None = None) -> Any:
    """
    Evaluate *expression* against *context*.

    Args:
        expression: Python-syntax expression
        context: Names available to the expression

    Returns:
        The expression value

    Raises:
        SafeEvalError: Disallowed syntax, unknown name or oversize input
    """
    if len(expression) > MAX_EXPRESSION_LENGTH:
        raise SafeEvalError(f"Expression longer than {MAX_EXPRESSION_LENGTH} characters")
    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError as e:
        raise SafeEvalError(f"Invalid expression syntax: {e.msg}") from e
    except (RecursionError, MemoryError) as e:
        raise SafeEvalError("Expression nested too deeply") from e
    try:
        return _Evaluator(context or {}).visit(tree.body)
    except RecursionError as e:
        raise SafeEvalError("Expression nested too deeply") from e


def _check_power(base: Any, exponent: Any) -> None:
    """Reject a power whose result would exceed the size limits."""
    if not isinstance(exponent, int | float):
        return
    if abs(exponent) > MAX_POWER_EXPONENT:
        raise SafeEvalError("Exponent too large")
    if isinstance(base, int) and isinstance(exponent, int) and exponent > 0:
        if base.bit_length() * exponent > MAX_INT_BITS:
            raise SafeEvalError("Power result too large")


def _check_product(left: Any, right: Any) -> None:
    """Reject a product whose integer or repeated sequence would exceed the size limits."""
    if isinstance(left, int) and isinstance(right, int):
        if left.bit_length() + right.bit_length() > MAX_INT_BITS:
            raise SafeEvalError("Product too large")
        return
    for sequence, count in ((left, right), (right, left)):
        if isinstance(sequence, str | list | tuple) and isinstance(count, int):
            if len(sequence) * count > MAX_SEQUENCE_LENGTH:
                raise SafeEvalError("Repeated sequence too long")


class _Evaluator:
    def __init__(self, context: Mapping[str, Any]):
        self.context = context

    def visit(self, node: ast.AST) -> Any:
        method = getattr(self, f"visit_{type(node).__name__}", None)
        if method is None:
            raise SafeEvalError(f"Unsupported expression element: {type(node).__name__}")
        return method(node)

    def visit_Constant(self, node: ast.Constant) -> Any:
        return node.value

    def visit_Name(self, node: ast.Name) -> Any:
        if node.id in self.context:
            return self.context[node.id]
        if node.id in _LITERAL_NAMES:
            return _LITERAL_NAMES[node.id]
        raise SafeEvalError(f"Unknown name: {node.id}")

    def visit_List(self, node: ast.List) -> list:
        return [self.visit(elt) for elt in node.elts]

    def visit_Tuple(self, node: ast.Tuple) -> tuple:
        return tuple(self.visit(elt) for elt in node.elts)

    def visit_BinOp(self, node: ast.BinOp) -> Any:
        op = _BINARY_OPS.get(type(node.op))
        if op is None:
            raise SafeEvalError(f"Unsupported operator: {type(node.op).__name__}")
        left = self.visit(node.left)
        right = self.visit(node.right)
        if isinstance(node.op, ast.Pow):
            _check_power(left, right)
        elif isinstance(node.op, ast.Mult):
            _check_product(left, right)
        return op(left, right)

    def visit_UnaryOp(self, node: ast.UnaryOp) -> Any:
        op = _UNARY_OPS.get(type(node.op))
        if op is None:
            raise SafeEvalError(f"Unsupported operator: {type(node.op).__name__}")
        return op(self.visit(node.operand))

    def visit_BoolOp(self, node: ast.BoolOp) -> Any:
        if isinstance(node.op, ast.And):
            result: Any = True
            for value in node.values:
                result = self.visit(value)
                if not result:
                    return result
            return result
        result = False
        for value in node.values:
            result = self.visit(value)
            if result:
                return result
        return result

    def visit_Compare(self, node: ast.Compare) -> bool:
        left = self.visit(node.left)
        for op_node, comparator in zip(node.ops, node.comparators, strict=True):
            op = _COMPARE_OPS.get(type(op_node))
            if op is None:
                raise SafeEvalError(f"Unsupported comparison: {type(op_node).__name__}")
            right = self.visit(comparator)
            if not op(left, right):
                return False
            left = right
        return True

    def visit_IfExp(self, node: ast.IfExp) -> Any:
        return self.visit(node.body) if self.visit(node.test) else self.visit(node.orelse)

    def visit_Attribute(self, node: ast.Attribute) -> Any:
        # Dotted access into context mappings only, never Python attributes
        value = self.visit(node.value)
        if isinstance(value, Mapping) and node.attr in value:
            return value[node.attr]
        raise SafeEvalError(f"Unknown field: {node.attr}")

    def visit_Subscript(self, node: ast.Subscript) -> Any:
        value = self.visit(node.value)
        key = self.visit(node.slice)
        try:
            return value[key]
        except (KeyError, IndexError, TypeError) as e:
            raise SafeEvalError(f"Invalid subscript: {key!r}") from e

    def visit_Call(self, node: ast.Call) -> Any:
        if not isinstance(node.func, ast.Name) or node.func.id not in SAFE_FUNCTIONS:
            raise SafeEvalError("Only simple builtin calls are allowed")
        if node.keywords:
            raise SafeEvalError("Keyword arguments are not allowed")
        args = [self.visit(arg) for arg in node.args]
        return SAFE_FUNCTIONS[node.func.id](*args)
