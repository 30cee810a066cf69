from __future__ import annotations

import ast
import math
import operator


MAX_EXPRESSION_LENGTH = 200

_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}

_UNARY_OPS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


class ExpressionError(ValueError):
    """Raised when a consumption expression cannot be evaluated."""


def _eval(node: ast.AST) -> float:
    if isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            raise ExpressionError(f"Unsupported literal: {node.value!r}")
        return float(node.value)
    if isinstance(node, ast.BinOp):
        op = _BINARY_OPS.get(type(node.op))
        if op is None:
            raise ExpressionError(f"Unsupported operator: {type(node.op).__name__}")
        left = _eval(node.left)
        right = _eval(node.right)
        try:
            return op(left, right)
        except ZeroDivisionError as exc:
            raise ExpressionError("Division by zero") from exc
    if isinstance(node, ast.UnaryOp):
        op = _UNARY_OPS.get(type(node.op))
        if op is None:
            raise ExpressionError(f"Unsupported operator: {type(node.op).__name__}")
        return op(_eval(node.operand))
    raise ExpressionError(f"Unsupported expression element: {type(node).__name__}")


def evaluate_expression(text: str) -> float:
    """Evaluate ``+ - * /`` arithmetic over decimal literals.

    The result is rounded to 4 decimal places. Empty input, anything other
    than plain arithmetic, non-finite and negative results all raise
    :class:`ExpressionError`.
    """
    raw = (text or "").strip()
    if not raw:
        raise ExpressionError("Expression is empty")
    if len(raw) > MAX_EXPRESSION_LENGTH:
        raise ExpressionError(f"Expression longer than {MAX_EXPRESSION_LENGTH} characters")
    # keypad input uses the unicode signs
    normalized = raw.replace("×", "*").replace("÷", "/")
    if "**" in normalized or "//" in normalized:
        raise ExpressionError("Only + - * / are supported")

    try:
        tree = ast.parse(normalized, mode="eval")
    except SyntaxError as exc:
        raise ExpressionError(f"Invalid expression: {raw}") from exc

    value = _eval(tree.body)
    if not math.isfinite(value):
        raise ExpressionError("Expression result is not a finite number")
    if value < 0:
        raise ExpressionError("Consumption cannot be negative")
    return round(value, 4)
