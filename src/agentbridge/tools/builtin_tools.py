"""Small general-purpose server tools."""

from __future__ import annotations

import ast
import operator
from datetime import datetime, timezone as dt_timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from agentbridge.tools.decorator import tool
from agentbridge.tools.types import AIResponseMode

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
}

_MAX_EXPONENT = 100


def _evaluate(node: ast.AST) -> float:
    if isinstance(node, ast.Expression):
        return _evaluate(node.body)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        left, right = _evaluate(node.left), _evaluate(node.right)
        if isinstance(node.op, ast.Pow) and abs(right) > _MAX_EXPONENT:
            raise ValueError(f"Exponent too large: {right}")
        return _BINARY_OPS[type(node.op)](left, right)
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_evaluate(node.operand))
    raise ValueError(f"Unsupported expression element: {type(node).__name__}")


@tool(ai_context=lambda result, args: f"{args.get('expression')} = {result.get('result')}")
def calculate(expression: str) -> dict:
    """Evaluate an arithmetic expression.

    Args:
        expression: Arithmetic using + - * / // % ** and parentheses, e.g. '(2 + 3) * 4'.
    """
    try:
        tree = ast.parse(expression, mode="eval")
    except SyntaxError as e:
        raise ValueError(f"Invalid expression: {expression}") from e
    return {"expression": expression, "result": _evaluate(tree)}


@tool(ai_response_mode=AIResponseMode.FULL)
def current_time(timezone: str = "UTC") -> dict:
    """Get the current date and time.

    Args:
        timezone: IANA timezone name, e.g. 'Europe/Stockholm'.
    """
    if timezone.upper() == "UTC":
        tz = dt_timezone.utc
    else:
        try:
            tz = ZoneInfo(timezone)
        except ZoneInfoNotFoundError as e:
            raise ValueError(f"Unknown timezone: {timezone}") from e
    now = datetime.now(tz)
    return {"timezone": timezone, "iso": now.isoformat(), "weekday": now.strftime("%A")}
