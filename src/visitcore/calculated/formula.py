# src/visitcore/calculated/formula.py
"""
@brief
Arithmetic formulas over activity answers.

@details
Formulas reference activities by name, e.g. ``"peso / (talla * talla)"``.
Evaluation steps:
    1. bind every activity with a numeric answer under its lower-cased name
       (and a whitespace-free alias); repeated measurements are averaged
    2. substitute names by their numbers, longest names first, whole words only
    3. accept only digits, whitespace, ``+ - * / . ( )`` after substitution
    4. evaluate the arithmetic through a restricted ``ast`` walk

Every failure (unknown name, bad syntax, division by zero) yields ``None``.
"""

from __future__ import annotations

import ast
import logging
import math
import operator
import re
from collections.abc import Callable, Iterable, Mapping
from decimal import Decimal
from typing import Any

from visitcore.schemas.models import Activity
from visitcore.validator.rules import FormulaEvaluator, to_number

logger = logging.getLogger(__name__)

PLACEHOLDER = "—"

_ARITHMETIC_ONLY = re.compile(r"^[\d\s+\-*/.()]+$", re.ASCII)

_BINARY_OPS: dict[type, Callable[[float, float], float]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}
_UNARY_OPS: dict[type, Callable[[float], float]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


def _mean_or_number(value: Any) -> float | None:
    if isinstance(value, (list, tuple)):
        numbers = [n for n in (to_number(v) for v in value) if n is not None]
        return sum(numbers) / len(numbers) if numbers else None
    return to_number(value)


def formula_context(values: Mapping[str, Any], activities: Iterable[Activity]) -> dict[str, float]:
    """Variable bindings for a formula: activity names -> numeric answers."""
    by_id = {a.id: a for a in activities}
    context: dict[str, float] = {}

    for key, value in values.items():
        activity = by_id.get(key)
        if activity is None:
            continue
        number = _mean_or_number(value)
        if number is None:
            continue

        name = (activity.name or "").strip().lower()
        if not name:
            continue
        context[name] = number
        compact = re.sub(r"\s+", "", name)
        if compact != name:
            context[compact] = number

    return context


def _literal(number: float) -> str:
    # Positional notation; exponent forms would fail the arithmetic-only check
    return format(Decimal(repr(number)), "f")


def _walk(node: ast.AST) -> float:
    # Raises ValueError for anything but numeric literals and + - * /
    if isinstance(node, ast.Expression):
        return _walk(node.body)
    if isinstance(node, ast.Constant) and type(node.value) in (int, float):
        return float(node.value)
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        return _BINARY_OPS[type(node.op)](_walk(node.left), _walk(node.right))
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_walk(node.operand))
    raise ValueError(f"unsupported expression node: {type(node).__name__}")


def evaluate_arithmetic(expression: str) -> float | None:
    """Evaluate a purely numeric expression; ``None`` when it is not one."""
    if not _ARITHMETIC_ONLY.match(expression):
        return None
    try:
        result = _walk(ast.parse(expression.strip(), mode="eval"))
    except (SyntaxError, ValueError, ZeroDivisionError, OverflowError) as exc:
        logger.debug("Formula %r not evaluable: %s", expression, exc)
        return None
    return result if math.isfinite(result) else None


def evaluate_formula(
    formula: str | None, values: Mapping[str, Any], activities: Iterable[Activity]
) -> float | None:
    """
    @brief
    Evaluate a calculated-field or rule formula against the current answers.

    @params
        formula : str | None
            Expression referencing activities by name.
        values : Mapping[str, Any]
            Current answers keyed by activity id.
        activities : Iterable[Activity]
            Visit schema used to resolve names.

    @returns
        The finite result, or None.
    """
    if not formula or not formula.strip():
        return None

    context = formula_context(values, activities)
    expression = formula.strip().lower()
    for name in sorted(context, key=len, reverse=True):
        pattern = re.compile(rf"\b{re.escape(name)}\b", re.IGNORECASE)
        expression = pattern.sub(_literal(context[name]), expression)

    return evaluate_arithmetic(expression)


def formula_evaluator(activities: Iterable[Activity]) -> FormulaEvaluator:
    """Bind a schema so the evaluator fits ``(formula, values) -> number | None``."""
    schema = tuple(activities)

    def _evaluate(formula: str, values: Mapping[str, Any]) -> float | None:
        return evaluate_formula(formula, values, schema)

    return _evaluate


def calculated_value(
    activity: Activity, values: Mapping[str, Any], activities: Iterable[Activity]
) -> float | None:
    """Stored value of a calculated activity, rounded to its decimal places."""
    result = evaluate_formula(activity.calculation_formula, values, activities)
    if result is None:
        return None
    if activity.decimal_places is None:
        return result
    return round(result, activity.decimal_places)


def format_calculated(value: float | None, decimal_places: int) -> str:
    """Display text for a calculated value; the placeholder when there is none."""
    if value is None or not math.isfinite(value):
        return PLACEHOLDER
    return f"{value:.{decimal_places}f}"


__all__ = [
    "PLACEHOLDER",
    "calculated_value",
    "evaluate_arithmetic",
    "evaluate_formula",
    "format_calculated",
    "formula_context",
    "formula_evaluator",
]
