# src/visitcore/validator/rules.py
"""
@brief
Evaluation of an activity's own ``validationRules``.

@details
Rules apply to the numeric reading of an answer: a repetition's value when
an index is given, the mean of all numeric repetitions otherwise, or the
scalar answer. Non-numeric answers are not checked. Inactive rules are
skipped; the first violated rule is reported.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping
from typing import Any

from visitcore.schemas.models import Activity, ActivityRule, ValidationError

FormulaEvaluator = Callable[[str, Mapping[str, Any]], "float | None"]


def to_number(value: Any) -> float | None:
    """Strict numeric reading of one answer; blanks and text yield ``None``."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def numeric_reading(activity: Activity, value: Any, index: int | None = None) -> float | None:
    """
    @brief
    Number a rule compares against.

    @details
    Repeated activities: the indexed repetition, or the mean of the numeric
    repetitions when no index is given. Otherwise the scalar answer.
    """
    if activity.allow_multiple and isinstance(value, (list, tuple)):
        if index is not None:
            return to_number(value[index]) if index < len(value) else None
        numbers = [n for n in (to_number(v) for v in value) if n is not None]
        return sum(numbers) / len(numbers) if numbers else None
    return to_number(value)


def _compare(number: float, operator: str, reference: float) -> bool:
    if operator == ">":
        return number > reference
    if operator == ">=":
        return number >= reference
    if operator == "<":
        return number < reference
    if operator == "<=":
        return number <= reference
    if operator == "==":
        return number == reference
    return number != reference


def rule_violated(
    rule: ActivityRule,
    number: float,
    values: Mapping[str, Any],
    evaluate_formula: FormulaEvaluator | None = None,
) -> bool:
    """
    @brief
    Check one rule against a numeric reading.

    @details
    Rules missing the bounds their condition needs never fire. ``formula``
    rules need an evaluator; the reading must satisfy
    ``reading <operator> formula_result`` and a formula that cannot be
    evaluated does not fire.
    """
    condition = rule.condition

    if condition == "min":
        return rule.min_value is not None and number < rule.min_value
    if condition == "max":
        return rule.max_value is not None and number > rule.max_value
    if condition == "range":
        if rule.min_value is None or rule.max_value is None:
            return False
        return number < rule.min_value or number > rule.max_value
    if condition in ("equals", "not_equals"):
        reference = to_number(rule.value)
        if reference is None:
            # A non-numeric reference never equals a number
            return condition == "equals" and rule.value is not None
        equal = number == reference
        return not equal if condition == "equals" else equal
    if condition == "formula":
        if not rule.formula or evaluate_formula is None:
            return False
        result = evaluate_formula(rule.formula, values)
        if result is None or not math.isfinite(result):
            return False
        return not _compare(number, rule.formula_operator, result)
    return False


def evaluate_rules(
    activity: Activity,
    value: Any,
    values: Mapping[str, Any],
    index: int | None = None,
    evaluate_formula: FormulaEvaluator | None = None,
) -> ValidationError | None:
    """First violated active rule of ``activity``, as a ``ValidationError``."""
    if not activity.validation_rules:
        return None

    number = numeric_reading(activity, value, index)
    if number is None:
        return None

    for rule in activity.validation_rules:
        if not rule.is_active:
            continue
        if not rule_violated(rule, number, values, evaluate_formula):
            continue

        suffix = ""
        if activity.allow_multiple and index is not None:
            suffix = f" (Medición {index + 1})"
        return ValidationError(
            activity_id=activity.id,
            activity_name=activity.name,
            rule=rule.model_copy(update={"message": rule.message + suffix}),
            current_value=number,
        )
    return None


__all__ = ["FormulaEvaluator", "evaluate_rules", "numeric_reading", "rule_violated", "to_number"]
