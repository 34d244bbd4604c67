# tests/validator/test_rules.py
from __future__ import annotations

import pytest

from visitcore.schemas.models import Activity, ActivityRule
from visitcore.validator.rules import evaluate_rules, numeric_reading, rule_violated, to_number


def rule(condition: str, **kwargs) -> ActivityRule:
    kwargs.setdefault("message", f"{condition} violated")
    return ActivityRule(condition=condition, **kwargs)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("12.5", 12.5),
        (" 7 ", 7.0),
        (3, 3.0),
        ("", None),
        ("abc", None),
        ("12abc", None),
        (None, None),
        (True, None),
        (float("nan"), None),
    ],
)
def test_to_number_is_strict(value, expected):
    assert to_number(value) == expected


def test_numeric_reading_for_repetitions():
    # --- Arrange ---
    repeated = Activity(id="r", field_type="number_simple", allow_multiple=True)
    values = ["10", "", "20", "x"]

    # --- Assert ---
    assert numeric_reading(repeated, values, 0) == 10.0
    assert numeric_reading(repeated, values, 1) is None
    assert numeric_reading(repeated, values, 9) is None
    assert numeric_reading(repeated, values) == 15.0
    assert numeric_reading(repeated, ["", None]) is None


@pytest.mark.parametrize(
    "r, number, expected",
    [
        (rule("min", min_value=10), 9.9, True),
        (rule("min", min_value=10), 10, False),
        (rule("max", max_value=10), 10.1, True),
        (rule("max"), 1e9, False),
        (rule("range", min_value=1, max_value=5), 0, True),
        (rule("range", min_value=1, max_value=5), 5, False),
        (rule("range", min_value=1), 0, False),
        (rule("equals", value="3"), 3, False),
        (rule("equals", value=3), 4, True),
        (rule("equals", value="abc"), 4, True),
        (rule("not_equals", value="3"), 3, True),
        (rule("not_equals", value="abc"), 3, False),
    ],
)
def test_rule_violated_bounds(r, number, expected):
    assert rule_violated(r, number, {}) is expected


def test_formula_rule_uses_injected_evaluator():
    """
    @brief
    The reading must satisfy ``reading <operator> formula_result``.
    """
    # --- Arrange ---
    r = rule("formula", formula="sistolica", formula_operator=">")

    def evaluator(formula, values):
        return 80.0

    # --- Assert ---
    assert rule_violated(r, 90, {}, evaluator) is False
    assert rule_violated(r, 80, {}, evaluator) is True
    assert rule_violated(r, 10, {}, None) is False
    assert rule_violated(r, 10, {}, lambda f, v: None) is False


def test_evaluate_rules_reports_first_active_violation_with_measurement_suffix():
    # --- Arrange ---
    activity = Activity(
        id="fc",
        name="Frecuencia cardíaca",
        field_type="number_simple",
        allow_multiple=True,
        validation_rules=[
            rule("max", max_value=50, is_active=False),
            rule("range", min_value=60, max_value=100, message="Fuera de rango"),
            rule("min", min_value=70, message="Muy baja"),
        ],
    )

    # --- Act ---
    error = evaluate_rules(activity, ["55", "80"], {}, index=0)
    ok = evaluate_rules(activity, ["55", "80"], {}, index=1)

    # --- Assert ---
    assert ok is None
    assert error is not None
    assert error.activity_id == "fc"
    assert error.rule.condition == "range"
    assert error.rule.message == "Fuera de rango (Medición 1)"
    assert error.current_value == 55.0
    assert activity.validation_rules[1].message == "Fuera de rango"


def test_evaluate_rules_skips_non_numeric_answers():
    activity = Activity(
        id="t", field_type="number_simple", validation_rules=[rule("min", min_value=1)]
    )
    assert evaluate_rules(activity, "", {}) is None
    assert evaluate_rules(activity, "n/a", {}) is None
    assert evaluate_rules(activity, "0", {}).rule.message == "min violated"
