# tests/adherence/test_problems.py
from __future__ import annotations

import pytest

from visitcore.adherence.calculator import AdherenceResult
from visitcore.adherence.problems import (
    ADHERENCE_BELOW_EXPECTED,
    HIGH_ADHERENCE,
    LOW_ADHERENCE,
    RETURNED_EXCEEDS_DELIVERED,
    SHOULD_NOT_TAKE_TODAY_TAKEN,
    SHOULD_TAKE_TODAY_NOT_TAKEN,
    detect_problems,
)
from visitcore.schemas.models import AdherenceThresholds, MedicationTrackingConfig


# -----------------------------
# HELPER FACTORIES
# -----------------------------
def config(take_on_visit_day: bool | None = None) -> MedicationTrackingConfig:
    return MedicationTrackingConfig(
        quantity_per_dose=1,
        frequency_type="once_daily",
        should_take_on_visit_day=take_on_visit_day,
    )


def adherence(pct: float, delivered: float = 20.0, returned: float = 4.0) -> AdherenceResult:
    return AdherenceResult(
        days_elapsed=9,
        expected_consumption_days=10,
        expected_total_dose=20.0,
        real_consumption=delivered - returned,
        adjusted_consumption=delivered - returned,
        adherence_percentage=pct,
        delivered=delivered,
        returned=returned,
    )


def ids(problems) -> list[str]:
    return [p.id for p in problems]


# -----------------------------
# TESTS
# -----------------------------
@pytest.mark.parametrize(
    "pct, expected",
    [
        (100.0, []),
        (99.9, [ADHERENCE_BELOW_EXPECTED]),
        (80.0, [ADHERENCE_BELOW_EXPECTED]),
        (79.99, [LOW_ADHERENCE]),
        (100.1, [HIGH_ADHERENCE]),
    ],
)
def test_adherence_bands(pct, expected):
    """
    @brief
    Bands are half-open: 80 is below-expected, exactly 100 is fine.
    """
    assert ids(detect_problems(config(), False, adherence(pct))) == expected


def test_visit_day_rules_follow_protocol():
    # --- Act ---
    missed = detect_problems(config(True), False, adherence(100.0))
    extra = detect_problems(config(False), True, adherence(70.0))
    unspecified = detect_problems(config(None), True, adherence(100.0))

    # --- Assert ---
    assert ids(missed) == [SHOULD_TAKE_TODAY_NOT_TAKEN]
    assert missed[0].severity == "error"
    assert ids(extra) == [SHOULD_NOT_TAKE_TODAY_TAKEN, LOW_ADHERENCE]
    assert unspecified == []


def test_over_return_reports_units():
    # --- Arrange ---
    result = adherence(-25.0, delivered=20.0, returned=25.0)

    # --- Act ---
    problems = detect_problems(config(), False, result)

    # --- Assert ---
    assert ids(problems) == [LOW_ADHERENCE, RETURNED_EXCEEDS_DELIVERED]
    assert "(25)" in problems[1].message
    assert "(20)" in problems[1].message


def test_messages_use_one_decimal_percentage():
    problems = detect_problems(config(), False, adherence(72.345))
    assert "(72.3%)" in problems[0].message
    assert problems[0].severity == "warning"


def test_custom_thresholds():
    # --- Arrange ---
    limits = AdherenceThresholds(low_threshold=90, target=110)

    # --- Act ---
    low = detect_problems(config(), False, adherence(85.0), limits)
    below = detect_problems(config(), False, adherence(105.0), limits)
    high = detect_problems(config(), False, adherence(111.0), limits)

    # --- Assert ---
    assert ids(low) == [LOW_ADHERENCE]
    assert ids(below) == [ADHERENCE_BELOW_EXPECTED]
    assert ids(high) == [HIGH_ADHERENCE]
    assert "mayor a 110%" in high[0].message


def test_thresholds_reject_inverted_bounds():
    with pytest.raises(ValueError):
        AdherenceThresholds(low_threshold=120, target=100)


def test_detection_is_deterministic():
    first = detect_problems(config(False), True, adherence(-5.0, returned=25.0))
    second = detect_problems(config(False), True, adherence(-5.0, returned=25.0))
    assert first == second
