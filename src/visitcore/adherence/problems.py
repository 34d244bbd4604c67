# src/visitcore/adherence/problems.py
"""
@brief
Protocol deviation detection for medication-adherence activities.

@details
Turns an ``AdherenceResult`` plus the visit-day intake answer into an
ordered list of ``Problem`` records. All applicable rules fire, always in
the same order:

    1. should_take_today_not_taken   (error)
    2. should_not_take_today_taken   (error)
    3. low_adherence                 (warning)  pct < low_threshold
    4. adherence_below_expected      (warning)  low_threshold <= pct < target
    5. high_adherence                (warning)  pct > target
    6. returned_exceeds_delivered    (error)    real consumption < 0

Problems are data for a human reviewer, never exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from visitcore.adherence.calculator import AdherenceResult
from visitcore.schemas.models import AdherenceThresholds, MedicationTrackingConfig

SHOULD_TAKE_TODAY_NOT_TAKEN = "should_take_today_not_taken"
SHOULD_NOT_TAKE_TODAY_TAKEN = "should_not_take_today_taken"
LOW_ADHERENCE = "low_adherence"
ADHERENCE_BELOW_EXPECTED = "adherence_below_expected"
HIGH_ADHERENCE = "high_adherence"
RETURNED_EXCEEDS_DELIVERED = "returned_exceeds_delivered"


@dataclass(frozen=True, slots=True)
class Problem:
    id: str
    message: str
    severity: Literal["error", "warning"]


@dataclass(frozen=True, slots=True)
class MedicationErrorState:
    """Reviewer decision about one detected problem."""

    include_in_history: bool = False
    comment: str = ""


def _fmt_units(value: float) -> str:
    # 20.0 -> "20", 2.5 -> "2.5"
    return str(int(value)) if float(value).is_integer() else repr(float(value))


def detect_problems(
    config: MedicationTrackingConfig,
    took_medication_today: bool,
    adherence: AdherenceResult,
    thresholds: AdherenceThresholds | None = None,
) -> list[Problem]:
    """
    @brief
    Classify adherence statistics into protocol deviations.

    @details
    Deterministic and side-effect free: identical inputs always produce the
    identical ordered list. Percentages in messages use one decimal place.

    @params
        config : MedicationTrackingConfig
            Prescription whose visit-day rule is checked.
        took_medication_today : bool
            Whether the patient took the medication on the visit day.
        adherence : AdherenceResult
            Output of ``compute_adherence``.
        thresholds : AdherenceThresholds | None
            Classification bounds; defaults to 80 / 100 percent.

    @returns
        Ordered list of detected problems (possibly empty).
    """
    limits = thresholds or AdherenceThresholds()
    pct = adherence.adherence_percentage
    problems: list[Problem] = []

    # (1) Visit-day intake against protocol
    if config.should_take_on_visit_day is True and not took_medication_today:
        problems.append(
            Problem(
                id=SHOULD_TAKE_TODAY_NOT_TAKEN,
                message=(
                    "El paciente debería haber tomado la medicación el día de hoy según el "
                    "protocolo, pero no lo hizo."
                ),
                severity="error",
            )
        )
    if config.should_take_on_visit_day is False and took_medication_today:
        problems.append(
            Problem(
                id=SHOULD_NOT_TAKE_TODAY_TAKEN,
                message=(
                    "El paciente tomó la medicación hoy cuando no debía según el protocolo."
                ),
                severity="error",
            )
        )

    # (2) Adherence bands; low and below-expected are exclusive by construction
    if pct < limits.low_threshold:
        problems.append(
            Problem(
                id=LOW_ADHERENCE,
                message=(
                    f"Adherencia al tratamiento baja ({pct:.1f}%). "
                    "El paciente consumió menos medicación de la esperada."
                ),
                severity="warning",
            )
        )
    if limits.low_threshold <= pct < limits.target:
        problems.append(
            Problem(
                id=ADHERENCE_BELOW_EXPECTED,
                message=(
                    f"Adherencia al tratamiento menor a la esperada ({pct:.1f}%). "
                    "El paciente consumió menos medicación de la esperada."
                ),
                severity="warning",
            )
        )
    if pct > limits.target:
        problems.append(
            Problem(
                id=HIGH_ADHERENCE,
                message=(
                    f"Adherencia al tratamiento mayor a {limits.target:g}% ({pct:.1f}%). "
                    "El paciente consumió más medicación de la esperada."
                ),
                severity="warning",
            )
        )

    # (3) Over-return
    if adherence.real_consumption < 0:
        problems.append(
            Problem(
                id=RETURNED_EXCEEDS_DELIVERED,
                message=(
                    f"Las unidades devueltas ({_fmt_units(adherence.returned)}) exceden las "
                    f"unidades entregadas ({_fmt_units(adherence.delivered)})."
                ),
                severity="error",
            )
        )

    return problems


__all__ = [
    "ADHERENCE_BELOW_EXPECTED",
    "HIGH_ADHERENCE",
    "LOW_ADHERENCE",
    "RETURNED_EXCEEDS_DELIVERED",
    "SHOULD_NOT_TAKE_TODAY_TAKEN",
    "SHOULD_TAKE_TODAY_NOT_TAKEN",
    "MedicationErrorState",
    "Problem",
    "detect_problems",
]
