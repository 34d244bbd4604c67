# src/visitcore/submission/builder.py
"""
@brief
Assembly of the submitted visit record.

@details
Turns the schema, the answer store and the reviewer's medication decisions
into a ``VisitSubmission``:
    - numeric answers formatted to the activity's ``decimalPlaces``
    - calculated activities re-evaluated at submission time
    - split date/time answers attached to the activity or its measurements
    - medication adherence statistics plus the deviations the reviewer
      chose to record in the clinical history

Building is refused while blocking validation errors exist; warnings are
carried in the record.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import date, datetime, timezone
from typing import Any, Literal

from pydantic import Field

from visitcore.adherence.calculator import (
    AdherenceResult,
    Clock,
    compute_adherence,
    parse_decimal,
    parse_number,
    system_clock,
)
from visitcore.adherence.problems import detect_problems
from visitcore.calculated.formula import evaluate_formula, formula_evaluator
from visitcore.schemas.activities import sorted_activities
from visitcore.schemas.field_types import (
    CalculatedField,
    DatetimeField,
    MedicationTrackingField,
    field_requirements,
    repetition_slots,
    variant_of,
)
from visitcore.schemas.models import (
    Activity,
    AdherenceThresholds,
    ValidationError,
    WireModel,
)
from visitcore.store.form_values import FormValueStore, MedicationAnswers
from visitcore.timecodec import normalize_time
from visitcore.validator.engine import evaluate, has_blocking_errors

logger = logging.getLogger(__name__)


# ------------------------------------------------------------
# Submission records
# ------------------------------------------------------------
class Deviation(WireModel):
    type: str
    message: str
    severity: Literal["error", "warning"]
    comment: str | None = None


class AdherenceSummary(WireModel):
    days_elapsed: int
    expected_consumption_days: int
    expected_total_dose: float
    real_consumption: float
    adjusted_consumption: float
    adherence_percentage: float = Field(..., description="Rounded to 2 decimals")


class MedicationTrackingRecord(WireModel):
    last_visit_date: str
    units_delivered: float
    units_returned: float
    took_medication_today: bool
    adherence: AdherenceSummary
    deviations: list[Deviation] | None = None


class Measurement(WireModel):
    """One filled repetition; ``index`` is its zero-based slot even when earlier ones are empty."""

    index: int
    value: Any = None
    date: str | None = None
    time: str | None = None


class SubmittedActivity(WireModel):
    id: str
    name: str
    field_type: str
    help_text: str | None = None
    description: str | None = None
    measurement_unit: str | None = None
    value: Any = None
    date: str | None = None
    time: str | None = None
    measurements: list[Measurement] | None = None
    medication_tracking: MedicationTrackingRecord | None = None


class VisitSubmission(WireModel):
    """
    @brief
    The record handed off at the end of a visit-filling session.

    @details
    ``validation_errors`` holds only warnings; a submission never exists
    while blocking errors remain.
    """

    patient_id: str | None = None
    protocol_name: str | None = None
    visit_name: str = ""
    visit_type: str | None = None
    activities: list[SubmittedActivity] = Field(default_factory=list)
    validation_errors: list[ValidationError] = Field(default_factory=list)
    timestamp: str

    def to_wire(self) -> dict[str, Any]:
        """camelCase JSON-ready dict without unset optional members."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# ------------------------------------------------------------
# Value formatting
# ------------------------------------------------------------
def _fixed(value: Any, decimal_places: int) -> Any:
    number = parse_decimal(value)
    if number is None:
        return value
    return f"{number:.{decimal_places}f}"


def format_numeric_value(value: Any, activity: Activity) -> Any:
    """
    @brief
    Render numeric answers with the activity's configured decimal places.

    @details
    Applies only to numeric kinds with an explicit ``decimalPlaces``. Lists
    and compound dicts are formatted element-wise; unparsable entries and
    blanks pass through unchanged.
    """
    if value is None or value == "" or activity.decimal_places is None:
        return value
    if not field_requirements(activity.field_type).is_numeric:
        return value

    places = activity.decimal_places
    if isinstance(value, (list, tuple)):
        return [None if v is None else _fixed(v, places) for v in value]
    if isinstance(value, Mapping):
        return {k: _fixed(v, places) for k, v in value.items()}
    return _fixed(value, places)


def _wanted_parts(activity: Activity) -> tuple[bool, bool]:
    variant = variant_of(activity)
    if isinstance(variant, DatetimeField):
        return variant.include_date, variant.include_time
    return bool(activity.require_date), bool(activity.require_time)


def _measurements(
    activity: Activity, value: Any, store: FormValueStore, wants_date: bool, wants_time: bool
) -> list[Measurement]:
    items = value if isinstance(value, (list, tuple)) else []
    measurements: list[Measurement] = []

    for index in repetition_slots(activity):
        slot = items[index] if index < len(items) else None
        slot_date = store.date_for(activity, index) if wants_date else ""
        slot_time = normalize_time(store.effective_time(activity, index)) if wants_time else ""
        if slot is None and not slot_date and not slot_time:
            continue
        measurements.append(
            Measurement(index=index, value=slot, date=slot_date or None, time=slot_time or None)
        )
    return measurements


def _medication_record(
    activity: Activity,
    value: Any,
    store: FormValueStore,
    visit_date: date | datetime | None,
    clock: Clock,
    thresholds: AdherenceThresholds | None,
) -> MedicationTrackingRecord | None:
    config = activity.medication_tracking_config
    if config is None:
        return None

    answers = MedicationAnswers.from_value(value)
    result: AdherenceResult | None = compute_adherence(
        answers.last_visit_date,
        answers.units_delivered,
        answers.units_returned,
        answers.took_medication_today,
        config,
        visit_date,
        clock=clock,
    )
    if result is None:
        return None

    # (1) Only problems the reviewer flagged for the clinical history
    deviations: list[Deviation] = []
    for problem in detect_problems(config, answers.took_medication_today, result, thresholds):
        state = store.medication_error(activity.id, problem.id)
        if state.include_in_history:
            deviations.append(
                Deviation(
                    type=problem.id,
                    message=problem.message,
                    severity=problem.severity,
                    comment=state.comment or None,
                )
            )

    return MedicationTrackingRecord(
        last_visit_date=answers.last_visit_date,
        units_delivered=parse_number(answers.units_delivered),
        units_returned=parse_number(answers.units_returned),
        took_medication_today=answers.took_medication_today,
        adherence=AdherenceSummary(
            days_elapsed=result.days_elapsed,
            expected_consumption_days=result.expected_consumption_days,
            expected_total_dose=result.expected_total_dose,
            real_consumption=result.real_consumption,
            adjusted_consumption=result.adjusted_consumption,
            adherence_percentage=round(result.adherence_percentage, 2),
        ),
        deviations=deviations or None,
    )


def submit_activity(
    activity: Activity,
    store: FormValueStore,
    activities: Sequence[Activity],
    *,
    visit_date: date | datetime | None = None,
    clock: Clock = system_clock,
    thresholds: AdherenceThresholds | None = None,
) -> SubmittedActivity:
    """Submission entry for one activity."""
    variant = variant_of(activity)
    raw = store.get(activity.id)

    if isinstance(variant, CalculatedField) and variant.formula:
        calculated = evaluate_formula(variant.formula, store.snapshot(), activities)
        if calculated is not None:
            raw = calculated

    value = format_numeric_value(raw, activity)
    record = SubmittedActivity(
        id=activity.id,
        name=activity.name,
        field_type=activity.field_type,
        help_text=activity.help_text,
        description=store.description_of(activity),
        measurement_unit=activity.measurement_unit or None,
    )

    wants_date, wants_time = _wanted_parts(activity)
    if activity.allow_multiple and (wants_date or wants_time):
        record.measurements = _measurements(activity, value, store, wants_date, wants_time) or None
    else:
        record.value = value
        if wants_date:
            record.date = store.date_for(activity) or None
        if wants_time:
            record.time = normalize_time(store.effective_time(activity)) or None

    if isinstance(variant, MedicationTrackingField):
        record.medication_tracking = _medication_record(
            activity, value, store, visit_date, clock, thresholds
        )

    return record


def build_submission(
    activities: Iterable[Activity],
    store: FormValueStore,
    *,
    patient_id: str | None = None,
    protocol_name: str | None = None,
    visit_name: str = "",
    visit_type: str | None = None,
    errors: Sequence[ValidationError] | None = None,
    visit_date: date | datetime | None = None,
    clock: Clock = system_clock,
    thresholds: AdherenceThresholds | None = None,
) -> VisitSubmission | None:
    """
    @brief
    Build the visit record, or ``None`` while blocking errors exist.

    @params
        activities : Iterable[Activity]
            Visit schema.
        store : FormValueStore
            Final answers and reviewer decisions.
        errors : Sequence[ValidationError] | None
            Already evaluated errors; evaluated from ``store`` when omitted.
        visit_date, clock :
            Reference day for adherence (see ``compute_adherence``).
        thresholds : AdherenceThresholds | None
            Adherence classification bounds for deviations.

    @returns
        VisitSubmission, or None when any ``severity=error`` violation remains.
    """
    schema = sorted_activities(activities)

    if errors is None:
        errors = evaluate(schema, store, evaluate_formula=formula_evaluator(schema))
    if has_blocking_errors(errors):
        logger.debug("Submission refused: blocking validation errors present.")
        return None

    submitted = [
        submit_activity(
            activity, store, schema, visit_date=visit_date, clock=clock, thresholds=thresholds
        )
        for activity in schema
    ]
    return VisitSubmission(
        patient_id=patient_id,
        protocol_name=protocol_name,
        visit_name=visit_name,
        visit_type=visit_type,
        activities=submitted,
        validation_errors=[e for e in errors if e.rule.severity == "warning"],
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


__all__ = [
    "AdherenceSummary",
    "Deviation",
    "Measurement",
    "MedicationTrackingRecord",
    "SubmittedActivity",
    "VisitSubmission",
    "build_submission",
    "format_numeric_value",
    "submit_activity",
]
