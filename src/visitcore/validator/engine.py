# src/visitcore/validator/engine.py
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any

from visitcore.schemas.activities import sorted_activities
from visitcore.schemas.field_types import (
    CalculatedField,
    ConditionalField,
    DatetimeField,
    FieldVariant,
    MedicationTrackingField,
    NumberCompoundField,
    UnknownField,
    variant_of,
)
from visitcore.schemas.models import Activity, ActivityRule, ValidationError
from visitcore.store.form_values import (
    LAST_VISIT_DATE,
    UNITS_DELIVERED,
    FormValueStore,
    effective_time_of,
    has_answer,
    is_blank,
)
from visitcore.store.keys import measurement_date_key
from visitcore.validator.rules import FormulaEvaluator, evaluate_rules

logger = logging.getLogger(__name__)

_MEDICATION_REQUIRED = (
    (LAST_VISIT_DATE, "la fecha de la última visita"),
    (UNITS_DELIVERED, "las unidades entregadas"),
)


def _required_rule(rule_id: str, name: str, message: str, value: Any = "") -> ActivityRule:
    return ActivityRule(
        id=rule_id,
        name=name,
        condition="equals",
        value=value,
        severity="error",
        message=message,
        is_active=True,
    )


def _slot(value: Any, index: int | None) -> Any:
    # Repetition answer when indexed, the whole answer otherwise
    if index is None:
        return value
    if isinstance(value, (list, tuple)) and index < len(value):
        return value[index]
    return None


def _suffix(index: int | None) -> str:
    return "" if index is None else f"_{index}"


# ---------------------------
# VALIDATION ENGINE (instance core)
# ----------------------------
class ValidationEngine:
    """
    @brief
    Per-activity validation of one visit's answers.

    @details
    Each activity is evaluated independently, in display order, so errors
    for the same activity stay together. Repeatable activities are checked
    once per repetition slot, plus one shared pass when their date or time
    is common to all repetitions.

    Checks, in order:
        - required value (shape depends on the field variant)
        - required date / required time for activities that ask for them
        - options that must be selected / options that disqualify
        - the activity's own validation rules

    Nothing is raised for violations; they are collected as
    ``ValidationError`` records. Whether ``severity=warning`` blocks is the
    caller's decision.
    """

    # ---------- Constructor ----------
    def __init__(
        self,
        activities: Iterable[Activity],
        values: Mapping[str, Any] | FormValueStore,
        evaluate_formula: FormulaEvaluator | None = None,
    ) -> None:
        """
        @params
            activities : Iterable[Activity]
                The visit schema.
            values : Mapping[str, Any] | FormValueStore
                Current answers (store or raw key/value snapshot).
            evaluate_formula : FormulaEvaluator | None
                Evaluator for ``formula`` rules; such rules are skipped without one.
        """
        self.activities = sorted_activities(activities)
        self.values: Mapping[str, Any] = (
            values.snapshot() if isinstance(values, FormValueStore) else values
        )
        self.evaluate_formula = evaluate_formula
        self.errors: list[ValidationError] = []

    # ---------- Public lifecycle API ----------
    def run_all_checks(self) -> list[ValidationError]:
        """Recompute every error from scratch for the current snapshot."""
        self.errors = []
        for activity in self.activities:
            self._check_activity(activity)
        return self.errors

    def build_report(self) -> dict[str, Any]:
        """
        @brief
        Serializable summary of the last run.

        @details
        ``valid`` is False when any ``severity=error`` violation exists.
        """
        blocking = [e for e in self.errors if e.rule.severity == "error"]
        warnings = [e for e in self.errors if e.rule.severity == "warning"]
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "valid": not blocking,
            "errors": [e.model_dump(by_alias=True, mode="json") for e in blocking],
            "warnings": [e.model_dump(by_alias=True, mode="json") for e in warnings],
        }

    # ---------- Per-activity dispatch ----------
    def _check_activity(self, activity: Activity) -> None:
        variant = variant_of(activity)
        value = self.values.get(activity.id)

        if activity.allow_multiple:
            for index in range(activity.effective_repeat_count):
                self._run_checks(activity, variant, value, index)
            if self._has_shared_pass(activity, variant):
                self._check_shared_datetime(activity, variant, value)
        else:
            self._run_checks(activity, variant, value, None)

    def _has_shared_pass(self, activity: Activity, variant: FieldVariant) -> bool:
        if isinstance(variant, DatetimeField):
            wants_date, wants_time = variant.include_date, variant.include_time
        else:
            wants_date, wants_time = bool(activity.require_date), bool(activity.require_time)
        return (wants_date and not activity.date_per_measurement) or (
            wants_time and not activity.time_per_measurement
        )

    def _run_checks(
        self, activity: Activity, variant: FieldVariant, value: Any, index: int | None
    ) -> None:
        slot_value = _slot(value, index)

        if activity.required:
            self._check_required(activity, variant, slot_value, index)

        if not isinstance(variant, DatetimeField):
            per_date = index is None or activity.date_per_measurement
            per_time = index is None or activity.time_per_measurement
            if activity.require_date and per_date:
                self._check_required_part(activity, slot_value, index, "date")
            if activity.require_time and per_time:
                self._check_required_part(activity, slot_value, index, "time")

        if activity.options:
            self._check_options(activity, slot_value)

        error = evaluate_rules(activity, value, self.values, index, self.evaluate_formula)
        if error is not None:
            self.errors.append(error)

    # ---------- Checks ----------
    def _check_required(
        self, activity: Activity, variant: FieldVariant, value: Any, index: int | None
    ) -> None:
        """
        @brief
        Required-value check shaped by the field variant.

        @details
        For repeatable activities only the first repetition is mandatory;
        later repetitions are only checked for partially filled answers
        (compound sub-fields, datetime parts).
        """
        first_slot = index is None or index == 0

        if isinstance(variant, DatetimeField):
            self._check_required_datetime(activity, variant, index, first_slot)
            return

        if isinstance(variant, NumberCompoundField):
            if not first_slot and not has_answer(value):
                return
            answers = value if isinstance(value, Mapping) else {}
            for sub in variant.fields:
                if is_blank(answers.get(sub.name)):
                    self._add_error(
                        activity,
                        _required_rule(
                            f"required_{sub.name}{_suffix(index)}",
                            "Campo requerido",
                            f'El campo "{activity.name}" requiere "{sub.label or sub.name}".',
                        ),
                        value,
                    )
            return

        if isinstance(variant, MedicationTrackingField):
            if not first_slot:
                return
            answers = value if isinstance(value, Mapping) else {}
            for key, label in _MEDICATION_REQUIRED:
                if is_blank(answers.get(key)):
                    self._add_error(
                        activity,
                        _required_rule(
                            f"required_{key}",
                            "Campo requerido",
                            f'El campo "{activity.name}" requiere {label}.',
                        ),
                        value,
                    )
            return

        if isinstance(variant, (CalculatedField, ConditionalField, UnknownField)):
            # No required semantics
            return

        if not first_slot or has_answer(value):
            return

        if index is not None:
            message = f'El campo "{activity.name}" requiere al menos una medición.'
        else:
            message = f'El campo "{activity.name}" es obligatorio.'
        self._add_error(
            activity, _required_rule(f"required{_suffix(index)}", "Campo requerido", message), value
        )

    def _check_required_datetime(
        self, activity: Activity, variant: DatetimeField, index: int | None, first_slot: bool
    ) -> None:
        # (1) Resolve the parts this pass owns (shared parts belong to the shared pass)
        def owned(per_measurement: bool) -> bool:
            if index is not None:
                return per_measurement
            return not activity.allow_multiple or not per_measurement

        parts: list[tuple[str, str]] = []
        if variant.include_date and owned(activity.date_per_measurement):
            parts.append(("date", self.values.get(measurement_date_key(activity, index)) or ""))
        if variant.include_time and owned(activity.time_per_measurement):
            parts.append(("time", effective_time_of(self.values, activity, index)))

        # (2) Later repetitions are only checked when partially answered
        if not first_slot and all(is_blank(v) for _, v in parts):
            return

        for part, part_value in parts:
            if not is_blank(part_value):
                continue
            noun = "fecha" if part == "date" else "hora"
            self._add_error(
                activity,
                _required_rule(
                    f"required_{part}{_suffix(index)}",
                    "Campo requerido",
                    f'El campo "{activity.name}" requiere {noun}.',
                ),
                part_value,
            )

    def _check_required_part(
        self, activity: Activity, value: Any, index: int | None, part: str
    ) -> None:
        """
        @brief
        Date/time of realization, required only once a value was entered.

        @details
        Indexed passes look at the repetition value and its per-measurement
        key; the shared pass looks at any repetition and the shared key.
        """
        if not has_answer(value):
            return

        if part == "date":
            stored = self.values.get(measurement_date_key(activity, index))
            per_measurement = activity.date_per_measurement
            noun, name = "fecha", "Fecha requerida"
        else:
            stored = effective_time_of(self.values, activity, index)
            per_measurement = activity.time_per_measurement
            noun, name = "hora", "Hora requerida"

        if not is_blank(stored):
            return

        if activity.allow_multiple and index is not None and per_measurement:
            where = f" en la medición {index + 1}"
        elif activity.allow_multiple and not per_measurement:
            where = f" ({noun} común para todas las mediciones)"
        else:
            where = ""
        self._add_error(
            activity,
            _required_rule(
                f"required_{part}{_suffix(index)}",
                name,
                f'La {noun} es obligatoria cuando se ingresa un valor{where} en "{activity.name}".',
            ),
            value,
        )

    def _check_shared_datetime(
        self, activity: Activity, variant: FieldVariant, value: Any
    ) -> None:
        if isinstance(variant, DatetimeField):
            if activity.required:
                self._check_required_datetime(activity, variant, None, True)
            return
        if activity.require_date and not activity.date_per_measurement:
            self._check_required_part(activity, value, None, "date")
        if activity.require_time and not activity.time_per_measurement:
            self._check_required_part(activity, value, None, "time")

    def _check_options(self, activity: Activity, value: Any) -> None:
        """Options that must be selected, then options that disqualify (first hit each)."""
        if isinstance(value, (list, tuple)):
            selected = list(value)
        else:
            selected = [value] if value else []

        for option in activity.options or []:
            if option.required and option.value not in selected:
                self._add_error(
                    activity,
                    _required_rule(
                        f"required_{option.value}",
                        "Opción obligatoria no seleccionada",
                        f'La opción "{option.label}" debe ser seleccionada obligatoriamente '
                        "para que el paciente califique para este protocolo.",
                        value=option.value,
                    ),
                    value,
                )
                break

        for option in activity.options or []:
            if option.exclusive and option.value in selected:
                self._add_error(
                    activity,
                    _required_rule(
                        f"exclusive_{option.value}",
                        "Opción excluyente seleccionada",
                        f'La opción "{option.label}" es excluyente. Si el paciente tiene esta '
                        "condición, NO califica para este protocolo.",
                        value=option.value,
                    ),
                    value,
                )
                break

    # ---------- Utilities ----------
    def _add_error(self, activity: Activity, rule: ActivityRule, current_value: Any) -> None:
        self.errors.append(
            ValidationError(
                activity_id=activity.id,
                activity_name=activity.name,
                rule=rule,
                current_value=current_value,
            )
        )


# ----------------------------
# THIN FACADE
# ----------------------------
def evaluate(
    activities: Iterable[Activity],
    values: Mapping[str, Any] | FormValueStore,
    *,
    evaluate_formula: FormulaEvaluator | None = None,
    external_errors: Sequence[ValidationError] = (),
) -> list[ValidationError]:
    """
    @brief
    Validate a snapshot and append externally evaluated errors.

    @details
    ``external_errors`` come from rule sources outside this engine (for
    example server-side range checks); they are appended after the
    engine's own errors, unchanged.
    """
    engine = ValidationEngine(activities, values, evaluate_formula)
    errors = engine.run_all_checks()
    if errors:
        logger.debug("Validation found %d violation(s).", len(errors))
    return [*errors, *external_errors]


def errors_for(errors: Iterable[ValidationError], activity_id: str) -> list[ValidationError]:
    return [e for e in errors if e.activity_id == activity_id]


def has_condition(errors: Iterable[ValidationError], activity_id: str, condition: str) -> bool:
    """True when ``activity_id`` has a violation of the given rule condition (e.g. ``range``)."""
    return any(e.activity_id == activity_id and e.rule.condition == condition for e in errors)


def has_blocking_errors(errors: Iterable[ValidationError]) -> bool:
    return any(e.rule.severity == "error" for e in errors)


__all__ = [
    "ValidationEngine",
    "errors_for",
    "evaluate",
    "has_blocking_errors",
    "has_condition",
]
