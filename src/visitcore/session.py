# src/visitcore/session.py
"""
@brief
Visit-filling session: the single entry point a presentation layer drives.

@details
Holds the schema and the current ``FormValueStore`` snapshot. Every edit:
    (1) writes the answer (new snapshot)
    (2) refreshes calculated activities from the new answers
    (3) recomputes validation errors, adherence and problems from scratch

Derived state is never patched incrementally; it is always a function of
the current snapshot, the injected clock and the configured thresholds.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import date, datetime
from typing import Any

from visitcore.adherence.calculator import AdherenceResult, Clock, compute_adherence, system_clock
from visitcore.adherence.problems import MedicationErrorState, Problem, detect_problems
from visitcore.calculated.formula import calculated_value, formula_evaluator
from visitcore.schemas.activities import find_activity, sorted_activities
from visitcore.schemas.field_types import CalculatedField, MedicationTrackingField, variant_of
from visitcore.schemas.models import Activity, AdherenceThresholds, ValidationError
from visitcore.store.form_values import FormValueStore, MedicationAnswers
from visitcore.submission.builder import VisitSubmission, build_submission
from visitcore.validator.engine import errors_for, evaluate, has_blocking_errors

logger = logging.getLogger(__name__)


class VisitFormSession:
    """
    @brief
    Stateful facade over the pure core for one visit.

    @details
    The session is single-writer: edits are ordinary sequential calls and
    each replaces ``store`` with a new snapshot. Previous snapshots remain
    valid and unchanged.

    @params
        activities : Iterable[Activity]
            Visit schema (system activities already merged if any).
        store : FormValueStore | None
            Initial answers (e.g. ``FormValueStore.from_import``); empty by default.
        visit_date : date | datetime | None
            Fixed reference day for adherence; ``clock()`` when omitted.
        clock : Clock
            Source of "today".
        thresholds : AdherenceThresholds | None
            Adherence classification bounds.
        external_errors : Sequence[ValidationError]
            Already evaluated errors from other rule sources.
    """

    def __init__(
        self,
        activities: Iterable[Activity],
        store: FormValueStore | None = None,
        *,
        visit_date: date | datetime | None = None,
        clock: Clock = system_clock,
        thresholds: AdherenceThresholds | None = None,
        external_errors: Sequence[ValidationError] = (),
    ) -> None:
        self.activities = sorted_activities(activities)
        self.visit_date = visit_date
        self.clock = clock
        self.thresholds = thresholds or AdherenceThresholds()
        self.external_errors = list(external_errors)
        self._evaluate_formula = formula_evaluator(self.activities)

        self.store = store if store is not None else FormValueStore(self.activities)
        self.errors: list[ValidationError] = []
        self.adherence: dict[str, AdherenceResult | None] = {}
        self.problems: dict[str, list[Problem]] = {}
        self._commit(self.store)

    # ---------- Edits ----------
    def set_value(self, activity_id: str, value: Any, index: int | None = None) -> None:
        self._commit(self.store.set(activity_id, value, index))

    def set_time(self, key: str, raw: str | None) -> None:
        self._commit(self.store.set_time(key, raw))

    def set_compound(
        self, activity_id: str, subfield: str, value: Any, index: int | None = None
    ) -> None:
        self._commit(self.store.set_compound(activity_id, subfield, value, index))

    def set_medication_field(self, activity_id: str, field: str, value: Any) -> None:
        activity = self._require(activity_id)
        self._commit(self.store.set_medication_field(activity, field, value))

    def set_medication_error(
        self, activity_id: str, problem_id: str, include_in_history: bool, comment: str = ""
    ) -> None:
        state = MedicationErrorState(include_in_history=include_in_history, comment=comment)
        self._commit(self.store.set_medication_error(activity_id, problem_id, state))

    def set_description(self, activity_id: str, text: str) -> None:
        self._commit(self.store.set_description(activity_id, text))

    def set_external_errors(self, errors: Sequence[ValidationError]) -> None:
        self.external_errors = list(errors)
        self._commit(self.store)

    # ---------- Queries ----------
    def errors_for(self, activity_id: str) -> list[ValidationError]:
        return errors_for(self.errors, activity_id)

    @property
    def has_blocking_errors(self) -> bool:
        return has_blocking_errors(self.errors)

    @property
    def warnings(self) -> list[ValidationError]:
        return [e for e in self.errors if e.rule.severity == "warning"]

    def submit(self, **visit_info: Any) -> VisitSubmission | None:
        """Build the submission from the current snapshot (``None`` while blocked)."""
        return build_submission(
            self.activities,
            self.store,
            errors=self.errors,
            visit_date=self.visit_date,
            clock=self.clock,
            thresholds=self.thresholds,
            **visit_info,
        )

    # ---------- Internal helpers ----------
    def _require(self, activity_id: str) -> Activity:
        activity = find_activity(self.activities, activity_id)
        if activity is None:
            raise KeyError(f"Unknown activity id: {activity_id}")
        return activity

    def _refresh_calculated(self, store: FormValueStore) -> FormValueStore:
        # Refreshed in display order; a formula sees calculated answers refreshed before it
        for activity in self.activities:
            if not isinstance(variant_of(activity), CalculatedField):
                continue
            if not activity.calculation_formula:
                continue
            result = calculated_value(activity, store.snapshot(), self.activities)
            new_value: Any = "" if result is None else result
            current = store.get(activity.id)
            if current == new_value or (current is None and new_value == ""):
                continue
            store = store.set(activity.id, new_value)
        return store

    def _medication_state(
        self, activity: Activity, values: Mapping[str, Any]
    ) -> tuple[AdherenceResult | None, list[Problem]]:
        config = activity.medication_tracking_config
        if config is None:
            return None, []
        answers = MedicationAnswers.from_value(values.get(activity.id))
        result = compute_adherence(
            answers.last_visit_date,
            answers.units_delivered,
            answers.units_returned,
            answers.took_medication_today,
            config,
            self.visit_date,
            clock=self.clock,
        )
        if result is None:
            return None, []
        return result, detect_problems(
            config, answers.took_medication_today, result, self.thresholds
        )

    def _commit(self, store: FormValueStore) -> None:
        # (1) Snapshot with calculated activities refreshed
        self.store = self._refresh_calculated(store)
        values = self.store.snapshot()

        # (2) Validation from scratch
        self.errors = evaluate(
            self.activities,
            values,
            evaluate_formula=self._evaluate_formula,
            external_errors=self.external_errors,
        )

        # (3) Adherence and problems per medication activity
        self.adherence = {}
        self.problems = {}
        for activity in self.activities:
            if isinstance(variant_of(activity), MedicationTrackingField):
                result, problems = self._medication_state(activity, values)
                self.adherence[activity.id] = result
                self.problems[activity.id] = problems


__all__ = ["VisitFormSession"]
