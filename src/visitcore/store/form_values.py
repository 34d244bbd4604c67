# src/visitcore/store/form_values.py
"""
@brief
Immutable snapshot store for runtime form answers.

@details
A ``FormValueStore`` holds one visit-filling session's answers, reviewer
decisions about detected medication problems, and per-activity description
overrides. Every write returns a new store that shares untouched entries
with its predecessor; no snapshot is ever mutated after construction, so a
presentation layer can keep the previous snapshot for comparison or undo.

Keys follow ``visitcore.store.keys``. Repeated measurements are stored as a
list under the bare activity id; compound and medication answers are dicts
under the bare id.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from visitcore.adherence.calculator import parse_number
from visitcore.adherence.problems import MedicationErrorState
from visitcore.schemas.activities import find_activity
from visitcore.schemas.field_types import DatetimeField, empty_value, variant_of
from visitcore.schemas.models import Activity
from visitcore.store.keys import (
    TIME_PART,
    date_key,
    measurement_date_key,
    measurement_time_key,
    parse_derived_key,
    time_key,
)
from visitcore.timecodec import add_minutes, is_valid_time, normalize_time

logger = logging.getLogger(__name__)

# Medication-tracking sub-answer names
LAST_VISIT_DATE = "lastVisitDate"
UNITS_DELIVERED = "unitsDelivered"
UNITS_RETURNED = "unitsReturned"
TOOK_MEDICATION_TODAY = "tookMedicationToday"


def is_blank(value: Any) -> bool:
    """``None`` or ``''``: no answer entered for a slot."""
    return value is None or value == ""


def has_answer(value: Any) -> bool:
    """
    True when a stored answer counts as filled.

    Lists count when at least one slot is filled; dicts when non-empty.
    ``False`` counts as unanswered.
    """
    if value is None or value is False or value == "":
        return False
    if isinstance(value, (list, tuple)):
        return any(not is_blank(v) for v in value)
    if isinstance(value, Mapping):
        return len(value) > 0
    return True


@dataclass(frozen=True, slots=True)
class MedicationAnswers:
    """The four sub-answers of a medication-tracking activity, blanks as ``''``."""

    last_visit_date: str
    units_delivered: Any
    units_returned: Any
    took_medication_today: bool

    @classmethod
    def from_value(cls, value: Any) -> MedicationAnswers:
        answers = value if isinstance(value, Mapping) else {}
        returned = answers.get(UNITS_RETURNED)
        return cls(
            last_visit_date=answers.get(LAST_VISIT_DATE) or "",
            units_delivered=answers.get(UNITS_DELIVERED) or "",
            units_returned="" if returned is None else returned,
            took_medication_today=bool(answers.get(TOOK_MEDICATION_TODAY)),
        )


def _number_text(value: float) -> str:
    return str(int(value)) if value.is_integer() else repr(value)


def has_interval_times(activity: Activity) -> bool:
    """
    True when repetitions after the first take a derived, read-only time.

    Needs repeated per-measurement times, an interval, and a time that is
    actually collected: ``requireTime`` or a datetime kind including time.
    """
    if not (
        activity.allow_multiple
        and activity.time_per_measurement
        and activity.has_time_interval
    ):
        return False
    variant = variant_of(activity)
    if isinstance(variant, DatetimeField):
        return variant.include_time
    return bool(activity.require_time)


def effective_time_of(values: Mapping[str, Any], activity: Activity, index: int | None) -> str:
    """Time of a repetition read from a values snapshot (see ``has_interval_times``)."""
    if index is not None and index > 0 and has_interval_times(activity):
        first = normalize_time(values.get(time_key(activity.id, 0)) or "")
        if first and is_valid_time(first):
            return add_minutes(first, (activity.time_interval_minutes or 0) * index)
        return ""
    return values.get(measurement_time_key(activity, index)) or ""


class FormValueStore:
    """
    @brief
    Copy-on-write store of answers for one visit.

    @details
    The store knows the visit's activities so it can supply type-appropriate
    defaults and derive interval-based repetition times. Activities are
    immutable input and are shared between snapshots.
    """

    __slots__ = ("_activities", "_values", "_medication_errors", "_descriptions")

    def __init__(
        self,
        activities: Iterable[Activity] = (),
        values: Mapping[str, Any] | None = None,
        medication_errors: Mapping[str, Mapping[str, MedicationErrorState]] | None = None,
        descriptions: Mapping[str, str] | None = None,
    ) -> None:
        self._activities: tuple[Activity, ...] = tuple(activities)
        self._values: dict[str, Any] = dict(values or {})
        self._medication_errors: dict[str, Mapping[str, MedicationErrorState]] = dict(
            medication_errors or {}
        )
        self._descriptions: dict[str, str] = dict(descriptions or {})

    # ---------- Snapshot construction ----------
    def _replace(
        self,
        values: dict[str, Any] | None = None,
        medication_errors: dict[str, Mapping[str, MedicationErrorState]] | None = None,
        descriptions: dict[str, str] | None = None,
    ) -> FormValueStore:
        new = FormValueStore.__new__(FormValueStore)
        new._activities = self._activities
        new._values = self._values if values is None else values
        new._medication_errors = (
            self._medication_errors if medication_errors is None else medication_errors
        )
        new._descriptions = self._descriptions if descriptions is None else descriptions
        return new

    # ---------- Read API ----------
    @property
    def activities(self) -> tuple[Activity, ...]:
        return self._activities

    def snapshot(self) -> Mapping[str, Any]:
        """Read-only view of the raw key/value map."""
        return MappingProxyType(self._values)

    def get(self, key: str) -> Any | None:
        return self._values.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)

    def value_of(self, activity: Activity) -> Any:
        """Answer stored under the bare id, or the activity's empty default."""
        value = self._values.get(activity.id)
        return empty_value(activity) if value is None else value

    def measurement(self, activity: Activity, index: int) -> Any:
        """Answer for one repetition slot (``''`` when unset)."""
        value = self._values.get(activity.id)
        if isinstance(value, (list, tuple)) and 0 <= index < len(value):
            slot = value[index]
            return "" if slot is None else slot
        return ""

    def date_for(self, activity: Activity, index: int | None = None) -> str:
        return self._values.get(measurement_date_key(activity, index)) or ""

    def effective_time(self, activity: Activity, index: int | None = None) -> str:
        """
        @brief
        Time answer for a repetition, deriving interval-based times.

        @details
        For interval-timed activities (``has_interval_times``) repetitions
        after the first are read-only: their time is repetition 0's time plus
        ``interval * index`` minutes, or ``''`` while repetition 0 has no
        valid time.
        """
        return effective_time_of(self._values, activity, index)

    def is_time_read_only(self, activity: Activity, index: int | None) -> bool:
        return bool(index and has_interval_times(activity))

    @property
    def medication_errors(self) -> Mapping[str, Mapping[str, MedicationErrorState]]:
        return MappingProxyType(self._medication_errors)

    def medication_error(self, activity_id: str, problem_id: str) -> MedicationErrorState:
        return self._medication_errors.get(activity_id, {}).get(problem_id, MedicationErrorState())

    def description_of(self, activity: Activity) -> str | None:
        """Edited description for this visit, falling back to the schema's."""
        return self._descriptions.get(activity.id) or activity.description

    # ---------- Write API ----------
    def set(self, key: str, value: Any, index: int | None = None) -> FormValueStore:
        """
        @brief
        Store an answer (last write wins).

        @details
        With ``index`` the list under ``key`` is cloned, position ``index`` is
        written (padding with ``None``) and the whole list is stored back. A
        negative ``index`` leaves the store unchanged. Writing repetition 0's
        time of an interval-timed activity also rewrites the derived times of
        the remaining repetitions, or removes them when the new time is blank
        or invalid.
        """
        if index is not None and index < 0:
            logger.debug("Ignoring write to %s at negative index %s", key, index)
            return self

        values = dict(self._values)

        if index is None:
            values[key] = value
        else:
            current = values.get(key)
            items = list(current) if isinstance(current, (list, tuple)) else []
            if len(items) <= index:
                items.extend([None] * (index + 1 - len(items)))
            items[index] = value
            values[key] = items

        self._propagate_interval_times(key, value, values)
        return self._replace(values=values)

    def set_time(self, key: str, raw: str | None) -> FormValueStore:
        """
        Commit a typed time: normalised to ``HH:MM``; invalid input clears it.
        """
        normalized = normalize_time(raw)
        if normalized and not is_valid_time(normalized):
            normalized = ""
        return self.set(key, normalized)

    def set_compound(
        self, activity_id: str, subfield: str, value: Any, index: int | None = None
    ) -> FormValueStore:
        """Merge one sub-answer into the dict at ``activity_id`` keeping its siblings."""
        if index is None:
            current = self._values.get(activity_id)
        else:
            items = self._values.get(activity_id)
            current = (
                items[index] if isinstance(items, (list, tuple)) and index < len(items) else None
            )
        base = dict(current) if isinstance(current, Mapping) else {}
        base[subfield] = value
        return self.set(activity_id, base, index)

    def set_medication_field(
        self, activity: Activity, field: str, value: Any, index: int | None = None
    ) -> FormValueStore:
        """
        @brief
        Merge one medication-tracking sub-answer.

        @details
        ``unitsReturned`` accepts only ``''`` or a non-negative number (other
        input leaves the store unchanged) and is clamped to the delivered
        units, so returned > delivered is never stored.
        """
        if field == UNITS_RETURNED and value != "":
            returned = self._coerce_returned(activity, value, index)
            if returned is None:
                logger.debug("Ignoring non-numeric unitsReturned %r for %s", value, activity.id)
                return self
            value = returned
        return self.set_compound(activity.id, field, value, index)

    def set_medication_error(
        self, activity_id: str, problem_id: str, state: MedicationErrorState
    ) -> FormValueStore:
        """Record a reviewer decision; other activities and problems are shared untouched."""
        errors = dict(self._medication_errors)
        per_activity = dict(errors.get(activity_id, {}))
        per_activity[problem_id] = state
        errors[activity_id] = per_activity
        return self._replace(medication_errors=errors)

    def set_description(self, activity_id: str, text: str) -> FormValueStore:
        descriptions = dict(self._descriptions)
        descriptions[activity_id] = text
        return self._replace(descriptions=descriptions)

    # ---------- Internal helpers ----------
    def _coerce_returned(self, activity: Activity, value: Any, index: int | None) -> Any:
        text = str(value).strip()
        try:
            number = float(text)
        except ValueError:
            return None
        if number != number or number < 0:
            return None

        current = self._values.get(activity.id)
        if index is not None:
            current = current[index] if isinstance(current, list) and index < len(current) else None
        delivered_raw = current.get(UNITS_DELIVERED) if isinstance(current, Mapping) else None
        if is_blank(delivered_raw):
            return value

        delivered = parse_number(delivered_raw)
        if number > delivered:
            logger.warning("Clamping unitsReturned %s to delivered %s", number, delivered)
            return _number_text(delivered)
        return value

    def _propagate_interval_times(self, key: str, value: Any, values: dict[str, Any]) -> None:
        # (1) Only repetition 0's time key triggers propagation
        derived = parse_derived_key(key)
        if derived is None or derived.part != TIME_PART or derived.index != 0:
            return
        activity = find_activity(self._activities, derived.activity_id)
        if activity is None:
            return
        if not has_interval_times(activity):
            return

        # (2) Derive later repetition times; without a valid first time they are dropped
        first = normalize_time(value if isinstance(value, str) else "")
        valid = bool(first) and is_valid_time(first)
        interval = activity.time_interval_minutes or 0
        for i in range(1, activity.effective_repeat_count):
            if valid:
                values[time_key(activity.id, i)] = add_minutes(first, interval * i)
            else:
                values.pop(time_key(activity.id, i), None)

    # ---------- Import ----------
    @classmethod
    def from_import(
        cls, activities: Iterable[Activity], imported: Mapping[str, Any]
    ) -> FormValueStore:
        """
        @brief
        Seed a store from a previously exported visit record.

        @details
        Reads ``imported["activities"]`` entries (``id``, ``value``, ``date``,
        ``time``, ``description``, ``measurements``). Entries for ids not in
        the schema are skipped.
        """
        schema = tuple(activities)
        by_id = {a.id: a for a in schema}
        values: dict[str, Any] = {}
        descriptions: dict[str, str] = {}

        for entry in imported.get("activities") or []:
            if not isinstance(entry, Mapping):
                continue
            activity = by_id.get(entry.get("id"))
            if activity is None:
                continue

            # (1) Scalar answer and shared date/time
            if entry.get("value") is not None:
                values[activity.id] = entry["value"]
            if entry.get("date") is not None:
                values[date_key(activity.id)] = entry["date"]
            if entry.get("time") is not None:
                values[time_key(activity.id)] = entry["time"]
            if entry.get("description"):
                descriptions[activity.id] = entry["description"]

            # (2) Repeated measurements keep their repetition index when exported with one
            measurements = entry.get("measurements")
            if activity.allow_multiple and isinstance(measurements, list):
                slots: dict[int, Mapping[str, Any]] = {}
                for position, m in enumerate(measurements):
                    if not isinstance(m, Mapping):
                        continue
                    index = m.get("index")
                    slot = index if isinstance(index, int) and index >= 0 else position
                    slots[slot] = m
                items: list[Any] = [None] * (max(slots) + 1 if slots else 0)
                for i, m in slots.items():
                    items[i] = m.get("value")
                    if m.get("date"):
                        values[measurement_date_key(activity, i)] = m["date"]
                    if m.get("time"):
                        values[measurement_time_key(activity, i)] = m["time"]
                values[activity.id] = items

        return cls(schema, values=values, descriptions=descriptions)


__all__ = [
    "LAST_VISIT_DATE",
    "TOOK_MEDICATION_TODAY",
    "UNITS_DELIVERED",
    "UNITS_RETURNED",
    "FormValueStore",
    "MedicationAnswers",
    "effective_time_of",
    "has_answer",
    "has_interval_times",
    "is_blank",
]
