# src/visitcore/store/keys.py
"""
Form value key derivation.

Answers live under the bare activity id; split date/time sub-answers live
under ``{id}_date`` / ``{id}_time`` (shared) or ``{id}_date_{i}`` /
``{id}_time_{i}`` (per repetition).
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from visitcore.schemas.models import Activity

DATE_PART = "date"
TIME_PART = "time"

_DERIVED_KEY = re.compile(r"^(?P<activity_id>.+)_(?P<part>date|time)(?:_(?P<index>\d+))?$")


@dataclass(frozen=True, slots=True)
class DerivedKey:
    activity_id: str
    part: str
    index: int | None


def date_key(activity_id: str, index: int | None = None) -> str:
    return f"{activity_id}_{DATE_PART}" if index is None else f"{activity_id}_{DATE_PART}_{index}"


def time_key(activity_id: str, index: int | None = None) -> str:
    return f"{activity_id}_{TIME_PART}" if index is None else f"{activity_id}_{TIME_PART}_{index}"


def measurement_date_key(activity: Activity, index: int | None = None) -> str:
    """Date key for a repetition; shared-date activities always use the bare key."""
    if index is None or not activity.allow_multiple or not activity.date_per_measurement:
        return date_key(activity.id)
    return date_key(activity.id, index)


def measurement_time_key(activity: Activity, index: int | None = None) -> str:
    if index is None or not activity.allow_multiple or not activity.time_per_measurement:
        return time_key(activity.id)
    return time_key(activity.id, index)


def parse_derived_key(key: str) -> DerivedKey | None:
    """Split ``{id}_time_3`` into its parts; ``None`` for plain answer keys."""
    match = _DERIVED_KEY.match(key)
    if match is None:
        return None
    raw_index = match.group("index")
    return DerivedKey(
        activity_id=match.group("activity_id"),
        part=match.group("part"),
        index=int(raw_index) if raw_index is not None else None,
    )


__all__ = [
    "DATE_PART",
    "TIME_PART",
    "DerivedKey",
    "date_key",
    "measurement_date_key",
    "measurement_time_key",
    "parse_derived_key",
    "time_key",
]
