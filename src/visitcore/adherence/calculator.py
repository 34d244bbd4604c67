# src/visitcore/adherence/calculator.py
"""
@brief
Medication adherence computation.

@details
Pure function of two dates and three form inputs. The reference "today"
is injected (explicit ``visit_date`` or a ``clock`` callable) so results
never depend on the wall clock unless the caller asks for it.

Day accounting between the delivery day (previous visit) and the current
visit:

    total_days      = whole days between the two calendar dates
    days_elapsed    = total_days - 1 when positive, else 0
                      (neither the delivery day nor the visit day)
    expected_days   = days_elapsed
                      + 1 if the protocol consumes on the delivery day
                      + 1 if the protocol takes a dose on the visit day
    expected_total  = expected_days * expected_daily_dose

Consumption is ``delivered - returned``; an unplanned visit-day dose is
subtracted before comparing against the expectation.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from visitcore.schemas.models import MedicationTrackingConfig
from visitcore.timecodec import parse_local_date

Clock = Callable[[], date]

_LEADING_FLOAT = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def system_clock() -> date:
    return date.today()


@dataclass(frozen=True, slots=True)
class AdherenceResult:
    """Every intermediate quantity of one adherence computation (for audit display)."""

    days_elapsed: int
    expected_consumption_days: int
    expected_total_dose: float
    real_consumption: float
    adjusted_consumption: float
    adherence_percentage: float
    delivered: float
    returned: float


def parse_decimal(value: Any) -> float | None:
    """
    @brief
    Lenient decimal parsing for numeric form inputs.

    @details
    Accepts numbers and strings with a leading decimal literal (trailing
    garbage ignored, ``"12abc"`` -> 12.0). Anything unparsable, including
    NaN and infinities, yields ``None``.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None
    if isinstance(value, str):
        match = _LEADING_FLOAT.match(value)
        if match:
            number = float(match.group(0))
            return number if math.isfinite(number) else None
    return None


def parse_number(value: Any) -> float:
    """``parse_decimal`` with unparsable input coerced to ``0.0``."""
    number = parse_decimal(value)
    return 0.0 if number is None else number


def _reference_day(visit_date: date | datetime | None, clock: Clock) -> date:
    # datetime is a date subclass; drop the time of day
    if isinstance(visit_date, datetime):
        return visit_date.date()
    if isinstance(visit_date, date):
        return visit_date
    today = clock()
    return today.date() if isinstance(today, datetime) else today


def compute_adherence(
    last_visit_date: str | None,
    units_delivered: str | float | None,
    units_returned: str | float | None,
    took_medication_today: bool,
    config: MedicationTrackingConfig,
    visit_date: date | datetime | None = None,
    *,
    clock: Clock = system_clock,
) -> AdherenceResult | None:
    """
    @brief
    Compute adherence statistics, or ``None`` when not yet computable.

    @details
    ``None`` is a normal state, returned when the last visit date or the
    delivered units are empty, the returned units are empty (``''`` or
    ``None``), the daily dose is undefined or zero, the last visit date is
    not a calendar date, or the expected total dose is not positive.

    @params
        last_visit_date : str | None
            Delivery day as ``YYYY-MM-DD``.
        units_delivered : str | float | None
            Units handed out at the last visit.
        units_returned : str | float | None
            Units brought back today.
        took_medication_today : bool
            Whether a dose was taken on the visit day.
        config : MedicationTrackingConfig
            Prescription; provides the daily dose and protocol day rules.
        visit_date : date | datetime | None
            Reference day of the current visit; defaults to ``clock()``.
        clock : Clock
            Source of "today" when ``visit_date`` is not given.

    @returns
        AdherenceResult with all intermediates, or None.
    """
    # (1) Preconditions
    daily_dose = config.expected_daily_dose
    if not last_visit_date or not units_delivered or not daily_dose:
        return None
    if units_returned is None or units_returned == "":
        return None

    last_visit = parse_local_date(last_visit_date)
    if last_visit is None:
        return None
    current_visit = _reference_day(visit_date, clock)

    # (2) Days strictly between delivery day and visit day
    total_days = (current_visit - last_visit).days
    days_elapsed = total_days - 1 if total_days > 0 else 0

    # (3) Expected consumption
    expected_days = days_elapsed
    if config.should_consume_on_delivery_day:
        expected_days += 1
    if config.should_take_on_visit_day:
        expected_days += 1

    expected_total = expected_days * daily_dose
    if expected_total <= 0:
        return None

    # (4) Actual consumption, minus an unplanned visit-day dose
    delivered = parse_number(units_delivered)
    returned = parse_number(units_returned)
    real = delivered - returned

    adjusted = real
    if not config.should_take_on_visit_day and took_medication_today:
        adjusted -= daily_dose

    return AdherenceResult(
        days_elapsed=days_elapsed,
        expected_consumption_days=expected_days,
        expected_total_dose=expected_total,
        real_consumption=real,
        adjusted_consumption=adjusted,
        adherence_percentage=(adjusted / expected_total) * 100,
        delivered=delivered,
        returned=returned,
    )


__all__ = [
    "AdherenceResult",
    "Clock",
    "compute_adherence",
    "parse_decimal",
    "parse_number",
    "system_clock",
]
