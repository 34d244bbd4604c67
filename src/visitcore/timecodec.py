# src/visitcore/timecodec.py
"""
@brief
Parsing, formatting and arithmetic for ``HH:MM`` time answers.

@details
Time sub-answers travel as 24-hour ``HH:MM`` strings and dates as
``YYYY-MM-DD`` strings read in local calendar time. Every helper here is
total: malformed input yields an empty string (or ``None`` for dates),
never an exception, because these run on each keystroke.
"""

from __future__ import annotations

from datetime import date

MINUTES_PER_DAY = 24 * 60


def normalize_time(raw: str | None) -> str:
    """
    @brief
    Truncate ``HH:MM:SS`` (or longer) values to ``HH:MM``.

    @details
    Shorter strings are returned unchanged; empty input yields ``''``.
    """
    if not raw:
        return ""
    if len(raw) >= 5:
        return raw[:5]
    return raw


def format_time_input(raw: str | None) -> str:
    """
    @brief
    Incremental formatter applied while a time is being typed.

    @details
    Keeps digits only (at most four). Up to two digits are returned as-is,
    three or four are split after the hour part: ``"143"`` -> ``"14:3"``,
    ``"14305"`` -> ``"14:30"``.
    """
    digits = "".join(ch for ch in (raw or "") if ch.isdigit())[:4]
    if len(digits) <= 2:
        return digits
    return f"{digits[:2]}:{digits[2:]}"


def _split_time(time: str | None) -> tuple[int, int] | None:
    # (1) Only exact five-character strings are considered times
    if not time or len(time) != 5:
        return None

    # (2) Hour and minute are the first two ':'-separated parts
    parts = time.split(":")
    if len(parts) < 2:
        return None
    try:
        return int(parts[0]), int(parts[1])
    except ValueError:
        return None


def is_valid_time(time: str | None) -> bool:
    """True iff ``time`` is ``HH:MM`` with hour in 0..23 and minute in 0..59."""
    parsed = _split_time(time)
    if parsed is None:
        return False
    hours, minutes = parsed
    return 0 <= hours <= 23 and 0 <= minutes <= 59


def add_minutes(time: str | None, delta: int) -> str:
    """
    @brief
    Shift an ``HH:MM`` time by ``delta`` minutes with 24-hour wraparound.

    @details
    Negative deltas wrap backwards past midnight. Input that is not five
    characters long or whose parts are not integers yields ``''``.

    @params
        time : str | None
            Base time in ``HH:MM``.
        delta : int
            Minutes to add (may be negative).

    @returns
        Zero-padded ``HH:MM`` string, or ``''`` for invalid input.
    """
    parsed = _split_time(time)
    if parsed is None:
        return ""
    hours, minutes = parsed

    total = (hours * 60 + minutes + int(delta)) % MINUTES_PER_DAY
    return f"{total // 60:02d}:{total % 60:02d}"


def parse_local_date(value: str | None) -> date | None:
    """
    @brief
    Parse ``YYYY-MM-DD`` as a calendar date without any timezone shift.

    @returns
        The date, or ``None`` when the string is empty or not a real date.
    """
    if not value:
        return None
    parts = value.strip().split("-")
    if len(parts) != 3:
        return None
    try:
        year, month, day = (int(p) for p in parts)
        return date(year, month, day)
    except ValueError:
        return None


__all__ = [
    "MINUTES_PER_DAY",
    "add_minutes",
    "format_time_input",
    "is_valid_time",
    "normalize_time",
    "parse_local_date",
]
