# src/visitcore/export/submission_export.py
from __future__ import annotations

import contextlib
import csv
import json
import os
import tempfile
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import IO, Any

from visitcore.errors import ExportError
from visitcore.submission.builder import SubmittedActivity, VisitSubmission

MEASUREMENT_COLUMNS = (
    "activity_id",
    "activity_name",
    "field_type",
    "index",
    "value",
    "unit",
    "date",
    "time",
)


def _atomic_write(out_path: Path, write: Callable[[IO[str]], None], source: str) -> Path:
    """
    @brief
    Write a text file atomically (temp file in the same directory + os.replace).

    @raises
        ExportError if the directory cannot be created or the write fails.
    """
    out_dir = out_path.parent
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ExportError(
            f"Cannot create output directory {out_dir}: {e}",
            source=source,
            suggested_action="Check permissions of the output location.",
        ) from e

    tmp_fd, tmp_name = tempfile.mkstemp(dir=str(out_dir), suffix=".tmp", text=True)
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8", newline="") as f:
            write(f)
        os.replace(tmp_name, out_path)
    except OSError as e:
        with contextlib.suppress(OSError):
            os.remove(tmp_name)
        raise ExportError(
            f"Failed to write {out_path}: {e}",
            source=source,
            suggested_action="Check free disk space and permissions of the output location.",
        ) from e

    return out_path


def _cell(value: Any) -> str:
    # Compound and list answers are serialized as JSON inside the cell
    if value is None:
        return ""
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, ensure_ascii=False, sort_keys=True)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _activity_rows(activity: SubmittedActivity) -> list[dict[str, str]]:
    base = {
        "activity_id": activity.id,
        "activity_name": activity.name,
        "field_type": activity.field_type,
        "unit": activity.measurement_unit or "",
    }
    if activity.measurements:
        return [
            {
                **base,
                "index": str(m.index),
                "value": _cell(m.value),
                "date": m.date or "",
                "time": m.time or "",
            }
            for m in activity.measurements
        ]
    return [
        {
            **base,
            "index": "",
            "value": _cell(activity.value),
            "date": activity.date or "",
            "time": activity.time or "",
        }
    ]


def write_submission_json(submission: VisitSubmission, out_path: Path) -> Path:
    """
    @brief
    Export the visit submission as camelCase JSON.

    @returns
        Path to the written file.

    @raises
        ExportError on I/O failure.
    """
    payload = submission.to_wire()

    def _write(f: IO[str]) -> None:
        json.dump(payload, f, ensure_ascii=False, indent=2)

    return _atomic_write(out_path, _write, "export.write_submission_json")


def write_measurements_csv(submission: VisitSubmission, out_path: Path) -> Path:
    """
    @brief
    Flatten submitted answers into one CSV row per answer or measurement.

    @details
    Columns: activity_id, activity_name, field_type, index, value, unit,
    date, time. ``index`` is the repetition slot, empty for non-repeated
    activities. The file is UTF-8 and written atomically.
    """
    rows = [row for activity in submission.activities for row in _activity_rows(activity)]

    def _write(f: IO[str]) -> None:
        writer = csv.DictWriter(f, fieldnames=MEASUREMENT_COLUMNS)
        writer.writeheader()
        writer.writerows(rows)

    return _atomic_write(out_path, _write, "export.write_measurements_csv")


def write_validation_report(report: Mapping[str, Any], out_path: Path) -> Path:
    """Persist a ``ValidationEngine.build_report()`` dict as JSON."""

    def _write(f: IO[str]) -> None:
        json.dump(report, f, ensure_ascii=False, indent=2)

    return _atomic_write(out_path, _write, "export.write_validation_report")


__all__ = [
    "MEASUREMENT_COLUMNS",
    "write_measurements_csv",
    "write_submission_json",
    "write_validation_report",
]
