# tests/dataloader/test_postload_handler.py
import json
import logging
from pathlib import Path

import pytest

from visitcore.dataloader.postload_handler import LoadResultHandler
from visitcore.dataloader.types import LoadResult
from visitcore.schemas.models import Activity


def _fake_activities():
    return [
        Activity(id="peso", name="Peso", field_type="number_simple", order=1),
        Activity(id="talla", name="Talla", field_type="number_simple", order=2),
    ]


def test_handle_success_returns_activities(tmp_path: Path, caplog: pytest.LogCaptureFixture):
    """
    @brief
    Success passes activities through and writes nothing.
    """
    # --- Arrange ---
    caplog.set_level(logging.INFO)
    result = LoadResult(
        success=True, activities=_fake_activities(), total_entries=2, kept_entries=2
    )
    handler = LoadResultHandler(output_dir=tmp_path)

    # --- Act ---
    activities = handler.handle(result)

    # --- Assert ---
    assert activities is result.activities
    assert not (tmp_path / "load_errors.json").exists()
    assert "2 activities ready" in caplog.text


def test_handle_failure_writes_report_and_returns_none(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
):
    """
    @brief
    Failure writes load_errors.json with issues grouped by kind.
    """
    # --- Arrange ---
    caplog.set_level(logging.ERROR)
    issues = [
        {"kind": "duplicate_id", "position": "activities[2]", "activity_id": "peso"},
        {"kind": "missing_id", "position": "activities[3]", "activity_id": None},
        {"kind": "duplicate_id", "position": "activities[4]", "activity_id": "talla"},
    ]
    out_dir = tmp_path / "nested" / "out"
    result = LoadResult(success=False, errors=issues, total_entries=5)

    # --- Act ---
    activities = LoadResultHandler(output_dir=out_dir).handle(result)

    # --- Assert ---
    assert activities is None
    report = json.loads((out_dir / "load_errors.json").read_text(encoding="utf-8"))
    assert report["total_entries"] == 5
    assert report["by_kind"] == {"duplicate_id": 2, "missing_id": 1}
    assert report["issues"] == issues
    assert "3 issue(s)" in caplog.text


def test_handle_failure_logs_when_report_cannot_be_written(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
):
    # --- Arrange ---
    caplog.set_level(logging.ERROR)
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    result = LoadResult(success=False, errors=[{"kind": "schema_error"}], total_entries=1)

    # --- Act ---
    activities = LoadResultHandler(output_dir=blocker).handle(result)

    # --- Assert ---
    assert activities is None
    assert "failed to write error report" in caplog.text
