# src/visitcore/dataloader/postload_handler.py
from __future__ import annotations

import json
import logging
from collections import Counter
from pathlib import Path
from typing import Any

from visitcore.dataloader.types import LoadResult
from visitcore.schemas.models import Activity

logger = logging.getLogger(__name__)

LOAD_ERRORS_FILE = "load_errors.json"


class LoadResultHandler:
    """
    @brief
    Turns a schema LoadResult into activities, or into an error report.

    @details
    On success the validated activities are passed downstream. On failure
    a report is written to ``load_errors.json`` inside ``output_dir``:

        {"total_entries": N, "by_kind": {"duplicate_id": 1, ...}, "issues": [...]}

    and ``None`` is returned so the caller can stop cleanly. A report that
    cannot be written is logged; the caller still receives ``None``.
    """

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = output_dir

    @property
    def report_path(self) -> Path:
        return self.output_dir / LOAD_ERRORS_FILE

    def handle(self, result: LoadResult) -> list[Activity] | None:
        if result.success:
            logger.info("PostLoad: %d activities ready for evaluation.", result.kept_entries)
            return result.activities

        report = self._build_report(result)
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            with self.report_path.open("w", encoding="utf-8") as f:
                json.dump(report, f, ensure_ascii=False, indent=2)
        except OSError as e:
            logger.error("PostLoad: failed to write error report: %s", e)
            return None

        logger.error(
            "PostLoad: schema rejected with %d issue(s). See %s",
            len(result.errors),
            self.report_path,
        )
        return None

    @staticmethod
    def _build_report(result: LoadResult) -> dict[str, Any]:
        by_kind = Counter(str(issue.get("kind", "unknown")) for issue in result.errors)
        return {
            "total_entries": result.total_entries,
            "by_kind": dict(by_kind),
            "issues": result.errors,
        }


__all__ = ["LOAD_ERRORS_FILE", "LoadResultHandler"]
