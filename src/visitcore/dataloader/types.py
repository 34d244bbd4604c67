# src/visitcore/dataloader/types.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from visitcore.schemas.models import Activity


@dataclass(slots=True)
class LoadResult:
    """
    Structured result of an activity schema loading step.

    Fields:
        success: True if no entry-level issues were found, False otherwise.
        activities: Validated activities in display order (empty if success=False).
        errors: Issue dicts with per-entry context (used for reporting).
                Each item contains at least: kind, position, message, activity_id (may be None).
        total_entries: Number of entries observed in the schema file.
        kept_entries: Number of successfully parsed activities (len(activities)).
    """

    success: bool
    activities: list[Activity] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)
    total_entries: int = 0
    kept_entries: int = 0
