# src/visitcore/dataloader/schema_loader.py
from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from visitcore.adherence.problems import MedicationErrorState
from visitcore.dataloader.documents import JSON_SUFFIXES, YAML_SUFFIXES, read_document
from visitcore.dataloader.types import LoadResult
from visitcore.errors import DataError, SchemaError
from visitcore.schemas.activities import merge_with_system_activities, sorted_activities
from visitcore.schemas.field_types import UnknownField, variant_of
from visitcore.schemas.models import Activity
from visitcore.store.form_values import FormValueStore

logger = logging.getLogger(__name__)

_SCHEMA_SUFFIXES = JSON_SUFFIXES | YAML_SUFFIXES


class ActivitySchemaLoader:
    """
    JSON/YAML -> LoadResult[Activity].

    Accepted roots:
      - a list of activity objects
      - a mapping with ``activities`` (and optional ``systemActivities``,
        merged ahead of the visit's own activities)

    Entry-level checks (issue recorded, loading continues):
      - entry not an object         -> invalid_entry
      - empty or missing id         -> missing_id
      - id seen before              -> duplicate_id (first occurrence kept)
      - pydantic validation failure -> schema_error

    Fatal problems (SchemaError raised at once): missing or unreadable file,
    syntax errors, a root that is neither list nor mapping.
    """

    def load(self, path: Path) -> LoadResult:
        document = read_document(path, _SCHEMA_SUFFIXES, SchemaError, "ActivitySchemaLoader.load")
        visit_entries, system_entries = self._split_root(document)

        result = self._entries_to_result(visit_entries, system_entries)
        self._report_summary(path, result)
        return result

    # ------------------------------
    # Internal helpers
    # ------------------------------
    def _split_root(self, document: Any) -> tuple[list[Any], list[Any]]:
        if isinstance(document, list):
            return document, []
        if isinstance(document, Mapping):
            visit = document.get("activities")
            system = document.get("systemActivities") or []
            if isinstance(visit, list) and isinstance(system, list):
                return visit, system
        raise SchemaError(
            message="Schema root must be a list of activities or a mapping with 'activities'.",
            source="ActivitySchemaLoader._split_root",
            suggested_action="Wrap activity objects in a list under the 'activities' key.",
        )

    def _entries_to_result(
        self, visit_entries: Sequence[Any], system_entries: Sequence[Any]
    ) -> LoadResult:
        issues: list[dict[str, Any]] = []
        seen_ids: set[str] = set()

        system = self._parse_entries(system_entries, "systemActivities", seen_ids, issues)
        visit = self._parse_entries(visit_entries, "activities", seen_ids, issues)
        total = len(system_entries) + len(visit_entries)

        if issues:
            return LoadResult(success=False, errors=issues, total_entries=total)

        activities = merge_with_system_activities(system, visit)
        return LoadResult(
            success=True,
            activities=activities,
            total_entries=total,
            kept_entries=len(activities),
        )

    def _parse_entries(
        self,
        entries: Sequence[Any],
        section: str,
        seen_ids: set[str],
        issues: list[dict[str, Any]],
    ) -> list[Activity]:
        activities: list[Activity] = []

        for position, entry in enumerate(entries):
            where = f"{section}[{position}]"

            if not isinstance(entry, Mapping):
                issues.append(
                    {
                        "kind": "invalid_entry",
                        "position": where,
                        "activity_id": None,
                        "message": f"Expected an object, got {type(entry).__name__}",
                    }
                )
                continue

            activity_id = entry.get("id")
            if not isinstance(activity_id, str) or not activity_id.strip():
                issues.append(
                    {
                        "kind": "missing_id",
                        "position": where,
                        "activity_id": None,
                        "message": "Missing or non-string activity id",
                    }
                )
                continue

            if activity_id in seen_ids:
                issues.append(
                    {
                        "kind": "duplicate_id",
                        "position": where,
                        "activity_id": activity_id,
                        "message": "Duplicate activity id (later occurrence skipped)",
                    }
                )
                continue

            try:
                activity = Activity.model_validate(dict(entry))
            except PydanticValidationError as e:
                issues.append(
                    {
                        "kind": "schema_error",
                        "position": where,
                        "activity_id": activity_id,
                        "message": f"Activity validation failed: {e.error_count()} error(s): {e}",
                    }
                )
                continue

            if isinstance(variant_of(activity), UnknownField):
                logger.warning(
                    "Activity %s has unsupported field type %r; it will be ignored by checks.",
                    activity.id,
                    activity.field_type,
                )

            activities.append(activity)
            seen_ids.add(activity_id)

        return activities

    def _report_summary(self, path: Path, result: LoadResult) -> None:
        if result.success:
            logger.info(
                "ActivitySchemaLoader OK: kept=%d/%d from %s",
                result.kept_entries,
                result.total_entries,
                path,
            )
            return

        counts: dict[str, int] = {}
        for issue in result.errors:
            counts[issue["kind"]] = counts.get(issue["kind"], 0) + 1
        summary = ", ".join(f"{k}={v}" for k, v in counts.items())
        logger.error(
            "ActivitySchemaLoader failed: %d issue(s) across %d entr(ies) in %s [%s]",
            len(result.errors),
            result.total_entries,
            path,
            summary or "no-summary",
        )


class FormValuesLoader:
    """
    JSON -> FormValueStore for a given schema.

    Accepted roots:
      - an exported visit record (``activities`` list): seeded via
        ``FormValueStore.from_import``
      - ``{"values": {...}, "medicationErrors": {...}, "descriptions": {...}}``
        with only ``values`` required

    Any structural problem raises DataError.
    """

    def load(self, path: Path, activities: Sequence[Activity]) -> FormValueStore:
        document = read_document(path, JSON_SUFFIXES, DataError, "FormValuesLoader.load")
        if not isinstance(document, Mapping):
            raise DataError(
                message="Form values root must be a JSON object.",
                source="FormValuesLoader.load",
                suggested_action="Provide an object with a 'values' mapping.",
            )

        schema = sorted_activities(activities)
        if isinstance(document.get("activities"), list):
            logger.info("Seeding form values from exported visit %s", path)
            return FormValueStore.from_import(schema, document)

        values = document.get("values")
        if not isinstance(values, Mapping):
            raise DataError(
                message="Missing or invalid 'values' mapping.",
                source="FormValuesLoader.load",
                suggested_action="Provide answers as an object keyed by activity id.",
            )

        store = FormValueStore(
            schema,
            values=values,
            medication_errors=self._medication_errors(document.get("medicationErrors") or {}),
            descriptions=self._descriptions(document.get("descriptions") or {}),
        )
        logger.info("Loaded %d form value key(s) from %s", len(store), path)
        return store

    def _medication_errors(self, raw: Any) -> dict[str, dict[str, MedicationErrorState]]:
        if not isinstance(raw, Mapping):
            raise DataError(
                message="'medicationErrors' must be an object keyed by activity id.",
                source="FormValuesLoader._medication_errors",
                suggested_action="Use {activityId: {problemId: {includeInHistory, comment}}}.",
            )

        decisions: dict[str, dict[str, MedicationErrorState]] = {}
        for activity_id, per_problem in raw.items():
            if not isinstance(per_problem, Mapping):
                raise DataError(
                    message=f"Decisions for activity {activity_id!r} must be an object.",
                    source="FormValuesLoader._medication_errors",
                    suggested_action="Use {problemId: {includeInHistory, comment}}.",
                )
            decisions[activity_id] = {
                problem_id: MedicationErrorState(
                    include_in_history=bool(state.get("includeInHistory")),
                    comment=str(state.get("comment") or ""),
                )
                for problem_id, state in per_problem.items()
                if isinstance(state, Mapping)
            }
        return decisions

    def _descriptions(self, raw: Any) -> dict[str, str]:
        if not isinstance(raw, Mapping):
            raise DataError(
                message="'descriptions' must be an object keyed by activity id.",
                source="FormValuesLoader._descriptions",
                suggested_action="Use {activityId: text}.",
            )
        return {str(k): str(v) for k, v in raw.items() if v}


__all__ = ["ActivitySchemaLoader", "FormValuesLoader"]
