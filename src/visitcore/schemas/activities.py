# src/visitcore/schemas/activities.py
from __future__ import annotations

from collections.abc import Iterable, Sequence

from visitcore.schemas.models import Activity

SYSTEM_VISIT_ID = "system"


def sorted_activities(activities: Iterable[Activity]) -> list[Activity]:
    """Display/iteration order: ascending ``order``, ties keep input order."""
    return sorted(activities, key=lambda a: a.order)


def find_activity(activities: Iterable[Activity], activity_id: str) -> Activity | None:
    for activity in activities:
        if activity.id == activity_id:
            return activity
    return None


def merge_with_system_activities(
    system_activities: Sequence[Activity], visit_activities: Sequence[Activity]
) -> list[Activity]:
    """
    @brief
    Place protocol-wide system activities ahead of a visit's own activities.

    @details
    System activities are tagged with ``visit_id="system"``. Visit
    activities keep their relative order but are shifted past the highest
    system order. Inputs are not modified; shifted copies are returned.

    @params
        system_activities : Sequence[Activity]
            Activities shared by every visit (may be empty).
        visit_activities : Sequence[Activity]
            The visit's own activities.

    @returns
        Combined list sorted by ``order``.
    """
    if not system_activities:
        return list(visit_activities)

    # (1) Tag system activities and find the highest system order
    system = [a.model_copy(update={"visit_id": SYSTEM_VISIT_ID}) for a in system_activities]
    offset = max([a.order for a in system] + [-1]) + 1

    # (2) Shift visit activities after the system block
    shifted = [a.model_copy(update={"order": a.order + offset}) for a in visit_activities]

    return sorted_activities([*system, *shifted])


__all__ = [
    "SYSTEM_VISIT_ID",
    "find_activity",
    "merge_with_system_activities",
    "sorted_activities",
]
