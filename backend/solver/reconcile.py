from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Iterable

from solver.types import PlacedEntry


@dataclass(frozen=True)
class OccupancyConflict:
    conflict_type: str
    resource_id: Any
    timeslot_id: Any
    activity_ids: tuple[Any, ...]

    def as_dict(self) -> dict[str, Any]:
        return {
            "conflict_type": self.conflict_type,
            "resource_id": str(self.resource_id),
            "timeslot_id": str(self.timeslot_id),
            "activity_ids": [str(a) for a in self.activity_ids],
        }


_SWEEPS = (
    ("STUDENT_GROUP_DOUBLE_BOOKED", "student_group_id"),
    ("ROOM_DOUBLE_BOOKED", "room_id"),
    ("INSTRUCTOR_DOUBLE_BOOKED", "instructor_id"),
)


def find_conflicts(entries: Iterable[PlacedEntry]) -> list[OccupancyConflict]:
    """Final sweep over a complete candidate schedule.

    Groups every reserved timeslot by (resource, timeslot) for student groups, rooms and
    instructors and reports any group with more than one occupant. The incremental checks
    should make this always empty.
    """
    entries = list(entries)
    conflicts: list[OccupancyConflict] = []
    for conflict_type, attr in _SWEEPS:
        occupants: dict[tuple[Any, Any], list[Any]] = defaultdict(list)
        for entry in entries:
            resource_id = getattr(entry, attr)
            if resource_id is None:
                continue
            for ts_id in entry.timeslot_ids:
                occupants[(resource_id, ts_id)].append(entry.activity_id)
        for (resource_id, ts_id), activity_ids in occupants.items():
            if len(activity_ids) > 1:
                conflicts.append(
                    OccupancyConflict(
                        conflict_type=conflict_type,
                        resource_id=resource_id,
                        timeslot_id=ts_id,
                        activity_ids=tuple(activity_ids),
                    )
                )
    return conflicts
