from __future__ import annotations

import math
from collections import defaultdict
from typing import Iterable

from solver.errors import ValidationError
from solver.types import ActivityData, Session


def validate_activity(activity: ActivityData, *, position: int | None = None) -> None:
    where = f"Activity {activity.id}" + (f" (index {position})" if position is not None else "")
    if activity.instructor is None or activity.instructor.id is None:
        raise ValidationError(f"{where} has no instructor", details={"activity_id": str(activity.id)})
    if activity.student_group is None or activity.student_group.id is None:
        raise ValidationError(f"{where} has no studentGroup", details={"activity_id": str(activity.id)})
    if not activity.total_duration or activity.total_duration < 1:
        raise ValidationError(
            f"{where} has invalid totalDuration: {activity.total_duration}",
            details={"activity_id": str(activity.id)},
        )
    if not activity.split or activity.split < 1:
        raise ValidationError(
            f"{where} has invalid split: {activity.split}",
            details={"activity_id": str(activity.id)},
        )
    if activity.split > activity.total_duration:
        raise ValidationError(
            f"{where} has split ({activity.split}) exceeding totalDuration ({activity.total_duration})",
            details={"activity_id": str(activity.id)},
        )


def split_durations(total_duration: int, split: int) -> list[int]:
    """Session lengths for one activity.

    `ceil(total / split)` sessions of `split` minutes, except that a trailing remainder
    shorter than `split` is folded into the previous session instead of becoming a
    short session of its own: 100/90 gives [100], 270/90 gives [90, 90, 90].
    """
    durations: list[int] = []
    for i in range(math.ceil(total_duration / split)):
        remaining = total_duration - i * split
        if remaining <= 0:
            break
        current = min(split, remaining)
        if current < split and durations:
            durations[-1] += current
            break
        durations.append(current)
    return durations


def expand_sessions(activities: Iterable[ActivityData]) -> list[Session]:
    activities = list(activities)
    for position, activity in enumerate(activities):
        validate_activity(activity, position=position)

    sessions: list[Session] = []
    for activity in activities:
        for i, duration in enumerate(split_durations(activity.total_duration, activity.split)):
            sessions.append(Session(key=f"{activity.id}_{i}", index=i, activity=activity, duration=duration))

    totals: dict[object, int] = defaultdict(int)
    for session in sessions:
        totals[session.activity_id] += session.duration
    for activity in activities:
        if totals[activity.id] != activity.total_duration:
            raise ValidationError(
                f"Total duration mismatch for activity {activity.id}: "
                f"expected {activity.total_duration}, got {totals[activity.id]}",
                details={"activity_id": str(activity.id)},
            )
    return sessions
