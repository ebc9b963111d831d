from __future__ import annotations

import random
from collections import defaultdict
from typing import Iterable, Sequence

from solver.types import (
    DEFAULT_EXPECTED_ENROLLMENT,
    ActivityData,
    Candidate,
    ConstraintState,
    RoomData,
    Session,
    TimeslotData,
    day_rank,
)
from solver.validator import check_candidate, room_fits


Domains = dict[str, list[Candidate]]


def order_timeslots(timeslots: Iterable[TimeslotData]) -> list[TimeslotData]:
    return sorted(timeslots, key=lambda ts: (day_rank(ts.day), ts.start, ts.end, str(ts.id)))


class TimeslotIndex:
    """Timeslots grouped by day and sorted by start, with cached group lookups."""

    def __init__(self, timeslots: Iterable[TimeslotData]):
        self.ordered = order_timeslots(timeslots)
        self.by_day: dict[str, list[TimeslotData]] = defaultdict(list)
        for ts in self.ordered:
            self.by_day[ts.day].append(ts)
        self._position = {ts.id: i for day_slots in self.by_day.values() for i, ts in enumerate(day_slots)}
        self._groups: dict[tuple[int, object], tuple[TimeslotData, ...] | None] = {}

    def group_for(self, duration: int, start: TimeslotData) -> tuple[TimeslotData, ...] | None:
        key = (duration, start.id)
        if key not in self._groups:
            self._groups[key] = self._walk(duration, start)
        return self._groups[key]

    def _walk(self, duration: int, start: TimeslotData) -> tuple[TimeslotData, ...] | None:
        if duration <= start.duration:
            return (start,)

        day_slots = self.by_day.get(start.day, [])
        i = self._position.get(start.id)
        if i is None:
            return None

        group: list[TimeslotData] = []
        total = 0
        while i < len(day_slots) and total < duration:
            ts = day_slots[i]
            if group and group[-1].end != ts.start:
                return None
            group.append(ts)
            total += ts.duration
            i += 1
        if total < duration:
            return None
        return tuple(group)


def sort_rooms(rooms: Iterable[RoomData], activity: ActivityData, state: ConstraintState) -> list[RoomData]:
    """Matching rooms, least used first, then tightest fit, then id for stability."""
    matching = [r for r in rooms if not activity.room_requirement or r.room_type == activity.room_requirement]
    return sorted(matching, key=lambda r: (state.room_usage[r.id], r.capacity, str(r.id)))


def count_static_options(
    session: Session,
    rooms: Sequence[RoomData],
    index: TimeslotIndex,
    *,
    default_enrollment: int = DEFAULT_EXPECTED_ENROLLMENT,
) -> int:
    fitting_rooms = sum(1 for r in rooms if room_fits(session.activity, r, default_enrollment=default_enrollment))
    if not fitting_rooms:
        return 0
    starts = sum(1 for ts in index.ordered if index.group_for(session.duration, ts) is not None)
    return starts * fitting_rooms


def order_sessions(
    sessions: Sequence[Session],
    rooms: Sequence[RoomData],
    index: TimeslotIndex,
    *,
    randomize: bool = False,
    rng: random.Random | None = None,
    default_enrollment: int = DEFAULT_EXPECTED_ENROLLMENT,
) -> list[Session]:
    """Fail-first ordering: fewest statically valid options first.

    Ties keep input order on the first attempt and are broken randomly afterwards.
    """
    options = {s.key: count_static_options(s, rooms, index, default_enrollment=default_enrollment) for s in sessions}
    if not randomize:
        return sorted(sessions, key=lambda s: options[s.key])
    rng = rng or random.Random()
    tie_breaks = {s.key: rng.random() for s in sessions}
    return sorted(sessions, key=lambda s: (options[s.key], tie_breaks[s.key]))


def build_domains(
    sessions: Sequence[Session],
    rooms: Sequence[RoomData],
    index: TimeslotIndex,
    state: ConstraintState,
    *,
    default_enrollment: int = DEFAULT_EXPECTED_ENROLLMENT,
) -> Domains:
    """Enumerate (room, timeslot group) candidates valid against the current state.

    An empty list means the session cannot be placed right now.
    """
    domains: Domains = {}
    for session in sessions:
        candidates: list[Candidate] = []
        sorted_rooms = sort_rooms(rooms, session.activity, state)
        for start in index.ordered:
            group = index.group_for(session.duration, start)
            if group is None:
                continue
            for room in sorted_rooms:
                candidate = Candidate(room=room, timeslots=group)
                if check_candidate(session, candidate, state, default_enrollment=default_enrollment) is not None:
                    candidates.append(candidate)
        domains[session.key] = candidates
    return domains
