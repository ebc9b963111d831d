from __future__ import annotations

import datetime as dt
from collections import Counter
from dataclasses import dataclass
from typing import Any, Iterable


DEFAULT_EXPECTED_ENROLLMENT = 50

DAY_ORDER = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def parse_hhmm(value: str | dt.time) -> int:
    """Minutes since midnight for "HH:MM" strings or `datetime.time` values."""
    if isinstance(value, dt.time):
        return value.hour * 60 + value.minute
    hours, _, minutes = str(value).strip().partition(":")
    return int(hours) * 60 + int(minutes or 0)


def format_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def day_rank(day: str) -> tuple[int, str]:
    try:
        return (DAY_ORDER.index(day.strip().capitalize()), "")
    except ValueError:
        return (len(DAY_ORDER), day)


@dataclass(frozen=True)
class InstructorData:
    id: Any
    name: str = ""
    # Minutes per week; None or 0 means unlimited.
    max_load: int | None = None


@dataclass(frozen=True)
class StudentGroupData:
    id: Any
    label: str = ""
    expected_enrollment: int | None = None


@dataclass(frozen=True)
class ActivityData:
    id: Any
    semester: str
    total_duration: int
    split: int
    instructor: InstructorData | None
    student_group: StudentGroupData | None
    room_requirement: str | None = None
    course_id: Any = None
    course_name: str = ""
    created_by: str | None = None

    def required_capacity(self, default_enrollment: int = DEFAULT_EXPECTED_ENROLLMENT) -> int:
        group = self.student_group
        if group is None or not group.expected_enrollment:
            return default_enrollment
        return int(group.expected_enrollment)


@dataclass(frozen=True)
class RoomData:
    id: Any
    name: str
    capacity: int
    room_type: str
    building: str | None = None


@dataclass(frozen=True)
class TimeslotData:
    id: Any
    day: str
    start: int
    end: int
    preference_score: int = 1

    @property
    def duration(self) -> int:
        return self.end - self.start

    @classmethod
    def from_times(cls, id: Any, day: str, start: str | dt.time, end: str | dt.time, **kwargs: Any) -> "TimeslotData":
        return cls(id=id, day=day, start=parse_hhmm(start), end=parse_hhmm(end), **kwargs)


@dataclass(frozen=True)
class Session:
    """One schedulable chunk of an Activity. Lives for a single solve only."""

    key: str
    index: int
    activity: ActivityData
    duration: int

    @property
    def activity_id(self) -> Any:
        return self.activity.id

    @property
    def instructor_id(self) -> Any:
        return self.activity.instructor.id if self.activity.instructor is not None else None

    @property
    def student_group_id(self) -> Any:
        return self.activity.student_group.id if self.activity.student_group is not None else None


@dataclass(frozen=True)
class Candidate:
    """A domain entry: a room plus a contiguous same-day timeslot group."""

    room: RoomData
    timeslots: tuple[TimeslotData, ...]

    @property
    def start(self) -> TimeslotData:
        return self.timeslots[0]


@dataclass(frozen=True)
class PlacedEntry:
    """A schedule entry in progress (search output) or a fixed seed from the store."""

    activity_id: Any
    instructor_id: Any
    student_group_id: Any
    room_id: Any
    timeslot_ids: tuple[Any, ...]
    total_duration: int
    created_by: str | None = None

    @classmethod
    def for_session(cls, session: Session, candidate: Candidate, *, created_by: str | None = None) -> "PlacedEntry":
        return cls(
            activity_id=session.activity_id,
            instructor_id=session.instructor_id,
            student_group_id=session.student_group_id,
            room_id=candidate.room.id,
            timeslot_ids=tuple(ts.id for ts in candidate.timeslots),
            total_duration=session.duration,
            created_by=created_by,
        )


def _decrement(counter: Counter, key: Any, amount: int = 1) -> None:
    counter[key] -= amount
    if counter[key] <= 0:
        del counter[key]


class ConstraintState:
    """Mutable bookkeeping for one search attempt.

    Every mutation goes through `apply`/`revert`, which are exact inverses and must be
    called in LIFO order.
    Counters are used instead of sets so reverting never clears a key that another
    entry still holds.
    """

    def __init__(self) -> None:
        self.entries: list[PlacedEntry] = []
        self.used_timeslot_room: Counter = Counter()
        self.used_activity_timeslot: Counter = Counter()
        self.instructor_load: Counter = Counter()
        self.session_count: Counter = Counter()
        # Occupancy indexes derived from entries.
        self.instructor_slots: Counter = Counter()
        self.group_slots: Counter = Counter()
        self.activity_slots: Counter = Counter()
        self.room_usage: Counter = Counter()
        self._seed_count = 0

    def seed(self, entries: Iterable[PlacedEntry]) -> None:
        """Pre-mark fixed entries (untouched activities during a reschedule)."""
        for entry in entries:
            self.apply(entry, count_session=False)
        self._seed_count = len(self.entries)

    @property
    def placed_entries(self) -> list[PlacedEntry]:
        return self.entries[self._seed_count :]

    def apply(self, entry: PlacedEntry, *, count_session: bool = True) -> None:
        self.entries.append(entry)
        for ts_id in entry.timeslot_ids:
            self.used_timeslot_room[(ts_id, entry.room_id)] += 1
            self.used_activity_timeslot[(entry.activity_id, ts_id, entry.student_group_id)] += 1
            self.activity_slots[(entry.activity_id, ts_id)] += 1
            if entry.instructor_id is not None:
                self.instructor_slots[(entry.instructor_id, ts_id)] += 1
            if entry.student_group_id is not None:
                self.group_slots[(entry.student_group_id, ts_id)] += 1
        self.room_usage[entry.room_id] += 1
        if entry.instructor_id is not None:
            self.instructor_load[entry.instructor_id] += entry.total_duration
        if count_session:
            self.session_count[entry.activity_id] += 1

    def revert(self, entry: PlacedEntry, *, count_session: bool = True) -> None:
        popped = self.entries.pop()
        if popped is not entry:
            raise RuntimeError("Constraint state reverted out of order")
        for ts_id in entry.timeslot_ids:
            _decrement(self.used_timeslot_room, (ts_id, entry.room_id))
            _decrement(self.used_activity_timeslot, (entry.activity_id, ts_id, entry.student_group_id))
            _decrement(self.activity_slots, (entry.activity_id, ts_id))
            if entry.instructor_id is not None:
                _decrement(self.instructor_slots, (entry.instructor_id, ts_id))
            if entry.student_group_id is not None:
                _decrement(self.group_slots, (entry.student_group_id, ts_id))
        _decrement(self.room_usage, entry.room_id)
        if entry.instructor_id is not None:
            _decrement(self.instructor_load, entry.instructor_id, entry.total_duration)
        if count_session:
            _decrement(self.session_count, entry.activity_id)
