from __future__ import annotations

import uuid
from typing import Any, Iterable, Sequence

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from models.activity import Activity
from models.course import Course
from models.instructor import Instructor
from models.room import Room
from models.schedule_entry import ScheduleEntry
from models.student_group import StudentGroup
from models.time_slot import TimeSlot
from solver.errors import ValidationError
from solver.types import (
    ActivityData,
    InstructorData,
    PlacedEntry,
    RoomData,
    StudentGroupData,
    TimeslotData,
    day_rank,
    format_hhmm,
    parse_hhmm,
)


def _as_uuid(value: Any) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


def _by_id(db: Session, model, ids: Iterable[Any]) -> dict[Any, Any]:
    ids = {i for i in ids if i is not None}
    if not ids:
        return {}
    rows = db.execute(select(model).where(model.id.in_(ids))).scalars().all()
    return {r.id: r for r in rows}


def load_activities(
    db: Session,
    *,
    semester: str,
    activity_ids: Sequence[uuid.UUID] | None = None,
) -> list[ActivityData]:
    """Non-deleted activities for a semester as solver records.

    Instructor and student group references that do not resolve are left as None so
    the session expander reports them. When `activity_ids` is given every id must exist
    in the semester.
    """
    q = select(Activity).where(Activity.semester == semester).where(Activity.is_deleted.is_(False))
    if activity_ids is not None:
        q = q.where(Activity.id.in_(list(activity_ids)))
    rows = db.execute(q.order_by(Activity.created_at, Activity.id)).scalars().all()

    if activity_ids is not None:
        missing = {_as_uuid(i) for i in activity_ids} - {r.id for r in rows}
        if missing:
            raise ValidationError(
                f"Unknown activity ids for semester {semester}: {', '.join(sorted(str(m) for m in missing))}",
                details={"missing_activity_ids": sorted(str(m) for m in missing)},
            )

    instructors = _by_id(db, Instructor, (r.instructor_id for r in rows))
    groups = _by_id(db, StudentGroup, (r.student_group_id for r in rows))
    courses = _by_id(db, Course, (r.course_id for r in rows))

    out: list[ActivityData] = []
    for r in rows:
        instructor = instructors.get(r.instructor_id)
        group = groups.get(r.student_group_id)
        course = courses.get(r.course_id)
        out.append(
            ActivityData(
                id=r.id,
                semester=r.semester,
                total_duration=int(r.total_duration or 0),
                split=int(r.split or 0),
                instructor=(
                    InstructorData(id=instructor.id, name=instructor.name, max_load=instructor.max_load)
                    if instructor is not None
                    else None
                ),
                student_group=(
                    StudentGroupData(id=group.id, label=group.label, expected_enrollment=group.expected_enrollment)
                    if group is not None
                    else None
                ),
                room_requirement=r.room_requirement,
                course_id=r.course_id,
                course_name=course.name if course is not None else "",
                created_by=r.created_by,
            )
        )
    return out


def load_rooms(db: Session) -> list[RoomData]:
    rows = db.execute(select(Room).where(Room.is_active.is_(True)).order_by(Room.name, Room.id)).scalars().all()
    return [
        RoomData(id=r.id, name=r.name, capacity=int(r.capacity or 0), room_type=r.room_type, building=r.building)
        for r in rows
    ]


def load_timeslots(db: Session) -> list[TimeslotData]:
    rows = db.execute(select(TimeSlot).where(TimeSlot.is_deleted.is_(False))).scalars().all()
    return [
        TimeslotData(
            id=r.id,
            day=r.day,
            start=parse_hhmm(r.start_time),
            end=parse_hhmm(r.end_time),
            preference_score=int(r.preference_score or 1),
        )
        for r in rows
    ]


def load_fixed_entries(
    db: Session,
    *,
    semester: str,
    exclude_activity_ids: Sequence[uuid.UUID],
) -> list[PlacedEntry]:
    """Stored entries of the semester that a partial regeneration must not move."""
    excluded = [_as_uuid(i) for i in exclude_activity_ids]
    q = select(ScheduleEntry, Activity.instructor_id).join(Activity, Activity.id == ScheduleEntry.activity_id, isouter=True)
    q = q.where(ScheduleEntry.semester == semester)
    if excluded:
        q = q.where(ScheduleEntry.activity_id.not_in(excluded))
    rows = db.execute(q.order_by(ScheduleEntry.created_at, ScheduleEntry.id)).all()
    return [
        PlacedEntry(
            activity_id=entry.activity_id,
            instructor_id=instructor_id,
            student_group_id=entry.student_group_id,
            room_id=entry.room_id,
            timeslot_ids=tuple(_as_uuid(t) for t in (entry.reserved_timeslot_ids or [])),
            total_duration=int(entry.total_duration or 0),
            created_by=entry.created_by,
        )
        for entry, instructor_id in rows
    ]


def _room_out(room: Room | None, room_id: Any) -> dict[str, Any]:
    if room is None:
        return {"id": str(room_id), "name": "Unknown", "capacity": 0, "room_type": None, "building": None}
    return {
        "id": str(room.id),
        "name": room.name,
        "capacity": room.capacity,
        "room_type": room.room_type,
        "building": room.building,
    }


def _timeslot_out(ts: TimeSlot) -> dict[str, Any]:
    start = parse_hhmm(ts.start_time)
    end = parse_hhmm(ts.end_time)
    return {
        "id": str(ts.id),
        "day": ts.day,
        "start_time": format_hhmm(start),
        "end_time": format_hhmm(end),
        "duration": end - start,
    }


def _group_out(group: StudentGroup | None) -> dict[str, Any]:
    if group is None:
        return {"id": None, "department": "Unknown", "year": 0, "section": "N/A", "expected_enrollment": None}
    return {
        "id": str(group.id),
        "department": group.department,
        "year": group.year,
        "section": group.section,
        "expected_enrollment": group.expected_enrollment,
    }


def fetch_grouped_schedule(db: Session, *, semester: str) -> dict[str, dict[str, Any]]:
    """Stored entries of a semester grouped by student group id.

    Returns plain JSON-ready dicts (`{group_id: {"student_group": ..., "entries": [...]}}`)
    so the result can cross a process boundary unchanged. Groups and entries are ordered
    by label and by first reserved timeslot.
    """
    entries = db.execute(select(ScheduleEntry).where(ScheduleEntry.semester == semester)).scalars().all()
    if not entries:
        return {}

    activities = _by_id(db, Activity, (e.activity_id for e in entries))
    rooms = _by_id(db, Room, (e.room_id for e in entries))
    groups = _by_id(db, StudentGroup, (e.student_group_id for e in entries))
    instructors = _by_id(db, Instructor, (a.instructor_id for a in activities.values()))
    courses = _by_id(db, Course, (a.course_id for a in activities.values()))
    slots = _by_id(db, TimeSlot, (_as_uuid(t) for e in entries for t in (e.reserved_timeslot_ids or [])))

    grouped: dict[str, dict[str, Any]] = {}
    for e in entries:
        group = groups.get(e.student_group_id)
        key = str(e.student_group_id) if e.student_group_id is not None else "unknown"
        bucket = grouped.setdefault(key, {"student_group": _group_out(group), "entries": []})

        activity = activities.get(e.activity_id)
        instructor = instructors.get(activity.instructor_id) if activity is not None else None
        course = courses.get(activity.course_id) if activity is not None else None
        reserved = [slots[_as_uuid(t)] for t in (e.reserved_timeslot_ids or []) if _as_uuid(t) in slots]

        bucket["entries"].append(
            {
                "id": str(e.id),
                "activity": {
                    "id": str(e.activity_id),
                    "course_code": course.course_code if course is not None else None,
                    "course_name": course.name if course is not None else None,
                    "instructor": instructor.name if instructor is not None else None,
                    "room_requirement": activity.room_requirement if activity is not None else None,
                    "semester": e.semester,
                },
                "room": _room_out(rooms.get(e.room_id), e.room_id),
                "reserved_timeslots": [_timeslot_out(ts) for ts in reserved],
                "total_duration": e.total_duration,
                "created_by": e.created_by,
                "semester": e.semester,
            }
        )

    def _entry_sort_key(item: dict[str, Any]):
        first = item["reserved_timeslots"][0] if item["reserved_timeslots"] else None
        if first is None:
            return (day_rank(""), "")
        return (day_rank(first["day"]), first["start_time"])

    for bucket in grouped.values():
        bucket["entries"].sort(key=_entry_sort_key)
    return dict(
        sorted(
            grouped.items(),
            key=lambda kv: (kv[1]["student_group"]["department"], kv[1]["student_group"]["year"], kv[1]["student_group"]["section"]),
        )
    )


def list_semesters(db: Session) -> list[str]:
    return list(db.execute(select(ScheduleEntry.semester).distinct().order_by(ScheduleEntry.semester)).scalars().all())


def list_scheduled_activities(db: Session, *, semester: str) -> list[Activity]:
    scheduled = select(ScheduleEntry.activity_id).where(ScheduleEntry.semester == semester)
    q = (
        select(Activity)
        .where(Activity.id.in_(scheduled))
        .where(Activity.is_deleted.is_(False))
        .order_by(Activity.created_at, Activity.id)
    )
    return list(db.execute(q).scalars().all())


def free_rooms(db: Session, *, semester: str, timeslot_id: uuid.UUID) -> list[Room]:
    """Active rooms with no stored entry of the semester reserving `timeslot_id`."""
    wanted = str(timeslot_id)
    occupied: set[Any] = set()
    q = select(ScheduleEntry.room_id, ScheduleEntry.reserved_timeslot_ids).where(ScheduleEntry.semester == semester)
    for room_id, reserved in db.execute(q).all():
        if wanted in {str(t) for t in (reserved or [])}:
            occupied.add(room_id)

    rooms = db.execute(select(Room).where(Room.is_active.is_(True)).order_by(Room.name, Room.id)).scalars().all()
    return [r for r in rooms if r.id not in occupied]


def delete_semester(db: Session, *, semester: str) -> int:
    result = db.execute(delete(ScheduleEntry).where(ScheduleEntry.semester == semester))
    db.commit()
    return int(result.rowcount or 0)
