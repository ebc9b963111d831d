from __future__ import annotations

from solver.types import (
    DEFAULT_EXPECTED_ENROLLMENT,
    ActivityData,
    Candidate,
    ConstraintState,
    RoomData,
    Session,
    TimeslotData,
)

# Rejections are ordinary control flow for the search; nothing here raises or logs.


def room_fits(activity: ActivityData, room: RoomData, *, default_enrollment: int = DEFAULT_EXPECTED_ENROLLMENT) -> bool:
    if activity.room_requirement and room.room_type != activity.room_requirement:
        return False
    return room.capacity >= activity.required_capacity(default_enrollment)


def slot_is_free(session: Session, timeslot: TimeslotData, room: RoomData, state: ConstraintState) -> bool:
    ts_id = timeslot.id
    if state.used_timeslot_room[(ts_id, room.id)]:
        return False
    instructor_id = session.instructor_id
    if instructor_id is not None and state.instructor_slots[(instructor_id, ts_id)]:
        return False
    group_id = session.student_group_id
    if group_id is not None and state.group_slots[(group_id, ts_id)]:
        return False
    if state.activity_slots[(session.activity_id, ts_id)]:
        return False
    if state.used_activity_timeslot[(session.activity_id, ts_id, group_id)]:
        return False
    return True


def check_single_slot(
    session: Session,
    timeslot: TimeslotData,
    room: RoomData,
    state: ConstraintState,
    *,
    default_enrollment: int = DEFAULT_EXPECTED_ENROLLMENT,
) -> bool:
    return room_fits(session.activity, room, default_enrollment=default_enrollment) and slot_is_free(
        session, timeslot, room, state
    )


def within_load(session: Session, state: ConstraintState) -> bool:
    instructor = session.activity.instructor
    if instructor is None or not instructor.max_load:
        return True
    return state.instructor_load[instructor.id] + session.duration <= instructor.max_load


def check_candidate(
    session: Session,
    candidate: Candidate,
    state: ConstraintState,
    *,
    default_enrollment: int = DEFAULT_EXPECTED_ENROLLMENT,
) -> tuple[TimeslotData, ...] | None:
    """Return the accepted timeslot group, or None when the candidate is not placeable now."""
    if not room_fits(session.activity, candidate.room, default_enrollment=default_enrollment):
        return None
    for timeslot in candidate.timeslots:
        if not slot_is_free(session, timeslot, candidate.room, state):
            return None
    if not within_load(session, state):
        return None
    return candidate.timeslots
