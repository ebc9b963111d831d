from __future__ import annotations

import random
import uuid

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from factories import (
    SEMESTER,
    add_activity,
    add_course,
    add_group,
    add_hourly_slots,
    add_instructor,
    add_room,
)
from models import ScheduleEntry
from services.schedule_commit import replace_schedule
from services.schedule_store import delete_semester, free_rooms, list_semesters
from services.scheduling_service import generate_schedule, regenerate_schedule
from solver.errors import InfeasibleError, PersistenceError, ValidationError
from solver.retry import SolveOptions
from solver.types import PlacedEntry

OPTIONS = SolveOptions(max_retries=5, session_cap=4, max_nodes_per_attempt=5000)


def _seed_two_groups(db):
    course = add_course(db)
    t1, t2 = add_instructor(db, "Dr. Rao"), add_instructor(db, "Dr. Iyer")
    g1, g2 = add_group(db, "A"), add_group(db, "B")
    add_room(db, "Hall", capacity=80)
    add_room(db, "Annex", capacity=60)
    add_hourly_slots(db, "Monday", 9, 4)
    add_hourly_slots(db, "Tuesday", 9, 4)
    a1 = add_activity(db, course=course, instructor=t1, group=g1, total_duration=120, split=60)
    a2 = add_activity(db, course=course, instructor=t2, group=g2, total_duration=120, split=120)
    db.commit()
    return a1, a2


def _entries(db, activity_id=None):
    q = select(ScheduleEntry).where(ScheduleEntry.semester == SEMESTER)
    if activity_id is not None:
        q = q.where(ScheduleEntry.activity_id == activity_id)
    return db.execute(q.order_by(ScheduleEntry.id)).scalars().all()


def _snapshot(rows):
    return [
        (r.id, r.activity_id, r.room_id, list(r.reserved_timeslot_ids), r.total_duration, r.student_group_id, r.created_by)
        for r in rows
    ]


def test_generate_stores_and_groups_the_schedule(db):
    a1, a2 = _seed_two_groups(db)
    progress = []

    outcome = generate_schedule(
        db,
        semester=SEMESTER,
        actor_id="planner",
        options=OPTIONS,
        rng=random.Random(1),
        progress=progress.append,
    )

    rows = _entries(db)
    assert outcome.entries_written == len(rows) == 3
    assert sum(r.total_duration for r in rows if r.activity_id == a1.id) == 120
    assert [r.total_duration for r in rows if r.activity_id == a2.id] == [120]
    assert all(r.created_by == "planner" for r in rows)

    assert set(outcome.grouped) == {str(a1.student_group_id), str(a2.student_group_id)}
    group_a = outcome.grouped[str(a1.student_group_id)]
    assert group_a["student_group"]["section"] == "A"
    assert len(group_a["entries"]) == 2
    first = group_a["entries"][0]
    assert first["activity"]["course_code"] == "CS101"
    assert first["activity"]["instructor"] == "Dr. Rao"
    assert first["reserved_timeslots"][0]["start_time"].endswith(":00")

    assert progress[:4] == [5, 10, 20, 30]
    assert progress == sorted(progress)
    assert max(progress) <= 95


def test_generate_replaces_the_previous_schedule(db):
    _seed_two_groups(db)
    generate_schedule(db, semester=SEMESTER, actor_id="planner", options=OPTIONS, rng=random.Random(1))
    generate_schedule(db, semester=SEMESTER, actor_id="planner", options=OPTIONS, rng=random.Random(2))

    assert len(_entries(db)) == 3
    assert list_semesters(db) == [SEMESTER]


def test_generate_without_activities_is_infeasible(db):
    add_room(db)
    db.commit()

    with pytest.raises(InfeasibleError, match="No activities"):
        generate_schedule(db, semester="2030-S9", actor_id=None, options=OPTIONS)


def test_validation_failure_keeps_the_stored_schedule(db):
    _seed_two_groups(db)
    generate_schedule(db, semester=SEMESTER, actor_id="planner", options=OPTIONS, rng=random.Random(1))
    before = _snapshot(_entries(db))

    course = add_course(db, "CS999", "Orphan")
    add_activity(db, course=course, instructor=add_instructor(db), group=None, total_duration=60, split=60)
    db.commit()

    with pytest.raises(ValidationError, match="no studentGroup"):
        generate_schedule(db, semester=SEMESTER, actor_id="planner", options=OPTIONS)

    assert _snapshot(_entries(db)) == before


def test_over_constrained_semester_commits_nothing(db):
    course = add_course(db)
    teacher = add_instructor(db)
    group = add_group(db)
    add_room(db)
    add_hourly_slots(db, "Monday", 9, 2)
    for _ in range(3):
        add_activity(db, course=course, instructor=teacher, group=group, total_duration=60, split=60)
    db.commit()

    with pytest.raises(InfeasibleError):
        generate_schedule(db, semester=SEMESTER, actor_id="planner", options=OPTIONS, rng=random.Random(0))

    assert _entries(db) == []


def test_regenerate_leaves_other_activities_untouched(db):
    a1, a2 = _seed_two_groups(db)
    generate_schedule(db, semester=SEMESTER, actor_id="planner", options=OPTIONS, rng=random.Random(1))
    untouched = _snapshot(_entries(db, a2.id))
    old_a1 = {r.id for r in _entries(db, a1.id)}

    outcome = regenerate_schedule(
        db,
        semester=SEMESTER,
        activity_ids=[a1.id],
        actor_id="editor",
        options=SolveOptions(max_retries=5, session_cap=30, max_nodes_per_attempt=5000),
        rng=random.Random(9),
    )

    assert _snapshot(_entries(db, a2.id)) == untouched
    new_a1 = _entries(db, a1.id)
    assert {r.id for r in new_a1}.isdisjoint(old_a1)
    assert sum(r.total_duration for r in new_a1) == 120
    assert all(r.created_by == "editor" for r in new_a1)
    assert outcome.entries_written == 2

    a2_cells = {(r.room_id, t) for r in _entries(db, a2.id) for t in r.reserved_timeslot_ids}
    for row in new_a1:
        assert a2_cells.isdisjoint({(row.room_id, t) for t in row.reserved_timeslot_ids})


def test_regenerate_rejects_unknown_activity_ids(db):
    _seed_two_groups(db)

    with pytest.raises(ValidationError, match="Unknown activity ids"):
        regenerate_schedule(db, semester=SEMESTER, activity_ids=[uuid.uuid4()], actor_id=None, options=OPTIONS)


def test_regenerate_rejects_activity_without_instructor(db):
    course = add_course(db)
    group = add_group(db)
    add_room(db)
    add_hourly_slots(db, "Monday", 9, 2)
    orphan = add_activity(db, course=course, instructor=None, group=group, total_duration=60, split=60)
    db.commit()

    with pytest.raises(ValidationError, match="no instructor"):
        regenerate_schedule(db, semester=SEMESTER, activity_ids=[orphan.id], actor_id=None, options=OPTIONS)


def test_free_rooms_excludes_rooms_booked_in_that_slot(db):
    a1, _ = _seed_two_groups(db)
    generate_schedule(db, semester=SEMESTER, actor_id="planner", options=OPTIONS, rng=random.Random(1))
    row = _entries(db, a1.id)[0]
    slot_id = uuid.UUID(row.reserved_timeslot_ids[0])

    free_ids = {r.id for r in free_rooms(db, semester=SEMESTER, timeslot_id=slot_id)}

    assert row.room_id not in free_ids


def test_delete_semester_removes_every_entry(db):
    _seed_two_groups(db)
    generate_schedule(db, semester=SEMESTER, actor_id="planner", options=OPTIONS, rng=random.Random(1))

    assert delete_semester(db, semester=SEMESTER) == 3
    assert _entries(db) == []
    assert list_semesters(db) == []


def test_commit_failure_rolls_back_and_raises(db, monkeypatch):
    a1, _ = _seed_two_groups(db)
    generate_schedule(db, semester=SEMESTER, actor_id="planner", options=OPTIONS, rng=random.Random(1))
    before = _snapshot(_entries(db))

    def _broken_commit():
        raise OperationalError("INSERT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db, "commit", _broken_commit)
    entry = PlacedEntry(
        activity_id=a1.id,
        instructor_id=None,
        student_group_id=a1.student_group_id,
        room_id=uuid.uuid4(),
        timeslot_ids=(uuid.uuid4(),),
        total_duration=60,
    )

    with pytest.raises(PersistenceError) as excinfo:
        replace_schedule(db, semester=SEMESTER, entries=[entry])
    monkeypatch.undo()

    assert excinfo.value.code == "PERSISTENCE_FAILED"
    assert _snapshot(_entries(db)) == before
