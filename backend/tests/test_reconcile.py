from __future__ import annotations

import uuid

from solver.reconcile import find_conflicts
from solver.types import PlacedEntry


def _entry(*, group=None, room=None, instructor=None, slots=()):
    return PlacedEntry(
        activity_id=uuid.uuid4(),
        instructor_id=instructor or uuid.uuid4(),
        student_group_id=group or uuid.uuid4(),
        room_id=room or uuid.uuid4(),
        timeslot_ids=tuple(slots),
        total_duration=60 * len(slots),
    )


def test_clean_schedule_has_no_conflicts():
    slot_a, slot_b = uuid.uuid4(), uuid.uuid4()
    group, room = uuid.uuid4(), uuid.uuid4()

    entries = [_entry(group=group, room=room, slots=[slot_a]), _entry(group=group, room=room, slots=[slot_b])]

    assert find_conflicts(entries) == []


def test_detects_each_kind_of_double_booking():
    slot = uuid.uuid4()
    group, room, teacher = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()

    conflicts = find_conflicts(
        [
            _entry(group=group, slots=[slot]),
            _entry(group=group, slots=[slot]),
            _entry(room=room, slots=[slot]),
            _entry(room=room, slots=[slot]),
            _entry(instructor=teacher, slots=[slot]),
            _entry(instructor=teacher, slots=[slot]),
        ]
    )

    kinds = {c.conflict_type: c for c in conflicts}
    assert set(kinds) == {"STUDENT_GROUP_DOUBLE_BOOKED", "ROOM_DOUBLE_BOOKED", "INSTRUCTOR_DOUBLE_BOOKED"}
    assert kinds["ROOM_DOUBLE_BOOKED"].resource_id == room
    assert len(kinds["INSTRUCTOR_DOUBLE_BOOKED"].activity_ids) == 2
    assert kinds["STUDENT_GROUP_DOUBLE_BOOKED"].as_dict()["timeslot_id"] == str(slot)


def test_overlap_inside_a_multi_slot_entry_is_found():
    first, second, third = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    room = uuid.uuid4()

    conflicts = find_conflicts([_entry(room=room, slots=[first, second]), _entry(room=room, slots=[second, third])])

    assert [(c.conflict_type, c.timeslot_id) for c in conflicts] == [("ROOM_DOUBLE_BOOKED", second)]
