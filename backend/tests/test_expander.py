from __future__ import annotations

from dataclasses import replace

import pytest

from factories import make_activity
from solver.errors import ValidationError
from solver.expander import expand_sessions, split_durations


@pytest.mark.parametrize(
    ("total", "split", "expected"),
    [
        (90, 90, [90]),
        (270, 90, [90, 90, 90]),
        (100, 90, [100]),
        (200, 90, [90, 110]),
        (60, 120, [60]),
    ],
)
def test_split_durations(total, split, expected):
    assert split_durations(total, split) == expected
    assert sum(expected) == total


def test_single_session_activity():
    activity = make_activity(90, 90)
    sessions = expand_sessions([activity])

    assert len(sessions) == 1
    assert sessions[0].duration == 90
    assert sessions[0].key == f"{activity.id}_0"
    assert sessions[0].activity is activity


def test_three_equal_sessions():
    activity = make_activity(270, 90)
    sessions = expand_sessions([activity])

    assert [s.duration for s in sessions] == [90, 90, 90]
    assert [s.index for s in sessions] == [0, 1, 2]
    assert sum(s.duration for s in sessions) == 270


def test_short_remainder_is_merged_into_previous_session():
    sessions = expand_sessions([make_activity(100, 90)])

    assert [s.duration for s in sessions] == [100]


def test_missing_instructor_is_rejected():
    activity = replace(make_activity(90, 90), instructor=None)

    with pytest.raises(ValidationError, match="instructor"):
        expand_sessions([activity])


def test_missing_student_group_is_rejected():
    activity = replace(make_activity(90, 90), student_group=None)

    with pytest.raises(ValidationError, match="studentGroup") as excinfo:
        expand_sessions([activity])
    assert excinfo.value.code == "VALIDATION_FAILED"
    assert excinfo.value.details["activity_id"] == str(activity.id)


@pytest.mark.parametrize(("total", "split"), [(0, 60), (60, 0), (60, 90)])
def test_invalid_durations_are_rejected(total, split):
    with pytest.raises(ValidationError):
        expand_sessions([make_activity(total, split)])


def test_one_bad_activity_fails_the_whole_batch():
    good = make_activity(90, 90)
    bad = replace(make_activity(90, 90), student_group=None)

    with pytest.raises(ValidationError, match="index 1"):
        expand_sessions([good, bad])
