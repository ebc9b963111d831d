from __future__ import annotations

import random

import pytest

from factories import empty_state, hourly_slots, make_activity, make_group, make_room
from solver.domains import TimeslotIndex, build_domains, order_sessions
from solver.errors import SearchBudgetExhausted
from solver.expander import expand_sessions
from solver.reconcile import find_conflicts
from solver.search import BacktrackingSearch
from solver.types import PlacedEntry


def _setup(activities, rooms, slots, *fixed):
    sessions = expand_sessions(activities)
    index = TimeslotIndex(slots)
    ordered = order_sessions(sessions, rooms, index)
    state = empty_state(*fixed)
    domains = build_domains(ordered, rooms, index, state)
    return ordered, state, domains


def _assert_state_is_clean(state):
    assert state.entries == []
    for counter in (
        state.used_timeslot_room,
        state.used_activity_timeslot,
        state.instructor_load,
        state.session_count,
        state.instructor_slots,
        state.group_slots,
        state.activity_slots,
        state.room_usage,
    ):
        assert not counter


def test_places_every_session_without_conflicts():
    group = make_group()
    activities = [make_activity(60, 60, group=group) for _ in range(3)]
    rooms = [make_room("R1"), make_room("R2")]
    sessions, state, domains = _setup(activities, rooms, hourly_slots("Monday", 9, 3))

    search = BacktrackingSearch(sessions, state, rng=random.Random(1), session_cap=4)

    assert search.run(domains) is True
    assert len(state.placed_entries) == 3
    assert find_conflicts(state.entries) == []
    # Same group, so every session needs its own hour.
    assert len({e.timeslot_ids for e in state.entries}) == 3


def test_forward_check_discards_candidates_blocked_by_the_new_assignment():
    group = make_group()
    first, second = make_activity(60, 60, group=group), make_activity(60, 60, group=group)
    slots = hourly_slots("Monday", 9, 3)
    sessions, state, domains = _setup([first, second], [make_room()], slots)
    search = BacktrackingSearch(sessions, state, rng=random.Random(1), session_cap=4)
    later = sessions[1]
    before = list(domains[later.key])

    chosen = domains[sessions[0].key][0]
    entry = PlacedEntry.for_session(sessions[0], chosen)
    state.apply(entry)
    pruned = search._forward_check(0, domains)
    state.revert(entry)

    assert pruned is not None
    assert len(pruned[later.key]) == len(before) - 1
    assert all(c.start.id != chosen.start.id for c in pruned[later.key])
    # The parent's domains are untouched.
    assert domains[later.key] == before


def test_forward_check_reports_dead_end_when_a_later_domain_empties():
    group = make_group()
    activities = [make_activity(60, 60, group=group) for _ in range(2)]
    slots = hourly_slots("Monday", 9, 1)
    rooms = [make_room("R1"), make_room("R2")]
    sessions, state, domains = _setup(activities, rooms, slots)
    search = BacktrackingSearch(sessions, state, rng=random.Random(1), session_cap=4)

    chosen = domains[sessions[0].key][0]
    entry = PlacedEntry.for_session(sessions[0], chosen)
    state.apply(entry)
    assert search._forward_check(0, domains) is None
    state.revert(entry)
    _assert_state_is_clean(state)


def test_failed_search_leaves_no_trace_in_state():
    group = make_group()
    activities = [make_activity(60, 60, group=group) for _ in range(3)]
    sessions, state, domains = _setup(activities, [make_room()], hourly_slots("Monday", 9, 2))

    search = BacktrackingSearch(sessions, state, rng=random.Random(3), session_cap=4)

    assert search.run(domains) is False
    _assert_state_is_clean(state)


def test_node_budget_aborts_and_unwinds():
    group = make_group()
    activities = [make_activity(60, 60, group=group) for _ in range(3)]
    sessions, state, domains = _setup(activities, [make_room()], hourly_slots("Monday", 9, 2))

    search = BacktrackingSearch(sessions, state, rng=random.Random(3), session_cap=4, max_nodes=2)

    with pytest.raises(SearchBudgetExhausted):
        search.run(domains)
    _assert_state_is_clean(state)


def test_sessions_beyond_the_cap_are_skipped():
    activity = make_activity(300, 60)
    sessions, state, domains = _setup([activity], [make_room()], hourly_slots("Monday", 8, 8))

    search = BacktrackingSearch(sessions, state, rng=random.Random(5), session_cap=4)

    assert len(sessions) == 5
    assert search.run(domains) is True
    assert len(state.placed_entries) == 4
    assert state.session_count[activity.id] == 4


def test_same_seed_gives_same_schedule():
    activities = [make_activity(60, 60) for _ in range(4)]
    rooms = [make_room("R1"), make_room("R2")]
    slots = hourly_slots("Monday", 9, 4)

    def solve():
        sessions, state, domains = _setup(activities, rooms, slots)
        BacktrackingSearch(sessions, state, rng=random.Random(42), session_cap=4).run(domains)
        return [(e.activity_id, e.room_id, e.timeslot_ids) for e in state.entries]

    assert solve() == solve()


def test_more_sessions_than_the_recursion_limit():
    # One long activity expands far past the cap; every skipped session must be cheap.
    activity = make_activity(1200 * 60, 60)
    sessions, state, domains = _setup([activity], [make_room()], hourly_slots("Monday", 9, 4))

    search = BacktrackingSearch(sessions, state, rng=random.Random(2), session_cap=4)

    assert len(sessions) == 1200
    assert search.run(domains) is True
    assert len(state.placed_entries) == 4
    assert find_conflicts(state.entries) == []


def _one_room_each(count):
    # A private room type per activity keeps every domain to a single candidate, so the
    # descent is as deep as the session list.
    activities = [make_activity(60, 60, room_requirement=f"type-{i}") for i in range(count)]
    rooms = [make_room(f"R{i}", room_type=f"type-{i}") for i in range(count)]
    return activities, rooms


def test_descent_deeper_than_the_recursion_limit():
    activities, rooms = _one_room_each(1050)
    sessions, state, domains = _setup(activities, rooms, hourly_slots("Monday", 9, 1))

    search = BacktrackingSearch(sessions, state, rng=random.Random(6), session_cap=4)

    assert search.run(domains) is True
    assert len(state.placed_entries) == 1050
    assert search.nodes == 1050


def test_budget_hit_deep_in_the_descent_unwinds_completely():
    activities, rooms = _one_room_each(1050)
    sessions, state, domains = _setup(activities, rooms, hourly_slots("Monday", 9, 1))

    search = BacktrackingSearch(sessions, state, rng=random.Random(6), session_cap=4, max_nodes=1020)

    with pytest.raises(SearchBudgetExhausted):
        search.run(domains)
    _assert_state_is_clean(state)
