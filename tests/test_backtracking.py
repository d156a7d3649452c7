import threading
import time

from examplanner.algorithms.backtracking import (
    CANCELLED, INFEASIBLE, SOLVED, TIMEOUT, BacktrackingSearch, canonical_order,
)
from examplanner.models import Strategy
from examplanner.scheduling.optimizer import initial_state
from examplanner.scheduling.validation import capacity_ok, conflicts_ok, double_booking_ok, validate_schedule
from main import synthetic_classrooms, synthetic_courses


def pigeonhole(build_ctx, n=12, **config):
    """n mutually conflicting courses, one classroom, n - 1 slots."""
    rosters = {f"C{i:02d}": ['shared', f"own{i}"] for i in range(n)}
    return build_ctx(rosters, {'R1': 10}, num_days=1, slots_per_day=n - 1,
                     slot_duration_min=60, break_min=0, **config)


def snapshot(state):
    return {cid: (a.day, a.slot, a.classroom_id) for cid, a in state.assignments.items()}


def test_one_slot_one_room_cannot_hold_three_courses(build_ctx):
    ctx = build_ctx({'A': ['a'], 'B': ['b'], 'C': ['c']}, {'R1': 100}, num_days=1, slots_per_day=1)
    state = initial_state(ctx)
    search = BacktrackingSearch(ctx)
    assert not search.solve(state)
    assert search.status == INFEASIBLE
    assert search.stats.deepest == 1
    assert search.stats.blocking_course in {'A', 'B', 'C'}
    assert state.assigned_count == 0


def test_two_conflicting_courses_need_two_slots(build_ctx):
    rosters = {'A': ['s1', 'a2'], 'B': ['s1', 'b2']}
    rooms = {'R1': 5, 'R2': 5}

    ctx = build_ctx(rosters, rooms, num_days=1, slots_per_day=1)
    state = initial_state(ctx)
    assert not BacktrackingSearch(ctx).solve(state)

    ctx = build_ctx(rosters, rooms, num_days=1, slots_per_day=2)
    state = initial_state(ctx)
    search = BacktrackingSearch(ctx)
    assert search.solve(state)
    assert search.status == SOLVED
    assert state.get('A').time_key != state.get('B').time_key


def test_failed_search_restores_the_state(build_ctx):
    rosters = {f"C{i}": ['shared', f"own{i}"] for i in range(4)}
    rosters['Z'] = ['z']
    ctx = build_ctx(rosters, {'R1': 10}, num_days=1, slots_per_day=3)
    state = initial_state(ctx)
    state.update_assignment('Z', 0, 0, 'R1')
    before = snapshot(state)

    search = BacktrackingSearch(ctx)
    assert not search.solve(state)
    assert search.status == INFEASIBLE
    assert search.stats.backtracks > 0
    assert snapshot(state) == before


def test_solved_schedules_are_valid(build_ctx):
    courses = synthetic_courses(12, 80, seed=3)
    rooms = synthetic_classrooms(5, seed=3)
    ctx = build_ctx({cid: c.students for cid, c in courses.items()},
                    {rid: r.capacity for rid, r in rooms.items()},
                    num_days=5, slots_per_day=4)
    state = initial_state(ctx)
    search = BacktrackingSearch(ctx, deadline=time.perf_counter() + 10)
    assert search.solve(state)
    assert state.is_complete()
    assert conflicts_ok(ctx.graph, state)
    assert capacity_ok(ctx, state)
    assert double_booking_ok(state)
    assert validate_schedule(ctx, state) == {}


def test_locked_assignments_stay_put(small_ctx, small_state):
    small_state.update_assignment('C2', 1, 1, 'Room_1')
    small_state.set_locked('C2')
    assert BacktrackingSearch(small_ctx).solve(small_state)
    assert small_state.get('C2').time_key == (1, 1)
    assert small_state.get('C2').classroom_id == 'Room_1'


def test_locked_unassigned_course_is_infeasible(small_ctx, small_state):
    small_state.set_locked('C3')
    search = BacktrackingSearch(small_ctx)
    assert not search.solve(small_state)
    assert search.status == INFEASIBLE
    assert search.stats.blocking_course == 'C3'


def test_deadline_stops_an_exponential_search(build_ctx):
    ctx = pigeonhole(build_ctx)
    state = initial_state(ctx)
    search = BacktrackingSearch(ctx, deadline=time.perf_counter() + 0.2)
    started = time.perf_counter()
    assert not search.solve(state)
    assert time.perf_counter() - started < 5
    assert search.status == TIMEOUT
    assert state.assigned_count == 0


def test_cancel_event_stops_immediately(small_ctx, small_state):
    event = threading.Event()
    event.set()
    search = BacktrackingSearch(small_ctx, cancel_event=event)
    assert not search.solve(small_state)
    assert search.status == CANCELLED
    assert search.stats.nodes_explored == 0


def test_canonical_order_is_enrollment_then_degree(small_ctx):
    assert canonical_order(small_ctx) == ['C2', 'C1', 'C3', 'C4']


def test_student_friendly_prefers_interior_slots(small_ctx, small_state):
    search = BacktrackingSearch(small_ctx)
    values = search.order_values('C4', small_state)
    # smallest sufficient room first, interior slot before the day's first and last
    assert values[:3] == [(0, 1, 'Room_2'), (0, 1, 'Room_1'), (0, 0, 'Room_2')]
    assert len(values) == 12


def test_least_constraining_slot_comes_first(small_ctx, small_state):
    # C3 already blocks C2 at (0, 1), so placing C1 there costs C2 nothing
    small_state.update_assignment('C3', 0, 1, 'Room_1')
    values = BacktrackingSearch(small_ctx).order_values('C1', small_state)
    assert values[0] == (0, 1, 'Room_2')


def test_minimize_classrooms_reuses_rooms(build_ctx):
    ctx = build_ctx({'X': ['x'], 'Y': ['y']}, {'Room_1': 50, 'Room_2': 50, 'Room_3': 50},
                    num_days=2, slots_per_day=2, strategy=Strategy.MINIMIZE_CLASSROOMS)
    state = initial_state(ctx)
    state.update_assignment('X', 0, 0, 'Room_2')
    values = BacktrackingSearch(ctx).order_values('Y', state)
    assert values[0] == (0, 1, 'Room_2')


def test_progress_reports_depth(small_ctx, small_state):
    seen = []
    BacktrackingSearch(small_ctx, progress=lambda f, msg: seen.append(f)).solve(small_state)
    assert seen == sorted(seen)
    assert seen[-1] == 1.0
