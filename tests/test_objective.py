import pytest

from examplanner.models import ExamAssignment, Strategy
from examplanner.scheduling.objective import (
    classroom_number, evaluate_schedule, score_minimize_classrooms, score_minimize_days, score_student_friendly,
    student_exams,
)
from examplanner.state import ScheduleState


def place(ctx, *rows):
    state = ScheduleState(ctx.config)
    for cid, day, slot, room in rows:
        state.add_assignment(ExamAssignment(cid, day, slot, room, student_count=ctx.courses[cid].enrollment))
    return state


@pytest.mark.parametrize('room, expected', [
    ('Classroom_07', 7), ('Room_12', 12), ('R3', 3), ('Hall', 0), ('B2-Lab', 0),
])
def test_classroom_number(room, expected):
    assert classroom_number(room) == expected


def test_minimize_days_prefers_fewer_and_earlier_days(build_ctx):
    ctx = build_ctx({'A': ['a'], 'B': ['b']}, {'R1': 5, 'R2': 5}, num_days=3, slots_per_day=2)
    one_day = place(ctx, ('A', 0, 0, 'R1'), ('B', 0, 1, 'R1'))
    two_days = place(ctx, ('A', 0, 0, 'R1'), ('B', 1, 0, 'R1'))
    later = place(ctx, ('A', 2, 0, 'R1'), ('B', 2, 1, 'R1'))
    assert score_minimize_days(one_day, ctx) == pytest.approx(1000 + 0 + 0.5)
    assert score_minimize_days(one_day, ctx) < score_minimize_days(later, ctx) < score_minimize_days(two_days, ctx)
    assert score_minimize_days(ScheduleState(ctx.config), ctx) == 0.0


def test_minimize_classrooms_counts_rooms_then_numbers(build_ctx):
    ctx = build_ctx({'A': ['a'], 'B': ['b']}, {'Room_1': 5, 'Room_3': 5}, num_days=1, slots_per_day=2)
    shared = place(ctx, ('A', 0, 0, 'Room_1'), ('B', 0, 1, 'Room_1'))
    split = place(ctx, ('A', 0, 0, 'Room_1'), ('B', 0, 0, 'Room_3'))
    high = place(ctx, ('A', 0, 0, 'Room_3'), ('B', 0, 1, 'Room_3'))
    assert score_minimize_classrooms(shared, ctx) == pytest.approx(1000.2)
    assert score_minimize_classrooms(split, ctx) == pytest.approx(2000.4)
    assert score_minimize_classrooms(shared, ctx) < score_minimize_classrooms(high, ctx)


def test_student_friendly_penalties(build_ctx):
    ctx = build_ctx({'A': ['s'], 'B': ['s'], 'C': ['t']}, {'R1': 5, 'R2': 5}, num_days=2, slots_per_day=4)
    # s: slot 0 (first, +5) and slot 3 (last, +3) with a two-slot gap (+20); t alone in a middle slot
    state = place(ctx, ('A', 0, 0, 'R1'), ('B', 0, 3, 'R1'), ('C', 0, 1, 'R1'))
    assert score_student_friendly(state, ctx) == pytest.approx(28.0)

    # consecutive days (+2), both exams in middle slots; two rooms used 2 and 1 times (std 0.5)
    state = place(ctx, ('A', 0, 1, 'R1'), ('B', 1, 2, 'R1'), ('C', 0, 2, 'R2'))
    assert score_student_friendly(state, ctx) == pytest.approx(2.0 + 2 * 0.5)


def test_evaluate_dispatches_on_strategy(build_ctx):
    rosters = {'A': ['a'], 'B': ['b']}
    rows = [('A', 0, 0, 'R1'), ('B', 1, 1, 'R1')]
    for strategy, fn in [(Strategy.MINIMIZE_DAYS, score_minimize_days),
                         (Strategy.MINIMIZE_CLASSROOMS, score_minimize_classrooms),
                         (Strategy.STUDENT_FRIENDLY, score_student_friendly)]:
        ctx = build_ctx(rosters, {'R1': 5}, num_days=2, slots_per_day=2, strategy=strategy)
        state = place(ctx, *rows)
        assert evaluate_schedule(state, ctx) == fn(state, ctx)


def test_student_exams_follow_the_calendar(small_ctx):
    state = place(small_ctx, ('C2', 1, 0, 'Room_1'), ('C1', 0, 2, 'Room_1'), ('C4', 0, 0, 'Room_2'))
    exams = student_exams(state, small_ctx)
    assert [a.course_id for a in exams['s2']] == ['C1', 'C2']
    assert [a.course_id for a in exams['s4']] == ['C2']
    assert 's5' not in exams  # C3 is unplaced
