"""Quality scores for complete schedules. Lower is better.

Each optimization strategy has its own scoring function; the optimizer only
compares scores produced by the same strategy.
"""
import re
from typing import Callable, Dict, List

import numpy as np

from ..context import ScheduleContext
from ..models import ExamAssignment, Strategy
from ..state import ScheduleState

_TRAILING_DIGITS = re.compile(r'(\d+)$')


def classroom_number(classroom_id: str) -> int:
    """Numeric suffix of a classroom id ("Classroom_07" -> 7); 0 when there is none."""
    m = _TRAILING_DIGITS.search(classroom_id)
    return int(m.group(1)) if m else 0


def score_minimize_days(state: ScheduleState, ctx: ScheduleContext) -> float:
    assigned = state.assigned()
    if not assigned:
        return 0.0
    days = np.array([a.day for a in assigned])
    slots = np.array([a.slot for a in assigned])
    score = 1000.0 * len(set(days.tolist()))
    score += 10.0 * float(days.mean())  # earlier days break ties
    score += 1.0 * float(slots.mean())
    return score


def score_minimize_classrooms(state: ScheduleState, ctx: ScheduleContext) -> float:
    assigned = state.assigned()
    score = 1000.0 * len({a.classroom_id for a in assigned})
    score += sum(0.1 * classroom_number(a.classroom_id) for a in assigned)
    return score


def student_exams(state: ScheduleState, ctx: ScheduleContext) -> Dict[str, List[ExamAssignment]]:
    """Assigned exams of every student, in chronological order."""
    exams: Dict[str, List[ExamAssignment]] = {}
    for sid, course_ids in ctx.student_courses.items():
        placed = [a for a in map(state.get, course_ids) if a is not None and a.is_assigned]
        if placed:
            exams[sid] = sorted(placed, key=lambda a: (a.day, a.slot, a.course_id))
    return exams


def score_student_friendly(state: ScheduleState, ctx: ScheduleContext) -> float:
    last_slot = ctx.config.slots_per_day - 1
    score = 0.0
    for lst in student_exams(state, ctx).values():
        for prev, cur in zip(lst, lst[1:]):
            if prev.day == cur.day:
                gap = cur.slot - prev.slot - 1
                if gap > 0:
                    score += 10.0 * gap
        for a in lst:
            if a.slot == 0:
                score += 5.0
            if a.slot == last_slot:
                score += 3.0
        days = sorted({a.day for a in lst})
        score += 2.0 * sum(1 for d1, d2 in zip(days, days[1:]) if d2 - d1 == 1)

    usage = state.classroom_usage()
    if usage:
        score += 2.0 * float(np.std(list(usage.values())))
    return score


OBJECTIVES: Dict[Strategy, Callable[[ScheduleState, ScheduleContext], float]] = {
    Strategy.MINIMIZE_DAYS: score_minimize_days,
    Strategy.MINIMIZE_CLASSROOMS: score_minimize_classrooms,
    Strategy.STUDENT_FRIENDLY: score_student_friendly,
}


def evaluate_schedule(state: ScheduleState, ctx: ScheduleContext) -> float:
    return OBJECTIVES[ctx.config.strategy](state, ctx)
