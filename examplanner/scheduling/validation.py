import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import networkx as nx

from ..constraints import ConstraintSet, MaxTwoPerDayConstraint, NoConsecutiveExamsConstraint
from ..context import ScheduleContext
from ..models import ExamAssignment
from ..state import ScheduleState

logger = logging.getLogger(__name__)

UNKNOWN_COURSE = 'Unknown Course'
UNKNOWN_CLASSROOM = 'Unknown Classroom'
INVALID_SLOT = 'Invalid Slot'
LOCKED = 'Locked Assignment'
CAPACITY = 'Capacity Exceeded'
CLASSROOM_CONFLICT = 'Classroom Conflict'
STUDENT_CONFLICT = 'Student Conflict'
BACK_TO_BACK = 'Back-to-Back Exams'
TOO_MANY_PER_DAY = 'Too Many Exams Per Day'


@dataclass(frozen=True)
class Violation:
    constraint_name: str
    is_hard: bool
    message: str
    affected_students: Tuple[str, ...] = ()
    conflicting_course: Optional[str] = None


@dataclass
class ValidationResult:
    violations: List[Violation] = field(default_factory=list)

    def add(self, violation: Violation) -> None:
        self.violations.append(violation)

    @property
    def is_valid(self) -> bool:
        return not self.violations

    @property
    def has_hard_violations(self) -> bool:
        return any(v.is_hard for v in self.violations)

    @property
    def has_soft_violations(self) -> bool:
        return any(not v.is_hard for v in self.violations)

    def formatted_message(self) -> str:
        if not self.violations:
            return "No constraint violations"
        return '\n'.join(f"{'ERROR' if v.is_hard else 'WARNING'} {v.constraint_name}: {v.message}"
                         for v in self.violations)


def format_students(students: List[str], limit: int = 5) -> str:
    if len(students) <= limit:
        return ', '.join(students)
    return f"{', '.join(students[:limit])} and {len(students) - limit} more"


class MoveValidator:
    """Check one proposed (course, day, slot, classroom) move against the current state.

    Nothing is mutated and no search runs; the cost is bounded by the courses
    already sitting in the target slot and on the target day.
    """

    def __init__(self, ctx: ScheduleContext):
        self.ctx = ctx

    def validate_move(self, course_id: str, day: int, slot: int, classroom_id: str,
                      state: ScheduleState) -> ValidationResult:
        result = ValidationResult()
        course = self.ctx.courses.get(course_id)
        if course is None:
            result.add(Violation(UNKNOWN_COURSE, True, f"Course {course_id} not found"))
            return result

        room = self.ctx.classrooms.get(classroom_id)
        if room is None:
            result.add(Violation(UNKNOWN_CLASSROOM, True, f"Classroom {classroom_id} not found"))
        elif room.capacity < course.enrollment:
            result.add(Violation(CAPACITY, True,
                                 f"Classroom {classroom_id} has capacity {room.capacity}, "
                                 f"but course has {course.enrollment} students"))

        if not self.ctx.config.in_range(day, slot):
            result.add(Violation(INVALID_SLOT, True,
                                 f"Day {day + 1}, Slot {slot + 1} is outside the exam period"))

        current = state.get(course_id)
        if current is not None and current.locked:
            result.add(Violation(LOCKED, True, f"Course {course_id} is locked and cannot be moved"))

        occupant = state.course_in(classroom_id, day, slot)
        if occupant is not None and occupant != course_id:
            result.add(Violation(CLASSROOM_CONFLICT, True,
                                 f"Classroom {classroom_id} is already used by {occupant} at this time",
                                 conflicting_course=occupant))

        G = self.ctx.graph
        for other in sorted(state.courses_at(day, slot)):
            if other == course_id or not G.has_edge(course_id, other):
                continue
            students = sorted(course.students & self.ctx.courses[other].students)
            result.add(Violation(STUDENT_CONFLICT, True,
                                 f"{len(students)} student(s) have exams for both {course_id} and {other} "
                                 f"at this time: {format_students(students)}",
                                 affected_students=tuple(students), conflicting_course=other))

        if not self.ctx.config.allow_back_to_back:
            self._spacing_warnings(course_id, day, slot, classroom_id, state, result)
        return result

    def _spacing_warnings(self, course_id, day, slot, classroom_id, state, result) -> None:
        # both rules skip the moving course itself, so its current slot does not count
        course = self.ctx.courses[course_id]
        candidate = ExamAssignment(course_id, day, slot, classroom_id, student_count=course.enrollment)

        adjacent = NoConsecutiveExamsConstraint(self.ctx).adjacent_courses(candidate, state)
        for other in adjacent:
            students = sorted(course.students & self.ctx.courses[other].students)
            result.add(Violation(BACK_TO_BACK, False,
                                 f"{len(students)} student(s) would sit {course_id} and {other} "
                                 f"back-to-back: {format_students(students)}",
                                 affected_students=tuple(students), conflicting_course=other))

        overloaded = MaxTwoPerDayConstraint(self.ctx).overloaded_students(candidate, state)
        if overloaded:
            result.add(Violation(TOO_MANY_PER_DAY, False,
                                 f"{len(overloaded)} student(s) would have more than two exams on "
                                 f"Day {day + 1}: {format_students(overloaded)}",
                                 affected_students=tuple(overloaded)))

    def apply_move(self, course_id: str, day: int, slot: int, classroom_id: str,
                   state: ScheduleState, force: bool = False) -> Tuple[bool, ValidationResult]:
        """Validate, then apply the move unless it has hard violations and ``force`` is off.

        Locked courses and classroom double-bookings are still refused by the
        state itself even when forced.
        """
        result = self.validate_move(course_id, day, slot, classroom_id, state)
        if result.has_hard_violations and not force:
            return False, result
        applied = state.update_assignment(course_id, day, slot, classroom_id)
        if applied and result.has_hard_violations:
            logger.warning("Forced move of %s with %d hard violation(s)", course_id,
                           sum(1 for v in result.violations if v.is_hard))
        return applied, result


def conflicts_ok(G: nx.Graph, state: ScheduleState) -> bool:
    for u, v in G.edges():
        a, b = state.get(u), state.get(v)
        if a is None or b is None or not a.is_assigned or not b.is_assigned:
            continue
        if a.time_key == b.time_key:
            return False
    return True


def capacity_ok(ctx: ScheduleContext, state: ScheduleState) -> bool:
    for a in state.assigned():
        room = ctx.classrooms.get(a.classroom_id)
        course = ctx.courses.get(a.course_id)
        if room is None or course is None or room.capacity < course.enrollment:
            return False
    return True


def double_booking_ok(state: ScheduleState) -> bool:
    seen = set()
    for a in state.assigned():
        key = (a.day, a.slot, a.classroom_id)
        if key in seen:
            return False
        seen.add(key)
    return True


def validate_schedule(ctx: ScheduleContext, state: ScheduleState) -> Dict[str, List[str]]:
    """Re-check every assigned exam against the rest of the schedule.

    Returns course id -> violation messages, for courses with at least one.
    """
    constraints = ConstraintSet.default(ctx)
    problems: Dict[str, List[str]] = {}
    for a in state.assigned():
        messages = constraints.violations(a, state)
        if messages:
            problems[a.course_id] = messages
    return problems
