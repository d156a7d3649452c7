"""Pluggable scheduling rules.

Every rule answers two questions about a proposed assignment against the
current state: is it satisfied, and if not, why. Hard rules always gate
acceptance; soft rules (student spacing) gate acceptance only when the
configuration disallows back-to-back exams, and are otherwise left to scoring.
"""
from abc import ABC, abstractmethod
from collections import Counter
from typing import List, Optional, Sequence

from .context import ScheduleContext
from .models import ExamAssignment
from .state import ScheduleState


class Constraint(ABC):
    name: str = ''
    hard: bool = True

    def __init__(self, ctx: ScheduleContext):
        self.ctx = ctx

    def is_hard(self) -> bool:
        return self.hard

    @abstractmethod
    def is_satisfied(self, assignment: ExamAssignment, state: ScheduleState) -> bool:
        ...

    @abstractmethod
    def violation_message(self, assignment: ExamAssignment, state: ScheduleState) -> Optional[str]:
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name})"


class CapacityConstraint(Constraint):
    name = 'CAPACITY'

    def is_satisfied(self, assignment, state):
        if not assignment.is_assigned:
            return True
        room = self.ctx.classrooms.get(assignment.classroom_id)
        return room is not None and room.capacity >= assignment.student_count

    def violation_message(self, assignment, state):
        if self.is_satisfied(assignment, state):
            return None
        room = self.ctx.classrooms.get(assignment.classroom_id)
        if room is None:
            return f"Classroom {assignment.classroom_id} does not exist"
        return (f"Classroom {room.id} capacity ({room.capacity}) is insufficient "
                f"for {assignment.student_count} students")


class ClassroomConflictConstraint(Constraint):
    name = 'CLASSROOM_CONFLICT'

    def _occupant(self, assignment, state) -> Optional[str]:
        occupant = state.course_in(assignment.classroom_id, assignment.day, assignment.slot)
        return None if occupant == assignment.course_id else occupant

    def is_satisfied(self, assignment, state):
        if not assignment.is_assigned:
            return True
        return self._occupant(assignment, state) is None

    def violation_message(self, assignment, state):
        if not assignment.is_assigned:
            return None
        other = self._occupant(assignment, state)
        if other is None:
            return None
        return (f"Classroom double-booking: {assignment.classroom_id} already has {other} "
                f"at Day {assignment.day + 1}, Slot {assignment.slot + 1}")


class StudentConflictConstraint(Constraint):
    name = 'STUDENT_CONFLICT'

    def conflicting_courses(self, assignment: ExamAssignment, state: ScheduleState) -> List[str]:
        """Courses at the same (day, slot) that share a student with this one."""
        if not assignment.is_assigned or assignment.course_id not in self.ctx.graph:
            return []
        G = self.ctx.graph
        cid = assignment.course_id
        return sorted(other for other in state.courses_at(assignment.day, assignment.slot)
                      if other != cid and G.has_edge(cid, other))

    def is_satisfied(self, assignment, state):
        return not self.conflicting_courses(assignment, state)

    def violation_message(self, assignment, state):
        others = self.conflicting_courses(assignment, state)
        if not others:
            return None
        mine = self.ctx.courses[assignment.course_id]
        other = others[0]
        students = sorted(mine.students & self.ctx.courses[other].students)
        shown = ', '.join(students[:3]) + ('...' if len(students) > 3 else '')
        return (f"Students {shown} have exams for both {assignment.course_id} and {other} "
                f"at Day {assignment.day + 1}, Slot {assignment.slot + 1}")


class NoConsecutiveExamsConstraint(Constraint):
    name = 'NO_CONSECUTIVE_EXAMS'
    hard = False

    def adjacent_courses(self, assignment: ExamAssignment, state: ScheduleState) -> List[str]:
        if not assignment.is_assigned or assignment.course_id not in self.ctx.graph:
            return []
        G = self.ctx.graph
        cid = assignment.course_id
        found = []
        for slot in (assignment.slot - 1, assignment.slot + 1):
            found.extend(other for other in state.courses_at(assignment.day, slot)
                         if other != cid and G.has_edge(cid, other))
        return sorted(found)

    def is_satisfied(self, assignment, state):
        return not self.adjacent_courses(assignment, state)

    def violation_message(self, assignment, state):
        others = self.adjacent_courses(assignment, state)
        if not others:
            return None
        other = state.get(others[0])
        mine = self.ctx.courses[assignment.course_id]
        student = min(mine.students & self.ctx.courses[other.course_id].students)
        return (f"Consecutive exams for student {student}: {other.course_id} "
                f"(Day {other.day + 1}, Slot {other.slot + 1}) and {assignment.course_id} "
                f"(Day {assignment.day + 1}, Slot {assignment.slot + 1}) are back-to-back")


class MaxTwoPerDayConstraint(Constraint):
    name = 'MAX_TWO_PER_DAY'
    hard = False
    limit = 2

    def overloaded_students(self, assignment: ExamAssignment, state: ScheduleState) -> List[str]:
        """Students who would sit more than ``limit`` exams on the assignment's day."""
        if not assignment.is_assigned or assignment.course_id not in self.ctx.courses:
            return []
        G = self.ctx.graph
        cid = assignment.course_id
        mine = self.ctx.courses[cid].students
        per_student: Counter = Counter()
        slots = self.ctx.config.slots_per_day
        for slot in range(slots):
            for other in state.courses_at(assignment.day, slot):
                if other != cid and G.has_edge(cid, other):
                    per_student.update(mine & self.ctx.courses[other].students)
        return sorted(s for s, n in per_student.items() if n + 1 > self.limit)

    def is_satisfied(self, assignment, state):
        return not self.overloaded_students(assignment, state)

    def violation_message(self, assignment, state):
        students = self.overloaded_students(assignment, state)
        if not students:
            return None
        return (f"Too many exams for student {students[0]} on Day {assignment.day + 1}: "
                f"would exceed {self.limit} exams")


class ConstraintSet:
    """The rules a search or validator applies.

    Soft rules are enforced only when ``enforce_soft`` is set, which the default
    set derives from ``allow_back_to_back``.
    """

    def __init__(self, hard: Sequence[Constraint], soft: Sequence[Constraint] = (),
                 enforce_soft: bool = False):
        self.hard = list(hard)
        self.soft = list(soft)
        self.enforce_soft = enforce_soft

    @classmethod
    def default(cls, ctx: ScheduleContext) -> 'ConstraintSet':
        return cls(
            hard=[CapacityConstraint(ctx), ClassroomConflictConstraint(ctx), StudentConflictConstraint(ctx)],
            soft=[NoConsecutiveExamsConstraint(ctx), MaxTwoPerDayConstraint(ctx)],
            enforce_soft=not ctx.config.allow_back_to_back,
        )

    @property
    def active(self) -> List[Constraint]:
        return self.hard + self.soft if self.enforce_soft else list(self.hard)

    def is_consistent(self, assignment: ExamAssignment, state: ScheduleState) -> bool:
        return all(c.is_satisfied(assignment, state) for c in self.active)

    def violations(self, assignment: ExamAssignment, state: ScheduleState) -> List[str]:
        messages = []
        for c in self.active:
            msg = c.violation_message(assignment, state)
            if msg:
                messages.append(f"{c.name}: {msg}")
        return messages
