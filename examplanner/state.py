import logging
from collections import Counter
from types import MappingProxyType
from typing import Dict, FrozenSet, List, Mapping, Optional, Set

from .models import ExamAssignment, ScheduleConfig, SlotKey, TimeSlot

logger = logging.getLogger(__name__)


class ScheduleState:
    """All exam assignments of one schedule plus the indices used for O(1) checks.

    ``_room_slots`` (classroom -> occupied (day, slot) keys) and ``_slot_courses``
    ((day, slot) -> course ids) are always the exact inverse of the assigned
    entries in ``_assignments``; every mutation goes through the methods below.
    """

    def __init__(self, config: Optional[ScheduleConfig] = None):
        self.config = config
        self._assignments: Dict[str, ExamAssignment] = {}
        self._room_slots: Dict[str, Set[SlotKey]] = {}
        self._slot_courses: Dict[SlotKey, Set[str]] = {}
        self._assigned_count = 0

    # -- mutation ---------------------------------------------------------

    def add_assignment(self, assignment: ExamAssignment) -> None:
        cid = assignment.course_id
        if cid in self._assignments:
            raise ValueError(f"Course {cid} is already registered")
        if assignment.is_assigned and not self.is_classroom_available(
                assignment.classroom_id, assignment.day, assignment.slot):
            raise ValueError(
                f"Classroom {assignment.classroom_id} is already booked at "
                f"Day {assignment.day + 1}, Slot {assignment.slot + 1}")
        assignment = assignment.copy()
        self._assignments[cid] = assignment
        if assignment.is_assigned:
            self._index(assignment)

    def update_assignment(self, course_id: str, day: int, slot: int, classroom_id: str) -> bool:
        a = self._assignments.get(course_id)
        if a is None or a.locked:
            logger.debug("Refusing to move %s: %s", course_id, 'locked' if a else 'unknown course')
            return False
        if self.config is not None and not self.config.in_range(day, slot):
            return False
        occupant = self.course_in(classroom_id, day, slot)
        if occupant is not None and occupant != course_id:
            return False
        if a.is_assigned:
            self._unindex(a)
        a.day, a.slot, a.classroom_id = day, slot, classroom_id
        if a.is_assigned:
            self._index(a)
        return True

    def remove_assignment(self, course_id: str) -> bool:
        a = self._assignments.get(course_id)
        if a is None or a.locked:
            return False
        if a.is_assigned:
            self._unindex(a)
        a.day, a.slot, a.classroom_id = -1, -1, None
        return True

    def set_locked(self, course_id: str, locked: bool = True) -> bool:
        a = self._assignments.get(course_id)
        if a is None:
            return False
        a.locked = locked
        return True

    def _index(self, a: ExamAssignment) -> None:
        self._room_slots.setdefault(a.classroom_id, set()).add(a.time_key)
        self._slot_courses.setdefault(a.time_key, set()).add(a.course_id)
        self._assigned_count += 1

    def _unindex(self, a: ExamAssignment) -> None:
        slots = self._room_slots.get(a.classroom_id)
        if slots is not None:
            slots.discard(a.time_key)
            if not slots:
                del self._room_slots[a.classroom_id]
        courses = self._slot_courses.get(a.time_key)
        if courses is not None:
            courses.discard(a.course_id)
            if not courses:
                del self._slot_courses[a.time_key]
        self._assigned_count -= 1

    # -- lookups ----------------------------------------------------------

    def is_classroom_available(self, classroom_id: str, day: int, slot: int) -> bool:
        return (day, slot) not in self._room_slots.get(classroom_id, ())

    def courses_at(self, day: int, slot: int) -> FrozenSet[str]:
        return frozenset(self._slot_courses.get((day, slot), ()))

    def course_in(self, classroom_id: str, day: int, slot: int) -> Optional[str]:
        """Course holding the classroom at (day, slot), if any."""
        if self.is_classroom_available(classroom_id, day, slot):
            return None
        for cid in self._slot_courses.get((day, slot), ()):
            if self._assignments[cid].classroom_id == classroom_id:
                return cid
        return None

    def classroom_slots(self, classroom_id: str) -> FrozenSet[SlotKey]:
        return frozenset(self._room_slots.get(classroom_id, ()))

    def classroom_use_count(self, classroom_id: str) -> int:
        return len(self._room_slots.get(classroom_id, ()))

    def classroom_usage(self) -> Counter:
        return Counter({room: len(slots) for room, slots in self._room_slots.items()})

    def occupied_slots(self) -> List[SlotKey]:
        return sorted(self._slot_courses)

    def get(self, course_id: str) -> Optional[ExamAssignment]:
        return self._assignments.get(course_id)

    def __contains__(self, course_id: str) -> bool:
        return course_id in self._assignments

    @property
    def assignments(self) -> Mapping[str, ExamAssignment]:
        return MappingProxyType(self._assignments)

    def assigned(self) -> List[ExamAssignment]:
        return [a for a in self._assignments.values() if a.is_assigned]

    def unassigned(self) -> List[ExamAssignment]:
        return [a for a in self._assignments.values() if not a.is_assigned]

    def by_day_slot(self) -> Dict[SlotKey, List[ExamAssignment]]:
        grid: Dict[SlotKey, List[ExamAssignment]] = {}
        for key in sorted(self._slot_courses):
            grid[key] = sorted((self._assignments[c] for c in self._slot_courses[key]),
                               key=lambda a: a.classroom_id)
        return grid

    def time_slot_of(self, course_id: str) -> Optional[TimeSlot]:
        a = self._assignments.get(course_id)
        if a is None or not a.is_assigned or self.config is None:
            return None
        return self.config.time_slot(a.day, a.slot)

    @property
    def total_courses(self) -> int:
        return len(self._assignments)

    @property
    def assigned_count(self) -> int:
        return self._assigned_count

    def is_complete(self) -> bool:
        return self._assigned_count == len(self._assignments)

    @property
    def completion_percentage(self) -> float:
        if not self._assignments:
            return 100.0
        return self._assigned_count * 100.0 / len(self._assignments)

    # -- snapshots --------------------------------------------------------

    def copy(self) -> 'ScheduleState':
        clone = ScheduleState(self.config)
        clone._assignments = {cid: a.copy() for cid, a in self._assignments.items()}
        clone._room_slots = {room: set(slots) for room, slots in self._room_slots.items()}
        clone._slot_courses = {key: set(courses) for key, courses in self._slot_courses.items()}
        clone._assigned_count = self._assigned_count
        return clone

    def __repr__(self) -> str:
        return (f"ScheduleState[{self._assigned_count}/{len(self._assignments)} assigned, "
                f"{self.completion_percentage:.1f}% complete]")
