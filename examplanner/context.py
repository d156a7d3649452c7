from dataclasses import dataclass, field
from functools import cached_property
from typing import Dict, Iterable, List, Optional, Set

import networkx as nx

from .graph_build import build_conflict_graph, student_index
from .models import Classroom, Course, ScheduleConfig


@dataclass
class ScheduleContext:
    """Everything the engine needs to know about one generation request.

    Passed explicitly to every entry point; the engine keeps no module-level
    registry of courses or classrooms.
    """
    courses: Dict[str, Course]
    classrooms: Dict[str, Classroom]
    config: ScheduleConfig = field(default_factory=ScheduleConfig)

    @classmethod
    def build(cls, courses: Iterable[Course], classrooms: Iterable[Classroom],
              config: Optional[ScheduleConfig] = None) -> 'ScheduleContext':
        course_map: Dict[str, Course] = {}
        for c in courses:
            if c.id in course_map:
                raise ValueError(f"Duplicate course id: {c.id}")
            course_map[c.id] = c
        room_map: Dict[str, Classroom] = {}
        for r in classrooms:
            if r.id in room_map:
                raise ValueError(f"Duplicate classroom id: {r.id}")
            room_map[r.id] = r
        return cls(courses=course_map, classrooms=room_map, config=config or ScheduleConfig())

    @cached_property
    def graph(self) -> nx.Graph:
        return build_conflict_graph(self.courses.values())

    @cached_property
    def student_courses(self) -> Dict[str, Set[str]]:
        return student_index(self.courses.values())

    def degree(self, course_id: str) -> int:
        return self.graph.degree(course_id) if course_id in self.graph else 0

    def neighbors(self, course_id: str) -> Set[str]:
        if course_id not in self.graph:
            return set()
        return set(self.graph.neighbors(course_id))

    def rooms_for(self, course_id: str) -> List[Classroom]:
        """Classrooms large enough for the course, smallest first."""
        need = self.courses[course_id].enrollment
        rooms = [r for r in self.classrooms.values() if r.capacity >= need]
        return sorted(rooms, key=lambda r: (r.capacity, r.id))
