import ast
import csv
import io
import logging
import os
import re
from collections import defaultdict
from typing import IO, Dict, List, Set, Union

import pandas as pd

from .context import ScheduleContext
from .models import Classroom, Course, ExamAssignment, ScheduleConfig
from .state import ScheduleState

logger = logging.getLogger(__name__)

TextOrPath = Union[str, os.PathLike, IO]

SCHEDULE_COLUMNS = ['course_id', 'day', 'slot', 'classroom_id', 'students', 'date', 'start', 'end', 'locked']


def _open_text(src: TextOrPath):
    """Return a text-mode handle and whether the caller must close it.

    Accepts a filesystem path, a text IO object, or a BytesIO buffer.
    """
    if isinstance(src, (str, os.PathLike)):
        return open(src, 'r', newline='', encoding='utf-8'), True
    if isinstance(src, io.BytesIO):
        src.seek(0)
        return io.TextIOWrapper(src, encoding='utf-8', newline=''), True
    if hasattr(src, 'read'):
        if hasattr(src, 'seekable') and src.seekable():
            src.seek(0)
        return src, False
    raise TypeError("Unsupported input type; expected path or file-like object")


def _read_lines(src: TextOrPath) -> List[str]:
    f, should_close = _open_text(src)
    try:
        return f.read().splitlines()
    finally:
        if should_close:
            f.close()


def load_classrooms(src: TextOrPath) -> Dict[str, Classroom]:
    """Classrooms from ``id,capacity`` CSV, or ``Classroom_01;40`` lines under a header."""
    lines = [ln for ln in _read_lines(src) if ln.strip()]
    rooms: Dict[str, Classroom] = {}
    if not lines:
        return rooms
    delimiter = ';' if ';' in lines[0] else ','
    for lineno, row in enumerate(csv.reader(lines[1:], delimiter=delimiter), start=2):
        if len(row) < 2:
            raise ValueError(f"Line {lineno}: expected classroom id and capacity, got {row!r}")
        rid = row[0].strip()
        try:
            cap = int(row[1])
        except ValueError:
            raise ValueError(f"Line {lineno}: invalid capacity {row[1]!r} for {rid}") from None
        rooms[rid] = Classroom(id=rid, capacity=cap)
    return rooms


def courses_from_students(students: Dict[str, Set[str]]) -> Dict[str, Course]:
    rosters: Dict[str, Set[str]] = defaultdict(set)
    for sid, course_ids in students.items():
        for cid in course_ids:
            rosters[cid].add(sid)
    return {cid: Course(cid, frozenset(roster)) for cid, roster in sorted(rosters.items())}


def load_enrollments_csv(src: TextOrPath) -> Dict[str, Course]:
    """Courses from ``course_id,student_id`` rows, one enrollment per row."""
    students: Dict[str, Set[str]] = defaultdict(set)
    f, should_close = _open_text(src)
    try:
        for row in csv.DictReader(f):
            cid = str(row['course_id']).strip()
            sid = str(row.get('student_id') or '').strip()
            students[sid].add(cid)
    finally:
        if should_close:
            f.close()
    empty = students.pop('', set())
    courses = courses_from_students(students)
    for cid in empty:  # courses listed without any student
        courses.setdefault(cid, Course(cid))
    return courses


_COURSE_LINE = re.compile(r'^[A-Za-z][\w.-]*$')


def load_attendance_lists(src: TextOrPath) -> Dict[str, Course]:
    """Courses from the attendance-list format: a course code line, then a list literal of students.

        CourseCode_01
        ['Std_ID_001', 'Std_ID_002']
    """
    courses: Dict[str, Course] = {}
    pending = None
    for lineno, raw in enumerate(_read_lines(src), start=1):
        line = raw.strip()
        if not line:
            continue
        if line.startswith('['):
            if pending is None:
                raise ValueError(f"Line {lineno}: student list without a course code")
            try:
                students = ast.literal_eval(line)
            except (ValueError, SyntaxError):
                raise ValueError(f"Line {lineno}: invalid student list for {pending}") from None
            courses[pending] = Course(pending, frozenset(str(s).strip() for s in students))
            pending = None
        elif _COURSE_LINE.match(line):
            if pending is not None:
                courses[pending] = Course(pending)
            pending = line
        else:
            raise ValueError(f"Line {lineno}: unrecognized line {line[:50]!r}")
    if pending is not None:
        courses[pending] = Course(pending)
    return courses


def load_toronto_stu(src: TextOrPath) -> Dict[str, Course]:
    """Courses from a Toronto ``.stu`` file: one line per student listing their exams."""
    students: Dict[str, Set[str]] = {}
    idx = 0
    for line in _read_lines(src):
        line = line.strip()
        if not line or line.startswith('#'):
            continue
        students[f"stu_{idx}"] = set(line.replace('\t', ' ').split())
        idx += 1
    return courses_from_students(students)


def schedule_frame(state: ScheduleState, config: ScheduleConfig) -> pd.DataFrame:
    rows = []
    for cid in sorted(state.assignments):
        a = state.assignments[cid]
        ts = config.time_slot(a.day, a.slot) if a.is_assigned else None
        rows.append({
            'course_id': cid,
            'day': a.day,
            'slot': a.slot,
            'classroom_id': a.classroom_id,
            'students': a.student_count,
            'date': ts.date.isoformat() if ts else None,
            'start': ts.start.strftime('%H:%M') if ts else None,
            'end': ts.end.strftime('%H:%M') if ts else None,
            'locked': a.locked,
        })
    frame = pd.DataFrame(rows, columns=SCHEDULE_COLUMNS)
    return frame.sort_values(['day', 'slot', 'classroom_id'], kind='stable', ignore_index=True)


def save_schedule_csv(path: str, state: ScheduleState, config: ScheduleConfig) -> None:
    schedule_frame(state, config).to_csv(path, index=False)


def load_schedule_csv(src: TextOrPath, ctx: ScheduleContext) -> ScheduleState:
    """Rebuild a ScheduleState from a saved schedule, for inspection or editing.

    Courses known to the context but absent from the file come back unassigned.
    """
    f, should_close = _open_text(src)
    try:
        frame = pd.read_csv(f, dtype={'course_id': str, 'classroom_id': str})
    finally:
        if should_close:
            f.close()

    state = ScheduleState(ctx.config)
    seen = set()
    for row in frame.itertuples(index=False):
        cid = str(row.course_id)
        if cid not in ctx.courses:
            raise ValueError(f"Schedule references unknown course {cid}")
        assigned = not pd.isna(row.classroom_id) and int(row.day) >= 0 and int(row.slot) >= 0
        a = ExamAssignment(cid, student_count=ctx.courses[cid].enrollment,
                           locked=bool(getattr(row, 'locked', False)))
        if assigned:
            a.day, a.slot, a.classroom_id = int(row.day), int(row.slot), str(row.classroom_id)
        state.add_assignment(a)
        seen.add(cid)
    for cid in sorted(set(ctx.courses) - seen):
        state.add_assignment(ExamAssignment(cid, student_count=ctx.courses[cid].enrollment))
    logger.info("Loaded schedule with %d/%d courses assigned", state.assigned_count, state.total_courses)
    return state
