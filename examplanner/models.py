from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

SlotKey = Tuple[int, int]  # (day, slot)


@dataclass(frozen=True)
class Course:
    id: str
    students: FrozenSet[str] = frozenset()

    def __post_init__(self):
        if not isinstance(self.students, frozenset):
            object.__setattr__(self, 'students', frozenset(self.students))

    @property
    def enrollment(self) -> int:
        return len(self.students)


@dataclass(frozen=True)
class Classroom:
    id: str
    capacity: int

    def __post_init__(self):
        if self.capacity < 1:
            raise ValueError(f"Classroom {self.id} must seat at least one student (got {self.capacity})")


class Strategy(str, Enum):
    MINIMIZE_DAYS = 'minimize-days'
    MINIMIZE_CLASSROOMS = 'minimize-classrooms'
    STUDENT_FRIENDLY = 'student-friendly'

    @classmethod
    def parse(cls, value) -> 'Strategy':
        """Accept a Strategy, its value, or a legacy name such as BALANCED_DISTRIBUTION."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace('_', '-')
        for member in cls:
            if member.value == key:
                return member
        if key in _LEGACY_STRATEGIES:
            return cls(_LEGACY_STRATEGIES[key])
        raise ValueError(f"Unknown optimization strategy: {value!r}")


# Older configurations used more strategy names than the engine scores.
_LEGACY_STRATEGIES = {
    'default': 'student-friendly',
    'balanced-distribution': 'student-friendly',
    'maximize-room-usage': 'student-friendly',
    'balance-classrooms': 'minimize-classrooms',
}


@dataclass(frozen=True)
class TimeSlot:
    date: date
    start: time
    end: time

    @property
    def id(self) -> str:
        return f"{self.date.isoformat()}_{self.start.strftime('%H:%M')}"

    def overlaps(self, other: 'TimeSlot') -> bool:
        if self.date != other.date:
            return False
        return self.start < other.end and other.start < self.end

    def __str__(self) -> str:
        return f"{self.date.isoformat()} {self.start.strftime('%H:%M')}-{self.end.strftime('%H:%M')}"


def _default_start_date() -> date:
    return date.today() + timedelta(days=7)


@dataclass
class ScheduleConfig:
    num_days: int = 5
    slots_per_day: int = 4
    start_date: date = field(default_factory=_default_start_date)
    slot_duration_min: int = 120
    break_min: int = 30
    day_start: time = time(9, 0)
    strategy: Strategy = Strategy.STUDENT_FRIENDLY
    allow_back_to_back: bool = True
    timeout_s: float = 60.0

    def __post_init__(self):
        self.strategy = Strategy.parse(self.strategy)

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> 'ScheduleConfig':
        """Build a config from loosely typed settings (ISO date/time strings allowed)."""
        kwargs: Dict[str, Any] = {k: v for k, v in values.items() if k in cls.__dataclass_fields__}
        if isinstance(kwargs.get('start_date'), str):
            kwargs['start_date'] = date.fromisoformat(kwargs['start_date'])
        if isinstance(kwargs.get('day_start'), str):
            kwargs['day_start'] = time.fromisoformat(kwargs['day_start'])
        return cls(**kwargs)

    def validate(self) -> Optional[str]:
        """Return an error message, or None when the configuration is usable."""
        if self.num_days <= 0:
            return "Number of days must be positive"
        if self.slots_per_day <= 0:
            return "Slots per day must be positive"
        if self.slot_duration_min <= 0:
            return "Slot duration must be positive"
        if self.break_min < 0:
            return "Break between slots cannot be negative"
        if self.timeout_s <= 0:
            return "Timeout must be positive"
        day_end = (self.day_start.hour * 60 + self.day_start.minute
                   + self.slots_per_day * (self.slot_duration_min + self.break_min) - self.break_min)
        if day_end > 24 * 60:
            return "The last exam slot of a day must end by midnight"
        return None

    @property
    def total_slots(self) -> int:
        return self.num_days * self.slots_per_day

    def in_range(self, day: int, slot: int) -> bool:
        return 0 <= day < self.num_days and 0 <= slot < self.slots_per_day

    def time_slot(self, day: int, slot: int) -> Optional[TimeSlot]:
        if not self.in_range(day, slot):
            return None
        start = datetime.combine(self.start_date, self.day_start)
        start += timedelta(minutes=slot * (self.slot_duration_min + self.break_min))
        end = start + timedelta(minutes=self.slot_duration_min)
        return TimeSlot(date=self.start_date + timedelta(days=day), start=start.time(), end=end.time())

    def time_slots(self) -> List[TimeSlot]:
        return [self.time_slot(d, s) for d in range(self.num_days) for s in range(self.slots_per_day)]

    def flat_index(self, day: int, slot: int) -> int:
        return day * self.slots_per_day + slot

    def day_slot(self, flat_index: int) -> SlotKey:
        return divmod(flat_index, self.slots_per_day)

    def slot_label(self, day: int, slot: int) -> str:
        ts = self.time_slot(day, slot)
        if ts is None:
            return "Invalid Slot"
        return f"Day {day + 1} - {ts.start.strftime('%H:%M')}-{ts.end.strftime('%H:%M')}"


@dataclass
class ExamAssignment:
    course_id: str
    day: int = -1  # -1 while unassigned
    slot: int = -1
    classroom_id: Optional[str] = None
    student_count: int = 0
    locked: bool = False  # editors and the search must not move it

    @property
    def is_assigned(self) -> bool:
        return self.classroom_id is not None and self.day >= 0 and self.slot >= 0

    @property
    def time_key(self) -> SlotKey:
        return (self.day, self.slot)

    def copy(self) -> 'ExamAssignment':
        return replace(self)

    def __str__(self) -> str:
        if not self.is_assigned:
            return f"{self.course_id} [Unassigned]"
        return f"{self.course_id} -> {self.classroom_id} @ Day{self.day + 1} Slot{self.slot + 1}"
