from datetime import date, time

import pytest

from examplanner.models import Classroom, Course, ExamAssignment, ScheduleConfig, Strategy


def test_course_roster_is_frozen_and_counted():
    c = Course('C1', ['s1', 's2', 's2'])
    assert c.students == frozenset({'s1', 's2'})
    assert c.enrollment == 2


def test_classroom_rejects_non_positive_capacity():
    with pytest.raises(ValueError):
        Classroom('R0', 0)


@pytest.mark.parametrize('raw, expected', [
    ('minimize-days', Strategy.MINIMIZE_DAYS),
    ('MINIMIZE_CLASSROOMS', Strategy.MINIMIZE_CLASSROOMS),
    ('DEFAULT', Strategy.STUDENT_FRIENDLY),
    ('BALANCED_DISTRIBUTION', Strategy.STUDENT_FRIENDLY),
    ('balance_classrooms', Strategy.MINIMIZE_CLASSROOMS),
    (Strategy.STUDENT_FRIENDLY, Strategy.STUDENT_FRIENDLY),
])
def test_legacy_strategies_are_normalized_at_construction(raw, expected):
    assert ScheduleConfig(strategy=raw).strategy is expected


def test_unknown_strategy_is_rejected():
    with pytest.raises(ValueError):
        ScheduleConfig(strategy='fastest')


@pytest.mark.parametrize('field, value', [
    ('num_days', 0), ('slots_per_day', -1), ('slot_duration_min', 0), ('timeout_s', 0), ('break_min', -5),
])
def test_validate_reports_bad_values(field, value):
    cfg = ScheduleConfig(**{field: value})
    assert cfg.validate() is not None


def test_slots_running_past_midnight_are_rejected():
    cfg = ScheduleConfig(num_days=2, slots_per_day=8, start_date=date(2025, 1, 13))
    assert 'midnight' in cfg.validate()
    # 09:00 + 6 slots of 2h with 30 min breaks ends at 23:30
    assert ScheduleConfig(num_days=2, slots_per_day=6).validate() is None
    late = ScheduleConfig(slots_per_day=1, day_start=time(22, 30), slot_duration_min=90)
    assert late.validate() is None
    assert ScheduleConfig(slots_per_day=1, day_start=time(22, 31), slot_duration_min=90).validate()


def test_time_slot_is_computed_from_day_and_slot():
    cfg = ScheduleConfig(num_days=3, slots_per_day=4, start_date=date(2025, 1, 13),
                         day_start=time(9, 0), slot_duration_min=120, break_min=30)
    ts = cfg.time_slot(1, 2)
    assert ts.date == date(2025, 1, 14)
    assert ts.start == time(14, 0)
    assert ts.end == time(16, 0)
    assert str(ts) == '2025-01-14 14:00-16:00'
    assert ts.id == '2025-01-14_14:00'
    assert cfg.time_slot(3, 0) is None
    assert cfg.slot_label(0, 0) == 'Day 1 - 09:00-11:00'
    assert cfg.slot_label(0, 9) == 'Invalid Slot'


def test_time_slots_are_chronological_and_overlap_only_within_a_day():
    cfg = ScheduleConfig(num_days=2, slots_per_day=2, start_date=date(2025, 1, 13))
    slots = cfg.time_slots()
    assert len(slots) == cfg.total_slots == 4
    assert slots == sorted(slots, key=lambda t: (t.date, t.start))
    assert not slots[0].overlaps(slots[1])
    assert slots[0].overlaps(slots[0])
    assert not slots[0].overlaps(slots[2])


def test_flat_index_round_trip():
    cfg = ScheduleConfig(num_days=3, slots_per_day=4)
    assert cfg.flat_index(2, 1) == 9
    assert cfg.day_slot(9) == (2, 1)


def test_from_mapping_parses_strings():
    cfg = ScheduleConfig.from_mapping({'num_days': 2, 'start_date': '2025-02-01', 'day_start': '08:30',
                                       'strategy': 'MAXIMIZE_ROOM_USAGE', 'unrelated': 1})
    assert cfg.start_date == date(2025, 2, 1)
    assert cfg.day_start == time(8, 30)
    assert cfg.strategy is Strategy.STUDENT_FRIENDLY


def test_assignment_is_assigned_only_when_complete():
    a = ExamAssignment('C1')
    assert not a.is_assigned
    a.day, a.slot = 0, 1
    assert not a.is_assigned
    a.classroom_id = 'R1'
    assert a.is_assigned
    b = a.copy()
    b.day = 3
    assert a.day == 0
