"""Pytest fixtures shared by the engine tests."""

import logging
from datetime import date

import pytest

from examplanner.context import ScheduleContext
from examplanner.models import Classroom, Course, ScheduleConfig, Strategy
from examplanner.scheduling.optimizer import initial_state

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


def make_context(rosters, rooms, **config):
    """rosters: course id -> iterable of students; rooms: classroom id -> capacity."""
    config.setdefault('start_date', date(2025, 1, 13))
    return ScheduleContext.build(
        [Course(cid, frozenset(students)) for cid, students in rosters.items()],
        [Classroom(rid, cap) for rid, cap in rooms.items()],
        ScheduleConfig(**config),
    )


@pytest.fixture
def build_ctx():
    return make_context


@pytest.fixture
def small_ctx():
    # C1-C2 share s2, C2-C3 share s4, C4 is independent
    rosters = {
        'C1': ['s1', 's2'],
        'C2': ['s2', 's3', 's4'],
        'C3': ['s4', 's5'],
        'C4': ['s6'],
    }
    return make_context(rosters, {'Room_1': 10, 'Room_2': 2}, num_days=2, slots_per_day=3)


@pytest.fixture
def small_state(small_ctx):
    return initial_state(small_ctx)


@pytest.fixture
def strict_ctx():
    rosters = {
        'A': ['s1', 's2'],
        'B': ['s1'],
        'C': ['s1', 's3'],
        'D': ['s9'],
    }
    return make_context(rosters, {'R1': 5, 'R2': 5}, num_days=2, slots_per_day=3,
                        allow_back_to_back=False, strategy=Strategy.MINIMIZE_DAYS)
