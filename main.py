import argparse
import logging
import random
import sys
import threading
from datetime import date, time
from typing import Dict

from examplanner.context import ScheduleContext
from examplanner.io_utils import (
    load_attendance_lists, load_classrooms, load_enrollments_csv, load_schedule_csv, load_toronto_stu,
    save_schedule_csv, schedule_frame,
)
from examplanner.models import Classroom, Course, ScheduleConfig, Strategy
from examplanner.scheduling.evaluation import summary
from examplanner.scheduling.optimizer import DEFAULT_RESTARTS, MultiRestartOptimizer


def synthetic_courses(n_courses: int, n_students: int, seed: int = 42) -> Dict[str, Course]:
    """Random rosters: every student sits 2-4 of the courses."""
    rng = random.Random(seed)
    ids = [f"CourseCode_{i + 1:02d}" for i in range(n_courses)]
    rosters: Dict[str, set] = {cid: set() for cid in ids}
    for s in range(n_students):
        for cid in rng.sample(ids, k=min(len(ids), rng.randint(2, 4))):
            rosters[cid].add(f"Std_ID_{s + 1:03d}")
    return {cid: Course(cid, frozenset(r)) for cid, r in rosters.items()}


def synthetic_classrooms(n_rooms: int, seed: int = 42) -> Dict[str, Classroom]:
    rng = random.Random(seed)
    return {f"Classroom_{i + 1:02d}": Classroom(f"Classroom_{i + 1:02d}", rng.choice([40, 60, 80, 120]))
            for i in range(n_rooms)}


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="examplanner - exam timetabling with backtracking search")
    # Input modes
    p.add_argument('--stu', type=str, help='Toronto .stu file (student -> list of exams)')
    p.add_argument('--enrollments', type=str, help='CSV with course_id,student_id rows')
    p.add_argument('--attendance', type=str, help='Attendance lists (course code line, then student list)')
    p.add_argument('--generate', type=int, default=None, help='Generate N synthetic courses')
    p.add_argument('--students', type=int, default=200, help='Students for --generate')
    p.add_argument('--seed', type=int, default=42)

    # Resources
    p.add_argument('--classrooms', type=str, help='Classrooms CSV with id,capacity (or id;capacity)')
    p.add_argument('--rooms', type=int, default=6, help='Synthetic classrooms when no file is given')

    # Configuration
    p.add_argument('--days', type=int, default=5)
    p.add_argument('--slots', type=int, default=4, help='Slots per day')
    p.add_argument('--start_date', type=date.fromisoformat, default=None, help='YYYY-MM-DD')
    p.add_argument('--day_start', type=time.fromisoformat, default=time(9, 0), help='HH:MM')
    p.add_argument('--slot_minutes', type=int, default=120)
    p.add_argument('--break_minutes', type=int, default=30)
    p.add_argument('--strategy', type=str, default=Strategy.STUDENT_FRIENDLY.value,
                   help='minimize-days | minimize-classrooms | student-friendly')
    p.add_argument('--no_back_to_back', action='store_true',
                   help='Forbid consecutive exams and more than two exams per day for a student')
    p.add_argument('--time_limit', type=float, default=60.0, help='Search time cap (seconds)')
    p.add_argument('--restarts', type=int, default=DEFAULT_RESTARTS)
    p.add_argument('--workers', type=int, default=1, help='Run restart attempts on this many threads')

    # Inspection / output
    p.add_argument('--inspect', type=str, help='Load a saved schedule CSV and print its summary instead')
    p.add_argument('--out_schedule', type=str, default='schedule.csv')
    p.add_argument('--verbose', '-v', action='store_true')
    return p


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    # Load rosters
    if args.stu:
        courses = load_toronto_stu(args.stu)
    elif args.enrollments:
        courses = load_enrollments_csv(args.enrollments)
    elif args.attendance:
        courses = load_attendance_lists(args.attendance)
    elif args.generate is not None:
        courses = synthetic_courses(args.generate, args.students, seed=args.seed)
    else:
        raise SystemExit("Provide --stu, --enrollments, --attendance, or --generate N")

    rooms = load_classrooms(args.classrooms) if args.classrooms else synthetic_classrooms(args.rooms, args.seed)

    try:
        config = ScheduleConfig(
            num_days=args.days,
            slots_per_day=args.slots,
            slot_duration_min=args.slot_minutes,
            break_min=args.break_minutes,
            day_start=args.day_start,
            strategy=args.strategy,
            allow_back_to_back=not args.no_back_to_back,
            timeout_s=args.time_limit,
        )
    except ValueError as e:
        raise SystemExit(str(e))
    if args.start_date is not None:
        config.start_date = args.start_date
    ctx = ScheduleContext.build(courses.values(), rooms.values(), config)

    if args.inspect:
        state = load_schedule_csv(args.inspect, ctx)
        print(summary(ctx, state))
        return 0

    optimizer = MultiRestartOptimizer(ctx, restarts=args.restarts, workers=args.workers)
    outcome = {}
    # search runs off the main thread so Ctrl-C can cancel it cooperatively
    worker = threading.Thread(target=lambda: outcome.update(result=optimizer.generate()), daemon=True)
    worker.start()
    try:
        while worker.is_alive():
            worker.join(0.2)
    except KeyboardInterrupt:
        optimizer.cancel()
        worker.join()
    result = outcome.get('result')
    if result is None:  # the worker raised; its traceback is already on stderr
        return 1

    if not result.success:
        print(f"{result.failure.value}: {result.message}")
        return 1

    print(summary(ctx, result.state, result.score))
    print(schedule_frame(result.state, config).to_string(index=False))
    save_schedule_csv(args.out_schedule, result.state, config)
    print(f"Saved: {args.out_schedule}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
