import logging
import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from ..algorithms.backtracking import (
    CANCELLED, INFEASIBLE, SOLVED, TIMEOUT, BacktrackingSearch, ProgressFn, SearchStats, canonical_order,
)
from ..constraints import ConstraintSet
from ..context import ScheduleContext
from ..models import ExamAssignment
from ..state import ScheduleState
from .objective import evaluate_schedule

logger = logging.getLogger(__name__)

DEFAULT_RESTARTS = 5


class FailureKind(str, Enum):
    NO_COURSES = 'no-courses'
    NO_CLASSROOMS = 'no-classrooms'
    INVALID_CONFIG = 'invalid-config'
    TIMEOUT = 'timeout'
    INFEASIBLE = 'infeasible'
    CANCELLED = 'cancelled'


@dataclass
class GenerationResult:
    state: Optional[ScheduleState] = None
    score: Optional[float] = None
    failure: Optional[FailureKind] = None
    message: str = ''
    attempts_run: int = 0
    successful_attempts: int = 0
    scheduled_before_failure: int = 0
    blocking_course: Optional[str] = None
    stats: List[SearchStats] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failure is None and self.state is not None

    @property
    def cancelled(self) -> bool:
        return self.failure is FailureKind.CANCELLED


@dataclass
class _Attempt:
    index: int
    status: str
    state: ScheduleState
    stats: SearchStats
    score: Optional[float] = None


def perturb_order(order: Sequence[str], attempt: int) -> List[str]:
    """Swap 2-3 random pairs, seeded by the attempt number so runs are reproducible."""
    rng = random.Random(attempt * 1000)
    perturbed = list(order)
    swaps = 2 + rng.randrange(2)
    for _ in range(swaps):
        if len(perturbed) < 2:
            break
        i, j = rng.randrange(len(perturbed)), rng.randrange(len(perturbed))
        perturbed[i], perturbed[j] = perturbed[j], perturbed[i]
    return perturbed


def initial_state(ctx: ScheduleContext) -> ScheduleState:
    state = ScheduleState(ctx.config)
    for cid in sorted(ctx.courses):
        state.add_assignment(ExamAssignment(cid, student_count=ctx.courses[cid].enrollment))
    return state


class MultiRestartOptimizer:
    """Run the backtracking search several times and keep the best-scoring schedule.

    ``cancel_event`` may be shared with other components; setting it stops
    every attempt in flight and the request reports ``cancelled``. The
    configured timeout is a single deadline for the whole request.
    """

    def __init__(self, ctx: ScheduleContext, restarts: int = DEFAULT_RESTARTS, workers: int = 1,
                 progress: Optional[ProgressFn] = None, cancel_event: Optional[threading.Event] = None):
        if restarts < 1:
            raise ValueError("restarts must be at least 1")
        self.ctx = ctx
        self.restarts = restarts
        self.workers = max(1, workers)
        self.progress = progress
        self.cancel_event = cancel_event if cancel_event is not None else threading.Event()

    def cancel(self) -> None:
        self.cancel_event.set()

    def _report(self, fraction: float, message: str) -> None:
        if self.progress is not None:
            self.progress(min(max(fraction, 0.0), 1.0), message)

    def check_inputs(self) -> Optional[GenerationResult]:
        err = self.ctx.config.validate()
        if err:
            return GenerationResult(failure=FailureKind.INVALID_CONFIG, message=err)
        if not self.ctx.courses:
            return GenerationResult(failure=FailureKind.NO_COURSES, message="No courses to schedule")
        if not self.ctx.classrooms:
            return GenerationResult(failure=FailureKind.NO_CLASSROOMS, message="No classrooms available")
        too_big = sorted(cid for cid in self.ctx.courses if not self.ctx.rooms_for(cid))
        if too_big:
            largest = max(r.capacity for r in self.ctx.classrooms.values())
            return GenerationResult(
                failure=FailureKind.INFEASIBLE, blocking_course=too_big[0],
                message=(f"No classroom can seat {', '.join(too_big)} "
                         f"(largest capacity is {largest})"))
        return None

    def generate(self, initial: Optional[ScheduleState] = None) -> GenerationResult:
        problem = self.check_inputs()
        if problem is not None:
            logger.warning("Generation rejected: %s", problem.message)
            return problem
        base = initial if initial is not None else initial_state(self.ctx)
        unknown = sorted(cid for cid in base.assignments if cid not in self.ctx.courses)
        if unknown:
            raise ValueError(f"Initial state holds courses missing from the context: {', '.join(unknown)}")

        # build the cached indices once before any worker touches them
        self.ctx.graph
        self.ctx.student_courses
        order = canonical_order(self.ctx)
        deadline = time.perf_counter() + self.ctx.config.timeout_s
        logger.info("Generating schedule for %d courses, %d classrooms, %d slots (strategy=%s, restarts=%d)",
                    len(self.ctx.courses), len(self.ctx.classrooms), self.ctx.config.total_slots,
                    self.ctx.config.strategy.value, self.restarts)
        self._report(0.0, "Generating schedules (multi-restart optimization)...")

        if self.workers > 1:
            attempts = self._run_parallel(base, order, deadline)
        else:
            attempts = self._run_sequential(base, order, deadline)
        return self._summarize(base, attempts)

    def _run_attempt(self, index: int, base: ScheduleState, order: Sequence[str], deadline: float) -> _Attempt:
        state = base.copy()
        attempt_order = order if index == 0 else perturb_order(order, index)

        def on_progress(fraction: float, message: str) -> None:
            self._report((index + fraction) / self.restarts, f"Attempt {index + 1}/{self.restarts}: {message}")

        search = BacktrackingSearch(self.ctx, ConstraintSet.default(self.ctx), order=attempt_order,
                                    deadline=deadline, cancel_event=self.cancel_event, progress=on_progress)
        search.solve(state)
        result = _Attempt(index=index, status=search.status, state=state, stats=search.stats)
        if search.status == SOLVED:
            result.score = evaluate_schedule(state, self.ctx)
            logger.debug("Attempt %d scored %.1f", index + 1, result.score)
            self._report((index + 1) / self.restarts,
                         f"Attempt {index + 1}/{self.restarts}: Found schedule (score: {result.score:.1f})")
        else:
            logger.debug("Attempt %d ended %s at depth %d", index + 1, search.status, search.stats.deepest)
            self._report((index + 1) / self.restarts, f"Attempt {index + 1}/{self.restarts}: No valid schedule")
        return result

    def _run_sequential(self, base, order, deadline) -> List[_Attempt]:
        attempts: List[_Attempt] = []
        for index in range(self.restarts):
            if self.cancel_event.is_set():
                break
            attempt = self._run_attempt(index, base, order, deadline)
            attempts.append(attempt)
            # an exhausted search has covered every ordering; a passed deadline stops the rest
            if attempt.status in (INFEASIBLE, TIMEOUT, CANCELLED):
                break
        return attempts

    def _run_parallel(self, base, order, deadline) -> List[_Attempt]:
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            futures = [pool.submit(self._run_attempt, i, base, order, deadline) for i in range(self.restarts)]
            return [f.result() for f in futures]

    def _summarize(self, base: ScheduleState, attempts: List[_Attempt]) -> GenerationResult:
        stats = [a.stats for a in attempts]
        solved = [a for a in attempts if a.status == SOLVED]
        result = GenerationResult(attempts_run=len(attempts), successful_attempts=len(solved), stats=stats)

        if self.cancel_event.is_set() or any(a.status == CANCELLED for a in attempts):
            result.failure = FailureKind.CANCELLED
            result.message = "Schedule generation was cancelled"
            logger.info(result.message)
            return result

        if solved:
            best = min(solved, key=lambda a: (a.score, a.index))
            result.state = best.state
            result.score = best.score
            result.message = (f"Best schedule: score {best.score:.1f} "
                              f"({len(solved)}/{len(attempts)} attempts succeeded)")
            logger.info(result.message)
            self._report(1.0, f"Complete! {result.message}")
            return result

        deepest = max(attempts, key=lambda a: a.stats.deepest) if attempts else None
        if deepest is not None:
            result.scheduled_before_failure = deepest.stats.deepest
            result.blocking_course = deepest.stats.blocking_course
        total = base.total_courses
        # one exhausted attempt proves infeasibility even if a parallel one ran out of time
        if not any(a.status == INFEASIBLE for a in attempts) and any(a.status == TIMEOUT for a in attempts):
            result.failure = FailureKind.TIMEOUT
            result.message = (f"Timed out after {self.ctx.config.timeout_s:g}s with "
                              f"{result.scheduled_before_failure}/{total} courses scheduled; "
                              f"more time or restarts may help")
        else:
            result.failure = FailureKind.INFEASIBLE
            blocking = f" ({result.blocking_course} could not be placed)" if result.blocking_course else ''
            result.message = (f"No valid schedule exists: {result.scheduled_before_failure}/{total} "
                              f"courses scheduled before the dead end{blocking}. "
                              f"Try increasing days/slots or classrooms.")
        logger.warning(result.message)
        return result
