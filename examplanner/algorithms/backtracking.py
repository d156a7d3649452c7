import logging
import sys
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..constraints import ConstraintSet
from ..context import ScheduleContext
from ..models import Classroom, ExamAssignment, SlotKey, Strategy
from ..state import ScheduleState
from ..scheduling.objective import classroom_number

logger = logging.getLogger(__name__)

ProgressFn = Callable[[float, str], None]

SOLVED = 'solved'
INFEASIBLE = 'infeasible'
TIMEOUT = 'timeout'
CANCELLED = 'cancelled'


@dataclass
class SearchStats:
    nodes_explored: int = 0
    backtracks: int = 0
    deepest: int = 0  # most courses assigned at any point
    blocking_course: Optional[str] = None  # course left without a value at the deepest dead end
    elapsed_s: float = 0.0


def canonical_order(ctx: ScheduleContext) -> List[str]:
    """Most constrained first: largest enrollment, then most conflicts, then id."""
    return sorted(ctx.courses, key=lambda cid: (-ctx.courses[cid].enrollment, -ctx.degree(cid), cid))


class BacktrackingSearch:
    """Depth-first search over (day, slot, classroom) values with MRV and LCV ordering.

    The state is mutated in place and every failed branch is undone through
    ``remove_assignment``, so a search that does not succeed leaves the state
    exactly as it found it. ``deadline`` is a ``time.perf_counter()`` value.
    """

    def __init__(self, ctx: ScheduleContext, constraints: Optional[ConstraintSet] = None,
                 order: Optional[Sequence[str]] = None, deadline: Optional[float] = None,
                 cancel_event: Optional[threading.Event] = None, progress: Optional[ProgressFn] = None):
        self.ctx = ctx
        self.constraints = constraints or ConstraintSet.default(ctx)
        self.order = list(order) if order is not None else canonical_order(ctx)
        self.deadline = deadline
        self.cancel_event = cancel_event
        self.progress = progress
        self.status: Optional[str] = None
        self.stats = SearchStats()

        cfg = ctx.config
        self._rank: Dict[str, int] = {cid: i for i, cid in enumerate(self.order)}
        self._rooms: Dict[str, List[Classroom]] = {cid: ctx.rooms_for(cid) for cid in ctx.courses}
        self._slots: List[SlotKey] = [(d, s) for d in range(cfg.num_days) for s in range(cfg.slots_per_day)]
        preferred = sorted(self._slots, key=self._slot_preference)
        self._slot_rank: Dict[SlotKey, int] = {key: i for i, key in enumerate(preferred)}
        self._dead_end_depth = -1
        self._total = 0

    def solve(self, state: ScheduleState) -> bool:
        started = time.perf_counter()
        self.status = None
        self.stats = SearchStats(deepest=state.assigned_count)
        self._dead_end_depth = -1
        self._total = state.total_courses
        needed = 2 * state.total_courses + 200
        if sys.getrecursionlimit() < needed:
            sys.setrecursionlimit(needed)

        ok = self._backtrack(state)

        self.stats.elapsed_s = time.perf_counter() - started
        if ok:
            self.status = SOLVED
        elif self.status is None:
            self.status = INFEASIBLE
        logger.debug("Search %s after %d nodes, %d backtracks (%.3fs)", self.status,
                     self.stats.nodes_explored, self.stats.backtracks, self.stats.elapsed_s)
        return ok

    def _stopped(self) -> bool:
        if self.status is not None:
            return True
        if self.cancel_event is not None and self.cancel_event.is_set():
            self.status = CANCELLED
            return True
        if self.deadline is not None and time.perf_counter() > self.deadline:
            self.status = TIMEOUT
            return True
        return False

    def _backtrack(self, state: ScheduleState) -> bool:
        if self._stopped():
            return False
        self.stats.nodes_explored += 1
        if state.is_complete():
            return True

        cid = self.select_course(state)
        if cid is None:
            return False
        count = self.ctx.courses[cid].enrollment

        for day, slot, room_id in self.order_values(cid, state):
            candidate = ExamAssignment(cid, day, slot, room_id, student_count=count)
            if not self.constraints.is_consistent(candidate, state):
                continue
            if not state.update_assignment(cid, day, slot, room_id):
                continue
            self._note_progress(state, cid)
            if self._backtrack(state):
                return True
            state.remove_assignment(cid)
            if self.status is not None:
                return False
            self.stats.backtracks += 1

        if state.assigned_count >= self._dead_end_depth:
            self._dead_end_depth = state.assigned_count
            self.stats.blocking_course = cid
        return False

    # -- variable ordering ------------------------------------------------

    def remaining_values(self, cid: str, state: ScheduleState) -> int:
        """Legal (slot, classroom) pairs: big enough and free. Student conflicts are not counted."""
        total = len(self._slots)
        return sum(total - state.classroom_use_count(r.id) for r in self._rooms.get(cid, ()))

    def select_course(self, state: ScheduleState) -> Optional[str]:
        best, best_key = None, None
        fallback = len(self._rank)
        for a in state.unassigned():
            cid = a.course_id
            key = (self.remaining_values(cid, state), -self.ctx.degree(cid), self._rank.get(cid, fallback), cid)
            if best_key is None or key < best_key:
                best, best_key = cid, key
        return best

    # -- value ordering ---------------------------------------------------

    def _slot_preference(self, key: SlotKey):
        day, slot = key
        if self.ctx.config.strategy is Strategy.STUDENT_FRIENDLY:
            last = self.ctx.config.slots_per_day - 1
            if 0 < slot < last:
                edge = 0
            elif slot == 0 and last > 0:
                edge = 1
            else:
                edge = 2
            return (day, edge, slot)
        return (day, slot)

    def constraining_factor(self, pending: List[str], key: SlotKey, state: ScheduleState) -> int:
        """How many unassigned conflicting courses would lose this (day, slot)."""
        G = self.ctx.graph
        here = state.courses_at(*key)
        return sum(1 for n in pending if not any(G.has_edge(n, c) for c in here))

    def order_values(self, cid: str, state: ScheduleState) -> List[Tuple[int, int, str]]:
        rooms = self._rooms.get(cid, [])
        if not rooms:
            return []
        pending = []
        if cid in self.ctx.graph:
            for n in self.ctx.graph.neighbors(cid):
                other = state.get(n)
                if other is not None and not other.is_assigned:
                    pending.append(n)

        strategy = self.ctx.config.strategy
        scored = []
        for key in self._slots:
            free = [r for r in rooms if state.is_classroom_available(r.id, *key)]
            if not free:
                continue
            factor = self.constraining_factor(pending, key, state)
            rank = self._slot_rank[key]
            for r in free:
                used = state.classroom_use_count(r.id)
                if strategy is Strategy.MINIMIZE_CLASSROOMS:
                    # reuse rooms already holding exams, lower numbers first
                    sort_key = (factor, -used, classroom_number(r.id), r.id, rank)
                else:
                    sort_key = (factor, rank, used, r.capacity, r.id)
                scored.append((sort_key, key[0], key[1], r.id))
        scored.sort(key=lambda item: item[0])
        return [(day, slot, room_id) for _, day, slot, room_id in scored]

    def _note_progress(self, state: ScheduleState, cid: str) -> None:
        if state.assigned_count <= self.stats.deepest:
            return
        self.stats.deepest = state.assigned_count
        if self.progress is not None and self._total:
            self.progress(state.assigned_count / self._total, f"Scheduling {cid}...")
