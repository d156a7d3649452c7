from typing import Optional

from ..context import ScheduleContext
from ..graph_build import greedy_clique_lower_bound
from ..state import ScheduleState
from .objective import evaluate_schedule
from .validation import capacity_ok, conflicts_ok, double_booking_ok


def summary(ctx: ScheduleContext, state: ScheduleState, score: Optional[float] = None) -> str:
    G = ctx.graph
    cfg = ctx.config
    slots_used = len(state.occupied_slots())
    days_used = len({day for day, _ in state.occupied_slots()})
    rooms_used = len(state.classroom_usage())
    lb = greedy_clique_lower_bound(G)
    if score is None and state.is_complete():
        score = evaluate_schedule(state, ctx)
    warning = ""
    if cfg.total_slots < lb:
        warning = (
            f"Warning: slots={cfg.total_slots} < clique LB={lb}; a conflict-free schedule is impossible.\n"
        )
    score_line = f"Score ({cfg.strategy.value}): {score:.1f}\n" if score is not None else ""
    return (
        f"Courses: {G.number_of_nodes()}  Conflicts: {G.number_of_edges()}\n"
        f"Assigned: {state.assigned_count}/{state.total_courses} ({state.completion_percentage:.1f}%)\n"
        f"Slots available: {cfg.total_slots}  Used: {slots_used}  Days used: {days_used}/{cfg.num_days}\n"
        f"Classrooms available: {len(ctx.classrooms)}  Used: {rooms_used}\n"
        f"Clique lower bound: {lb}\n"
        f"Valid (conflicts): {conflicts_ok(G, state)}  Valid (capacity): {capacity_ok(ctx, state)}  "
        f"Valid (double-booking): {double_booking_ok(state)}\n"
        f"{score_line}"
        f"{warning}"
    )
