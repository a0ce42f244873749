# evalportal/services/load_balancer.py
"""
Greedy capacity-aware placement.

Pure functions only: the running load map is passed in and handed back,
so the planner can be exercised without a database.
"""
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple


class Slot(NamedTuple):
    faculty_id: int
    max_capacity: int


class WorkItem(NamedTuple):
    key: int
    weight: int = 1


Placement = Tuple[WorkItem, int]


def pick_evaluator(
    slots: Sequence[Slot],
    loads: Dict[int, int],
    weight: int = 1,
) -> Optional[int]:
    """
    Least-loaded slot that still fits `weight`; earlier slots win ties.
    """
    best_id = None
    best_load = None
    for slot in slots:
        load = loads.get(slot.faculty_id, 0)
        if load + weight > slot.max_capacity:
            continue
        if best_load is None or load < best_load:
            best_id = slot.faculty_id
            best_load = load
    return best_id


def plan_placements(
    items: Sequence[WorkItem],
    slots: Sequence[Slot],
    loads: Dict[int, int],
    *,
    stop_when_full: bool = True,
) -> Tuple[List[Placement], Dict[int, int]]:
    """
    Place items in order onto slots.

    Returns (placements, loads_after). The input `loads` is not modified.
    With stop_when_full the first item that fits nowhere ends the run;
    otherwise it is left behind and the next item is tried.
    """
    running = dict(loads)
    placements: List[Placement] = []

    for item in items:
        faculty_id = pick_evaluator(slots, running, item.weight)
        if faculty_id is None:
            if stop_when_full:
                break
            continue
        placements.append((item, faculty_id))
        running[faculty_id] = running.get(faculty_id, 0) + item.weight

    return placements, running
