# evalportal/services/capacity_service.py
"""
Evaluator load bookkeeping.

users.current_load is only a cache of the active assignment weight. Anything
that gates a write must call live_load(); the cache is for ordering only.
"""
from typing import Dict, Iterable

from sqlalchemy import func
from sqlalchemy.orm import Session

from evalportal.models.assignment import ACTIVE_STATUSES, SubmissionAssignment
from evalportal.models.user import User


CAPACITY_RULE = "current_load + submission_weight <= max_capacity"


def has_room(load: int, weight: int, capacity: int) -> bool:
    return load + weight <= capacity


def live_load(db: Session, faculty_id: int) -> int:
    db.flush()
    total = (
        db.query(func.coalesce(func.sum(SubmissionAssignment.submission_weight), 0))
        .filter(
            SubmissionAssignment.faculty_id == faculty_id,
            SubmissionAssignment.status.in_(ACTIVE_STATUSES),
        )
        .scalar()
    )
    return int(total or 0)


def live_loads(db: Session, faculty_ids: Iterable[int]) -> Dict[int, int]:
    ids = list(faculty_ids)
    loads = {fid: 0 for fid in ids}
    if not ids:
        return loads

    db.flush()
    rows = (
        db.query(
            SubmissionAssignment.faculty_id,
            func.sum(SubmissionAssignment.submission_weight),
        )
        .filter(
            SubmissionAssignment.faculty_id.in_(ids),
            SubmissionAssignment.status.in_(ACTIVE_STATUSES),
        )
        .group_by(SubmissionAssignment.faculty_id)
        .all()
    )
    for faculty_id, total in rows:
        loads[faculty_id] = int(total or 0)
    return loads


def recompute_load(db: Session, faculty_id: int) -> int:
    """
    Recompute and persist one evaluator's current_load.
    Must run inside the transaction of the mutation that changed the load.
    """
    load = live_load(db, faculty_id)
    faculty = db.get(User, faculty_id)
    if faculty is not None:
        faculty.current_load = load
        db.flush()
    return load


def recompute_loads(db: Session, faculty_ids: Iterable[int]) -> Dict[int, int]:
    return {fid: recompute_load(db, fid) for fid in sorted(set(faculty_ids))}
