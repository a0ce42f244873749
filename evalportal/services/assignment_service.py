# evalportal/services/assignment_service.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from evalportal.core.exceptions import AssignmentError, NotFoundError, ValidationError
from evalportal.core.timeutil import ensure_utc, utcnow
from evalportal.db.session import transaction
from evalportal.models.assignment import ASSIGNED, EVALUATED, SubmissionAssignment
from evalportal.models.user import User
from evalportal.services import assignment_store as store
from evalportal.services.audit_service import log_assignment
from evalportal.services.capacity_service import live_load, live_loads, recompute_load, recompute_loads
from evalportal.services.guards import ASSIGNMENT_GUARDS, TransitionContext, enforce
from evalportal.services.load_balancer import Slot, WorkItem, plan_placements

logger = logging.getLogger(__name__)

DEFAULT_WEIGHT = 1


def _actor_fields(admin: Optional[User]) -> Dict[str, Any]:
    if admin is None:
        return {"actor_role": "system", "admin_id": None}
    return {"actor_role": admin.role, "admin_id": admin.id if admin.role == "admin" else None}


def smart_assign(
    db: Session,
    *,
    admin: Optional[User] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Assign every unassigned pending submission (oldest first) to the least
    loaded available evaluator that still has room.

    Stops at the first submission nobody can take; the rest stay
    unassigned. Evaluator loads are written once, after the loop.
    Returns how many submissions were assigned.
    """
    now = ensure_utc(now) if now else utcnow()

    with transaction(db):
        submissions = store.list_unassigned_submissions(db)
        faculty = store.list_available_faculty(db)
        if not submissions or not faculty:
            logger.info(
                "Smart assign: nothing to do (%d unassigned, %d available faculty)",
                len(submissions),
                len(faculty),
            )
            return 0

        slots = [Slot(f.id, f.max_capacity) for f in faculty]
        seed = {f.id: f.current_load for f in faculty}
        items = [WorkItem(s.id, DEFAULT_WEIGHT) for s in submissions]

        placements, _ = plan_placements(items, slots, seed, stop_when_full=True)

        for item, faculty_id in placements:
            store.upsert_assignment(
                db,
                submission_id=item.key,
                faculty_id=faculty_id,
                now=now,
                weight=item.weight,
            )
            log_assignment(
                db,
                submission_id=item.key,
                action_type="auto_assign",
                to_faculty_id=faculty_id,
                notes="Smart auto-assign",
                **_actor_fields(admin),
            )

        recompute_loads(db, {faculty_id for _, faculty_id in placements})

    logger.info(
        "Smart assign placed %d of %d submissions",
        len(placements),
        len(submissions),
    )
    return len(placements)


def _assign_one(
    db: Session,
    *,
    submission_id: int,
    faculty_id: int,
    admin: User,
    action_type: str,
    now: datetime,
    weight: Optional[int] = None,
    notes: Optional[str] = None,
) -> Optional[SubmissionAssignment]:
    """
    Place one submission with one evaluator inside the caller's transaction.
    Returns None when it already sits with that evaluator.
    """
    store.lock_submission(db, submission_id)
    existing = store.get_assignment(db, submission_id, for_update=True)
    target = store.lock_faculty(
        db,
        faculty_id,
        also_lock=[existing.faculty_id] if existing is not None else [],
    )

    if (
        existing is not None
        and existing.faculty_id == target.id
        and existing.status != EVALUATED
    ):
        return None

    ctx = TransitionContext(
        actor=admin,
        now=now,
        assignment=existing,
        destination=target,
        destination_load=live_load(db, target.id),
        weight=weight or (existing.submission_weight if existing else DEFAULT_WEIGHT),
    )
    enforce(ASSIGNMENT_GUARDS, ctx)

    assignment, previous_faculty_id = store.upsert_assignment(
        db,
        submission_id=submission_id,
        faculty_id=target.id,
        now=now,
        weight=weight,
    )
    log_assignment(
        db,
        submission_id=submission_id,
        action_type=action_type,
        from_faculty_id=previous_faculty_id,
        to_faculty_id=target.id,
        notes=notes,
        details={"version": assignment.version},
        **_actor_fields(admin),
    )

    recompute_load(db, target.id)
    if previous_faculty_id is not None and previous_faculty_id != target.id:
        recompute_load(db, previous_faculty_id)
    return assignment


def _lock_batch(db: Session, submission_ids: List[int], faculty_id: int) -> None:
    """Take every row lock a batch will need before its first write, in store lock order."""
    store.lock_submissions(db, submission_ids)
    existing = store.lock_assignments(db, submission_ids)
    store.lock_users(db, [faculty_id, *(a.faculty_id for a in existing)])


def bulk_assign(
    db: Session,
    *,
    submission_ids: List[int],
    faculty_id: int,
    admin: User,
    weight: Optional[int] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Assign many submissions to one evaluator.

    Each item is checked against the live load; a bad item is skipped and
    reported, it never aborts the rest of the batch.
    """
    if not submission_ids:
        raise ValidationError("submission_ids must not be empty")
    if weight is not None and weight < 1:
        raise ValidationError("submission_weight must be a positive integer")
    now = ensure_utc(now) if now else utcnow()

    assigned = 0
    skipped = 0
    errors: List[Dict[str, Any]] = []

    ids = list(dict.fromkeys(submission_ids))

    with transaction(db):
        _lock_batch(db, ids, faculty_id)
        for submission_id in ids:
            try:
                result = _assign_one(
                    db,
                    submission_id=submission_id,
                    faculty_id=faculty_id,
                    admin=admin,
                    action_type="bulk_assign",
                    now=now,
                    weight=weight,
                    notes=notes or "Bulk assign",
                )
            except AssignmentError as exc:
                logger.info(
                    "Bulk assign skipped submission %s -> faculty %s: %s",
                    submission_id,
                    faculty_id,
                    exc.message,
                )
                skipped += 1
                errors.append(
                    {
                        "submission_id": submission_id,
                        "faculty_id": faculty_id,
                        "error": exc.message,
                    }
                )
                continue

            if result is None:
                skipped += 1
            else:
                assigned += 1

    logger.info(
        "Bulk assign to faculty %s: %d assigned, %d skipped",
        faculty_id,
        assigned,
        skipped,
    )
    return {"assigned": assigned, "skipped": skipped, "errors": errors}


def manual_assign(
    db: Session,
    *,
    submission_id: int,
    faculty_id: int,
    admin: User,
    weight: Optional[int] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SubmissionAssignment:
    """Admin places a single submission; any failure is raised to the caller."""
    if weight is not None and weight < 1:
        raise ValidationError("submission_weight must be a positive integer")
    now = ensure_utc(now) if now else utcnow()

    with transaction(db):
        assignment = _assign_one(
            db,
            submission_id=submission_id,
            faculty_id=faculty_id,
            admin=admin,
            action_type="manual_assign",
            now=now,
            weight=weight,
            notes=notes or "Manual assign",
        )
        if assignment is None:
            assignment = store.get_assignment(db, submission_id)

    return assignment


def redistribute(
    db: Session,
    *,
    from_faculty_id: int,
    admin: Optional[User] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Drain an evaluator's active work onto available peers with spare
    capacity. Whatever does not fit stays with the source.
    Returns the number of assignments moved.
    """
    now = ensure_utc(now) if now else utcnow()

    with transaction(db):
        active = store.list_active_for_faculty(db, from_faculty_id, for_update=True)
        candidates = store.list_available_faculty(db, exclude_id=from_faculty_id)
        locked = store.lock_users(db, [from_faculty_id, *(c.id for c in candidates)])

        source = locked.get(from_faculty_id)
        if source is None or source.role != "faculty":
            raise NotFoundError(f"Faculty {from_faculty_id} not found")
        # availability may have flipped between the read and the lock
        peers = [locked[c.id] for c in candidates if c.id in locked and locked[c.id].is_available]
        peers.sort(key=lambda p: (p.current_load, p.id))
        if not active or not peers:
            logger.info(
                "Redistribute faculty %s: nothing to move (%d active, %d peers)",
                source.id,
                len(active),
                len(peers),
            )
            return 0

        slots = [Slot(p.id, p.max_capacity) for p in peers]
        seed = live_loads(db, [p.id for p in peers])
        items = [WorkItem(a.id, a.submission_weight) for a in active]
        by_id = {a.id: a for a in active}

        placements, _ = plan_placements(items, slots, seed, stop_when_full=False)

        for item, faculty_id in placements:
            assignment = by_id[item.key]
            moved = store.apply_versioned_update(
                db,
                assignment_id=assignment.id,
                expected_version=assignment.version,
                values={
                    "faculty_id": faculty_id,
                    "status": ASSIGNED,
                    "locked_by": None,
                    "locked_at": None,
                    "assigned_at": now,
                },
            )
            log_assignment(
                db,
                submission_id=moved.submission_id,
                action_type="redistribute",
                from_faculty_id=source.id,
                to_faculty_id=faculty_id,
                notes="Overload redistribution",
                details={"version": moved.version},
                **_actor_fields(admin),
            )

        recompute_loads(db, {source.id} | {faculty_id for _, faculty_id in placements})

    logger.info(
        "Redistributed %d of %d assignments away from faculty %s",
        len(placements),
        len(active),
        from_faculty_id,
    )
    return len(placements)


def list_faculty_workload(db: Session) -> List[Dict[str, Any]]:
    faculty = db.query(User).filter(User.role == "faculty").order_by(User.id.asc()).all()
    loads = live_loads(db, [f.id for f in faculty])
    return [
        {
            "faculty_id": f.id,
            "name": f.name,
            "email": f.email,
            "is_available": f.is_available,
            "max_capacity": f.max_capacity,
            "current_load": f.current_load,
            "live_load": loads[f.id],
        }
        for f in faculty
    ]
