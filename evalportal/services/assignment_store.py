# evalportal/services/assignment_store.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import case, update
from sqlalchemy.orm import Session

from evalportal.core.exceptions import BusinessRuleError, ConflictError, NotFoundError
from evalportal.core.timeutil import ensure_utc
from evalportal.models.assignment import (
    ACTIVE_STATUSES,
    ASSIGNED,
    EVALUATED,
    SubmissionAssignment,
)
from evalportal.models.submission import Submission
from evalportal.models.user import User

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# Row-lock order, shared by every service that takes more than one lock:
#   submissions (ascending id) -> submission_assignments (ascending
#   submission_id) -> users (ascending id)
# An operation may skip a level but never go back up one.


def get_assignment(
    db: Session,
    submission_id: int,
    *,
    for_update: bool = False,
) -> Optional[SubmissionAssignment]:
    q = db.query(SubmissionAssignment).filter(
        SubmissionAssignment.submission_id == submission_id
    )
    if for_update:
        q = q.with_for_update()
    return q.one_or_none()


def lock_assignment(db: Session, submission_id: int) -> SubmissionAssignment:
    """SELECT ... FOR UPDATE on the assignment of a submission."""
    assignment = get_assignment(db, submission_id, for_update=True)
    if assignment is None:
        raise NotFoundError(f"No assignment found for submission {submission_id}")
    return assignment


def lock_assignments(db: Session, submission_ids: Iterable[int]) -> List[SubmissionAssignment]:
    ids = sorted(set(submission_ids))
    if not ids:
        return []
    return (
        db.query(SubmissionAssignment)
        .filter(SubmissionAssignment.submission_id.in_(ids))
        .order_by(SubmissionAssignment.submission_id.asc())
        .with_for_update()
        .all()
    )


def lock_submission(db: Session, submission_id: int) -> Submission:
    submission = (
        db.query(Submission)
        .filter(Submission.id == submission_id)
        .with_for_update()
        .one_or_none()
    )
    if submission is None:
        raise NotFoundError(f"Submission {submission_id} not found")
    return submission


def lock_submissions(db: Session, submission_ids: Iterable[int]) -> List[Submission]:
    ids = sorted(set(submission_ids))
    if not ids:
        return []
    return (
        db.query(Submission)
        .filter(Submission.id.in_(ids))
        .order_by(Submission.id.asc())
        .with_for_update()
        .all()
    )


def lock_users(db: Session, user_ids: Iterable[Optional[int]]) -> Dict[int, User]:
    """SELECT ... FOR UPDATE on several users rows in one statement, ascending id."""
    ids = sorted({uid for uid in user_ids if uid is not None})
    if not ids:
        return {}
    rows = (
        db.query(User)
        .filter(User.id.in_(ids))
        .order_by(User.id.asc())
        .with_for_update()
        .all()
    )
    return {u.id: u for u in rows}


def lock_faculty(
    db: Session,
    faculty_id: int,
    *,
    also_lock: Iterable[Optional[int]] = (),
) -> User:
    """
    Lock an evaluator row, together with any other users rows the caller is
    about to touch (also_lock). Non-faculty users count as missing.
    """
    locked = lock_users(db, [faculty_id, *also_lock])
    faculty = locked.get(faculty_id)
    if faculty is None or faculty.role != "faculty":
        raise NotFoundError(f"Faculty {faculty_id} not found")
    return faculty


def list_available_faculty(db: Session, *, exclude_id: Optional[int] = None) -> List[User]:
    """Available evaluators, least loaded (by cached load) first. No locks."""
    q = db.query(User).filter(User.role == "faculty", User.is_available.is_(True))
    if exclude_id is not None:
        q = q.filter(User.id != exclude_id)
    return q.order_by(User.current_load.asc(), User.id.asc()).all()


def list_unassigned_submissions(db: Session) -> List[Submission]:
    """
    Pending submissions with no assignment row, oldest first.
    Rows claimed by a concurrent balancer run are skipped.
    """
    return (
        db.query(Submission)
        .outerjoin(
            SubmissionAssignment,
            SubmissionAssignment.submission_id == Submission.id,
        )
        .filter(Submission.status == "pending", SubmissionAssignment.id.is_(None))
        .order_by(Submission.submitted_at.asc(), Submission.id.asc())
        .with_for_update(of=Submission, skip_locked=True)
        .all()
    )


def _work_order(assignment: SubmissionAssignment):
    return (
        0 if assignment.status == ASSIGNED else 1,
        ensure_utc(assignment.assigned_at) or EPOCH,
        assignment.id,
    )


def list_active_for_faculty(
    db: Session,
    faculty_id: int,
    *,
    for_update: bool = False,
) -> List[SubmissionAssignment]:
    """Untouched work first, then in-progress; oldest placement first within each."""
    q = db.query(SubmissionAssignment).filter(
        SubmissionAssignment.faculty_id == faculty_id,
        SubmissionAssignment.status.in_(ACTIVE_STATUSES),
    )
    if for_update:
        # lock in submission_id order, then sort in memory
        rows = q.order_by(SubmissionAssignment.submission_id.asc()).with_for_update().all()
        return sorted(rows, key=_work_order)
    return q.order_by(
        case((SubmissionAssignment.status == ASSIGNED, 0), else_=1),
        SubmissionAssignment.assigned_at.asc(),
        SubmissionAssignment.id.asc(),
    ).all()


def apply_versioned_update(
    db: Session,
    *,
    assignment_id: int,
    expected_version: int,
    values: Dict[str, Any],
) -> SubmissionAssignment:
    """
    UPDATE ... WHERE id = :id AND version = :expected, bumping version by one.

    Zero matched rows means somebody else wrote the row after we read it;
    that is a ConflictError, never a silent no-op.
    """
    values = dict(values)
    values["version"] = expected_version + 1

    result = db.execute(
        update(SubmissionAssignment)
        .where(
            SubmissionAssignment.id == assignment_id,
            SubmissionAssignment.version == expected_version,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.warning(
            "Version conflict on assignment %s (expected version %s)",
            assignment_id,
            expected_version,
        )
        raise ConflictError(
            "Assignment was modified concurrently; reload and try again",
            {"expected_version": expected_version},
        )

    assignment = db.get(SubmissionAssignment, assignment_id)
    db.refresh(assignment)
    return assignment


def upsert_assignment(
    db: Session,
    *,
    submission_id: int,
    faculty_id: int,
    now: datetime,
    weight: Optional[int] = None,
) -> Tuple[SubmissionAssignment, Optional[int]]:
    """
    Place a submission with an evaluator.

    Creates the row (version 1) if the submission has none, otherwise
    re-targets the existing row through the versioned write.
    Returns (assignment, previous_faculty_id).
    """
    existing = get_assignment(db, submission_id, for_update=True)
    if existing is None:
        assignment = SubmissionAssignment(
            submission_id=submission_id,
            faculty_id=faculty_id,
            status=ASSIGNED,
            version=1,
            reallocation_count=0,
            submission_weight=weight or 1,
            assigned_at=now,
        )
        db.add(assignment)
        db.flush()
        return assignment, None

    if existing.status == EVALUATED:
        raise BusinessRuleError(f"Submission {submission_id} is already evaluated")

    previous_faculty_id = existing.faculty_id
    values: Dict[str, Any] = {
        "faculty_id": faculty_id,
        "status": ASSIGNED,
        "locked_by": None,
        "locked_at": None,
        "assigned_at": now,
    }
    if weight is not None:
        values["submission_weight"] = weight

    assignment = apply_versioned_update(
        db,
        assignment_id=existing.id,
        expected_version=existing.version,
        values=values,
    )
    return assignment, previous_faculty_id
