# evalportal/services/evaluation_service.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from evalportal.core.config import settings
from evalportal.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from evalportal.core.timeutil import ensure_utc, utcnow
from evalportal.db.session import transaction
from evalportal.models.assignment import (
    ACTIVE_STATUSES,
    EVALUATED,
    IN_PROGRESS,
    SubmissionAssignment,
)
from evalportal.models.evaluation import ManualEvaluation
from evalportal.models.submission import Submission
from evalportal.models.user import User
from evalportal.services import assignment_store as store
from evalportal.services.audit_service import log_assignment
from evalportal.services.capacity_service import recompute_load
from evalportal.services.guards import EVALUATION_GUARDS, TransitionContext, enforce

logger = logging.getLogger(__name__)

SCORE_FIELDS = ("code_quality", "requirements", "expected_output")


def start_evaluation(
    db: Session,
    *,
    submission_id: int,
    actor: User,
    expected_version: Optional[int] = None,
    now: Optional[datetime] = None,
) -> SubmissionAssignment:
    """
    assigned -> in_progress, taking the soft lock.
    Re-entering one's own session just refreshes the lock.
    A lock whose lease ran out may be taken over.
    """
    now = ensure_utc(now) if now else utcnow()

    with transaction(db):
        assignment = store.lock_assignment(db, submission_id)
        enforce(
            EVALUATION_GUARDS,
            TransitionContext(
                actor=actor,
                now=now,
                assignment=assignment,
                expected_version=expected_version,
            ),
        )
        assignment = store.apply_versioned_update(
            db,
            assignment_id=assignment.id,
            expected_version=assignment.version,
            values={"status": IN_PROGRESS, "locked_by": actor.id, "locked_at": now},
        )

    logger.info("Faculty %s started evaluating submission %s", actor.id, submission_id)
    return assignment


def heartbeat(
    db: Session,
    *,
    submission_id: int,
    actor: User,
    now: Optional[datetime] = None,
) -> SubmissionAssignment:
    """
    Refresh locked_at. Fails with NotFoundError ("lock lost") unless the
    caller still holds the lock on an in-progress assignment.
    """
    now = ensure_utc(now) if now else utcnow()

    with transaction(db):
        assignment = store.get_assignment(db, submission_id, for_update=True)
        if (
            assignment is None
            or assignment.status != IN_PROGRESS
            or assignment.locked_by != actor.id
        ):
            logger.info("Heartbeat from %s on submission %s: lock lost", actor.id, submission_id)
            raise NotFoundError("Lock lost: this evaluation session is no longer active")

        assignment = store.apply_versioned_update(
            db,
            assignment_id=assignment.id,
            expected_version=assignment.version,
            values={"locked_at": now},
        )
    return assignment


def _validate_scores(scores: Dict[str, int]) -> int:
    total = 0
    for field in SCORE_FIELDS:
        value = scores.get(field, 0)
        if value is None:
            value = 0
        if not isinstance(value, int) or value < 0 or value > 100:
            raise ValidationError(f"{field} must be an integer between 0 and 100")
        total += value
    if total > 100:
        raise ValidationError("Total score cannot exceed 100")
    return total


def submit_evaluation(
    db: Session,
    *,
    submission_id: int,
    actor: User,
    scores: Dict[str, int],
    comments: Optional[str] = None,
    expected_version: Optional[int] = None,
    now: Optional[datetime] = None,
) -> ManualEvaluation:
    """
    Record the manual evaluation and close the assignment.

    - upsert manual_evaluations
    - submission -> passed / failed (total >= PASS_THRESHOLD)
    - assignment -> evaluated, lock cleared, evaluator load recomputed
    - 'evaluate' audit row
    """
    total = _validate_scores(scores)
    now = ensure_utc(now) if now else utcnow()

    with transaction(db):
        submission = store.lock_submission(db, submission_id)
        assignment = store.lock_assignment(db, submission_id)
        enforce(
            EVALUATION_GUARDS,
            TransitionContext(
                actor=actor,
                now=now,
                assignment=assignment,
                expected_version=expected_version,
                allow_admin=True,
            ),
        )
        faculty_id = assignment.faculty_id

        evaluation = (
            db.query(ManualEvaluation)
            .filter(ManualEvaluation.submission_id == submission_id)
            .one_or_none()
        )
        if evaluation is None:
            evaluation = ManualEvaluation(submission_id=submission_id)
            db.add(evaluation)
        evaluation.faculty_id = actor.id
        evaluation.code_quality_score = scores.get("code_quality") or 0
        evaluation.requirements_score = scores.get("requirements") or 0
        evaluation.expected_output_score = scores.get("expected_output") or 0
        evaluation.total_score = total
        evaluation.comments = comments

        passed = total >= settings.PASS_THRESHOLD
        submission.status = "passed" if passed else "failed"
        submission.passed = passed
        submission.evaluated_at = now

        assignment = store.apply_versioned_update(
            db,
            assignment_id=assignment.id,
            expected_version=assignment.version,
            values={"status": EVALUATED, "locked_by": None, "locked_at": None},
        )
        recompute_load(db, faculty_id)

        log_assignment(
            db,
            submission_id=submission_id,
            action_type="evaluate",
            from_faculty_id=faculty_id,
            actor_role=actor.role,
            admin_id=actor.id if actor.role == "admin" else None,
            notes=comments,
            details={"total_score": total, "passed": passed},
        )
        db.flush()
        db.refresh(evaluation)

    logger.info(
        "Submission %s evaluated by %s: score=%s passed=%s",
        submission_id,
        actor.id,
        total,
        passed,
    )
    return evaluation


def get_submission_detail(db: Session, *, submission_id: int, actor: User) -> Dict[str, Any]:
    """
    Read-only view of one submission: the submission, its assignment and the
    manual evaluation if there is one. Faculty only see their own; admins see any.
    """
    assignment = store.get_assignment(db, submission_id)
    if actor.role != "admin" and (assignment is None or assignment.faculty_id != actor.id):
        raise AuthorizationError("You are not assigned to this submission")

    submission = db.get(Submission, submission_id)
    if submission is None:
        raise NotFoundError(f"Submission {submission_id} not found")

    evaluation = (
        db.query(ManualEvaluation)
        .filter(ManualEvaluation.submission_id == submission_id)
        .one_or_none()
    )
    return {"submission": submission, "assignment": assignment, "evaluation": evaluation}


def faculty_queue(db: Session, *, faculty: User) -> List[SubmissionAssignment]:
    """Active work of one evaluator, oldest submission first."""
    return (
        db.query(SubmissionAssignment)
        .join(Submission, Submission.id == SubmissionAssignment.submission_id)
        .filter(
            SubmissionAssignment.faculty_id == faculty.id,
            SubmissionAssignment.status.in_(ACTIVE_STATUSES),
        )
        .order_by(Submission.submitted_at.asc(), Submission.id.asc())
        .all()
    )


def faculty_history(db: Session, *, faculty: User) -> List[SubmissionAssignment]:
    return (
        db.query(SubmissionAssignment)
        .join(Submission, Submission.id == SubmissionAssignment.submission_id)
        .filter(
            SubmissionAssignment.faculty_id == faculty.id,
            SubmissionAssignment.status == EVALUATED,
        )
        .order_by(Submission.evaluated_at.desc(), Submission.id.desc())
        .all()
    )


def faculty_stats(db: Session, *, faculty: User) -> Dict[str, Any]:
    base = db.query(SubmissionAssignment).filter(SubmissionAssignment.faculty_id == faculty.id)
    return {
        "faculty_id": faculty.id,
        "pending": base.filter(SubmissionAssignment.status.in_(ACTIVE_STATUSES)).count(),
        "evaluated": base.filter(SubmissionAssignment.status == EVALUATED).count(),
        "current_load": faculty.current_load,
        "max_capacity": faculty.max_capacity,
        "is_available": faculty.is_available,
    }
