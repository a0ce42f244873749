# evalportal/services/reallocation_service.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from evalportal.core.exceptions import AssignmentError, ValidationError
from evalportal.core.timeutil import ensure_utc, utcnow
from evalportal.db.session import transaction
from evalportal.models.assignment import ASSIGNED, SubmissionAssignment
from evalportal.models.user import User
from evalportal.services import assignment_store as store
from evalportal.services.audit_service import log_assignment
from evalportal.services.capacity_service import live_load, recompute_load
from evalportal.services.guards import REALLOCATION_GUARDS, TransitionContext, enforce

logger = logging.getLogger(__name__)


def reallocate(
    db: Session,
    *,
    submission_id: int,
    actor: User,
    target_faculty_id: int,
    reason: str,
    expected_version: Optional[int] = None,
    now: Optional[datetime] = None,
) -> SubmissionAssignment:
    """
    Evaluator hands one of their assignments to a colleague.

    Runs under row locks on the assignment and the destination evaluator:
      1. lock rows
      2. run REALLOCATION_GUARDS (first failure aborts the transaction)
      3. version-guarded write
      4. recompute both evaluators' loads
      5. audit row
    """
    if not target_faculty_id:
        raise ValidationError("target_faculty_id is required")
    if target_faculty_id == actor.id:
        raise ValidationError("Cannot reallocate a submission to yourself")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A reason is required to reallocate")
    now = ensure_utc(now) if now else utcnow()

    try:
        with transaction(db):
            assignment = store.lock_assignment(db, submission_id)
            destination = store.lock_faculty(
                db, target_faculty_id, also_lock=[assignment.faculty_id]
            )

            ctx = TransitionContext(
                actor=actor,
                now=now,
                assignment=assignment,
                expected_version=expected_version,
                destination=destination,
                destination_load=live_load(db, destination.id),
                weight=assignment.submission_weight,
            )
            enforce(REALLOCATION_GUARDS, ctx)

            source_id = assignment.faculty_id
            from_version = assignment.version
            assignment = store.apply_versioned_update(
                db,
                assignment_id=assignment.id,
                expected_version=from_version,
                values={
                    "faculty_id": destination.id,
                    "status": ASSIGNED,
                    "locked_by": None,
                    "locked_at": None,
                    "reallocation_count": assignment.reallocation_count + 1,
                    "last_reallocated_at": now,
                    "assigned_at": now,
                },
            )

            recompute_load(db, source_id)
            recompute_load(db, destination.id)

            log_assignment(
                db,
                submission_id=submission_id,
                action_type="faculty_reallocate",
                from_faculty_id=source_id,
                to_faculty_id=destination.id,
                actor_role=actor.role,
                notes=reason,
                details={"from_version": from_version, "to_version": assignment.version},
            )
    except AssignmentError as exc:
        logger.info(
            "Reallocation of submission %s by %s rejected: %s",
            submission_id,
            actor.id,
            exc.message,
        )
        raise

    logger.info(
        "Submission %s reallocated from faculty %s to %s (version %s)",
        submission_id,
        source_id,
        destination.id,
        assignment.version,
    )
    return assignment
