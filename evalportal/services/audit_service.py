# evalportal/services/audit_service.py
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from evalportal.core.config import settings
from evalportal.core.exceptions import ValidationError
from evalportal.models.audit_log import AUDIT_ACTIONS, AssignmentLog


def log_assignment(
    db: Session,
    *,
    submission_id: int,
    action_type: str,
    from_faculty_id: Optional[int] = None,
    to_faculty_id: Optional[int] = None,
    actor_role: str = "system",
    admin_id: Optional[int] = None,
    notes: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> AssignmentLog:
    """
    Append one audit row in the caller's transaction. Rows are never updated.
    """
    if action_type not in AUDIT_ACTIONS:
        raise ValidationError(f"Unknown audit action '{action_type}'")

    entry = AssignmentLog(
        submission_id=submission_id,
        action_type=action_type,
        from_faculty_id=from_faculty_id,
        to_faculty_id=to_faculty_id,
        actor_role=actor_role,
        admin_id=admin_id,
        notes=notes,
        details=details,
    )
    db.add(entry)
    db.flush()
    return entry


def list_audit_log(
    db: Session,
    *,
    submission_id: Optional[int] = None,
    faculty_id: Optional[int] = None,
    action_type: Optional[str] = None,
    actor_role: Optional[str] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    page: int = 1,
    page_size: int = 50,
) -> Dict[str, Any]:
    """
    Newest-first page of audit rows.
    faculty_id matches either side of a transfer.
    """
    if page < 1:
        raise ValidationError("page must be >= 1")
    if page_size < 1 or page_size > settings.AUDIT_PAGE_SIZE_MAX:
        raise ValidationError(
            f"page_size must be between 1 and {settings.AUDIT_PAGE_SIZE_MAX}"
        )
    if action_type is not None and action_type not in AUDIT_ACTIONS:
        raise ValidationError(f"Unknown audit action '{action_type}'")

    q = db.query(AssignmentLog)
    if submission_id is not None:
        q = q.filter(AssignmentLog.submission_id == submission_id)
    if faculty_id is not None:
        q = q.filter(
            or_(
                AssignmentLog.from_faculty_id == faculty_id,
                AssignmentLog.to_faculty_id == faculty_id,
            )
        )
    if action_type is not None:
        q = q.filter(AssignmentLog.action_type == action_type)
    if actor_role is not None:
        q = q.filter(AssignmentLog.actor_role == actor_role)
    if since is not None:
        q = q.filter(AssignmentLog.created_at >= since)
    if until is not None:
        q = q.filter(AssignmentLog.created_at <= until)

    total = q.count()
    items = (
        q.order_by(AssignmentLog.created_at.desc(), AssignmentLog.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return {"items": items, "total": total, "page": page, "page_size": page_size}
