# evalportal/api/v1/endpoints/assignments.py
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from evalportal.db.session import get_db
from evalportal.models.user import User
from evalportal.schemas.assignment import (
    AssignmentPublic,
    BulkAssignRequest,
    BulkAssignResult,
    JobEnqueued,
    ManualAssignRequest,
    RedistributeRequest,
    RedistributeResult,
    SmartAssignResult,
)
from evalportal.schemas.audit import AuditLogPage
from evalportal.schemas.user import FacultyWorkload
from evalportal.services import assignment_service, audit_service
from evalportal.core.security import get_current_admin
from evalportal.workers.queue import enqueue_redistribute_task, enqueue_smart_assign_task

router = APIRouter(prefix="/assignments", tags=["assignments"])


@router.post("/smart-assign", response_model=SmartAssignResult)
def smart_assign(
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    """
    Assign all unassigned submissions to the least-loaded available faculty.
    """
    count = assignment_service.smart_assign(db, admin=current_admin)
    return SmartAssignResult(assigned_count=count)


@router.post("/smart-assign/enqueue", response_model=JobEnqueued, status_code=202)
def enqueue_smart_assign(current_admin: User = Depends(get_current_admin)):
    """
    Run smart assign in the background worker instead of the request.
    """
    return JobEnqueued(job_id=enqueue_smart_assign_task())


@router.post("/bulk-assign", response_model=BulkAssignResult)
def bulk_assign(
    obj_in: BulkAssignRequest,
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    return assignment_service.bulk_assign(
        db,
        submission_ids=obj_in.submission_ids,
        faculty_id=obj_in.faculty_id,
        admin=current_admin,
        weight=obj_in.submission_weight,
        notes=obj_in.notes,
    )


@router.post("/manual-assign", response_model=AssignmentPublic)
def manual_assign(
    obj_in: ManualAssignRequest,
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    return assignment_service.manual_assign(
        db,
        submission_id=obj_in.submission_id,
        faculty_id=obj_in.faculty_id,
        admin=current_admin,
        weight=obj_in.submission_weight,
        notes=obj_in.notes,
    )


@router.post("/redistribute", response_model=RedistributeResult)
def redistribute(
    obj_in: RedistributeRequest,
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    """
    Move an overloaded faculty member's open work onto peers with room.
    """
    count = assignment_service.redistribute(
        db, from_faculty_id=obj_in.from_faculty_id, admin=current_admin
    )
    return RedistributeResult(redistributed_count=count)


@router.post("/redistribute/enqueue", response_model=JobEnqueued, status_code=202)
def enqueue_redistribute(
    obj_in: RedistributeRequest,
    current_admin: User = Depends(get_current_admin),
):
    return JobEnqueued(job_id=enqueue_redistribute_task(obj_in.from_faculty_id))


@router.get("/workload", response_model=List[FacultyWorkload])
def list_workload(
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    return assignment_service.list_faculty_workload(db)


@router.get("/audit-log", response_model=AuditLogPage)
def list_audit_log(
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
    submission_id: Optional[int] = None,
    faculty_id: Optional[int] = None,
    action_type: Optional[str] = None,
    actor_role: Optional[str] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1),
):
    return audit_service.list_audit_log(
        db,
        submission_id=submission_id,
        faculty_id=faculty_id,
        action_type=action_type,
        actor_role=actor_role,
        since=since,
        until=until,
        page=page,
        page_size=page_size,
    )
