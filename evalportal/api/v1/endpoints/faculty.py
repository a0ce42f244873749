# evalportal/api/v1/endpoints/faculty.py
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from evalportal.db.session import get_db
from evalportal.models.user import User
from evalportal.schemas.assignment import (
    AssignmentPublic,
    HeartbeatRequest,
    HeartbeatResult,
    ReallocateRequest,
    ReallocateResult,
    StartEvaluationRequest,
)
from evalportal.schemas.evaluation import EvaluationResult, EvaluationSubmit
from evalportal.schemas.submission import SubmissionDetail
from evalportal.schemas.user import FacultyStats
from evalportal.services import evaluation_service, reallocation_service
from evalportal.core.config import settings
from evalportal.core.security import get_current_evaluator, get_current_faculty

router = APIRouter(prefix="/faculty", tags=["faculty"])


@router.get("/queue", response_model=List[AssignmentPublic])
def list_my_queue(
    db: Session = Depends(get_db),
    current_faculty: User = Depends(get_current_faculty),
):
    """
    评阅老师待处理的作答（assigned / in_progress）。
    """
    return evaluation_service.faculty_queue(db, faculty=current_faculty)


@router.get("/history", response_model=List[AssignmentPublic])
def list_my_history(
    db: Session = Depends(get_db),
    current_faculty: User = Depends(get_current_faculty),
):
    return evaluation_service.faculty_history(db, faculty=current_faculty)


@router.get("/stats", response_model=FacultyStats)
def read_my_stats(
    db: Session = Depends(get_db),
    current_faculty: User = Depends(get_current_faculty),
):
    return evaluation_service.faculty_stats(db, faculty=current_faculty)


@router.get("/submissions/{submission_id}", response_model=SubmissionDetail)
def read_submission(
    submission_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_evaluator),
):
    """
    作答详情（只读）：作答内容、分配信息、已有的人工评分。
    """
    return evaluation_service.get_submission_detail(
        db, submission_id=submission_id, actor=current_user
    )


@router.post("/submissions/{submission_id}/start", response_model=AssignmentPublic)
def start_evaluation(
    submission_id: int,
    obj_in: StartEvaluationRequest | None = None,
    db: Session = Depends(get_db),
    current_faculty: User = Depends(get_current_faculty),
):
    """
    Open a submission for evaluation and take the soft lock.
    """
    return evaluation_service.start_evaluation(
        db,
        submission_id=submission_id,
        actor=current_faculty,
        expected_version=obj_in.expected_version if obj_in else None,
    )


@router.post("/heartbeat", response_model=HeartbeatResult)
def heartbeat(
    obj_in: HeartbeatRequest,
    db: Session = Depends(get_db),
    current_faculty: User = Depends(get_current_faculty),
):
    """
    Keep the soft lock alive. Every heartbeat bumps the version, so clients
    that send expected_version must use the one returned here.
    """
    assignment = evaluation_service.heartbeat(
        db, submission_id=obj_in.submission_id, actor=current_faculty
    )
    return HeartbeatResult(
        message="Lock refreshed",
        submission_id=assignment.submission_id,
        version=assignment.version,
        locked_at=assignment.locked_at,
    )


@router.post("/reallocate", response_model=ReallocateResult)
def reallocate(
    obj_in: ReallocateRequest,
    db: Session = Depends(get_db),
    current_faculty: User = Depends(get_current_faculty),
):
    """
    Hand one of my submissions to another faculty member.
    """
    assignment = reallocation_service.reallocate(
        db,
        submission_id=obj_in.submission_id,
        actor=current_faculty,
        target_faculty_id=obj_in.target_faculty_id,
        reason=obj_in.reason,
        expected_version=obj_in.expected_version,
    )
    return ReallocateResult(
        message="Submission reallocated successfully",
        submission_id=assignment.submission_id,
        faculty_id=assignment.faculty_id,
        version=assignment.version,
        reallocation_count=assignment.reallocation_count,
    )


@router.post("/evaluate", response_model=EvaluationResult)
def submit_evaluation(
    obj_in: EvaluationSubmit,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_evaluator),
):
    """
    提交人工评分：
      - 写 manual_evaluations
      - submission -> passed / failed
      - assignment -> evaluated
    """
    evaluation = evaluation_service.submit_evaluation(
        db,
        submission_id=obj_in.submission_id,
        actor=current_user,
        scores={
            "code_quality": obj_in.code_quality,
            "requirements": obj_in.requirements,
            "expected_output": obj_in.expected_output,
        },
        comments=obj_in.comments,
        expected_version=obj_in.expected_version,
    )
    passed = evaluation.total_score >= settings.PASS_THRESHOLD
    return EvaluationResult(
        message="Evaluation submitted successfully",
        submission_id=evaluation.submission_id,
        status="passed" if passed else "failed",
        score=evaluation.total_score,
    )
