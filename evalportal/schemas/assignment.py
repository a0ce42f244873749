# evalportal/schemas/assignment.py
from datetime import datetime

from pydantic import BaseModel, Field


class AssignmentPublic(BaseModel):
    id: int
    submission_id: int
    faculty_id: int
    status: str  # assigned / in_progress / evaluated
    version: int
    locked_by: int | None = None
    locked_at: datetime | None = None
    reallocation_count: int
    last_reallocated_at: datetime | None = None
    submission_weight: int
    assigned_at: datetime | None = None

    model_config = {"from_attributes": True}


class SmartAssignResult(BaseModel):
    assigned_count: int


class JobEnqueued(BaseModel):
    job_id: str


class BulkAssignRequest(BaseModel):
    submission_ids: list[int] = Field(min_length=1)
    faculty_id: int
    submission_weight: int | None = Field(default=None, ge=1)
    notes: str | None = None


class BulkAssignError(BaseModel):
    submission_id: int
    faculty_id: int
    error: str


class BulkAssignResult(BaseModel):
    assigned: int
    skipped: int
    errors: list[BulkAssignError] = []


class ManualAssignRequest(BaseModel):
    submission_id: int
    faculty_id: int
    submission_weight: int | None = Field(default=None, ge=1)
    notes: str | None = None


class RedistributeRequest(BaseModel):
    from_faculty_id: int


class RedistributeResult(BaseModel):
    redistributed_count: int


class ReallocateRequest(BaseModel):
    submission_id: int
    target_faculty_id: int
    reason: str = Field(min_length=1)
    expected_version: int | None = Field(default=None, ge=1)


class ReallocateResult(BaseModel):
    message: str
    submission_id: int
    faculty_id: int
    version: int
    reallocation_count: int


class HeartbeatRequest(BaseModel):
    submission_id: int


class StartEvaluationRequest(BaseModel):
    expected_version: int | None = Field(default=None, ge=1)


class HeartbeatResult(BaseModel):
    message: str
    submission_id: int
    version: int
    locked_at: datetime | None = None
