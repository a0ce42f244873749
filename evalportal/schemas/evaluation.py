# evalportal/schemas/evaluation.py
from datetime import datetime

from pydantic import BaseModel, Field


class EvaluationSubmit(BaseModel):
    """评阅老师提交的人工评分"""
    submission_id: int
    code_quality: int = Field(default=0, ge=0, le=100)
    requirements: int = Field(default=0, ge=0, le=100)
    expected_output: int = Field(default=0, ge=0, le=100)
    comments: str | None = None
    expected_version: int | None = Field(default=None, ge=1)


class EvaluationResult(BaseModel):
    message: str
    submission_id: int
    status: str  # passed / failed
    score: int


class EvaluationPublic(BaseModel):
    id: int
    submission_id: int
    faculty_id: int | None = None
    code_quality_score: int
    requirements_score: int
    expected_output_score: int
    total_score: int
    comments: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
