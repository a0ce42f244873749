# evalportal/schemas/submission.py
from pydantic import BaseModel
from datetime import datetime

from evalportal.schemas.assignment import AssignmentPublic
from evalportal.schemas.evaluation import EvaluationPublic


class SubmissionPublic(BaseModel):
    id: int
    student_id: int
    answer_text: str | None = None
    status: str  # pending / passed / failed
    passed: bool | None = None

    submitted_at: datetime | None = None
    evaluated_at: datetime | None = None

    model_config = {"from_attributes": True}


class SubmissionDetail(BaseModel):
    """评阅老师查看单个作答：作答内容 + 分配信息 + 已有评分"""
    submission: SubmissionPublic
    assignment: AssignmentPublic | None = None
    evaluation: EvaluationPublic | None = None
