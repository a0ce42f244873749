# evalportal/models/evaluation.py
from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey
from sqlalchemy.sql import func
from evalportal.db.base_class import Base

class ManualEvaluation(Base):
    __tablename__ = "manual_evaluations"

    id = Column(Integer, primary_key=True, index=True)
    submission_id = Column(
        Integer,
        ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    faculty_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    code_quality_score = Column(Integer, nullable=False, default=0)
    requirements_score = Column(Integer, nullable=False, default=0)
    expected_output_score = Column(Integer, nullable=False, default=0)
    total_score = Column(Integer, nullable=False, default=0)
    comments = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
