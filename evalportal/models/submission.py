# evalportal/models/submission.py
from sqlalchemy import (
    Boolean,
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
)
from sqlalchemy.sql import func
from evalportal.db.base_class import Base

class Submission(Base):
    __tablename__ = "submissions"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    answer_text = Column(Text, nullable=True)

    # pending / passed / failed
    status = Column(String(20), nullable=False, default="pending", index=True)
    passed = Column(Boolean, nullable=True)

    submitted_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    evaluated_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
