# evalportal/models/assignment.py
from sqlalchemy import (
    CheckConstraint,
    Column,
    Index,
    Integer,
    String,
    DateTime,
    ForeignKey,
)
from sqlalchemy.sql import func
from evalportal.db.base_class import Base

ASSIGNED = "assigned"
IN_PROGRESS = "in_progress"
EVALUATED = "evaluated"

ASSIGNMENT_STATUSES = (ASSIGNED, IN_PROGRESS, EVALUATED)
# statuses that count toward an evaluator's load
ACTIVE_STATUSES = (ASSIGNED, IN_PROGRESS)


class SubmissionAssignment(Base):
    __tablename__ = "submission_assignments"
    __table_args__ = (
        CheckConstraint(
            "status IN (" + ", ".join(f"'{s}'" for s in ASSIGNMENT_STATUSES) + ")",
            name="ck_sa_status",
        ),
        CheckConstraint("version >= 1", name="ck_sa_version"),
        CheckConstraint("reallocation_count >= 0", name="ck_sa_reallocation_count"),
        CheckConstraint("submission_weight >= 1", name="ck_sa_submission_weight"),
        Index("idx_sa_faculty_status", "faculty_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # one assignment per submission
    submission_id = Column(
        Integer,
        ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    faculty_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # assigned / in_progress / evaluated
    status = Column(String(20), nullable=False, default=ASSIGNED, index=True)

    # optimistic concurrency
    version = Column(Integer, nullable=False, default=1)

    # soft lock held by the evaluator currently working on it
    locked_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    locked_at = Column(DateTime(timezone=True), nullable=True)

    reallocation_count = Column(Integer, nullable=False, default=0)
    last_reallocated_at = Column(DateTime(timezone=True), nullable=True)

    submission_weight = Column(Integer, nullable=False, default=1)

    assigned_at = Column(DateTime(timezone=True), server_default=func.now())
