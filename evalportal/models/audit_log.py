# evalportal/models/audit_log.py
from sqlalchemy import (
    JSON,
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    event,
)
from sqlalchemy.sql import func
from evalportal.db.base_class import Base

AUDIT_ACTIONS = (
    "auto_assign",
    "manual_assign",
    "bulk_assign",
    "faculty_reallocate",
    "redistribute",
    "evaluate",
    "reopen",
)


class AssignmentLog(Base):
    __tablename__ = "assignment_logs"

    id = Column(Integer, primary_key=True, index=True)
    submission_id = Column(
        Integer,
        ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    action_type = Column(String(50), nullable=False, index=True)

    from_faculty_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    to_faculty_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    admin_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    actor_role = Column(String(20), nullable=False, default="system")  # admin / faculty / system

    notes = Column(Text, nullable=True)
    details = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)


class AuditLogImmutableError(Exception):
    pass


@event.listens_for(AssignmentLog, "before_update")
def _reject_update(mapper, connection, target):
    raise AuditLogImmutableError(f"assignment log {target.id} is append-only")


@event.listens_for(AssignmentLog, "before_delete")
def _reject_delete(mapper, connection, target):
    raise AuditLogImmutableError(f"assignment log {target.id} is append-only")
