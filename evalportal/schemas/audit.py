# evalportal/schemas/audit.py
from datetime import datetime
from typing import Any

from pydantic import BaseModel


class AuditLogEntryPublic(BaseModel):
    id: int
    submission_id: int
    action_type: str
    from_faculty_id: int | None = None
    to_faculty_id: int | None = None
    actor_role: str
    admin_id: int | None = None
    notes: str | None = None
    details: dict[str, Any] | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class AuditLogPage(BaseModel):
    items: list[AuditLogEntryPublic]
    total: int
    page: int
    page_size: int
