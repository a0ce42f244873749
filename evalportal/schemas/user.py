# evalportal/schemas/user.py
from pydantic import BaseModel, EmailStr


class FacultyWorkload(BaseModel):
    """管理员视角：评阅老师的负载"""
    faculty_id: int
    name: str
    email: EmailStr
    is_available: bool
    max_capacity: int
    current_load: int  # cached
    live_load: int  # recomputed from assignments


class FacultyStats(BaseModel):
    faculty_id: int
    pending: int
    evaluated: int
    current_load: int
    max_capacity: int
    is_available: bool
