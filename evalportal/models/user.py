# evalportal/models/user.py
from sqlalchemy import Boolean, CheckConstraint, Column, Integer, String, DateTime
from sqlalchemy.sql import func
from evalportal.core.config import settings
from evalportal.db.base_class import Base

class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("max_capacity BETWEEN 1 AND 100", name="ck_users_max_capacity"),
        CheckConstraint("current_load >= 0", name="ck_users_current_load"),
    )

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(100), nullable=False)
    role = Column(String(20), nullable=False, index=True)  # 'admin' / 'faculty' / 'student'

    # evaluator fields, only meaningful for role == 'faculty'
    is_available = Column(Boolean, nullable=False, default=True)
    max_capacity = Column(Integer, nullable=False, default=settings.DEFAULT_MAX_CAPACITY)
    current_load = Column(Integer, nullable=False, default=0)  # cache, see capacity_service

    created_at = Column(DateTime(timezone=True), server_default=func.now())
