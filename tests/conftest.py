"""
Shared fixtures: an in-memory SQLite database per test and small factories
for faculty, submissions and assignments.
"""

import os
from datetime import datetime, timedelta, timezone

# must be set before evalportal.core.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine, func
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from evalportal.db.base import Base
from evalportal.models.assignment import ACTIVE_STATUSES, SubmissionAssignment
from evalportal.models.submission import Submission
from evalportal.models.user import User

TEST_DATABASE_URL = "sqlite://"

T0 = datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def db_session():
    """Create a test database session."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def make_user(db_session):
    counter = {"n": 0}

    def _make(role="faculty", *, max_capacity=10, is_available=True, name=None):
        counter["n"] += 1
        n = counter["n"]
        user = User(
            email=f"{role}{n}@evalportal.edu",
            # Pre-hashed password to avoid running bcrypt in tests
            password_hash="$2b$12$hashed_password_000",
            name=name or f"{role.title()} {n}",
            role=role,
            max_capacity=max_capacity,
            is_available=is_available,
            current_load=0,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def admin(make_user):
    return make_user("admin", name="Admin")


@pytest.fixture
def student(make_user):
    return make_user("student", name="Student")


@pytest.fixture
def make_submission(db_session, student):
    counter = {"n": 0}

    def _make(*, status="pending", submitted_at=None):
        counter["n"] += 1
        submission = Submission(
            student_id=student.id,
            answer_text=f"<html>attempt {counter['n']}</html>",
            status=status,
            submitted_at=submitted_at or T0 + timedelta(minutes=counter["n"]),
        )
        db_session.add(submission)
        db_session.commit()
        db_session.refresh(submission)
        return submission

    return _make


@pytest.fixture
def make_assignment(db_session, make_submission):
    """Insert an assignment row directly and keep the load cache in sync."""

    def _make(faculty, *, status="assigned", weight=1, **fields):
        submission = make_submission()
        assignment = SubmissionAssignment(
            submission_id=submission.id,
            faculty_id=faculty.id,
            status=status,
            version=fields.pop("version", 1),
            submission_weight=weight,
            assigned_at=fields.pop("assigned_at", T0),
            **fields,
        )
        db_session.add(assignment)
        db_session.flush()
        if status in ACTIVE_STATUSES:
            faculty.current_load = (faculty.current_load or 0) + weight
        db_session.commit()
        db_session.refresh(assignment)
        return assignment

    return _make


def active_weight(db, faculty_id):
    total = (
        db.query(func.coalesce(func.sum(SubmissionAssignment.submission_weight), 0))
        .filter(
            SubmissionAssignment.faculty_id == faculty_id,
            SubmissionAssignment.status.in_(ACTIVE_STATUSES),
        )
        .scalar()
    )
    return int(total or 0)


def assert_load_invariant(db):
    db.expire_all()
    for faculty in db.query(User).filter(User.role == "faculty").all():
        assert faculty.current_load == active_weight(db, faculty.id), (
            f"faculty {faculty.id}: cached {faculty.current_load} "
            f"!= live {active_weight(db, faculty.id)}"
        )
