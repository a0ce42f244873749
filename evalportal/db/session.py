# evalportal/db/session.py
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from evalportal.core.config import settings

# SQLite needs check_same_thread disabled for the threaded test client
engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False} if "sqlite" in settings.DATABASE_URL else {},
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    Commit on success, roll back on any exception and re-raise.
    Service operations wrap their reads, guards and writes in one of these.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
