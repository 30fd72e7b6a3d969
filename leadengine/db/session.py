"""
leadengine/db/session.py — SQLAlchemy engine and session factory.

Request handlers take `db: Session = Depends(get_db)`. The recalculation job
opens one `SessionLocal()` per batch; the setup script uses `session_scope()`.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from leadengine.config import settings
from leadengine.db.models import Base


def _normalize_url(raw: str) -> str:
    # Hosted Postgres often hands out postgres://, which SQLAlchemy 2.x rejects.
    if raw.startswith("postgres://"):
        return "postgresql://" + raw[len("postgres://"):]
    return raw


DATABASE_URL = _normalize_url(settings.database_url)

if DATABASE_URL.startswith("sqlite"):
    # FastAPI serves sync routes from a thread pool.
    engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False})
else:
    engine = create_engine(
        DATABASE_URL,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )

SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db() -> None:
    """Create any missing tables."""
    Base.metadata.create_all(bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    Per-request session. Services commit their own units of work; whatever
    is still pending when the handler returns is committed here.
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Commit on success, roll back on error, always close."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
