"""
tests/conftest.py — Shared pytest configuration and fixtures.

Sets dummy environment variables BEFORE any leadengine module is imported,
so that pydantic-settings doesn't fail on missing required fields, then
provides an in-memory SQLite store shared by the db/service/API tests.
"""

import os
from datetime import datetime, timedelta

import pytest

# ── Set dummy env vars before any leadengine module is imported ──────────────
# This runs at collection time, before tests execute.
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("NOTIFIER_DRY_RUN", "true")
os.environ.setdefault("ADMIN_API_TOKEN", "test-admin-token")
os.environ.setdefault("AUTO_ASSIGN_ENABLED", "true")
os.environ.setdefault("AUTO_ASSIGN_STRATEGY", "next_in_line")

import sqlalchemy as sa  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from leadengine.db.models import Base, Contractor, Lead, LeadStatus, Profile  # noqa: E402
from leadengine.notifications.notifier import LeadNotifier  # noqa: E402

BASE_TIME = datetime(2025, 1, 1, 12, 0, 0)


# ── In-memory DB Fixtures ─────────────────────────────────────────────────────

@pytest.fixture
def engine():
    """
    A fresh in-memory SQLite engine per test.

    SQLite doesn't support PostgreSQL native ENUMs, so we set
    native_enum=False on all Enum columns before creating tables. StaticPool
    keeps one connection so every session sees the same in-memory database.
    """
    for table in Base.metadata.tables.values():
        for col in table.columns:
            if isinstance(col.type, sa.Enum):
                col.type.native_enum = False

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    """Provide a session bound to the per-test in-memory database."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def notifier():
    return LeadNotifier(dry_run=True)


# ── Record factories ──────────────────────────────────────────────────────────

@pytest.fixture
def make_contractor(db):
    """Create contractors with strictly increasing registration times."""
    counter = {"n": 0}

    def _make(**overrides) -> Contractor:
        counter["n"] += 1
        n = counter["n"]
        fields = {
            "name": f"Contractor {n}",
            "email": f"contractor{n}@example.com",
            "serves_all_zipcodes": False,
            "assigned_zip_codes": ["01701"],
            "is_active_subscriber": True,
            "leads_received_count": 0,
            "leads_converted_count": 0,
            "created_at": BASE_TIME + timedelta(minutes=n),
            "updated_at": BASE_TIME + timedelta(minutes=n),
        }
        fields.update(overrides)
        contractor = Contractor(**fields)
        db.add(contractor)
        db.commit()
        return contractor

    return _make


@pytest.fixture
def make_lead(db):
    def _make(**overrides) -> Lead:
        fields = {
            "email": "homeowner@example.com",
            "zip": "01701",
            "render_count": 1,
            "status": LeadStatus.NEW,
            "created_at": BASE_TIME,
            "updated_at": BASE_TIME,
        }
        fields.update(overrides)
        lead = Lead(**fields)
        db.add(lead)
        db.commit()
        return lead

    return _make


@pytest.fixture
def make_profile(db):
    def _make(user_id: str, **overrides) -> Profile:
        profile = Profile(id=user_id, **overrides)
        db.add(profile)
        db.commit()
        return profile

    return _make
