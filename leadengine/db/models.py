"""
leadengine/db/models.py — SQLAlchemy ORM models for the lead engine.

Tables:
  - Profile            → an authenticated user's engagement history and role
  - Contractor         → a service provider that can receive leads
  - Lead               → one homeowner identity's renders / quote requests, scored
  - LeadAssignment     → a (lead, contractor) hand-off and its notification state
  - AssignmentCursor   → persisted round-robin position per territory (ZIP)
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, relationship


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what the DateTime columns store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ── Base ─────────────────────────────────────────────────────────────────────

class Base(DeclarativeBase):
    pass


# ── Enums ────────────────────────────────────────────────────────────────────

class LeadStatus(str, enum.Enum):
    NEW = "new"
    ASSIGNED = "assigned"
    CONTACTED = "contacted"
    QUOTED = "quoted"
    CONVERTED = "converted"
    DEAD = "dead"
    UNQUALIFIED = "unqualified"


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    CONTRACTOR = "contractor"
    HOMEOWNER = "homeowner"


class SubscriptionTier(str, enum.Enum):
    BASIC = "basic"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"


class AssignmentMethod(str, enum.Enum):
    MANUAL = "manual"
    ROUND_ROBIN = "round_robin"
    NEXT_IN_LINE = "next_in_line"
    AUTOMATIC = "automatic"


# ── Models ───────────────────────────────────────────────────────────────────

class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(64), primary_key=True)              # auth provider's user id
    email = Column(String(255), nullable=True, index=True)
    role = Column(Enum(UserRole), default=UserRole.HOMEOWNER, nullable=False)
    login_count = Column(Integer, default=0, nullable=False)
    total_time_on_site_ms = Column(BigInteger, default=0, nullable=False)
    ai_renderings_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow, server_default=func.now(), nullable=False)

    leads = relationship("Lead", back_populates="profile")

    def __repr__(self) -> str:
        return f"<Profile id={self.id!r} role={self.role}>"


class Contractor(Base):
    __tablename__ = "contractors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    phone = Column(String(50), nullable=True)
    company_name = Column(String(255), nullable=True)

    serves_all_zipcodes = Column(Boolean, default=False, nullable=False)
    assigned_zip_codes = Column(JSON, default=list, nullable=False)   # ["01701", ...]

    is_active_subscriber = Column(Boolean, default=False, nullable=False)
    subscription_tier = Column(Enum(SubscriptionTier), default=SubscriptionTier.BASIC, nullable=False)

    # Append-only performance counters
    leads_received_count = Column(Integer, default=0, nullable=False)
    leads_converted_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    assignments = relationship("LeadAssignment", back_populates="contractor")

    def __repr__(self) -> str:
        return f"<Contractor id={self.id} name={self.name!r} active={self.is_active_subscriber}>"


class Lead(Base):
    __tablename__ = "leads"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True)

    # Contact
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(50), nullable=True)

    # Project facts
    zip = Column(String(10), nullable=True, index=True)
    room_type = Column(String(100), nullable=True)
    style = Column(String(100), nullable=True)
    image_url = Column(String(1024), nullable=True)
    ai_url = Column(String(1024), nullable=True)
    render_count = Column(Integer, default=1, nullable=False)

    # Intent flags
    wants_quote = Column(Boolean, default=False, nullable=False)
    social_engaged = Column(Boolean, default=False, nullable=False)
    is_repeat_visitor = Column(Boolean, default=False, nullable=False)

    # Scores (0–100)
    engagement_score = Column(Integer, default=0, nullable=False)
    intent_score = Column(Integer, default=0, nullable=False)
    lead_quality_score = Column(Integer, default=0, nullable=False)
    probability_to_close_score = Column(Integer, default=0, nullable=False)
    lead_score = Column(Integer, default=0, nullable=False)                # overall / legacy
    scoring_version = Column(String(20), nullable=True)

    # Assignment / pipeline state
    status = Column(Enum(LeadStatus), default=LeadStatus.NEW, nullable=False, index=True)
    assigned_contractor_id = Column(
        Integer, ForeignKey("contractors.id", ondelete="SET NULL"), nullable=True,
    )
    contractor_notes = Column(Text, nullable=True)
    conversion_value = Column(Float, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    last_contacted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    profile = relationship("Profile", back_populates="leads")
    assigned_contractor = relationship("Contractor")
    assignments = relationship("LeadAssignment", back_populates="lead", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Lead id={self.id} status={self.status} score={self.lead_score}>"


class LeadAssignment(Base):
    __tablename__ = "lead_assignments"
    __table_args__ = (
        UniqueConstraint("lead_id", "contractor_id", name="uq_lead_assignments_lead_contractor"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(Integer, ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    contractor_id = Column(Integer, ForeignKey("contractors.id", ondelete="CASCADE"), nullable=False, index=True)
    assignment_method = Column(Enum(AssignmentMethod), nullable=False)
    assigned_at = Column(DateTime, default=utcnow, nullable=False)
    email_sent = Column(Boolean, default=False, nullable=False)
    notification_error = Column(Text, nullable=True)
    contractor_responded = Column(Boolean, default=False, nullable=False)

    lead = relationship("Lead", back_populates="assignments")
    contractor = relationship("Contractor", back_populates="assignments")

    def __repr__(self) -> str:
        return (
            f"<LeadAssignment id={self.id} lead_id={self.lead_id} "
            f"contractor_id={self.contractor_id} method={self.assignment_method}>"
        )


class AssignmentCursor(Base):
    __tablename__ = "assignment_cursors"

    territory = Column(String(10), primary_key=True)       # ZIP code; "*" when the lead has none
    position = Column(Integer, default=0, nullable=False)  # round-robin picks made so far
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<AssignmentCursor territory={self.territory!r} position={self.position}>"
