"""
leadengine/db/repository.py — All database read/write operations.

Business logic should never write ORM queries directly — everything goes
through this module. Functions flush but never commit: the service that owns
the unit of work decides when to commit or roll back.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from sqlalchemy import case, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from leadengine.db.models import (
    AssignmentCursor,
    AssignmentMethod,
    Contractor,
    Lead,
    LeadAssignment,
    LeadStatus,
    Profile,
    UserRole,
    utcnow,
)
from leadengine.exceptions import ValidationError

logger = logging.getLogger(__name__)

# Fields a lead-producing event may write. Scores and assignment state are
# owned by the scoring and assignment services.
LEAD_PATCH_FIELDS = frozenset({
    "user_id",
    "name",
    "email",
    "phone",
    "zip",
    "room_type",
    "style",
    "image_url",
    "ai_url",
    "render_count",
    "wants_quote",
    "social_engaged",
})

# NOT NULL columns: an explicit null in a patch means "not sent".
NON_NULL_PATCH_FIELDS = frozenset({"render_count", "wants_quote", "social_engaged"})

SCORE_FIELDS = (
    "engagement_score",
    "intent_score",
    "lead_quality_score",
    "probability_to_close_score",
    "lead_score",
    "scoring_version",
)


def normalize_email(email: Optional[str]) -> Optional[str]:
    """Lower-case and strip an email; blank strings become None."""
    if email is None:
        return None
    cleaned = email.strip().lower()
    return cleaned or None


# ── Lead identity ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class IdentityKey:
    """Which canonical lead an event belongs to: user_id first, else email."""
    user_id: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_fields(cls, user_id: Optional[str], email: Optional[str]) -> "IdentityKey":
        user_id = (user_id or "").strip() or None
        email = normalize_email(email)
        if not user_id and not email:
            raise ValidationError("An email address is required when no user_id is given.")
        return cls(user_id=user_id, email=email)

    def describe(self) -> str:
        return f"user_id={self.user_id}" if self.user_id else f"email={self.email}"


def find_canonical_lead(db: Session, identity: IdentityKey) -> Optional[Lead]:
    """Return the most recent lead for this identity, or None."""
    query = db.query(Lead)
    if identity.user_id:
        query = query.filter(Lead.user_id == identity.user_id)
    else:
        query = query.filter(Lead.email == identity.email)
    return query.order_by(Lead.created_at.desc(), Lead.id.desc()).first()


def upsert_lead(db: Session, identity: IdentityKey, patch: dict[str, Any]) -> tuple[Lead, bool]:
    """
    Insert a lead for a new identity, or update the identity's canonical lead.

    On update render_count is incremented (unless the patch supplies one) and
    is_repeat_visitor becomes True; every other key in the patch overwrites
    the stored value.

    Returns:
        (lead, created) — created is True when a new row was inserted.
    """
    unknown = set(patch) - LEAD_PATCH_FIELDS
    if unknown:
        raise ValidationError(f"Unknown lead fields: {sorted(unknown)}")

    patch = {
        key: value for key, value in patch.items()
        if value is not None or key not in NON_NULL_PATCH_FIELDS
    }
    if "email" in patch:
        patch["email"] = normalize_email(patch["email"])
    if identity.user_id:
        patch.setdefault("user_id", identity.user_id)
    if identity.email:
        patch.setdefault("email", identity.email)

    existing = find_canonical_lead(db, identity)
    now = utcnow()

    if existing is None:
        render_count = patch.pop("render_count", None) or 1
        lead = Lead(
            render_count=render_count,
            is_repeat_visitor=False,
            status=LeadStatus.NEW,
            created_at=now,
            updated_at=now,
            **patch,
        )
        db.add(lead)
        db.flush()
        logger.info("Lead created: id=%d (%s)", lead.id, identity.describe())
        return lead, True

    explicit_count = patch.pop("render_count", None)
    for field, value in patch.items():
        setattr(existing, field, value)
    existing.render_count = explicit_count if explicit_count is not None else existing.render_count + 1
    existing.is_repeat_visitor = True
    existing.updated_at = now
    db.flush()
    logger.info(
        "Lead updated: id=%d (%s) render_count=%d",
        existing.id, identity.describe(), existing.render_count,
    )
    return existing, False


# ── Lead reads / writes ───────────────────────────────────────────────────────

def get_lead(db: Session, lead_id: int) -> Optional[Lead]:
    return db.query(Lead).filter(Lead.id == lead_id).first()


def list_leads(
    db: Session,
    status: Optional[LeadStatus] = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Lead]:
    """Fetch leads, newest first, optionally filtered by status."""
    query = db.query(Lead)
    if status is not None:
        query = query.filter(Lead.status == status)
    return query.order_by(Lead.created_at.desc(), Lead.id.desc()).offset(offset).limit(limit).all()


def count_leads(db: Session) -> int:
    return db.query(func.count(Lead.id)).scalar() or 0


def lead_counts_by_status(db: Session) -> dict[str, int]:
    """Aggregate lead counts grouped by status (every status present, zero-filled)."""
    rows = db.query(Lead.status, func.count(Lead.id)).group_by(Lead.status).all()
    counts = {status.value: 0 for status in LeadStatus}
    for status, count in rows:
        counts[LeadStatus(status).value] = count
    return counts


def lead_score_summary(db: Session, high_value_score: int) -> dict[str, Any]:
    """Corpus-wide score averages plus the number of high-value leads."""
    row = db.query(
        func.count(Lead.id),
        func.avg(Lead.engagement_score),
        func.avg(Lead.intent_score),
        func.avg(Lead.lead_quality_score),
        func.avg(Lead.probability_to_close_score),
        func.avg(Lead.lead_score),
        func.sum(case((Lead.lead_score >= high_value_score, 1), else_=0)),
    ).one()
    total, *averages, high_value = row
    names = (
        "avg_engagement_score",
        "avg_intent_score",
        "avg_lead_quality_score",
        "avg_probability_to_close_score",
        "avg_lead_score",
    )
    summary: dict[str, Any] = {
        name: round(float(value or 0), 1) for name, value in zip(names, averages)
    }
    summary["total_leads"] = total or 0
    summary["high_value_leads"] = int(high_value or 0)
    return summary


def list_leads_for_contractor(db: Session, contractor: Contractor) -> list[Lead]:
    """
    Leads a contractor may see, newest first: every lead in its territory
    (all leads when it serves every ZIP) plus any lead assigned to it.
    """
    held = select(LeadAssignment.lead_id).where(LeadAssignment.contractor_id == contractor.id)
    query = db.query(Lead)
    if not contractor.serves_all_zipcodes:
        conditions = [Lead.assigned_contractor_id == contractor.id, Lead.id.in_(held)]
        if contractor.assigned_zip_codes:
            conditions.append(Lead.zip.in_(list(contractor.assigned_zip_codes)))
        query = query.filter(or_(*conditions))
    return query.order_by(Lead.created_at.desc(), Lead.id.desc()).all()


def fetch_lead_batch(
    db: Session,
    after_id: int,
    limit: int,
) -> list[tuple[Lead, Optional[Profile]]]:
    """
    Keyset-paginated read of (lead, profile) pairs with id > after_id.
    The profile is left-joined and is None for anonymous leads.
    """
    return (
        db.query(Lead, Profile)
        .outerjoin(Profile, Lead.user_id == Profile.id)
        .filter(Lead.id > after_id)
        .order_by(Lead.id.asc())
        .limit(limit)
        .all()
    )


def write_lead_scores(db: Session, lead: Lead, scores: dict[str, Any]) -> bool:
    """
    Copy score fields onto the lead. Returns False (and writes nothing) when
    every value already matches.
    """
    changed = {
        field: scores[field]
        for field in SCORE_FIELDS
        if field in scores and getattr(lead, field) != scores[field]
    }
    if not changed:
        return False
    for field, value in changed.items():
        setattr(lead, field, value)
    lead.updated_at = utcnow()
    db.flush()
    return True


def update_lead_fields(db: Session, lead: Lead, **fields: Any) -> Lead:
    """Overwrite the given lead columns and refresh updated_at."""
    for field, value in fields.items():
        setattr(lead, field, value)
    lead.updated_at = utcnow()
    db.flush()
    logger.debug("Lead %d updated: %s", lead.id, sorted(fields))
    return lead


# ── Profile ───────────────────────────────────────────────────────────────────

def get_profile(db: Session, user_id: Optional[str]) -> Optional[Profile]:
    if not user_id:
        return None
    return db.query(Profile).filter(Profile.id == user_id).first()


def save_profile(db: Session, user_id: str, **fields: Any) -> Profile:
    """Create the profile if missing, then overwrite the given fields."""
    profile = get_profile(db, user_id)
    if profile is None:
        profile = Profile(id=user_id)
        db.add(profile)
    for field, value in fields.items():
        setattr(profile, field, value)
    db.flush()
    return profile


def profile_counts_by_role(db: Session) -> dict[str, int]:
    """Profile counts grouped by role (every role present, zero-filled)."""
    rows = db.query(Profile.role, func.count(Profile.id)).group_by(Profile.role).all()
    counts = {role.value: 0 for role in UserRole}
    for role, count in rows:
        counts[UserRole(role).value] = count
    return counts


# ── Contractor ────────────────────────────────────────────────────────────────

def create_contractor(db: Session, **fields: Any) -> Contractor:
    fields["email"] = normalize_email(fields.get("email"))
    contractor = Contractor(**fields)
    db.add(contractor)
    db.flush()
    logger.info("Contractor created: id=%d %s", contractor.id, contractor.name)
    return contractor


def get_contractor(db: Session, contractor_id: int) -> Optional[Contractor]:
    return db.query(Contractor).filter(Contractor.id == contractor_id).first()


def get_contractor_by_email(db: Session, email: str) -> Optional[Contractor]:
    return db.query(Contractor).filter(Contractor.email == normalize_email(email)).first()


def get_contractors_by_ids(db: Session, contractor_ids: Iterable[int]) -> list[Contractor]:
    ids = list(contractor_ids)
    if not ids:
        return []
    return db.query(Contractor).filter(Contractor.id.in_(ids)).all()


def list_contractors(
    db: Session,
    active_only: bool = False,
    for_update: bool = False,
) -> list[Contractor]:
    """Return contractors in registration order."""
    query = db.query(Contractor)
    if active_only:
        query = query.filter(Contractor.is_active_subscriber == True)  # noqa: E712
    query = query.order_by(Contractor.created_at.asc(), Contractor.id.asc())
    if for_update:
        query = query.with_for_update()
    return query.all()


def update_contractor(db: Session, contractor: Contractor, **fields: Any) -> Contractor:
    if "email" in fields:
        fields["email"] = normalize_email(fields["email"])
    for field, value in fields.items():
        setattr(contractor, field, value)
    contractor.updated_at = utcnow()
    db.flush()
    return contractor


def increment_leads_received(db: Session, contractor_ids: Iterable[int]) -> None:
    """Add one received lead to each contractor, computed SQL-side."""
    ids = list(contractor_ids)
    if not ids:
        return
    db.query(Contractor).filter(Contractor.id.in_(ids)).update(
        {
            Contractor.leads_received_count: Contractor.leads_received_count + 1,
            Contractor.updated_at: utcnow(),
        },
        synchronize_session="fetch",
    )


def increment_leads_converted(db: Session, contractor_id: int) -> None:
    db.query(Contractor).filter(Contractor.id == contractor_id).update(
        {
            Contractor.leads_converted_count: Contractor.leads_converted_count + 1,
            Contractor.updated_at: utcnow(),
        },
        synchronize_session="fetch",
    )


# ── Lead Assignment ───────────────────────────────────────────────────────────

def get_assigned_contractor_ids(db: Session, lead_id: int) -> set[int]:
    rows = db.query(LeadAssignment.contractor_id).filter(LeadAssignment.lead_id == lead_id).all()
    return {contractor_id for (contractor_id,) in rows}


def record_assignment(
    db: Session,
    lead_id: int,
    contractor_id: int,
    method: AssignmentMethod,
) -> LeadAssignment:
    """Persist a (lead, contractor) hand-off. The pair is unique at the DB level."""
    assignment = LeadAssignment(
        lead_id=lead_id,
        contractor_id=contractor_id,
        assignment_method=method,
        assigned_at=utcnow(),
        email_sent=False,
    )
    db.add(assignment)
    db.flush()
    logger.debug("Assignment recorded: lead %d → contractor %d (%s)", lead_id, contractor_id, method.value)
    return assignment


def mark_assignment_notified(
    db: Session,
    assignment_id: int,
    error_message: Optional[str] = None,
) -> None:
    """Record the outcome of the contractor notification for an assignment."""
    update_data: dict = {"email_sent": error_message is None}
    if error_message:
        update_data["notification_error"] = error_message
    db.query(LeadAssignment).filter(LeadAssignment.id == assignment_id).update(update_data)


def mark_contractor_responded(db: Session, lead_id: int, contractor_id: int) -> None:
    db.query(LeadAssignment).filter(
        LeadAssignment.lead_id == lead_id,
        LeadAssignment.contractor_id == contractor_id,
    ).update({"contractor_responded": True})


def list_assignments(
    db: Session,
    lead_id: Optional[int] = None,
    limit: int = 100,
) -> list[LeadAssignment]:
    """Assignment records, most recent first."""
    query = db.query(LeadAssignment)
    if lead_id is not None:
        query = query.filter(LeadAssignment.lead_id == lead_id)
    return query.order_by(LeadAssignment.assigned_at.desc(), LeadAssignment.id.desc()).limit(limit).all()


# ── Round-robin cursor ────────────────────────────────────────────────────────

def advance_cursor(db: Session, territory: str) -> int:
    """
    Claim the next round-robin position for a territory.

    The cursor row is locked for the rest of the caller's transaction, so
    concurrent assignments in the same territory serialize on it.

    Returns:
        The position before the increment (0 on the first call).
    """
    cursor = (
        db.query(AssignmentCursor)
        .filter(AssignmentCursor.territory == territory)
        .with_for_update()
        .first()
    )
    if cursor is None:
        try:
            with db.begin_nested():
                db.add(AssignmentCursor(territory=territory, position=1, updated_at=utcnow()))
            return 0
        except IntegrityError:
            # Another request created the row first; lock and use it.
            cursor = (
                db.query(AssignmentCursor)
                .filter(AssignmentCursor.territory == territory)
                .with_for_update()
                .one()
            )

    position = cursor.position
    cursor.position = position + 1
    cursor.updated_at = utcnow()
    db.flush()
    return position


def get_cursor_position(db: Session, territory: str) -> int:
    cursor = db.query(AssignmentCursor).filter(AssignmentCursor.territory == territory).first()
    return cursor.position if cursor else 0
