"""
leadengine/services/lead_service.py — Business logic orchestrating the
lead-producing event → upsert → scoring → auto-assignment pipeline, plus
status tracking.

This is the "glue" layer that coordinates:
  - Resolving the event's identity and deduplicating onto one lead
  - Scoring the lead with its owner's engagement history
  - Assigning qualifying leads automatically (best-effort)
  - Alerting the admin inbox about quote requests (best-effort)
  - Status changes and conversion tracking
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from leadengine.config import settings
from leadengine.db import repository
from leadengine.db.models import AssignmentMethod, Lead, LeadStatus, utcnow
from leadengine.exceptions import LeadEngineError, NotFoundError, PersistenceError, ValidationError
from leadengine.notifications.notifier import LeadNotifier
from leadengine.services.assignment_service import AssignmentResult, assign_lead
from leadengine.services.scoring import ScoreCard, is_assignable, score_lead
from leadengine.services.strategies import AssignmentStrategy

logger = logging.getLogger(__name__)

_ZIP_RE = re.compile(r"^\d{5}$")

# Statuses that count as the contractor having reached the homeowner.
CONTACT_STATUSES = frozenset({LeadStatus.CONTACTED, LeadStatus.QUOTED, LeadStatus.CONVERTED})


@dataclass
class LeadIntakeResult:
    lead_id: int
    created: bool
    render_count: int
    is_repeat_visitor: bool
    scores: ScoreCard
    assignment: Optional[AssignmentResult] = None
    assignment_error: Optional[str] = None


def _validate_event(event: dict[str, Any]) -> repository.IdentityKey:
    identity = repository.IdentityKey.from_fields(event.get("user_id"), event.get("email"))
    zip_code = event.get("zip")
    if zip_code is not None and not _ZIP_RE.match(zip_code):
        raise ValidationError(f"ZIP code must be 5 digits, got {zip_code!r}.")
    render_count = event.get("render_count")
    if render_count is not None and render_count < 1:
        raise ValidationError("render_count must be at least 1.")
    return identity


def record_lead_event(
    db: Session,
    event: dict[str, Any],
    notifier: Optional[LeadNotifier] = None,
    as_of: Optional[datetime] = None,
) -> LeadIntakeResult:
    """
    Record a lead-producing event (AI render completed, quote requested).

    Args:
        db:       Session; the upsert + scores are committed here.
        event:    Only the fields the event actually carries (patch semantics).
        notifier: Notification collaborator shared by admin alert and assignment.
        as_of:    Reference time for scoring (defaults to now).

    Returns:
        LeadIntakeResult. Assignment problems are reported in
        `assignment_error`, never raised.

    Raises:
        ValidationError:  no usable identity, malformed ZIP.
        PersistenceError: the lead itself could not be stored.
    """
    identity = _validate_event(event)

    try:
        lead, created = repository.upsert_lead(db, identity, event)
        profile = repository.get_profile(db, lead.user_id)
        scores = score_lead(lead, profile, as_of=as_of)
        repository.write_lead_scores(db, lead, scores.as_lead_fields())
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Could not store lead event for %s: %s", identity.describe(), exc)
        raise PersistenceError("Could not store lead.") from exc

    result = LeadIntakeResult(
        lead_id=lead.id,
        created=created,
        render_count=lead.render_count,
        is_repeat_visitor=lead.is_repeat_visitor,
        scores=scores,
    )
    logger.info(
        "Lead %d scored: overall=%d intent=%d quality=%d close=%d (%s)",
        lead.id, scores.overall_score, scores.intent_score,
        scores.lead_quality_score, scores.probability_to_close_score,
        "new" if created else "repeat",
    )

    notifier = notifier or LeadNotifier()
    # Alert per quote-request event, not per event from a lead that once asked.
    if event.get("wants_quote"):
        _alert_admin(notifier, lead)

    if _should_auto_assign(lead, scores):
        try:
            result.assignment = assign_lead(
                db,
                lead.id,
                AssignmentStrategy(settings.auto_assign_strategy),
                notifier=notifier,
                method=AssignmentMethod.AUTOMATIC,
            )
        except LeadEngineError as exc:
            # Secondary effect: the homeowner's event is already recorded.
            result.assignment_error = exc.error_code
            logger.warning("Auto-assignment skipped for lead %d: %s", lead.id, exc.message)

    return result


def _should_auto_assign(lead: Lead, scores: ScoreCard) -> bool:
    if not settings.auto_assign_enabled:
        return False
    if lead.status != LeadStatus.NEW:
        return False
    return is_assignable(scores, lead.wants_quote)


def _alert_admin(notifier: LeadNotifier, lead: Lead) -> None:
    try:
        outcome = notifier.notify_admin(lead)
    except Exception as exc:
        logger.warning("Admin alert for lead %d failed: %s", lead.id, exc)
        return
    if not outcome.delivered and outcome.recipient:
        logger.warning("Admin alert for lead %d not delivered: %s", lead.id, outcome.error)


def change_lead_status(
    db: Session,
    lead_id: int,
    new_status: LeadStatus,
    contractor_notes: Optional[str] = None,
    conversion_value: Optional[float] = None,
) -> tuple[Lead, LeadStatus]:
    """
    Move a lead through the pipeline and rescore it.

    Entering `converted` credits the assigned contractor's
    leads_converted_count once; leaving it never debits (counters are
    append-only).

    Returns:
        (lead, previous_status)
    """
    lead = repository.get_lead(db, lead_id)
    if lead is None:
        raise NotFoundError(f"Lead {lead_id} not found.", details={"lead_id": lead_id})
    previous = LeadStatus(lead.status)

    fields: dict[str, Any] = {"status": new_status}
    if new_status in CONTACT_STATUSES:
        fields["last_contacted_at"] = utcnow()
    if contractor_notes is not None:
        fields["contractor_notes"] = contractor_notes
    if conversion_value is not None and new_status == LeadStatus.CONVERTED:
        fields["conversion_value"] = conversion_value

    try:
        repository.update_lead_fields(db, lead, **fields)
        if (
            new_status == LeadStatus.CONVERTED
            and previous != LeadStatus.CONVERTED
            and lead.assigned_contractor_id is not None
        ):
            repository.increment_leads_converted(db, lead.assigned_contractor_id)
            repository.mark_contractor_responded(db, lead.id, lead.assigned_contractor_id)

        profile = repository.get_profile(db, lead.user_id)
        repository.write_lead_scores(db, lead, score_lead(lead, profile).as_lead_fields())
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Could not update status of lead %d: %s", lead_id, exc)
        raise PersistenceError(f"Could not update lead {lead_id}.") from exc

    logger.info("Lead %d status %s → %s.", lead_id, previous.value, new_status.value)
    return lead, previous


def contractor_performance(db: Session, active_only: bool = True) -> list[dict[str, Any]]:
    """Per-contractor counters with the conversion rate derived at read time."""
    rows = []
    for contractor in repository.list_contractors(db, active_only=active_only):
        received = contractor.leads_received_count or 0
        converted = contractor.leads_converted_count or 0
        rows.append({
            "id": contractor.id,
            "name": contractor.name,
            "email": contractor.email,
            "subscription_tier": contractor.subscription_tier,
            "leads_received_count": received,
            "leads_converted_count": converted,
            "conversion_rate": round(converted / received * 100, 1) if received else 0.0,
            "assigned_zip_codes": contractor.assigned_zip_codes or [],
            "serves_all_zipcodes": contractor.serves_all_zipcodes,
        })
    return rows
