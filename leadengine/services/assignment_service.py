"""
leadengine/services/assignment_service.py — Assignment executor.

assign_lead() turns a strategy decision into persisted state in ONE
transaction:

  - lead.status → assigned, assigned_contractor_id → first target
  - leads_received_count += 1 on every newly targeted contractor
  - one LeadAssignment row per new (lead, contractor) pair
  - the round-robin cursor advance (when that strategy is used)

Contractor notifications run only after the commit and are best-effort.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from leadengine.db import repository
from leadengine.db.models import AssignmentMethod, Contractor, Lead, LeadAssignment, LeadStatus, utcnow
from leadengine.exceptions import NotFoundError, NotificationError, PersistenceError, ValidationError
from leadengine.notifications.notifier import LeadNotifier
from leadengine.services.eligibility import eligible_contractors
from leadengine.services.strategies import AssignmentStrategy, dedupe_ids, select_contractors

logger = logging.getLogger(__name__)

# Pipeline outcomes that assignment must not reopen.
CLOSED_STATUSES = frozenset({LeadStatus.CONVERTED, LeadStatus.DEAD, LeadStatus.UNQUALIFIED})


@dataclass
class AssignmentResult:
    lead_id: int
    strategy: str
    contractor_ids: list[int] = field(default_factory=list)            # newly assigned
    skipped_contractor_ids: list[int] = field(default_factory=list)    # already held this lead
    assigned_at: Optional[datetime] = None
    notifications_sent: int = 0
    notifications_failed: int = 0


def find_eligible_for_lead(db: Session, lead: Lead, for_update: bool = False) -> list[Contractor]:
    """Active contractors (registration order) eligible for the lead's ZIP."""
    active = repository.list_contractors(db, active_only=True, for_update=for_update)
    return eligible_contractors(active, lead.zip)


def _require_lead(db: Session, lead_id: int) -> Lead:
    lead = repository.get_lead(db, lead_id)
    if lead is None:
        raise NotFoundError(f"Lead {lead_id} not found.", details={"lead_id": lead_id})
    return lead


def _require_known_contractors(db: Session, contractor_ids: Sequence[int]) -> None:
    known = {c.id for c in repository.get_contractors_by_ids(db, contractor_ids)}
    missing = [cid for cid in contractor_ids if cid not in known]
    if missing:
        raise NotFoundError(f"Contractor(s) {missing} not found.", details={"contractor_ids": missing})


def assign_lead(
    db: Session,
    lead_id: int,
    strategy: AssignmentStrategy,
    contractor_ids: Optional[Sequence[int]] = None,
    notifier: Optional[LeadNotifier] = None,
    method: Optional[AssignmentMethod] = None,
) -> AssignmentResult:
    """
    Assign a lead to contractor(s) chosen by `strategy`.

    Args:
        db:             Session; this function commits (or rolls back) its own unit.
        lead_id:        Lead to assign.
        strategy:       manual / round_robin / next_in_line.
        contractor_ids: Required for manual; ignored otherwise.
        notifier:       Notification collaborator (defaults to LeadNotifier()).
        method:         Recorded assignment method; defaults to the strategy's.

    Raises:
        NotFoundError, ValidationError, NotEligibleError,
        NoEligibleContractorsError, PersistenceError.
        Nothing is persisted when any of these is raised.
    """
    try:
        lead = _require_lead(db, lead_id)
        if lead.status in CLOSED_STATUSES:
            raise ValidationError(
                f"Lead {lead_id} is {lead.status.value} and cannot be assigned.",
                details={"lead_id": lead_id, "status": lead.status.value},
            )
        if strategy == AssignmentStrategy.MANUAL and contractor_ids:
            contractor_ids = dedupe_ids(contractor_ids)
            _require_known_contractors(db, contractor_ids)

        # Re-read eligibility inside this transaction, locking the rows we may bump.
        eligible = find_eligible_for_lead(db, lead, for_update=True)
        already = repository.get_assigned_contractor_ids(db, lead.id)
        if strategy != AssignmentStrategy.MANUAL:
            # Automatic strategies only pick among contractors not yet holding the lead.
            eligible = [c for c in eligible if c.id not in already]
        targets = select_contractors(db, strategy, eligible, lead.zip, contractor_ids)

        new_targets = [c for c in targets if c.id not in already]
        skipped = [c.id for c in targets if c.id in already]
        if skipped:
            logger.info("Lead %d already assigned to %s — not re-counted.", lead.id, skipped)

        result = AssignmentResult(
            lead_id=lead.id,
            strategy=strategy.value,
            contractor_ids=[c.id for c in new_targets],
            skipped_contractor_ids=skipped,
        )
        if not new_targets:
            # Manual repeat of existing pairs: nothing to persist.
            db.rollback()
            return result

        now = utcnow()
        assignments: list[tuple[Contractor, LeadAssignment]] = []
        for contractor in new_targets:
            assignments.append((
                contractor,
                repository.record_assignment(db, lead.id, contractor.id, method or strategy.method),
            ))
        repository.increment_leads_received(db, result.contractor_ids)

        repository.update_lead_fields(
            db,
            lead,
            status=LeadStatus.ASSIGNED,
            assigned_contractor_id=targets[0].id,
            sent_at=now,
        )

        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Assignment of lead %d failed in the store: %s", lead_id, exc)
        raise PersistenceError(f"Could not persist assignment for lead {lead_id}.") from exc
    except Exception:
        db.rollback()
        raise

    result.assigned_at = now
    logger.info(
        "Lead %d assigned via %s to contractor(s) %s.",
        lead.id, strategy.value, result.contractor_ids,
    )

    _notify_contractors(db, lead, assignments, notifier or LeadNotifier(), result)
    return result


def _notify_contractors(
    db: Session,
    lead: Lead,
    assignments: list[tuple[Contractor, LeadAssignment]],
    notifier: LeadNotifier,
    result: AssignmentResult,
) -> None:
    """Best-effort: failures are logged, recorded and counted, never raised."""
    for contractor, assignment in assignments:
        try:
            outcome = notifier.notify_contractor(contractor, lead, assignment.id)
            if not outcome.delivered:
                raise NotificationError(outcome.error or "delivery failed")
            error_message = None
            result.notifications_sent += 1
        except Exception as exc:
            error_message = exc.message if isinstance(exc, NotificationError) else str(exc)
            result.notifications_failed += 1
            logger.warning(
                "Notification for lead %d to contractor %d failed: %s",
                lead.id, contractor.id, error_message,
            )

        try:
            repository.mark_assignment_notified(db, assignment.id, error_message)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Could not record notification outcome for assignment %d: %s", assignment.id, exc)
