"""
api/endpoints/lead_routes.py — Lead intake, browsing, status and assignment routes.

POST   /leads/events                       — Record a render / quote event (public)
GET    /leads                              — List leads (filterable by status)
GET    /leads/stats                        — Aggregate counts by status
GET    /leads/{id}                         — Get a single lead with scores
PATCH  /leads/{id}/status                  — Move a lead through the pipeline
GET    /leads/{id}/eligible-contractors    — Contractors that may receive it
POST   /leads/{id}/assign                  — Assign (manual / round_robin / next_in_line)
GET    /leads/{id}/assignments             — Assignment history

Everything except /leads/events requires an admin bearer token.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from api.dependencies import get_notifier, require_admin_principal
from api.schemas import (
    AssignmentResultOut,
    AssignRequest,
    EligibleContractorsOut,
    LeadAssignmentOut,
    LeadEventIn,
    LeadIntakeOut,
    LeadOut,
    LeadStatusOut,
    LeadStatusUpdate,
)
from leadengine.db import repository
from leadengine.db.models import LeadStatus
from leadengine.db.session import get_db
from leadengine.exceptions import NotFoundError
from leadengine.notifications.notifier import LeadNotifier
from leadengine.services.assignment_service import assign_lead, find_eligible_for_lead
from leadengine.services.auth import Principal
from leadengine.services.lead_service import change_lead_status, record_lead_event

logger = logging.getLogger(__name__)
router = APIRouter()


def _get_lead_or_404(db: Session, lead_id: int):
    lead = repository.get_lead(db, lead_id)
    if not lead:
        raise NotFoundError(f"Lead {lead_id} not found.", details={"lead_id": lead_id})
    return lead


@router.post("/events", response_model=LeadIntakeOut, summary="Record a lead-producing event")
def post_lead_event(
    payload: LeadEventIn,
    db: Session = Depends(get_db),
    notifier: LeadNotifier = Depends(get_notifier),
):
    """
    Upsert the lead for this user/email, rescore it, and auto-assign it when
    it qualifies. Assignment problems never fail the request; they are
    reported in `assignment_error`.
    """
    result = record_lead_event(db, payload.model_dump(exclude_unset=True), notifier=notifier)
    return LeadIntakeOut(
        lead_id=result.lead_id,
        created=result.created,
        render_count=result.render_count,
        is_repeat_visitor=result.is_repeat_visitor,
        scores=result.scores.to_dict(),
        assigned_contractor_ids=result.assignment.contractor_ids if result.assignment else [],
        assignment_error=result.assignment_error,
    )


@router.get("/", response_model=list[LeadOut], summary="List leads")
def list_leads(
    status: Optional[LeadStatus] = Query(
        default=None,
        description="Filter by status. Omit to return all leads.",
    ),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    _admin: Principal = Depends(require_admin_principal),
):
    """Return leads newest first, optionally filtered by status."""
    return repository.list_leads(db, status=status, limit=limit, offset=offset)


@router.get("/stats", summary="Lead counts by status")
def lead_stats(
    db: Session = Depends(get_db),
    _admin: Principal = Depends(require_admin_principal),
):
    """Return aggregate lead counts grouped by status."""
    stats = repository.lead_counts_by_status(db)
    stats["total"] = sum(stats.values())
    return stats


@router.get("/{lead_id}", response_model=LeadOut, summary="Get lead by ID")
def get_lead(
    lead_id: int,
    db: Session = Depends(get_db),
    _admin: Principal = Depends(require_admin_principal),
):
    return _get_lead_or_404(db, lead_id)


@router.patch("/{lead_id}/status", response_model=LeadStatusOut, summary="Update lead status")
def patch_lead_status(
    lead_id: int,
    payload: LeadStatusUpdate,
    db: Session = Depends(get_db),
    _admin: Principal = Depends(require_admin_principal),
):
    """
    Update the status of a lead. Moving to `converted` credits the assigned
    contractor's conversion counter once.
    """
    lead, previous = change_lead_status(
        db,
        lead_id,
        payload.status,
        contractor_notes=payload.contractor_notes,
        conversion_value=payload.conversion_value,
    )
    logger.info("Lead %d status updated to %s via API.", lead_id, payload.status.value)
    return LeadStatusOut(lead=LeadOut.model_validate(lead), previous_status=previous)


@router.get(
    "/{lead_id}/eligible-contractors",
    response_model=EligibleContractorsOut,
    summary="Contractors eligible for this lead",
)
def get_eligible_contractors(
    lead_id: int,
    db: Session = Depends(get_db),
    _admin: Principal = Depends(require_admin_principal),
):
    lead = _get_lead_or_404(db, lead_id)
    return {
        "lead_id": lead.id,
        "zip": lead.zip,
        "contractors": find_eligible_for_lead(db, lead),
    }


@router.post("/{lead_id}/assign", response_model=AssignmentResultOut, summary="Assign a lead")
def post_assign_lead(
    lead_id: int,
    payload: AssignRequest,
    db: Session = Depends(get_db),
    notifier: LeadNotifier = Depends(get_notifier),
    _admin: Principal = Depends(require_admin_principal),
):
    """
    Assign the lead using the chosen strategy. The assignment commits before
    contractors are emailed; failed emails are counted, not raised.
    """
    result = assign_lead(
        db,
        lead_id,
        payload.strategy,
        contractor_ids=payload.contractor_ids,
        notifier=notifier,
    )
    assigned = len(result.contractor_ids)
    return AssignmentResultOut(
        lead_id=result.lead_id,
        strategy=result.strategy,
        contractor_ids=result.contractor_ids,
        skipped_contractor_ids=result.skipped_contractor_ids,
        assigned_at=result.assigned_at,
        notifications_sent=result.notifications_sent,
        notifications_failed=result.notifications_failed,
        message=f"Lead assigned to {assigned} contractor(s)." if assigned
        else "Lead already assigned to the selected contractor(s).",
    )


@router.get(
    "/{lead_id}/assignments",
    response_model=list[LeadAssignmentOut],
    summary="Assignment history for a lead",
)
def get_lead_assignments(
    lead_id: int,
    db: Session = Depends(get_db),
    _admin: Principal = Depends(require_admin_principal),
):
    _get_lead_or_404(db, lead_id)
    return repository.list_assignments(db, lead_id=lead_id)
