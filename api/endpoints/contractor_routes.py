"""
api/endpoints/contractor_routes.py — Contractor management and self-service routes.

POST   /contractors               — Register a contractor
GET    /contractors               — List contractors in registration order
GET    /contractors/performance   — Received / converted counters and conversion rate
GET    /contractors/me/leads      — Signed-in contractor's lead feed (contractor token)
GET    /contractors/{id}          — Get one contractor
PATCH  /contractors/{id}          — Update territory, subscription or contact details

Everything except /contractors/me/leads requires an admin bearer token.
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from api.dependencies import require_admin_principal, require_contractor_principal
from api.schemas import (
    ContractorIn,
    ContractorLeadFeedOut,
    ContractorOut,
    ContractorPerformanceOut,
    ContractorUpdate,
)
from leadengine.db import repository
from leadengine.db.session import get_db
from leadengine.exceptions import NotFoundError, ValidationError
from leadengine.services.auth import Principal
from leadengine.services.lead_service import contractor_performance
from leadengine.services.reporting import contractor_lead_feed

logger = logging.getLogger(__name__)
router = APIRouter()


def _get_contractor_or_404(db: Session, contractor_id: int):
    contractor = repository.get_contractor(db, contractor_id)
    if not contractor:
        raise NotFoundError(
            f"Contractor {contractor_id} not found.",
            details={"contractor_id": contractor_id},
        )
    return contractor


@router.post("/", response_model=ContractorOut, status_code=201, summary="Register a contractor")
def create_contractor(
    payload: ContractorIn,
    db: Session = Depends(get_db),
    _admin: Principal = Depends(require_admin_principal),
):
    if repository.get_contractor_by_email(db, payload.email):
        raise ValidationError(f"A contractor with email {payload.email} already exists.")
    try:
        contractor = repository.create_contractor(db, **payload.model_dump())
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ValidationError(f"A contractor with email {payload.email} already exists.") from exc
    return contractor


@router.get("/", response_model=list[ContractorOut], summary="List contractors")
def list_contractors(
    active_only: bool = Query(default=False, description="Only active subscribers"),
    db: Session = Depends(get_db),
    _admin: Principal = Depends(require_admin_principal),
):
    return repository.list_contractors(db, active_only=active_only)


@router.get(
    "/performance",
    response_model=list[ContractorPerformanceOut],
    summary="Contractor lead performance",
)
def get_performance(
    active_only: bool = Query(default=True),
    db: Session = Depends(get_db),
    _admin: Principal = Depends(require_admin_principal),
):
    """Leads received vs. converted per contractor; the rate is derived, not stored."""
    return contractor_performance(db, active_only=active_only)


@router.get("/me/leads", response_model=ContractorLeadFeedOut, summary="My lead feed")
def get_my_leads(
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_contractor_principal),
):
    """
    Leads in the signed-in contractor's service area plus any assigned to it,
    newest first, with summary stats.
    """
    return contractor_lead_feed(db, principal)


@router.get("/{contractor_id}", response_model=ContractorOut, summary="Get contractor by ID")
def get_contractor(
    contractor_id: int,
    db: Session = Depends(get_db),
    _admin: Principal = Depends(require_admin_principal),
):
    return _get_contractor_or_404(db, contractor_id)


@router.patch("/{contractor_id}", response_model=ContractorOut, summary="Update a contractor")
def patch_contractor(
    contractor_id: int,
    payload: ContractorUpdate,
    db: Session = Depends(get_db),
    _admin: Principal = Depends(require_admin_principal),
):
    contractor = _get_contractor_or_404(db, contractor_id)
    fields = payload.model_dump(exclude_unset=True)
    try:
        repository.update_contractor(db, contractor, **fields)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ValidationError("Contractor email is already in use.") from exc
    logger.info("Contractor %d updated via API: %s", contractor_id, sorted(fields))
    return contractor
