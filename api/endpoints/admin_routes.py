"""
api/endpoints/admin_routes.py — Admin maintenance routes.

POST  /admin/recompute-scores  — Rescore every lead in batches
GET   /admin/summary           — Dashboard totals and score averages
"""

import logging
from typing import Callable, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from api.dependencies import get_session_factory, require_admin_principal
from api.schemas import DashboardSummaryOut, RecalculationOut
from leadengine.db.session import get_db
from leadengine.services.auth import Principal
from leadengine.services.recalculation import recalculate_all
from leadengine.services.reporting import dashboard_summary

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/recompute-scores", response_model=RecalculationOut, summary="Recompute all lead scores")
def recompute_scores(
    batch_size: Optional[int] = Query(default=None, ge=1, le=1000),
    principal: Principal = Depends(require_admin_principal),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
):
    """
    Recalculate every lead's scores with the current weights. Individual
    lead or batch failures are reported, not raised.
    """
    report = recalculate_all(principal, session_factory=session_factory, batch_size=batch_size)
    if report.failed_count:
        message = (
            f"Updated {report.updated_count} of {report.attempted} leads; "
            f"{report.failed_count} failed."
        )
    else:
        message = f"Successfully updated scores for {report.updated_count} leads."
    return RecalculationOut(
        success=report.failed_count == 0,
        message=message,
        total_leads=report.total_leads,
        attempted=report.attempted,
        updated_count=report.updated_count,
        changed_count=report.changed_count,
        failed_count=report.failed_count,
        failed_lead_ids=report.failed_lead_ids,
        batches=report.batches,
        failed_batches=report.failed_batches,
        scoring_version=report.scoring_version,
    )


@router.get("/summary", response_model=DashboardSummaryOut, summary="Dashboard summary")
def get_summary(
    db: Session = Depends(get_db),
    _admin: Principal = Depends(require_admin_principal),
):
    """Lead, user and contractor totals with score and conversion averages."""
    return dashboard_summary(db)
