"""
leadengine/services/reporting.py — Read-only views over leads and contractors.

  contractor_lead_feed()  → what a signed-in contractor sees: its territory's
                            leads plus the ones assigned to it, with stats
  dashboard_summary()     → admin overview of leads, users and contractors
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy.orm import Session

from leadengine.config import settings
from leadengine.db import repository
from leadengine.db.models import LeadStatus
from leadengine.exceptions import NotFoundError
from leadengine.services.auth import Principal, require_contractor
from leadengine.services.lead_service import contractor_performance

logger = logging.getLogger(__name__)

RECENT_LEAD_DAYS = 7


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def contractor_lead_feed(
    db: Session,
    principal: Principal,
    as_of: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    Leads visible to the contractor behind `principal`.

    The contractor record is matched on the principal's email (falling back
    to the email on its profile).

    Raises:
        AuthorizationError: the principal is not a contractor.
        NotFoundError:      no contractor record for that email.
    """
    require_contractor(principal)
    email = principal.email
    if not email:
        profile = repository.get_profile(db, principal.user_id)
        email = profile.email if profile else None

    contractor = repository.get_contractor_by_email(db, email) if email else None
    if contractor is None:
        raise NotFoundError(
            "Contractor record not found. Ask an admin to set up your contractor profile.",
            details={"user_id": principal.user_id},
        )

    leads = repository.list_leads_for_contractor(db, contractor)
    as_of = _as_utc(as_of) or datetime.now(timezone.utc)
    week_ago = as_of - timedelta(days=RECENT_LEAD_DAYS)
    scores = [lead.lead_score or 0 for lead in leads]

    stats = {
        "total_leads": len(leads),
        "high_value_leads": sum(1 for s in scores if s >= settings.high_value_lead_score),
        "recent_leads": sum(
            1 for lead in leads
            if lead.created_at is not None and _as_utc(lead.created_at) >= week_ago
        ),
        "avg_lead_score": round(sum(scores) / len(scores), 1) if scores else 0.0,
    }
    logger.info(
        "Contractor %d lead feed: %d leads (%d high value).",
        contractor.id, stats["total_leads"], stats["high_value_leads"],
    )
    return {
        "contractor": contractor,
        "assigned_zip_codes": list(contractor.assigned_zip_codes or []),
        "serves_all_zipcodes": contractor.serves_all_zipcodes,
        "leads": leads,
        "stats": stats,
    }


def dashboard_summary(db: Session) -> dict[str, Any]:
    """Aggregate counts and averages for the admin dashboard."""
    leads = repository.lead_score_summary(db, settings.high_value_lead_score)
    leads["by_status"] = repository.lead_counts_by_status(db)

    users = repository.profile_counts_by_role(db)

    performance = contractor_performance(db, active_only=False)
    rates = [row["conversion_rate"] for row in performance]
    contractors = {
        "total_contractors": len(performance),
        "active_subscribers": len(repository.list_contractors(db, active_only=True)),
        "avg_conversion_rate": round(sum(rates) / len(rates), 2) if rates else 0.0,
        "total_leads_received": sum(row["leads_received_count"] for row in performance),
        "total_leads_converted": sum(row["leads_converted_count"] for row in performance),
    }

    return {
        "leads": {
            **leads,
            "new_leads": leads["by_status"][LeadStatus.NEW.value],
            "assigned_leads": leads["by_status"][LeadStatus.ASSIGNED.value],
            "quoted_leads": leads["by_status"][LeadStatus.QUOTED.value],
            "converted_leads": leads["by_status"][LeadStatus.CONVERTED.value],
        },
        "users": {"total_users": sum(users.values()), "by_role": users},
        "contractors": contractors,
    }
