"""
leadengine/services/eligibility.py — Contractor eligibility for a lead's territory.

A contractor may receive a lead iff it is an active subscriber AND it either
serves every ZIP code or lists the lead's ZIP among its assigned codes.
"""

import logging
from typing import Any, Iterable, Optional

logger = logging.getLogger(__name__)


def is_eligible(contractor: Any, zip_code: Optional[str]) -> bool:
    if not contractor.is_active_subscriber:
        return False
    if contractor.serves_all_zipcodes:
        return True
    if not zip_code:
        return False
    return zip_code in (contractor.assigned_zip_codes or [])


def eligible_contractors(contractors: Iterable[Any], zip_code: Optional[str]) -> list:
    """
    Filter contractors down to those eligible for a ZIP code, preserving order.
    An empty list is a valid answer; callers decide what "nobody" means.
    """
    pool = list(contractors)
    eligible = [c for c in pool if is_eligible(c, zip_code)]
    logger.debug("Eligibility for ZIP %s: %d of %d contractors.", zip_code, len(eligible), len(pool))
    return eligible
