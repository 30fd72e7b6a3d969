"""
leadengine/services/strategies.py — Assignment strategy selector.

Given the eligible contractor set for a lead, pick the target contractors:

  manual        → exactly the caller's ids, all of which must be eligible
  round_robin   → one contractor, rotating through the set via a persisted
                  per-territory cursor
  next_in_line  → one contractor, the one that has received the fewest leads
"""

import enum
import logging
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from leadengine.db import repository
from leadengine.db.models import AssignmentMethod, Contractor
from leadengine.exceptions import NoEligibleContractorsError, NotEligibleError, ValidationError

logger = logging.getLogger(__name__)

# Cursor key for leads without a ZIP (only serve-everywhere contractors qualify).
ANY_TERRITORY = "*"


class AssignmentStrategy(str, enum.Enum):
    MANUAL = "manual"
    ROUND_ROBIN = "round_robin"
    NEXT_IN_LINE = "next_in_line"

    @property
    def method(self) -> AssignmentMethod:
        return AssignmentMethod(self.value)


def registration_order(contractors: Sequence[Contractor]) -> list[Contractor]:
    return sorted(contractors, key=lambda c: (c.created_at, c.id))


def dedupe_ids(contractor_ids: Sequence[int]) -> list[int]:
    seen: set[int] = set()
    ordered = []
    for contractor_id in contractor_ids:
        if contractor_id not in seen:
            seen.add(contractor_id)
            ordered.append(contractor_id)
    return ordered


def select_manual(
    eligible: Sequence[Contractor],
    contractor_ids: Optional[Sequence[int]],
    zip_code: Optional[str],
) -> list[Contractor]:
    if not contractor_ids:
        raise ValidationError("Manual assignment requires at least one contractor id.")
    by_id = {c.id: c for c in eligible}
    requested = dedupe_ids(contractor_ids)
    rejected = [cid for cid in requested if cid not in by_id]
    if rejected:
        logger.warning(
            "Manual assignment rejected: contractor(s) %s not eligible for ZIP %s.",
            rejected, zip_code,
        )
        raise NotEligibleError(rejected, zip_code)
    return [by_id[cid] for cid in requested]


def select_round_robin(db: Session, eligible: Sequence[Contractor], territory: str) -> Contractor:
    """Pick position mod k from the registration-ordered set, advancing the cursor."""
    ordered = registration_order(eligible)
    position = repository.advance_cursor(db, territory)
    chosen = ordered[position % len(ordered)]
    logger.debug(
        "Round-robin %s: position %d of %d → contractor %d.",
        territory, position, len(ordered), chosen.id,
    )
    return chosen


def select_next_in_line(eligible: Sequence[Contractor]) -> Contractor:
    """Fewest leads received wins; ties go to the earliest registration."""
    return min(eligible, key=lambda c: (c.leads_received_count or 0, c.created_at, c.id))


def select_contractors(
    db: Session,
    strategy: AssignmentStrategy,
    eligible: Sequence[Contractor],
    zip_code: Optional[str],
    contractor_ids: Optional[Sequence[int]] = None,
) -> list[Contractor]:
    """
    Apply a strategy to the eligible set.

    Returns:
        A non-empty, ordered list of target contractors.

    Raises:
        NoEligibleContractorsError: the eligible set is empty.
        NotEligibleError:           manual ids outside the eligible set.
        ValidationError:            manual strategy without ids.
    """
    # Manual ids are judged on their own: an empty territory still rejects them by id.
    if strategy == AssignmentStrategy.MANUAL:
        return select_manual(eligible, contractor_ids, zip_code)

    if not eligible:
        raise NoEligibleContractorsError(zip_code)

    if strategy == AssignmentStrategy.ROUND_ROBIN:
        return [select_round_robin(db, eligible, zip_code or ANY_TERRITORY)]
    if strategy == AssignmentStrategy.NEXT_IN_LINE:
        return [select_next_in_line(eligible)]
    raise ValidationError(f"Unknown assignment strategy: {strategy!r}")
