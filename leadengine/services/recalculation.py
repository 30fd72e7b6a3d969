"""
leadengine/services/recalculation.py — Batch lead score recalculation.

Walks the whole lead corpus in keyset-paginated batches, rescoring every lead
with its owner's current engagement history. Each batch is its own
transaction; a failed batch or lead is reported and skipped, while an
unreachable store aborts the job (earlier batches stay committed).

Only score columns are written, and only when they change, so running the
job twice in a row leaves the second run with nothing to change.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from leadengine.config import settings
from leadengine.db import repository
from leadengine.db.session import SessionLocal
from leadengine.exceptions import PersistenceError
from leadengine.services.auth import Principal, require_admin
from leadengine.services.scoring import score_lead
from leadengine.services.weights import CURRENT_WEIGHTS

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE for "canceling statement due to statement timeout"
_QUERY_CANCELED = "57014"


@dataclass
class RecalculationReport:
    total_leads: int = 0
    attempted: int = 0
    updated_count: int = 0          # leads rescored and committed
    changed_count: int = 0          # of those, leads whose scores actually moved
    failed_count: int = 0
    failed_lead_ids: list[int] = field(default_factory=list)
    batches: int = 0
    failed_batches: int = 0
    scoring_version: str = CURRENT_WEIGHTS.version


def _is_statement_timeout(exc: SQLAlchemyError) -> bool:
    return getattr(getattr(exc, "orig", None), "pgcode", None) == _QUERY_CANCELED


def _bound_batch(db: Session) -> None:
    """Apply the per-batch statement timeout where the store supports it."""
    if db.get_bind().dialect.name == "postgresql":
        timeout_ms = int(settings.recalc_batch_timeout_seconds * 1000)
        db.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))


def recalculate_all(
    principal: Principal,
    session_factory: Callable[[], Session] = SessionLocal,
    batch_size: Optional[int] = None,
    as_of: Optional[datetime] = None,
) -> RecalculationReport:
    """
    Recompute scores for every lead.

    Args:
        principal:       Caller; must hold the admin role.
        session_factory: Produces a fresh Session per batch.
        batch_size:      Leads per transaction (defaults to RECALC_BATCH_SIZE).
        as_of:           Reference time shared by the whole run.

    Returns:
        RecalculationReport with attempted vs. succeeded counts.

    Raises:
        AuthorizationError: principal is not an admin.
        PersistenceError:   the store became unreachable.
    """
    require_admin(principal)
    batch_size = batch_size or settings.recalc_batch_size
    as_of = as_of or datetime.now(timezone.utc)
    report = RecalculationReport()

    try:
        with session_factory() as db:
            report.total_leads = repository.count_leads(db)
    except SQLAlchemyError as exc:
        raise PersistenceError("Could not read the lead corpus.") from exc

    logger.info(
        "Recalculating scores for %d leads (batch size %d, weights %s), requested by %s.",
        report.total_leads, batch_size, report.scoring_version, principal.user_id,
    )

    after_id = 0
    while True:
        with session_factory() as db:
            last_id = _run_batch(db, after_id, batch_size, as_of, report)
        if last_id is None:
            break
        after_id = last_id

    logger.info(
        "Score recalculation complete: %d/%d succeeded, %d changed, %d failed.",
        report.updated_count, report.attempted, report.changed_count, report.failed_count,
    )
    return report


def _run_batch(
    db: Session,
    after_id: int,
    batch_size: int,
    as_of: datetime,
    report: RecalculationReport,
) -> Optional[int]:
    """
    Rescore one batch and commit it.

    Returns:
        The last lead id read (the next batch's keyset start), or None when
        the corpus is exhausted.
    """
    try:
        _bound_batch(db)
        rows = repository.fetch_lead_batch(db, after_id, batch_size)
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError(f"Could not read leads after id {after_id}.") from exc

    if not rows:
        return None

    batch_ids = [lead.id for lead, _ in rows]
    succeeded: list[int] = []
    changed = 0
    failed: list[int] = []

    try:
        for lead, profile in rows:
            try:
                with db.begin_nested():
                    scores = score_lead(lead, profile, as_of=as_of)
                    if repository.write_lead_scores(db, lead, scores.as_lead_fields()):
                        changed += 1
                succeeded.append(lead.id)
            except OperationalError as exc:
                if not _is_statement_timeout(exc):
                    raise
                failed.append(lead.id)
                logger.error("Lead %d timed out during rescoring: %s", lead.id, exc)
            except SQLAlchemyError as exc:
                failed.append(lead.id)
                logger.error("Failed to update scores for lead %d: %s", lead.id, exc)
        db.commit()
    except OperationalError as exc:
        db.rollback()
        if not _is_statement_timeout(exc):
            raise PersistenceError("Lost connection to the store during score recalculation.") from exc
        failed, succeeded, changed = batch_ids, [], 0
        report.failed_batches += 1
        logger.error("Batch after lead %d timed out; %d leads left unchanged.", after_id, len(batch_ids))
    except SQLAlchemyError as exc:
        db.rollback()
        failed, succeeded, changed = batch_ids, [], 0
        report.failed_batches += 1
        logger.error("Batch after lead %d failed to commit: %s", after_id, exc)

    report.batches += 1
    report.attempted += len(rows)
    report.updated_count += len(succeeded)
    report.changed_count += changed
    report.failed_count += len(failed)
    report.failed_lead_ids.extend(failed)
    logger.info(
        "Processed batch %d (%d leads): %d updated so far.",
        report.batches, len(rows), report.updated_count,
    )
    return batch_ids[-1]
