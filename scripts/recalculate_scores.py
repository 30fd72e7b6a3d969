"""
scripts/recalculate_scores.py — CLI to recompute every lead's scores.

Runs the same batch job as POST /admin/recompute-scores, in-process with a
system admin principal. Useful after the scoring weights change.

Usage:
    python scripts/recalculate_scores.py [--batch-size N]
"""

import argparse
import logging
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# ── Imports ───────────────────────────────────────────────────────────────────

from leadengine.exceptions import LeadEngineError
from leadengine.logging_config import configure_logging
from leadengine.services.auth import Principal
from leadengine.services.recalculation import recalculate_all

logger = logging.getLogger(__name__)


# ── Entry point ───────────────────────────────────────────────────────────────

def main() -> int:
    parser = argparse.ArgumentParser(description="Lead Engine — Score Recalculation")
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Leads per transaction (default: RECALC_BATCH_SIZE from .env)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override LOG_LEVEL for this run",
    )
    args = parser.parse_args()
    configure_logging(level=args.log_level)

    print("\n" + "=" * 55)
    print("  📊  Lead Engine — Score Recalculation")
    print("=" * 55 + "\n")

    try:
        report = recalculate_all(Principal.system(), batch_size=args.batch_size)
    except LeadEngineError as exc:
        logger.error("Recalculation aborted: %s", exc.message)
        return 1

    print("\n" + "=" * 55)
    print("  ✅  Recalculation complete!")
    print(f"     Weights   : {report.scoring_version}")
    print(f"     Leads     : {report.total_leads}")
    print(f"     Attempted : {report.attempted}")
    print(f"     Updated   : {report.updated_count}")
    print(f"     Changed   : {report.changed_count}")
    print(f"     Failed    : {report.failed_count}")
    if report.failed_lead_ids:
        print(f"     Failed ids: {report.failed_lead_ids}")
    print("=" * 55 + "\n")
    return 0 if report.failed_count == 0 else 2


if __name__ == "__main__":
    sys.exit(main())
