"""
Batch triage jobs against the configured report store.

Usage:
  - Recompute severity for every active report:
      python -m scripts.triage_jobs recompute-severity
  - Embed reports that are missing an embedding or flagged for backfill:
      python -m scripts.triage_jobs backfill-embeddings
  - Preview without writing (severity only):
      python -m scripts.triage_jobs recompute-severity --dry-run

Meant to be run from cron; "now" is taken once per run so every report in a
batch ages against the same instant.

NOTE: Set FIREBASE_CREDENTIALS_PATH in `.env` (or USE_MOCK_DB=true for a
local dry run against the empty in-memory store).
"""

import argparse
import logging
import sys
from datetime import datetime, timezone

from app.config.firebase import initialize_firestore
from app.core.settings import settings
from app.models.report import ReportStatus
from app.services.duplicate_detection import get_duplicate_detection_service
from app.services.severity_scoring import calculate_severity, get_severity_scoring_service, severity_level

logger = logging.getLogger("triage_jobs")


def preview_severity(now: datetime) -> int:
    service = get_severity_scoring_service()
    reports = service.store.list_reports(
        exclude_statuses=[ReportStatus.RESOLVED, ReportStatus.REJECTED],
        include_duplicates=False,
    )
    for report in reports:
        breakdown = calculate_severity(report, now)
        logger.info(
            f"{report.id}: {report.severity_score} -> {breakdown.total_score} "
            f"({severity_level(breakdown.total_score)})"
        )
    logger.info(f"Dry run complete: {len(reports)} report(s). Re-run without --dry-run to write.")
    return 0


def recompute_severity(now: datetime) -> int:
    summary = get_severity_scoring_service().recompute_all(now=now)
    logger.info(f"Severity recompute summary: {summary}")
    return 1 if summary["failed"] else 0


def backfill_embeddings() -> int:
    summary = get_duplicate_detection_service().backfill_pending()
    logger.info(f"Embedding backfill summary: {summary}")
    return 1 if summary["failed"] else 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Civic triage batch jobs")
    subparsers = parser.add_subparsers(dest="command", required=True)

    recompute = subparsers.add_parser("recompute-severity", help="Recompute severity scores for active reports")
    recompute.add_argument("--dry-run", action="store_true", help="Print new scores without writing them")
    subparsers.add_parser("backfill-embeddings", help="Embed reports flagged for backfill")

    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")

    if not settings.USE_MOCK_DB:
        initialize_firestore()

    if args.command == "recompute-severity":
        now = datetime.now(timezone.utc)
        if args.dry_run:
            return preview_severity(now)
        return recompute_severity(now)
    return backfill_embeddings()


if __name__ == "__main__":
    sys.exit(main())
