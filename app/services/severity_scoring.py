"""
Severity Scoring Service - system-derived composite priority score.

DESIGN PRINCIPLES:
- Severity is SYSTEM-DERIVED, NOT user-editable
- Scoring is a pure function of the report snapshot and "now" (no I/O)
- Score: 0-100 (higher = more urgent), rounded to 2 decimals
- Terminal reports (RESOLVED/REJECTED) are never recomputed: their score
  is a snapshot taken at the transition, not a decaying value
- Duplicates are excluded from re-ranking

Factors and weights:
1. Upvotes (40%)        - logarithmic, 0 -> 0, 10 -> 52, 99 -> 100
2. Age (20%)            - linear ramp to 100 over 30 days, then flat
3. Category (25%)       - fixed urgency table, unknown -> 30
4. Verifications (15%)  - logarithmic, stronger than upvotes per step
The weighted sum is multiplied by a status factor.
"""

from app.models.report import Report, ReportStatus, SeverityBreakdown
from app.services.report_store import ReportStore, get_report_store
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional
import logging
import math

logger = logging.getLogger(__name__)


class Category(str, Enum):
    SECURITY = "Security"
    HEALTH = "Health"
    WATER_SANITATION = "Water & Sanitation"
    ELECTRICITY = "Electricity"
    ROAD_TRANSPORT = "Road Transport"
    ENVIRONMENT = "Environment"
    WASTE_MANAGEMENT = "Waste Management"
    HOUSING = "Housing"
    EDUCATION = "Education"
    ADMINISTRATIVE = "Administrative / Government Service Delay"


CATEGORY_URGENCY: Dict[Category, float] = {
    Category.SECURITY: 100,
    Category.HEALTH: 90,
    Category.WATER_SANITATION: 80,
    Category.ELECTRICITY: 70,
    Category.ROAD_TRANSPORT: 60,
    Category.ENVIRONMENT: 55,
    Category.WASTE_MANAGEMENT: 50,
    Category.HOUSING: 45,
    Category.EDUCATION: 40,
    Category.ADMINISTRATIVE: 30,
}

# Unknown or missing category labels score as administrative
DEFAULT_CATEGORY_SCORE = 30.0

STATUS_MULTIPLIERS: Dict[ReportStatus, float] = {
    ReportStatus.REPORTED: 1.0,
    ReportStatus.IN_REVIEW: 0.9,
    ReportStatus.IN_PROGRESS: 0.7,
    ReportStatus.RESOLVED: 0.1,
    ReportStatus.REJECTED: 0.0,
}

WEIGHT_UPVOTES = 0.4
WEIGHT_TIME = 0.2
WEIGHT_CATEGORY = 0.25
WEIGHT_VERIFICATIONS = 0.15

TIME_RAMP_DAYS = 30


def category_score(label: Optional[str]) -> float:
    """
    Urgency of a category label.

    Labels outside the Category enum (including None and "") take
    DEFAULT_CATEGORY_SCORE.
    """
    try:
        category = Category(label)
    except ValueError:
        logger.debug(f"Unknown category {label!r}, using default score {DEFAULT_CATEGORY_SCORE}")
        return DEFAULT_CATEGORY_SCORE
    return float(CATEGORY_URGENCY[category])


def _age_days(created_at: datetime, now: datetime) -> float:
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return max(0.0, (now - created_at).total_seconds() / 86400)


def calculate_severity(report: Report, now: Optional[datetime] = None) -> SeverityBreakdown:
    """
    Calculate the severity breakdown for a report snapshot.

    Args:
        report: Report snapshot
        now: Reference time for the age factor (defaults to current UTC time)
    """
    now = now or datetime.now(timezone.utc)

    upvote_score = min(100.0, math.log10(report.upvote_count + 1) * 50)
    time_score = min(100.0, _age_days(report.created_at, now) / TIME_RAMP_DAYS * 100)
    cat_score = category_score(report.category)
    verification_score = min(100.0, math.log10(report.verification_count + 1) * 60)
    status_multiplier = STATUS_MULTIPLIERS[ReportStatus(report.status)]

    raw_score = (
        WEIGHT_UPVOTES * upvote_score
        + WEIGHT_TIME * time_score
        + WEIGHT_CATEGORY * cat_score
        + WEIGHT_VERIFICATIONS * verification_score
    )
    total_score = round(raw_score * status_multiplier, 2)

    return SeverityBreakdown(
        upvote_score=round(upvote_score, 2),
        time_score=round(time_score, 2),
        category_score=cat_score,
        verification_score=round(verification_score, 2),
        status_multiplier=status_multiplier,
        total_score=total_score,
    )


def severity_level(score: float) -> str:
    """critical >= 75, high >= 50, medium >= 25, else low. Boundaries go up."""
    if score >= 75:
        return "critical"
    if score >= 50:
        return "high"
    if score >= 25:
        return "medium"
    return "low"


def severity_color(score: float) -> str:
    """UI hint colour for a score band."""
    if score >= 75:
        return "#e5484d"
    if score >= 50:
        return "#f5a623"
    if score >= 25:
        return "#0091ff"
    return "#30a46c"


class SeverityScoringService:
    """
    Applies severity scores to stored reports.
    """

    def __init__(self, store: Optional[ReportStore] = None):
        self.store = store or get_report_store()

    def update_report_severity(self, report_id: str, now: Optional[datetime] = None) -> SeverityBreakdown:
        """
        Recalculate and store the severity of one report.

        Raises NotFound if the report does not exist.
        """
        now = now or datetime.now(timezone.utc)
        report = self.store.get(report_id)
        breakdown = calculate_severity(report, now)
        self.store.update_fields(
            report_id,
            {"severity_score": breakdown.total_score, "severity_last_updated": now},
        )
        logger.debug(f"Severity score updated for report {report_id}: {breakdown.total_score}")
        return breakdown

    def recompute_all(self, reports: Optional[Iterable[Report]] = None, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Batch recompute for active reports.

        Terminal reports and duplicates are skipped. Each report is updated
        independently; a failure is logged and counted in `failed` and the
        loop carries on.

        Returns:
            Dict with updated, failed and skipped counts
        """
        now = now or datetime.now(timezone.utc)
        if reports is None:
            reports = self.store.list_reports(
                exclude_statuses=[ReportStatus.RESOLVED, ReportStatus.REJECTED],
                include_duplicates=False,
            )

        updated = 0
        failed = 0
        skipped = 0
        logger.info("Starting batch severity score update")

        for report in reports:
            if ReportStatus(report.status).is_terminal or report.is_duplicate:
                skipped += 1
                continue
            try:
                breakdown = calculate_severity(report, now)
                self.store.update_fields(
                    report.id,
                    {"severity_score": breakdown.total_score, "severity_last_updated": now},
                )
                updated += 1
            except Exception as e:
                logger.error(f"Failed to update severity for report {report.id}: {e}", exc_info=True)
                failed += 1

        logger.info(f"Batch severity update completed: {updated} updated, {failed} failed, {skipped} skipped")
        return {"updated": updated, "failed": failed, "skipped": skipped}

    def rank_all(
        self,
        statuses: Optional[List[ReportStatus]] = None,
        min_severity: Optional[float] = None,
    ) -> List[Report]:
        """Every matching stored report ordered by severity score (desc), duplicates excluded."""
        reports = self.store.list_reports(statuses=statuses, include_duplicates=False)
        if min_severity is not None:
            reports = [r for r in reports if r.severity_score >= min_severity]
        reports.sort(key=lambda r: (-r.severity_score, r.id))
        return reports

    def ranked_reports(
        self,
        limit: int = 20,
        offset: int = 0,
        statuses: Optional[List[ReportStatus]] = None,
        min_severity: Optional[float] = None,
    ) -> List[Report]:
        """One page of rank_all()."""
        return self.rank_all(statuses=statuses, min_severity=min_severity)[offset: offset + limit]


# Global service instance (singleton pattern)
_severity_service = None


def get_severity_scoring_service() -> SeverityScoringService:
    """
    Get or create SeverityScoringService singleton instance.
    """
    global _severity_service
    if _severity_service is None:
        _severity_service = SeverityScoringService()
    return _severity_service
