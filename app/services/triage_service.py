"""
Triage Service - composes duplicate detection, severity scoring and
geography resolution for new reports, and serves the ranked / aggregate
views the API exposes.

DESIGN PRINCIPLES:
- Provider failures degrade, they do not fail the request:
  * no embedding -> duplicate check deferred, report flagged for backfill
  * no route     -> straight-line distance
- Duplicate merges and severity updates go through their own services
- Geography comes from the immutable boundary index
"""

from app.core.errors import EmbeddingUnavailable, NotFound, ValidationError
from app.core.settings import settings
from app.models.report import ImageAnalysis, ReportStatus, RouteResult, RouteUnavailable, SeverityBreakdown
from app.services.ai_plugin.base import ImageClassifier
from app.services.ai_plugin.registry import get_image_classifier
from app.services.boundary_index import BoundaryIndex, get_boundary_index
from app.services.duplicate_detection import DuplicateDetectionService, get_duplicate_detection_service
from app.services.report_store import ReportStore, get_report_store
from app.services.routing.gateway import (
    RoutingGateway,
    find_nearest_report,
    format_distance,
    format_duration,
    get_routing_gateway,
)
from app.services.severity_scoring import (
    SeverityScoringService,
    calculate_severity,
    get_severity_scoring_service,
    severity_color,
    severity_level,
)
from app.utils.geometry import validate_coordinate
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union
import logging

logger = logging.getLogger(__name__)


def _unit_summary(unit, *extra: str) -> Optional[Dict[str, Any]]:
    if unit is None:
        return None
    summary = {"id": unit.id, "name": unit.name}
    for attr in extra:
        summary[attr] = getattr(unit, attr)
    return summary


def _route_payload(route: Union[RouteResult, RouteUnavailable]) -> Optional[Dict[str, Any]]:
    if isinstance(route, RouteUnavailable):
        return None
    return {
        "distance": route.distance_meters,
        "distance_formatted": format_distance(route.distance_meters),
        "duration": route.duration_seconds,
        "duration_formatted": format_duration(route.duration_seconds),
        "geometry": [list(p) for p in route.geometry],
    }


class TriageService:
    """
    Triage orchestrator.
    """

    def __init__(
        self,
        store: Optional[ReportStore] = None,
        duplicates: Optional[DuplicateDetectionService] = None,
        severity: Optional[SeverityScoringService] = None,
        routing: Optional[RoutingGateway] = None,
        boundaries: Optional[BoundaryIndex] = None,
        classifier: Optional[ImageClassifier] = None,
    ):
        self.store = store or get_report_store()
        self.duplicates = duplicates or get_duplicate_detection_service()
        self.severity = severity or get_severity_scoring_service()
        self.routing = routing or get_routing_gateway()
        self._boundaries = boundaries
        self._classifier = classifier

    @property
    def boundaries(self) -> BoundaryIndex:
        # Resolved lazily so the service can be built before startup loads boundaries
        return self._boundaries or get_boundary_index()

    @property
    def classifier(self) -> ImageClassifier:
        if self._classifier is None:
            self._classifier = get_image_classifier()
        return self._classifier

    def _refresh_severity(self, report_id: str, now: Optional[datetime] = None) -> Tuple[SeverityBreakdown, float]:
        """
        Store a fresh severity score and return (breakdown, stored score).

        Terminal reports and duplicates keep their stored score; their
        breakdown is a preview only.
        """
        report = self.store.get(report_id)
        if ReportStatus(report.status).is_terminal or report.is_duplicate:
            logger.debug(f"Severity of report {report_id} is frozen at {report.severity_score}")
            return calculate_severity(report, now), report.severity_score
        breakdown = self.severity.update_report_severity(report_id, now=now)
        return breakdown, breakdown.total_score

    # ------------------------------------------------------------------
    # New report triage
    # ------------------------------------------------------------------

    def triage_report(self, report_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Classify a stored report: embed it, look for duplicates, score it and
        resolve its ward/district.

        The report is NOT merged automatically; potential duplicates are
        returned for a human or an explicit merge call.
        """
        now = now or datetime.now(timezone.utc)
        report = self.store.get(report_id)

        duplicate_check: Dict[str, Any] = {"deferred": False, "duplicates": []}
        if settings.ENABLE_DUPLICATE_DETECTION:
            try:
                embedding = self.duplicates.backfill_embedding(report_id)
                report = report.model_copy(update={"embedding": embedding})
                similar = self.duplicates.find_similar(report)
                duplicate_check["duplicates"] = [c.model_dump() for c in similar]
            except EmbeddingUnavailable as e:
                logger.warning(f"Duplicate check deferred for report {report_id}: {e.message}")
                self.store.update_fields(report_id, {"needs_embedding_backfill": True})
                duplicate_check["deferred"] = True

        breakdown, score = self._refresh_severity(report_id, now=now)

        ward = district = None
        if report.has_location:
            ward = self.boundaries.resolve_ward(report.latitude, report.longitude)
            district = self.boundaries.resolve_district(report.latitude, report.longitude)

        logger.info(
            f"Triaged report {report_id}: severity {score}, "
            f"{len(duplicate_check['duplicates'])} potential duplicate(s), "
            f"ward {ward.id if ward else None}"
        )

        return {
            "report_id": report_id,
            "has_potential_duplicates": bool(duplicate_check["duplicates"]),
            "duplicate_check_deferred": duplicate_check["deferred"],
            "duplicates": duplicate_check["duplicates"],
            "severity": breakdown.model_dump(),
            "severity_score": score,
            "severity_level": severity_level(score),
            "ward": _unit_summary(ward, "district_name"),
            "district": _unit_summary(district, "province_name"),
        }

    def reanalyze_image(self, report_id: str, image_url: Optional[str] = None) -> Dict[str, Any]:
        """
        Explicitly re-run the image classifier and store its category.

        Raises ClassifierUnavailable when the classifier fails; nothing is
        written in that case.
        """
        report = self.store.get(report_id)
        image_url = image_url or report.image_url
        if not image_url:
            raise ValidationError("Report has no image to analyze", {"report_id": report_id})

        analysis: ImageAnalysis = self.classifier.classify_image(image_url)
        if analysis.category:
            self.store.update_fields(
                report_id,
                {"category": analysis.category, "category_confidence": analysis.confidence},
            )
        breakdown, score = self._refresh_severity(report_id)
        return {
            "report_id": report_id,
            "analysis": analysis.model_dump(),
            "severity": breakdown.model_dump(),
            "severity_score": score,
            "severity_level": severity_level(score),
        }

    # ------------------------------------------------------------------
    # Ranked / aggregate views
    # ------------------------------------------------------------------

    def severity_ranking(
        self,
        limit: int = 20,
        offset: int = 0,
        statuses: Optional[List[ReportStatus]] = None,
        min_severity: Optional[float] = None,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """One page of ranked reports plus the number of matching reports."""
        ranked = self.severity.rank_all(statuses=statuses, min_severity=min_severity)
        page = ranked[offset: offset + limit]
        rows = [
            {
                **r.model_dump(exclude={"embedding"}),
                "severity_level": severity_level(r.severity_score),
                "severity_color": severity_color(r.severity_score),
            }
            for r in page
        ]
        return rows, len(ranked)

    def severity_preview(self, report_id: str) -> Dict[str, Any]:
        """Severity breakdown for a report without storing it."""
        breakdown = calculate_severity(self.store.get(report_id))
        return {**breakdown.model_dump(), "severity_level": severity_level(breakdown.total_score)}

    def similar_reports(self, report_id: str, threshold: Optional[float] = None, limit: Optional[int] = None) -> Dict[str, Any]:
        report = self.store.get(report_id)
        similar = self.duplicates.find_similar(report, threshold=threshold, limit=limit)
        return {
            "report_id": report_id,
            "has_potential_duplicates": bool(similar),
            "duplicates": [c.model_dump() for c in similar],
            "highest_similarity": similar[0].similarity if similar else 0.0,
        }

    def merge(self, duplicate_id: str, original_id: str) -> Dict[str, Any]:
        duplicate, original = self.duplicates.mark_duplicate(duplicate_id, original_id)
        # The canonical report gained upvotes, so its score moves too
        self._refresh_severity(original_id)
        return {
            "duplicate_id": duplicate.id,
            "original_id": original.id,
            "duplicate_of": duplicate.duplicate_of,
            "original_upvote_count": original.upvote_count,
        }

    def ward_stats(self) -> List[Dict[str, Any]]:
        """Every ward with its stats, busiest first."""
        index = self.boundaries
        reports = self.store.list_reports(exclude_statuses=[ReportStatus.REJECTED], include_duplicates=False)
        stats = index.aggregate_stats(reports)
        rows = []
        for ward in index.wards:
            ward_stats = stats.get(ward.id)
            rows.append({
                "id": ward.id,
                "name": ward.name,
                "district_name": ward.district_name,
                "province_name": ward.province_name,
                **(ward_stats.model_dump() if ward_stats else {"count": 0, "total_upvotes": 0, "avg_severity": 0.0}),
            })
        rows.sort(key=lambda row: row["count"], reverse=True)
        return rows

    def reports_by_ward(self, ward_id: str) -> Dict[str, Any]:
        index = self.boundaries
        ward = index.get_ward(ward_id)
        reports = self.store.list_reports(exclude_statuses=[ReportStatus.REJECTED], include_duplicates=False)
        in_ward = index.reports_in_ward(ward_id, reports)
        return {
            "ward": _unit_summary(ward, "district_name"),
            "reports": [r.model_dump(exclude={"embedding"}) for r in in_ward],
            "count": len(in_ward),
        }

    def heatmap(self) -> List[Dict[str, float]]:
        reports = self.store.list_reports(exclude_statuses=[ReportStatus.REJECTED], include_duplicates=False)
        return [
            {
                "lat": r.latitude,
                "lon": r.longitude,
                "intensity": min(1.0, (r.upvote_count / 10 + (r.severity_score or 0) / 100) / 2),
            }
            for r in reports
            if r.has_location
        ]

    def locate(self, latitude: float, longitude: float) -> Dict[str, Any]:
        latitude, longitude = validate_coordinate(latitude, longitude)
        index = self.boundaries
        return {
            "ward": _unit_summary(index.resolve_ward(latitude, longitude), "district_name"),
            "district": _unit_summary(index.resolve_district(latitude, longitude), "province_name"),
        }

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def route_to_report(self, from_lat: float, from_lon: float, report_id: str) -> Dict[str, Any]:
        origin = validate_coordinate(from_lat, from_lon)
        report = self.store.get(report_id)
        if not report.has_location:
            raise NotFound(f"Report {report_id} has no location", {"report_id": report_id})

        destination = (report.latitude, report.longitude)
        route = self.routing.route(origin, destination)
        result: Dict[str, Any] = {
            "report": {"id": report.id, "title": report.title, "latitude": report.latitude, "longitude": report.longitude},
            "route": _route_payload(route),
        }
        if isinstance(route, RouteUnavailable):
            result["fallback"] = {
                "reason": route.reason,
                "straight_line_distance": route.straight_line_meters,
                "straight_line_distance_formatted": format_distance(route.straight_line_meters),
            }
        return result

    def nearest_report(self, latitude: float, longitude: float, status: Optional[ReportStatus] = None) -> Optional[Dict[str, Any]]:
        """
        Nearest report to a point plus a route to it. When routing fails the
        route is None and the straight-line distance still stands.
        """
        origin = validate_coordinate(latitude, longitude)
        if status is not None:
            candidates = self.store.list_reports(statuses=[status], include_duplicates=False)
        else:
            candidates = self.store.list_reports(exclude_statuses=[ReportStatus.REJECTED], include_duplicates=False)

        nearest = find_nearest_report(origin, candidates)
        if nearest is None:
            return None

        titles = {r.id: r.title for r in candidates}
        route = self.routing.route(origin, (nearest.latitude, nearest.longitude))
        return {
            "report": {
                "id": nearest.report_id,
                "title": titles.get(nearest.report_id, ""),
                "latitude": nearest.latitude,
                "longitude": nearest.longitude,
                "straight_line_distance": nearest.distance_meters,
                "straight_line_distance_formatted": format_distance(nearest.distance_meters),
            },
            "route": _route_payload(route),
        }


# Global service instance (singleton pattern)
_triage_service = None


def get_triage_service() -> TriageService:
    """
    Get or create TriageService singleton instance.
    """
    global _triage_service
    if _triage_service is None:
        _triage_service = TriageService()
    return _triage_service
