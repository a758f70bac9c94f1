"""
Report triage routes - severity ranking, similar reports, merges,
embeddings and explicit image re-analysis.
"""

from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query

from app.models.report import ImageAnalysisRequest, MergeRequest, ReportStatus
from app.services.triage_service import TriageService, get_triage_service
from app.utils.executor import run_sync


router = APIRouter(tags=["Reports"])


@router.get("/reports/severity-ranking")
async def severity_ranking(
    limit: int = Query(20, ge=1, le=200),
    offset: int = Query(0, ge=0),
    status: Optional[List[ReportStatus]] = Query(None),
    min_severity: Optional[float] = Query(None, ge=0, le=100),
    service: TriageService = Depends(get_triage_service),
):
    """Reports ordered by severity score, highest first. Duplicates are excluded."""
    data, total = await run_sync(
        service.severity_ranking, limit=limit, offset=offset, statuses=status, min_severity=min_severity
    )
    return {
        "success": True,
        "data": data,
        "pagination": {"limit": limit, "offset": offset, "count": len(data), "total": total},
    }


@router.get("/reports/{report_id}/severity")
async def severity_preview(report_id: str, service: TriageService = Depends(get_triage_service)):
    """Current severity breakdown, computed but not stored."""
    return {"success": True, "data": await run_sync(service.severity_preview, report_id)}


@router.get("/reports/{report_id}/similar")
async def similar_reports(
    report_id: str,
    threshold: float = Query(0.7, ge=-1, le=1),
    limit: int = Query(5, ge=1, le=50),
    service: TriageService = Depends(get_triage_service),
):
    """Potential duplicates of a report."""
    return {"success": True, "data": await run_sync(service.similar_reports, report_id, threshold=threshold, limit=limit)}


@router.post("/reports/{report_id}/triage")
async def triage_report(report_id: str, service: TriageService = Depends(get_triage_service)):
    """Embed, duplicate-check, score and locate a stored report."""
    return {"success": True, "data": await run_sync(service.triage_report, report_id)}


@router.post("/reports/{report_id}/merge")
async def merge_report(report_id: str, request: MergeRequest, service: TriageService = Depends(get_triage_service)):
    """Mark this report as a duplicate of `original_id` and move its upvotes."""
    data = await run_sync(service.merge, report_id, request.original_id)
    return {"success": True, "data": data, "message": "Report marked as duplicate"}


@router.post("/reports/{report_id}/generate-embedding")
async def generate_embedding(report_id: str, service: TriageService = Depends(get_triage_service)):
    embedding = await run_sync(service.duplicates.backfill_embedding, report_id)
    return {"success": True, "data": {"report_id": report_id, "dimension": len(embedding)}}


@router.post("/reports/{report_id}/ai-analysis")
async def ai_analysis(
    report_id: str,
    request: Optional[ImageAnalysisRequest] = Body(None),
    service: TriageService = Depends(get_triage_service),
):
    """Re-run the image classifier for a report (explicit request only)."""
    return {"success": True, "data": await run_sync(service.reanalyze_image, report_id, request.image_url if request else None)}


@router.post("/admin/recalculate-severity")
async def recalculate_severity(service: TriageService = Depends(get_triage_service)):
    """Batch recompute severity for every active report."""
    summary = await run_sync(service.severity.recompute_all)
    return {"success": True, "data": summary}


@router.post("/admin/backfill-embeddings")
async def backfill_embeddings(service: TriageService = Depends(get_triage_service)):
    """Embed every report that is missing an embedding or flagged for backfill."""
    summary = await run_sync(service.duplicates.backfill_pending)
    return {"success": True, "data": summary}
