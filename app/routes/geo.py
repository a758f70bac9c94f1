"""
Geo routes - administrative boundaries, ward statistics, heatmap,
coordinate lookup and routing to reports.

Handlers run the synchronous triage core in the default executor so store
and provider I/O never blocks the event loop.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.models.report import ReportStatus
from app.services.triage_service import TriageService, get_triage_service
from app.utils.executor import run_sync


router = APIRouter(prefix="/geo", tags=["Geo"])


@router.get("/districts")
async def districts(service: TriageService = Depends(get_triage_service)):
    """All district boundaries as a GeoJSON FeatureCollection."""
    return {"success": True, "data": service.boundaries.districts_geojson()}


@router.get("/wards")
async def wards(service: TriageService = Depends(get_triage_service)):
    """All ward boundaries as a GeoJSON FeatureCollection."""
    return {"success": True, "data": service.boundaries.wards_geojson()}


@router.get("/wards/stats")
async def ward_stats(service: TriageService = Depends(get_triage_service)):
    """Every ward with report count, total upvotes and mean severity."""
    return {"success": True, "data": await run_sync(service.ward_stats)}


@router.get("/heatmap")
async def heatmap(service: TriageService = Depends(get_triage_service)):
    data = await run_sync(service.heatmap)
    return {"success": True, "data": data, "count": len(data)}


@router.get("/locate/{lat}/{lon}")
async def locate(lat: float, lon: float, service: TriageService = Depends(get_triage_service)):
    """Ward and district containing a coordinate (either may be null)."""
    return {"success": True, "data": service.locate(lat, lon)}


@router.get("/route/{from_lat}/{from_lon}/{report_id}")
async def route_to_report(
    from_lat: float,
    from_lon: float,
    report_id: str,
    service: TriageService = Depends(get_triage_service),
):
    """
    Route from a location to a report.

    If the routing provider is down, `route` is null and `fallback` carries
    the straight-line distance.
    """
    return {"success": True, "data": await run_sync(service.route_to_report, from_lat, from_lon, report_id)}


@router.get("/nearest/{lat}/{lon}")
async def nearest_report(
    lat: float,
    lon: float,
    status: Optional[ReportStatus] = Query(None, description="Only consider reports in this status"),
    service: TriageService = Depends(get_triage_service),
):
    data = await run_sync(service.nearest_report, lat, lon, status)
    if data is None:
        return {"success": True, "data": None, "message": "No reports found"}
    return {"success": True, "data": data}


@router.get("/reports-by-ward/{ward_id}")
async def reports_by_ward(ward_id: str, service: TriageService = Depends(get_triage_service)):
    return {"success": True, "data": await run_sync(service.reports_by_ward, ward_id)}
