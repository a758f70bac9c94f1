"""
Health check endpoints.
Used for monitoring, deployment readiness checks, and basic connectivity tests.
"""

from fastapi import APIRouter, HTTPException
from app.config.firebase import get_db
from app.core.settings import settings
from app.services.boundary_index import get_boundary_index
from datetime import datetime, timezone


router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
async def health_check():
    """
    Basic health check endpoint.
    Returns 200 if service is running.
    """
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@router.get("/db")
async def database_health():
    """
    Report store connectivity check.
    With USE_MOCK_DB the in-memory store is always reachable.
    """
    if settings.USE_MOCK_DB:
        return {
            "status": "healthy",
            "database": "memory",
            "connected": True,
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    try:
        db = get_db()
        # Lightweight read to verify connectivity
        collections = list(db.collections())

        return {
            "status": "healthy",
            "database": "firestore",
            "connected": True,
            "collections_count": len(collections),
            "timestamp": datetime.now(timezone.utc).isoformat()
        }
    except Exception as e:
        raise HTTPException(
            status_code=503,
            detail=f"Database connection failed: {str(e)}"
        )


@router.get("/boundaries")
async def boundaries_health():
    """
    Boundary index check. Reports how many wards and districts were loaded.
    """
    try:
        index = get_boundary_index()
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return {
        "status": "healthy" if index.wards and index.districts else "degraded",
        "wards": len(index.wards),
        "districts": len(index.districts),
        "timestamp": datetime.now(timezone.utc).isoformat()
    }
