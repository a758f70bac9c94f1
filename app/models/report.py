"""
Pydantic models for citizen reports and the transient values derived from them.
"""

from pydantic import BaseModel, Field
from datetime import datetime, timezone
from typing import Optional, List, Tuple
from enum import Enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReportStatus(str, Enum):
    """
    Report lifecycle status.
    RESOLVED and REJECTED are terminal: their severity score is frozen.
    """
    REPORTED = "REPORTED"
    IN_REVIEW = "IN_REVIEW"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    REJECTED = "REJECTED"

    @property
    def is_terminal(self) -> bool:
        return self in (ReportStatus.RESOLVED, ReportStatus.REJECTED)


class Report(BaseModel):
    """
    Snapshot of a stored report.

    The store owns creation and deletion; the triage core only writes
    embedding, severity_score, severity_last_updated, duplicate_of,
    upvote_count (on merge) and category fields (on re-analysis).
    """
    id: str = Field(..., description="Store document ID")
    title: str = ""
    description: str = ""
    location_text: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    embedding: Optional[List[float]] = None
    category: Optional[str] = Field(None, description="Category label (classifier or citizen)")
    category_confidence: Optional[float] = Field(None, ge=0, le=100)
    image_url: Optional[str] = None
    severity_score: float = 0.0
    severity_last_updated: Optional[datetime] = None
    upvote_count: int = Field(default=0, ge=0)
    verification_count: int = Field(default=0, ge=0)
    status: ReportStatus = ReportStatus.REPORTED
    duplicate_of: Optional[str] = None
    needs_embedding_backfill: bool = False
    created_at: datetime = Field(default_factory=utcnow)

    class Config:
        extra = "ignore"

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def is_duplicate(self) -> bool:
        return self.duplicate_of is not None

    def embedding_text(self) -> str:
        """Text the embedding is computed from: title, description and location."""
        parts = [self.title, self.description, self.location_text]
        return " ".join(p.strip() for p in parts if p and p.strip())


class SimilarityCandidate(BaseModel):
    """A potential duplicate. Never persisted."""
    report_id: str
    similarity: float
    title: str = ""
    location_text: Optional[str] = None
    created_at: datetime
    upvote_count: int = 0


class DuplicateCheckResult(BaseModel):
    has_potential_duplicates: bool
    duplicates: List[SimilarityCandidate] = Field(default_factory=list)
    highest_similarity: float = 0.0


class SeverityBreakdown(BaseModel):
    upvote_score: float
    time_score: float
    category_score: float
    verification_score: float
    status_multiplier: float
    total_score: float


class RouteResult(BaseModel):
    """One successful routing call. Geometry is a list of (lat, lon) pairs."""
    distance_meters: float
    duration_seconds: float
    geometry: List[Tuple[float, float]] = Field(default_factory=list)


class RouteUnavailable(BaseModel):
    """
    Typed routing failure returned (not raised) by the routing gateway.
    Carries the straight-line distance so callers can degrade gracefully.
    """
    reason: str
    straight_line_meters: float


class NearestReport(BaseModel):
    report_id: str
    latitude: float
    longitude: float
    distance_meters: float


class ImageAnalysis(BaseModel):
    """Image classifier output, consumed as severity scoring input."""
    category: Optional[str] = None
    confidence: float = 0.0
    description: Optional[str] = None
    severity_level: Optional[str] = None
    severity_score: Optional[float] = None
    factors: List[str] = Field(default_factory=list)
    detected_objects: List[str] = Field(default_factory=list)
    analyzed_by: str = ""


class MergeRequest(BaseModel):
    original_id: str = Field(..., min_length=1, description="Canonical report the duplicate folds into")


class ImageAnalysisRequest(BaseModel):
    image_url: Optional[str] = Field(None, description="Defaults to the report's stored image")
