"""
Shared fixtures: in-memory store, deterministic fake providers and a
small boundary index (two unit-square wards side by side, one district
covering both).
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from app.core.errors import EmbeddingUnavailable, RouteUnavailableError
from app.models.report import Report, RouteResult
from app.services.ai_plugin.base import EmbeddingProvider
from app.services.ai_plugin.mock_provider import MockImageClassifier
from app.services.boundary_index import build_boundary_index
from app.services.duplicate_detection import DuplicateDetectionService
from app.services.report_store import InMemoryReportStore
from app.services.routing.base import RoutingProvider
from app.services.routing.gateway import RoutingGateway
from app.services.severity_scoring import SeverityScoringService
from app.services.triage_service import TriageService


NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeEmbeddingProvider(EmbeddingProvider):
    """Looks texts up in a table; unknown text maps to the first axis."""

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None, dimension: int = 3):
        self.vectors = vectors or {}
        self._dimension = dimension
        self.fail = False
        self.calls: List[str] = []

    @property
    def dimension(self) -> int:
        return self._dimension

    def is_enabled(self) -> bool:
        return True

    def get_model_info(self) -> Dict[str, str]:
        return {"name": "fake", "version": "test"}

    def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.fail:
            raise EmbeddingUnavailable("embedding provider down")
        default = [1.0] + [0.0] * (self._dimension - 1)
        return list(self.vectors.get(text, default))


class FakeRoutingProvider(RoutingProvider):
    name = "fake"

    def __init__(self):
        self.fail = False
        self.calls = []

    def route(self, origin, destination) -> RouteResult:
        self.calls.append((origin, destination))
        if self.fail:
            raise RouteUnavailableError("routing provider down")
        return RouteResult(
            distance_meters=1500.0,
            duration_seconds=300.0,
            geometry=[origin, destination],
        )


def make_report(report_id: str, **fields) -> Report:
    fields.setdefault("title", f"Report {report_id}")
    fields.setdefault("created_at", NOW)
    return Report(id=report_id, **fields)


def _square(lon0: float, lat0: float, lon1: float, lat1: float) -> dict:
    return {
        "type": "Polygon",
        "coordinates": [[[lon0, lat0], [lon1, lat0], [lon1, lat1], [lon0, lat1], [lon0, lat0]]],
    }


WARD_COLLECTION = {
    "type": "FeatureCollection",
    "features": [
        {
            "type": "Feature",
            "properties": {"adm3_pcode": "W1", "adm3_name": "West Ward", "adm2_name": "Central", "adm1_name": "North"},
            "geometry": _square(0, 0, 1, 1),
        },
        {
            "type": "Feature",
            "properties": {"ADM3_PCODE": "W2", "ADM3_EN": "East Ward", "adm2_name": "Central", "adm1_name": "North"},
            "geometry": _square(1, 0, 2, 1),
        },
    ],
}

DISTRICT_COLLECTION = {
    "type": "FeatureCollection",
    "features": [
        {
            "type": "Feature",
            "properties": {"adm2_pcode": "D1", "adm2_name": "Central", "adm1_name": "North"},
            "geometry": _square(0, 0, 2, 1),
        },
    ],
}


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def store():
    return InMemoryReportStore()


@pytest.fixture
def embedding_provider():
    return FakeEmbeddingProvider()


@pytest.fixture
def routing_provider():
    return FakeRoutingProvider()


@pytest.fixture
def boundary_index():
    return build_boundary_index(WARD_COLLECTION, DISTRICT_COLLECTION)


@pytest.fixture
def duplicate_service(store, embedding_provider):
    return DuplicateDetectionService(store=store, provider=embedding_provider)


@pytest.fixture
def severity_service(store):
    return SeverityScoringService(store=store)


@pytest.fixture
def triage_service(store, duplicate_service, severity_service, routing_provider, boundary_index):
    return TriageService(
        store=store,
        duplicates=duplicate_service,
        severity=severity_service,
        routing=RoutingGateway(routing_provider),
        boundaries=boundary_index,
        classifier=MockImageClassifier(),
    )


@pytest.fixture
def client(triage_service):
    from fastapi.testclient import TestClient

    from app.main import app
    from app.services.triage_service import get_triage_service

    app.dependency_overrides[get_triage_service] = lambda: triage_service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def days_ago():
    def _days_ago(days: float) -> datetime:
        return NOW - timedelta(days=days)
    return _days_ago
