"""
Administrative-Unit Index - ward and district resolution from static boundaries.

DESIGN PRINCIPLES:
- Boundaries are loaded ONCE at startup through initialize_boundary_index()
- The resulting BoundaryIndex is immutable and safe for concurrent reads
- A flat list in definition order; the first containing unit wins
  (boundaries are assumed disjoint, so overlaps resolve to the earliest unit)
"""

import json
import logging
import os
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from app.core.errors import NotFound
from app.core.settings import settings
from app.models.boundary import District, Ward, WardStats
from app.models.report import Report
from app.utils.geometry import point_in_polygon, validate_coordinate

logger = logging.getLogger(__name__)


def _rings_from_geometry(geometry: Optional[dict]) -> List[List[Tuple[float, float]]]:
    """
    Flatten a GeoJSON Polygon / MultiPolygon into a list of rings.

    All rings (outer, holes, parts) are kept; containment combines them by XOR.
    """
    if not geometry:
        return []

    geom_type = geometry.get("type")
    coordinates = geometry.get("coordinates") or []

    if geom_type == "Polygon":
        polygons = [coordinates]
    elif geom_type == "MultiPolygon":
        polygons = coordinates
    else:
        logger.warning(f"Unsupported boundary geometry type: {geom_type}")
        return []

    rings = []
    for polygon in polygons:
        for ring in polygon:
            rings.append([(float(v[0]), float(v[1])) for v in ring])
    return rings


def _first_property(properties: dict, *keys, default: str = "Unknown") -> str:
    for key in keys:
        value = properties.get(key)
        if value is not None and value != "":
            return str(value)
    return default


def ward_from_feature(feature: dict) -> Ward:
    properties = feature.get("properties") or {}
    geometry = feature.get("geometry") or {}
    return Ward(
        id=_first_property(properties, "adm3_pcode", "ADM3_PCODE", "id"),
        name=_first_property(properties, "adm3_name", "ADM3_EN", "name"),
        district_name=_first_property(properties, "adm2_name", "ADM2_EN", "district_name"),
        province_name=_first_property(properties, "adm1_name", "ADM1_EN", "province_name"),
        rings=_rings_from_geometry(geometry),
        geometry=geometry,
    )


def district_from_feature(feature: dict) -> District:
    properties = feature.get("properties") or {}
    geometry = feature.get("geometry") or {}
    return District(
        id=_first_property(properties, "adm2_pcode", "ADM2_PCODE", "id"),
        name=_first_property(properties, "adm2_name", "ADM2_EN", "name"),
        province_name=_first_property(properties, "adm1_name", "ADM1_EN", "province_name"),
        rings=_rings_from_geometry(geometry),
        geometry=geometry,
    )


class BoundaryIndex:
    """
    Immutable handle over ward and district boundaries.

    Wards and districts are independent partitions; a district is NOT derived
    from the ward that contains a point.
    """

    def __init__(self, wards: Sequence[Ward], districts: Sequence[District]):
        self._wards: Tuple[Ward, ...] = tuple(wards)
        self._districts: Tuple[District, ...] = tuple(districts)
        self._wards_by_id: Dict[str, Ward] = {}
        for ward in self._wards:
            # First definition wins, same as resolution order
            self._wards_by_id.setdefault(ward.id, ward)

    @property
    def wards(self) -> Tuple[Ward, ...]:
        return self._wards

    @property
    def districts(self) -> Tuple[District, ...]:
        return self._districts

    def resolve_ward(self, latitude: float, longitude: float) -> Optional[Ward]:
        """Return the first ward (definition order) containing the point, or None."""
        point = validate_coordinate(latitude, longitude)
        for ward in self._wards:
            if point_in_polygon(point, ward.rings):
                return ward
        return None

    def resolve_district(self, latitude: float, longitude: float) -> Optional[District]:
        """Return the first district (definition order) containing the point, or None."""
        point = validate_coordinate(latitude, longitude)
        for district in self._districts:
            if point_in_polygon(point, district.rings):
                return district
        return None

    def get_ward(self, ward_id: str) -> Ward:
        ward = self._wards_by_id.get(ward_id)
        if ward is None:
            raise NotFound(f"Ward {ward_id} not found", {"ward_id": ward_id})
        return ward

    def aggregate_stats(self, reports: Iterable[Report]) -> Dict[str, WardStats]:
        """
        Group reports by resolved ward.

        Every ward is present in the result (zeros when empty). Reports
        without coordinates, or outside every ward, are skipped.
        """
        counts: Dict[str, int] = {ward.id: 0 for ward in self._wards}
        upvotes: Dict[str, int] = {ward.id: 0 for ward in self._wards}
        severity_sums: Dict[str, float] = {ward.id: 0.0 for ward in self._wards}

        for report in reports:
            if not report.has_location:
                continue
            ward = self.resolve_ward(report.latitude, report.longitude)
            if ward is None:
                continue
            counts[ward.id] += 1
            upvotes[ward.id] += report.upvote_count
            severity_sums[ward.id] += report.severity_score or 0.0

        return {
            ward_id: WardStats(
                count=count,
                total_upvotes=upvotes[ward_id],
                avg_severity=severity_sums[ward_id] / count if count > 0 else 0.0,
            )
            for ward_id, count in counts.items()
        }

    def reports_in_ward(self, ward_id: str, reports: Iterable[Report]) -> List[Report]:
        """Reports whose coordinate resolves to the given ward."""
        self.get_ward(ward_id)
        result = []
        for report in reports:
            if not report.has_location:
                continue
            ward = self.resolve_ward(report.latitude, report.longitude)
            if ward is not None and ward.id == ward_id:
                result.append(report)
        return result

    def wards_geojson(self) -> dict:
        return {
            "type": "FeatureCollection",
            "features": [
                {
                    "type": "Feature",
                    "properties": {
                        "id": ward.id,
                        "name": ward.name,
                        "districtName": ward.district_name,
                        "provinceName": ward.province_name,
                    },
                    "geometry": ward.geometry,
                }
                for ward in self._wards
            ],
        }

    def districts_geojson(self) -> dict:
        return {
            "type": "FeatureCollection",
            "features": [
                {
                    "type": "Feature",
                    "properties": {
                        "id": district.id,
                        "name": district.name,
                        "provinceName": district.province_name,
                    },
                    "geometry": district.geometry,
                }
                for district in self._districts
            ],
        }


def build_boundary_index(ward_collection: Optional[dict], district_collection: Optional[dict]) -> BoundaryIndex:
    """Build an index from two already-parsed GeoJSON FeatureCollections."""
    ward_features = (ward_collection or {}).get("features") or []
    district_features = (district_collection or {}).get("features") or []
    return BoundaryIndex(
        wards=[ward_from_feature(f) for f in ward_features],
        districts=[district_from_feature(f) for f in district_features],
    )


def _load_feature_collection(path: Optional[str]) -> Optional[dict]:
    if not path:
        return None
    if not os.path.exists(path):
        logger.warning(f"Boundary file not found: {path}")
        return None
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


# Process-wide handle, set by initialize_boundary_index() or set_boundary_index()
_boundary_index: Optional[BoundaryIndex] = None


def initialize_boundary_index(
    ward_path: Optional[str] = None,
    district_path: Optional[str] = None,
) -> BoundaryIndex:
    """
    Load ward and district boundaries and publish the process-wide index.

    Missing files produce an empty partition (logged); malformed JSON raises.
    Calling this again replaces the handle (used by tests and reloads).
    """
    global _boundary_index

    ward_path = ward_path or settings.WARD_BOUNDARIES_PATH
    district_path = district_path or settings.DISTRICT_BOUNDARIES_PATH

    index = build_boundary_index(
        _load_feature_collection(ward_path),
        _load_feature_collection(district_path),
    )
    logger.info(
        f"Loaded boundaries: {len(index.wards)} wards from {ward_path}, "
        f"{len(index.districts)} districts from {district_path}"
    )
    _boundary_index = index
    return index


def set_boundary_index(index: Optional[BoundaryIndex]) -> None:
    """Install an already-built index (or clear it with None)."""
    global _boundary_index
    _boundary_index = index


def get_boundary_index() -> BoundaryIndex:
    """
    Get the initialized boundary index.

    Raises RuntimeError if initialize_boundary_index() has not been called.
    """
    if _boundary_index is None:
        raise RuntimeError(
            "Boundary index not initialized. Call initialize_boundary_index() at startup."
        )
    return _boundary_index
