"""
Pydantic models for administrative units (wards and districts).
Units are immutable once loaded.
"""

from pydantic import BaseModel, Field
from typing import List, Tuple

# A ring is an ordered list of (lon, lat) vertices, GeoJSON axis order.
Ring = List[Tuple[float, float]]


class AdministrativeUnit(BaseModel):
    id: str
    name: str = "Unknown"
    province_name: str = "Unknown"
    rings: List[Ring] = Field(default_factory=list, description="Outer rings, holes and parts; combined by XOR")
    geometry: dict = Field(default_factory=dict, description="Original GeoJSON geometry, for export")

    class Config:
        frozen = True


class District(AdministrativeUnit):
    pass


class Ward(AdministrativeUnit):
    district_name: str = "Unknown"


class WardStats(BaseModel):
    count: int = 0
    total_upvotes: int = 0
    avg_severity: float = 0.0
