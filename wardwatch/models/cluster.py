"""
cluster.py — Pydantic models for map marker clustering.

ReportPoint  — a citizen report seen as a point; extra fields pass through
Cluster      — one marker on the map (anchor coordinate + members)
Region       — a map viewport (center + lat/lng deltas), used to zoom
               into a cluster when it is tapped
"""

from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class DistanceMode(str, Enum):
    """How the clusterer decides a report is close enough to an anchor."""

    # Flat threshold on degree deltas, 0.01° per km of radius.
    DEGREE_DELTA = "degree_delta"
    # Great-circle distance strictly below the radius.
    HAVERSINE = "haversine"


class Coordinate(BaseModel):
    lat: float
    lng: float


class ReportPoint(BaseModel):
    """A report as the clusterer sees it: an id and a location."""

    # category, status, title ... are opaque here and kept as-is.
    model_config = ConfigDict(extra="allow")

    id: Union[int, str]
    lat: float
    lng: float


class Cluster(BaseModel):
    id: str
    coordinate: Coordinate
    members: list[ReportPoint] = Field(..., min_length=1)

    @property
    def count(self) -> int:
        return len(self.members)


class Region(BaseModel):
    lat: float
    lng: float
    lat_delta: float
    lng_delta: float


# ── API schemas ───────────────────────────────────────────────────────────────

ClusterSize = Literal["small", "medium", "large"]


class ClusterRequest(BaseModel):
    """Payload for POST /api/v1/clusters."""

    reports: list[ReportPoint]
    radius_km: float = Field(default=1.0, gt=0, le=100)
    metric: DistanceMode = DistanceMode.DEGREE_DELTA


class ClusterView(BaseModel):
    """A cluster plus everything the map needs to draw and expand it."""

    id: str
    coordinate: Coordinate
    count: int
    size: ClusterSize
    label: str
    region: Region
    members: list[ReportPoint]


class ClusterResponse(BaseModel):
    clusters: list[ClusterView]
    total_reports: int
    radius_km: float
    metric: DistanceMode
    truncated: Optional[bool] = None
