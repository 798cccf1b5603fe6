"""
ward.py — Pydantic schemas for ward boundaries and ward imports.

Ward                — canonical ward record produced by the normalizer
NormalizationError  — per-feature failure value (the feature is skipped)
WardImportRequest   — what an official sends to POST /api/v1/wards/import
WardImportResult    — diagnostics of one import run (200 / 207 response body)
WardOut             — stored ward retrieved from DB
BoundaryCollection  — GeoJSON FeatureCollection served to the map

Geometry is kept as raw GeoJSON dicts ({"type", "coordinates"}) with
[longitude, latitude] pairs; only outer rings survive an import.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, computed_field


# ── Normalized ward ───────────────────────────────────────────────────────────

class Ward(BaseModel):
    """A ward ready to be upserted, keyed by ward_id."""

    ward_id: str
    name: str
    municipality_id: Optional[str] = None
    geojson: Optional[dict[str, Any]] = None
    properties: dict[str, Any] = Field(default_factory=dict)
    # Geometry warnings raised while simplifying; reported, never stored.
    warnings: list[str] = Field(default_factory=list, exclude=True)

    def to_document(self) -> dict[str, Any]:
        """Fields written to the wards collection on every upsert."""
        return self.model_dump()


class NormalizationErrorKind(str, Enum):
    MISSING_WARD_ID = "MissingWardId"
    INVALID_FEATURE = "InvalidFeature"


class NormalizationError(BaseModel):
    """A feature that could not become a Ward."""

    kind: NormalizationErrorKind
    message: str


# ── Import request / result ───────────────────────────────────────────────────

ImportStatus = Literal["success", "partial_success", "failure"]


class WardImportRequest(BaseModel):
    """Payload for POST /api/v1/wards/import."""

    geojson_url: str = Field(..., min_length=8, max_length=2000)
    municipality_id: Optional[str] = None
    simplify_tolerance: float = Field(default=0.001, ge=0.0, le=1.0)


class LiveImportRequest(BaseModel):
    """Payload for POST /api/v1/wards/import-live."""

    municipality_id: Optional[str] = None


class WardImportResult(BaseModel):
    """
    Outcome of an import run that got as far as writing.

    processing_errors — per-feature problems (skipped features), max 10
    batch_errors      — rejected upsert batches, max 5
    warnings          — geometry kept unsimplified, max 10
    """

    source_url: str
    total_features: int = 0
    processed_count: int = 0
    inserted_count: int = 0
    processing_errors: list[str] = Field(default_factory=list)
    batch_errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    cancelled: bool = False
    live_import: bool = False

    @computed_field
    @property
    def status(self) -> ImportStatus:
        if not self.batch_errors:
            return "success"
        if self.inserted_count > 0:
            return "partial_success"
        return "failure"

    @computed_field
    @property
    def message(self) -> str:
        if self.batch_errors:
            return (
                f"Partially imported {self.inserted_count} wards "
                f"with {len(self.batch_errors)} batch errors"
            )
        return f"Successfully imported {self.inserted_count} wards"


# ── Read models ───────────────────────────────────────────────────────────────

class WardOut(BaseModel):
    """Stored ward as returned by the read endpoints."""

    ward_id: str
    name: str
    municipality_id: Optional[str] = None
    properties: dict[str, Any] = Field(default_factory=dict)
    geojson: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None


class WardListResponse(BaseModel):
    wards: list[WardOut]
    count: int


class WardSuggestion(BaseModel):
    """A ward shaped as an address suggestion for the report form."""

    address: str
    latitude: float
    longitude: float
    ward_id: str
    municipality_id: Optional[str] = None


class WardSearchResponse(BaseModel):
    wards: list[WardSuggestion]


class BoundaryFeature(BaseModel):
    type: Literal["Feature"] = "Feature"
    properties: dict[str, Any]
    geometry: Optional[dict[str, Any]] = None


class BoundaryMetadata(BaseModel):
    total_features: int
    municipality_id: str            # "all" when unfiltered
    limit: int
    offset: int
    generated_at: datetime
    cache_duration: str


class BoundaryCollection(BaseModel):
    """GeoJSON FeatureCollection returned by /boundaries/simplified."""

    type: Literal["FeatureCollection"] = "FeatureCollection"
    metadata: BoundaryMetadata
    features: list[BoundaryFeature]


class WardReportStats(BaseModel):
    total_reports: int = 0
    by_category: dict[str, int] = Field(default_factory=dict)
    by_status: dict[str, int] = Field(default_factory=dict)


class WardStatisticsSummary(BaseModel):
    wards_with_reports: int
    total_reports: int


class WardStatisticsResponse(BaseModel):
    total_wards: int
    municipality_id: str
    ward_statistics: dict[str, WardReportStats]
    summary: WardStatisticsSummary
