"""
wards.py — Ward boundary routes.

Routes:
  POST /api/v1/wards/import                — import a GeoJSON FeatureCollection (officials)
  POST /api/v1/wards/import-live           — import the configured live dataset (officials)
  GET  /api/v1/wards                       — list wards (optionally with geometry)
  GET  /api/v1/wards/search                — name search, shaped as address suggestions
  GET  /api/v1/wards/boundaries/simplified — GeoJSON FeatureCollection for the map
  GET  /api/v1/wards/statistics            — report counts per ward (authenticated)
  GET  /api/v1/wards/{ward_id}             — a single ward

Import responses:
  200 — every batch written
  207 — some batches rejected, some wards written (Multi-Status)
  400 — fatal before writing (fetch failed, not GeoJSON, no usable wards)
  409 — cancelled before writing
  500 — every batch rejected by the datastore

Read routes are public and cacheable (Cache-Control: public, max-age=3600).
"""

import logging
import re
from datetime import datetime, timezone
from functools import partial
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse

from wardwatch.core.config import settings
from wardwatch.core.database import REPORTS_COLLECTION, WARDS_COLLECTION, get_db
from wardwatch.core.http import get_http_client
from wardwatch.core.rate_limit import limiter
from wardwatch.core.security import CurrentPrincipal, OfficialPrincipal
from wardwatch.models.ward import (
    BoundaryCollection,
    BoundaryFeature,
    BoundaryMetadata,
    LiveImportRequest,
    WardImportRequest,
    WardImportResult,
    WardListResponse,
    WardOut,
    WardReportStats,
    WardSearchResponse,
    WardStatisticsResponse,
    WardStatisticsSummary,
    WardSuggestion,
)
from wardwatch.services.ward_import import (
    ImportErrorKind,
    WardImportError,
    WardImportPipeline,
    refresh_simplified_view,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/wards", tags=["wards"])

_SUMMARY_FIELDS = {"_id": 0, "ward_id": 1, "name": 1, "municipality_id": 1, "properties": 1, "created_at": 1}


# ── Helpers ───────────────────────────────────────────────────────────────────

def _require_db(db):
    if db is None:
        raise HTTPException(status_code=503, detail="Database unavailable")
    return db


def _doc_to_ward(doc: dict) -> WardOut:
    return WardOut(
        ward_id=str(doc["ward_id"]),
        name=doc.get("name") or f"Ward {doc['ward_id']}",
        municipality_id=doc.get("municipality_id"),
        properties=doc.get("properties") or {},
        geojson=doc.get("geojson"),
        created_at=doc.get("created_at"),
    )


def _projection(include_geojson: bool) -> dict:
    return {**_SUMMARY_FIELDS, "geojson": 1} if include_geojson else _SUMMARY_FIELDS


def _cache_public(response: Response) -> None:
    response.headers["Cache-Control"] = f"public, max-age={settings.cache_max_age_seconds}"


def _import_status_code(result: WardImportResult) -> int:
    if result.status == "success":
        return 200
    if result.status == "partial_success":
        return 207
    return 500


async def _run_import(
    db,
    http_client: httpx.AsyncClient,
    geojson_url: str,
    municipality_id: Optional[str],
    tolerance: float,
) -> WardImportResult:
    """Run the pipeline and translate fatal errors into HTTP errors."""
    pipeline = WardImportPipeline(
        db[WARDS_COLLECTION],
        http_client,
        view_refresher=partial(refresh_simplified_view, db, settings.simplified_wards_view),
    )
    auth_header = f"token {settings.ward_source_token}" if settings.ward_source_token else None

    try:
        return await pipeline.run(
            geojson_url,
            municipality_id=municipality_id,
            tolerance=tolerance,
            auth_header=auth_header,
        )
    except WardImportError as exc:
        logger.warning("Ward import failed (%s): %s", exc.kind.value, exc.message)
        status_code = 409 if exc.kind == ImportErrorKind.CANCELLED else 400
        raise HTTPException(status_code=status_code, detail=exc.to_dict())


# ── Import ────────────────────────────────────────────────────────────────────

@router.post(
    "/import",
    response_model=WardImportResult,
    responses={207: {"model": WardImportResult, "description": "Partial success"}},
)
@limiter.limit("5/minute")
async def import_wards(
    request: Request,
    payload: WardImportRequest,
    official: OfficialPrincipal,
    db=Depends(get_db),
    http_client: httpx.AsyncClient = Depends(get_http_client),
):
    """
    Import ward boundaries from a GeoJSON FeatureCollection URL.

    Re-importing the same source updates wards in place (upsert on ward_id).
    """
    _require_db(db)
    logger.info("Ward import requested by %s: %s", official.id, payload.geojson_url)

    result = await _run_import(
        db, http_client, payload.geojson_url, payload.municipality_id, payload.simplify_tolerance
    )
    return JSONResponse(status_code=_import_status_code(result), content=result.model_dump(mode="json"))


@router.post(
    "/import-live",
    response_model=WardImportResult,
    responses={207: {"model": WardImportResult, "description": "Partial success"}},
)
@limiter.limit("5/minute")
async def import_live_wards(
    request: Request,
    official: OfficialPrincipal,
    payload: LiveImportRequest = LiveImportRequest(),
    db=Depends(get_db),
    http_client: httpx.AsyncClient = Depends(get_http_client),
):
    """Import the maintained live ward dataset (settings.ward_import_live_url)."""
    _require_db(db)
    logger.info("Live ward import requested by %s", official.id)

    result = await _run_import(
        db,
        http_client,
        settings.ward_import_live_url,
        payload.municipality_id,
        settings.ward_import_live_tolerance,
    )
    result.live_import = True
    return JSONResponse(status_code=_import_status_code(result), content=result.model_dump(mode="json"))


# ── Reads ─────────────────────────────────────────────────────────────────────

@router.get("", response_model=WardListResponse)
async def list_wards(
    response: Response,
    municipality_id: Optional[str] = Query(default=None),
    include_geojson: bool = Query(default=False, description="Include boundary geometry"),
    db=Depends(get_db),
):
    """Return all wards, ordered by name."""
    _require_db(db)
    _cache_public(response)

    query = {"municipality_id": municipality_id} if municipality_id else {}
    cursor = db[WARDS_COLLECTION].find(query, _projection(include_geojson)).sort("name", 1)

    wards = []
    async for doc in cursor:
        try:
            wards.append(_doc_to_ward(doc))
        except Exception as exc:
            logger.warning("Skipping malformed ward doc: %s", exc)

    return WardListResponse(wards=wards, count=len(wards))


@router.get("/search", response_model=WardSearchResponse)
async def search_wards(
    query: str = Query(default="", max_length=100),
    municipality_id: Optional[str] = Query(default=None),
    limit: int = Query(default=10, ge=1, le=50),
    db=Depends(get_db),
):
    """
    Case-insensitive ward name search for the report address picker.

    Queries shorter than two characters return no suggestions.
    """
    if len(query.strip()) < 2:
        return WardSearchResponse(wards=[])
    _require_db(db)

    mongo_query: dict = {"name": {"$regex": re.escape(query.strip()), "$options": "i"}}
    if municipality_id:
        mongo_query["municipality_id"] = municipality_id

    cursor = db[WARDS_COLLECTION].find(mongo_query, _SUMMARY_FIELDS).sort("name", 1).limit(limit)

    suggestions = []
    async for doc in cursor:
        properties = doc.get("properties") or {}
        suggestions.append(
            WardSuggestion(
                address=f"{doc.get('name')}, Ward {doc['ward_id']}",
                latitude=float(properties.get("center_lat") or 0),
                longitude=float(properties.get("center_lng") or 0),
                ward_id=str(doc["ward_id"]),
                municipality_id=doc.get("municipality_id"),
            )
        )
    return WardSearchResponse(wards=suggestions)


@router.get("/boundaries/simplified", response_model=BoundaryCollection)
async def get_simplified_boundaries(
    response: Response,
    municipality_id: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db=Depends(get_db),
):
    """
    Simplified ward boundaries as a GeoJSON FeatureCollection.

    Read from the simplified_wards view rebuilt after every import; the
    wards collection is used while that view is still empty. Each
    feature's properties carry ward_id, name and the imported source
    properties. Cached for an hour.
    """
    _require_db(db)
    _cache_public(response)

    query = {"municipality_id": municipality_id} if municipality_id else {}
    source = db[settings.simplified_wards_view]
    if not await source.count_documents(query):
        source = db[WARDS_COLLECTION]

    cursor = (
        source
        .find(query, {"_id": 0, "ward_id": 1, "name": 1, "geojson": 1, "properties": 1})
        .sort("ward_id", 1)
        .skip(offset)
        .limit(limit)
    )

    features = []
    async for doc in cursor:
        features.append(
            BoundaryFeature(
                properties={
                    "ward_id": doc.get("ward_id"),
                    "name": doc.get("name"),
                    **(doc.get("properties") or {}),
                },
                geometry=doc.get("geojson"),
            )
        )

    return BoundaryCollection(
        metadata=BoundaryMetadata(
            total_features=len(features),
            municipality_id=municipality_id or "all",
            limit=limit,
            offset=offset,
            generated_at=datetime.now(tz=timezone.utc),
            cache_duration="1 hour",
        ),
        features=features,
    )


@router.get("/statistics", response_model=WardStatisticsResponse)
async def get_ward_statistics(
    response: Response,
    principal: CurrentPrincipal,
    municipality_id: Optional[str] = Query(default=None),
    db=Depends(get_db),
):
    """Report totals per ward, broken down by category and status."""
    _require_db(db)

    query = {"municipality_id": municipality_id} if municipality_id else {}
    total_wards = await db[WARDS_COLLECTION].count_documents(query)

    stats: dict[str, WardReportStats] = {}
    total_reports = 0
    cursor = db[REPORTS_COLLECTION].find(query, {"ward_id": 1, "category": 1, "status": 1})
    async for report in cursor:
        total_reports += 1
        ward_id = report.get("ward_id")
        if not ward_id:
            continue
        entry = stats.setdefault(str(ward_id), WardReportStats())
        entry.total_reports += 1
        category = report.get("category") or "unknown"
        status = report.get("status") or "unknown"
        entry.by_category[category] = entry.by_category.get(category, 0) + 1
        entry.by_status[status] = entry.by_status.get(status, 0) + 1

    response.headers["Cache-Control"] = "private, max-age=600"
    return WardStatisticsResponse(
        total_wards=total_wards,
        municipality_id=municipality_id or "all",
        ward_statistics=stats,
        summary=WardStatisticsSummary(wards_with_reports=len(stats), total_reports=total_reports),
    )


@router.get("/{ward_id}", response_model=WardOut)
async def get_ward(
    ward_id: str,
    include_geojson: bool = Query(default=False),
    db=Depends(get_db),
):
    """Retrieve a single ward by its external ward_id."""
    _require_db(db)

    doc = await db[WARDS_COLLECTION].find_one({"ward_id": ward_id}, _projection(include_geojson))
    if not doc:
        raise HTTPException(status_code=404, detail="Ward not found")
    return _doc_to_ward(doc)
