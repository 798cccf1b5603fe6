"""
clusters.py — Map marker clustering routes.

Routes:
  POST /api/v1/clusters  — cluster the reports the client already has
  GET  /api/v1/clusters  — load recent reports from the DB and cluster them

Both return ClusterView objects: anchor coordinate, member reports, the
marker size class and label, and the region to zoom to when the marker
is tapped. Clusters are recomputed on every request; change a filter or
the radius and call again.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from wardwatch.core.config import settings
from wardwatch.core.database import REPORTS_COLLECTION, get_db
from wardwatch.models.cluster import (
    Cluster,
    ClusterRequest,
    ClusterResponse,
    ClusterView,
    DistanceMode,
    ReportPoint,
)
from wardwatch.services.clustering import cluster_reports
from wardwatch.services.viewport import cluster_label, cluster_size_bucket, focus_cluster

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/clusters", tags=["clusters"])


def _to_view(cluster: Cluster) -> ClusterView:
    return ClusterView(
        id=cluster.id,
        coordinate=cluster.coordinate,
        count=cluster.count,
        size=cluster_size_bucket(cluster.count),
        label=cluster_label(cluster.count),
        region=focus_cluster(cluster),
        members=cluster.members,
    )


def _doc_to_point(doc: dict) -> Optional[ReportPoint]:
    lat, lng = doc.get("lat"), doc.get("lng")
    if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        return None
    return ReportPoint(
        id=str(doc.get("_id", doc.get("id"))),
        lat=lat,
        lng=lng,
        category=doc.get("category"),
        status=doc.get("status"),
        title=doc.get("title"),
    )


@router.post("", response_model=ClusterResponse)
async def cluster_points(payload: ClusterRequest):
    """Cluster a client-supplied list of reports."""
    if len(payload.reports) > settings.cluster_max_points:
        raise HTTPException(
            status_code=422,
            detail=f"Too many reports to cluster (max {settings.cluster_max_points})",
        )

    clusters = cluster_reports(payload.reports, payload.radius_km, payload.metric)
    return ClusterResponse(
        clusters=[_to_view(c) for c in clusters],
        total_reports=len(payload.reports),
        radius_km=payload.radius_km,
        metric=payload.metric,
    )


@router.get("", response_model=ClusterResponse)
async def cluster_recent_reports(
    radius_km: Optional[float] = Query(default=None, gt=0, le=100),
    metric: DistanceMode = Query(default=DistanceMode.DEGREE_DELTA),
    municipality_id: Optional[str] = Query(default=None),
    category: Optional[str] = Query(default=None),
    status: Optional[str] = Query(default=None),
    limit: int = Query(default=100, ge=1, le=100),
    db=Depends(get_db),
):
    """
    Cluster the most recent reports (newest first, at most 100).

    Reports without numeric lat/lng are left out.
    """
    if db is None:
        raise HTTPException(status_code=503, detail="Database unavailable")

    radius = radius_km or settings.cluster_default_radius_km
    limit = min(limit, settings.cluster_max_reports)

    query: dict = {}
    if municipality_id:
        query["municipality_id"] = municipality_id
    if category and category.lower() != "all":
        query["category"] = category
    if status and status.lower() != "all":
        query["status"] = status

    cursor = db[REPORTS_COLLECTION].find(query).sort("created_at", -1).limit(limit)
    points = []
    skipped = 0
    async for doc in cursor:
        point = _doc_to_point(doc)
        if point is None:
            skipped += 1
            continue
        points.append(point)

    if skipped:
        logger.debug("Skipped %d reports without coordinates", skipped)

    clusters = cluster_reports(points, radius, metric)
    return ClusterResponse(
        clusters=[_to_view(c) for c in clusters],
        total_reports=len(points),
        radius_km=radius,
        metric=metric,
        truncated=len(points) + skipped >= limit,
    )
