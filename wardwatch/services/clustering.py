"""
clustering.py — Greedy radius clustering of reports for map markers.

HOW IT WORKS
────────────
Walk the reports in input order. The first report not yet assigned
becomes an *anchor* and opens a new cluster. Every later unassigned report
that lies within the radius of that anchor joins it. Repeat until every
report belongs to exactly one cluster.

Membership is measured against the anchor only, never between members,
so grouping depends on input order and is not transitive: two reports
more than a radius apart both join the cluster of a shared neighbour
processed before them. The map UI relies on this grouping; do not swap
it for a symmetric algorithm.

Cost is O(n²). Fine for the ≤100 reports the map page requests; past
~500 points add a grid bucketing pass in front of the same greedy merge.

DISTANCE MODES
──────────────
DEGREE_DELTA (default) — |Δlat| and |Δlng| both within radius_km × 0.01°.
    This is the flat threshold the mobile map has always used
    (0.01° ≈ 1.1 km at the equator). Cheap, but it ignores latitude.
HAVERSINE — great-circle distance strictly below radius_km.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Sequence, Union

from wardwatch.models.cluster import Cluster, Coordinate, DistanceMode, ReportPoint
from wardwatch.services.distance import distance_km

# Degrees of latitude/longitude per km of radius in DEGREE_DELTA mode.
DEGREES_PER_KM = 0.01

ReportLike = Union[ReportPoint, Mapping[str, Any]]


def _as_point(report: ReportLike) -> ReportPoint:
    if isinstance(report, ReportPoint):
        return report
    return ReportPoint.model_validate(dict(report))


def within_radius(
    anchor: ReportPoint,
    other: ReportPoint,
    radius_km: float,
    metric: DistanceMode = DistanceMode.DEGREE_DELTA,
) -> bool:
    """True when `other` is close enough to `anchor` to join its cluster."""
    if metric == DistanceMode.HAVERSINE:
        return distance_km(anchor.lat, anchor.lng, other.lat, other.lng) < radius_km

    threshold = radius_km * DEGREES_PER_KM
    return (
        abs(other.lat - anchor.lat) <= threshold
        and abs(other.lng - anchor.lng) <= threshold
    )


def cluster_reports(
    reports: Sequence[ReportLike],
    radius_km: float = 1.0,
    metric: DistanceMode = DistanceMode.DEGREE_DELTA,
) -> list[Cluster]:
    """
    Group reports into clusters anchored at their first member.

    Clusters are rebuilt from scratch on every call; no state is kept
    between calls, so it is safe to run concurrently.
    """
    points = [_as_point(r) for r in reports]
    processed: set[int] = set()
    clusters: list[Cluster] = []

    for i, anchor in enumerate(points):
        if i in processed:
            continue
        processed.add(i)
        members = [anchor]

        for j in range(i + 1, len(points)):
            if j in processed:
                continue
            if within_radius(anchor, points[j], radius_km, metric):
                members.append(points[j])
                processed.add(j)

        clusters.append(
            Cluster(
                id=f"cluster-{anchor.id}",
                coordinate=Coordinate(lat=anchor.lat, lng=anchor.lng),
                members=members,
            )
        )

    return clusters
