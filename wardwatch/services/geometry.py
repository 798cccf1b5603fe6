"""
geometry.py — Vertex-decimation simplifier for ward polygons.

Ward boundaries from municipal open-data portals carry far more vertices
than a phone map needs. We thin them by keeping every Nth vertex:

    step = max(1, floor(len(ring) * tolerance))

so tolerance=0.01 on a 1,000-vertex ring keeps every 10th vertex. The
ring's final vertex is always kept. This is not shape-aware (no
Douglas-Peucker, no self-intersection checks); it is O(n) and predictable.

Only outer rings survive: Polygon holes and MultiPolygon holes are dropped.

USAGE
─────
    from wardwatch.services.geometry import simplify_geometry

    geometry, warnings = simplify_geometry(feature["geometry"], 0.002)
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Optional, Sequence

logger = logging.getLogger(__name__)

Ring = Sequence[Sequence[float]]


@dataclass(frozen=True)
class GeometryWarning:
    """Simplification could not be applied; the geometry was kept as-is."""

    message: str


# ── Rings ─────────────────────────────────────────────────────────────────────

def try_simplify_ring(ring: Ring, tolerance: float) -> tuple[Ring, Optional[GeometryWarning]]:
    """
    Decimate one ring of [lon, lat] vertices.

    Returns (ring, None) on success. On malformed input returns the
    original ring untouched together with a GeometryWarning; never raises.
    """
    try:
        if tolerance <= 0:
            return ring, None
        size = len(ring)
        if size <= 2:
            return ring, None

        step = max(1, math.floor(size * tolerance))
        simplified = [ring[i] for i in range(0, size, step)]
        if (size - 1) % step != 0:
            simplified.append(ring[size - 1])
        return simplified, None
    except Exception as exc:
        return ring, GeometryWarning(f"ring simplification failed: {exc}")


def simplify_ring(ring: Ring, tolerance: float) -> Ring:
    """Decimate one ring; failures are logged and the ring returned unchanged."""
    simplified, warning = try_simplify_ring(ring, tolerance)
    if warning is not None:
        logger.warning("Geometry warning: %s", warning.message)
    return simplified


# ── Geometries ────────────────────────────────────────────────────────────────

def simplify_geometry(
    geometry: Optional[dict[str, Any]],
    tolerance: float,
) -> tuple[Optional[dict[str, Any]], list[GeometryWarning]]:
    """
    Simplify a GeoJSON Polygon or MultiPolygon, keeping outer rings only.

    tolerance <= 0 leaves the geometry untouched (holes included).
    Other geometry types pass through unsimplified with a warning.
    """
    if geometry is None:
        return None, [GeometryWarning("feature has no geometry")]
    if tolerance <= 0:
        return geometry, []

    geometry_type = geometry.get("type") if isinstance(geometry, dict) else None
    warnings: list[GeometryWarning] = []

    try:
        if geometry_type == "Polygon":
            outer, warning = try_simplify_ring(geometry["coordinates"][0], tolerance)
            if warning:
                warnings.append(warning)
            return {**geometry, "coordinates": [outer]}, warnings

        if geometry_type == "MultiPolygon":
            polygons = []
            for polygon in geometry["coordinates"]:
                outer, warning = try_simplify_ring(polygon[0], tolerance)
                if warning:
                    warnings.append(warning)
                polygons.append([outer])
            return {**geometry, "coordinates": polygons}, warnings
    except Exception as exc:
        return geometry, [GeometryWarning(f"{geometry_type} simplification failed: {exc}")]

    return geometry, [GeometryWarning(f"unsupported geometry type {geometry_type!r} kept as-is")]


def count_vertices(geometry: Optional[dict[str, Any]]) -> int:
    """Total vertex count of a Polygon / MultiPolygon (0 for anything else)."""
    if not isinstance(geometry, dict):
        return 0
    coordinates = geometry.get("coordinates") or []
    try:
        if geometry.get("type") == "Polygon":
            return sum(len(ring) for ring in coordinates)
        if geometry.get("type") == "MultiPolygon":
            return sum(len(ring) for polygon in coordinates for ring in polygon)
    except TypeError:
        return 0
    return 0
