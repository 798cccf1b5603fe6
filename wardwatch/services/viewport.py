"""
viewport.py — Map viewport helpers for clusters.

focus_cluster() answers "where should the map zoom when this marker is
tapped?": the bounding box of the members, padded, with a floor on the
deltas so single-report clusters still get a sensible close-up.

The rest are small conversions the map client needs alongside it.
"""

from __future__ import annotations

import math

from wardwatch.models.cluster import Cluster, ClusterSize, Region

DEFAULT_PADDING_FACTOR = 1.5
DEFAULT_MIN_DELTA = 0.01


def focus_cluster(
    cluster: Cluster,
    padding_factor: float = DEFAULT_PADDING_FACTOR,
    min_delta: float = DEFAULT_MIN_DELTA,
) -> Region:
    """
    Region framing every member of `cluster`.

    The center is the midpoint of the bounding box, not the mean of the
    points. Deltas are (max - min) * padding_factor, floored at min_delta.
    """
    lats = [m.lat for m in cluster.members]
    lngs = [m.lng for m in cluster.members]
    min_lat, max_lat = min(lats), max(lats)
    min_lng, max_lng = min(lngs), max(lngs)

    return Region(
        lat=(min_lat + max_lat) / 2,
        lng=(min_lng + max_lng) / 2,
        lat_delta=max((max_lat - min_lat) * padding_factor, min_delta),
        lng_delta=max((max_lng - min_lng) * padding_factor, min_delta),
    )


def region_bounding_box(region: Region) -> tuple[float, float, float, float]:
    """(west, south, east, north) of a region."""
    return (
        region.lng - region.lng_delta / 2,
        region.lat - region.lat_delta / 2,
        region.lng + region.lng_delta / 2,
        region.lat + region.lat_delta / 2,
    )


def zoom_level(lat_delta: float) -> int:
    """Approximate web-map zoom level showing `lat_delta` degrees of latitude."""
    return round(math.log2(360 / lat_delta))


def cluster_size_bucket(count: int) -> ClusterSize:
    """Marker size class: small (<10), medium (<50), large."""
    if count < 10:
        return "small"
    if count < 50:
        return "medium"
    return "large"


def cluster_label(count: int) -> str:
    """Text drawn on the marker; counts above 99 collapse to "99+"."""
    return "99+" if count > 99 else str(count)
