"""
ward_normalizer.py — Turn one GeoJSON feature into a canonical Ward.

Ward datasets come from different providers and every provider spells
its property keys differently ("WardID", "WARD_ID", "ward_id", ...).
Each Ward field is resolved from an ordered list of candidate keys; the
first key holding a value wins.

normalize_feature() is a pure transform. Failures come back as
NormalizationError values so the import can skip the feature and carry on.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Optional, Sequence, Union

from wardwatch.models.ward import NormalizationError, NormalizationErrorKind, Ward
from wardwatch.services.geometry import simplify_geometry

WARD_ID_KEYS = ("WardID", "WARD_ID", "ward_id", "id", "OBJECTID", "FID")
WARD_NAME_KEYS = ("WardLabel", "WARD_NAME", "ward_name", "name", "NAME")
MUNICIPALITY_KEYS = ("municipality_id", "MUNICIPALITY_ID", "MunicipalityID")


def resolve_first(properties: Mapping[str, Any], keys: Sequence[str]) -> Optional[Any]:
    """Value of the first key in `keys` that is present, not None and not blank."""
    for key in keys:
        value = properties.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _id_text(value: Any) -> str:
    """Ward ids as text; integral floats (12.0 from some exporters) become "12"."""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def _describe(properties: Mapping[str, Any], limit: int = 200) -> str:
    text = json.dumps(dict(properties), default=str, sort_keys=True)
    return text if len(text) <= limit else text[: limit - 3] + "..."


def normalize_feature(
    feature: Any,
    fallback_municipality_id: Optional[str],
    tolerance: float,
    source_url: str,
    imported_at: Optional[datetime] = None,
) -> Union[Ward, NormalizationError]:
    """
    Build a Ward from a GeoJSON feature.

    Municipality: the caller's fallback_municipality_id wins over anything
    in the feature properties.
    Geometry: outer rings simplified with `tolerance`; holes dropped.
    Properties: shallow copy plus import_timestamp and source_url.
    """
    if not isinstance(feature, Mapping):
        return NormalizationError(
            kind=NormalizationErrorKind.INVALID_FEATURE,
            message=f"Skipping feature that is not an object: {str(feature)[:100]}",
        )

    properties = feature.get("properties")
    if not isinstance(properties, Mapping):
        properties = {}

    ward_id = resolve_first(properties, WARD_ID_KEYS)
    if ward_id is None:
        return NormalizationError(
            kind=NormalizationErrorKind.MISSING_WARD_ID,
            message=f"Skipping feature without ward ID: {_describe(properties)}",
        )
    ward_id = _id_text(ward_id)

    name = resolve_first(properties, WARD_NAME_KEYS)
    municipality_id = fallback_municipality_id or resolve_first(properties, MUNICIPALITY_KEYS)

    geometry, geometry_warnings = simplify_geometry(feature.get("geometry"), tolerance)

    timestamp = imported_at or datetime.now(tz=timezone.utc)
    return Ward(
        ward_id=ward_id,
        name=str(name) if name is not None else f"Ward {ward_id}",
        municipality_id=str(municipality_id) if municipality_id is not None else None,
        geojson=geometry,
        properties={
            **properties,
            "import_timestamp": timestamp.isoformat(),
            "source_url": source_url,
        },
        warnings=[f"Ward {ward_id}: {w.message}" for w in geometry_warnings],
    )
