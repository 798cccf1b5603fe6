"""Helpers shared by the test modules (tokens, mocked GeoJSON sources)."""

import httpx
from jose import jwt


def make_token(sub: str = "user-1", role: str | None = "official") -> str:
    """Sign a token the way the auth provider would."""
    from wardwatch.core.config import settings

    claims: dict = {"sub": sub, "email": f"{sub}@example.org"}
    if role is not None:
        claims["app_metadata"] = {"role": role}
    return jwt.encode(claims, settings.auth_jwt_secret, algorithm=settings.auth_jwt_algorithm)


def geojson_transport(payload=None, status_code: int = 200, seen: list | None = None):
    """
    httpx.MockTransport serving `payload` as JSON for every GET.

    Requests are appended to `seen` when given, so tests can inspect headers.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        if isinstance(payload, (bytes, str)):
            return httpx.Response(status_code, content=payload)
        return httpx.Response(status_code, json=payload)

    return httpx.MockTransport(handler)


def polygon(lng: float, lat: float, vertices: int = 20, size: float = 0.01) -> dict:
    """A closed square-ish Polygon ring with `vertices` points (last == first)."""
    ring = []
    per_side = max(1, (vertices - 1) // 4)
    corners = [(0, 0), (size, 0), (size, size), (0, size), (0, 0)]
    for (x0, y0), (x1, y1) in zip(corners, corners[1:]):
        for step in range(per_side):
            t = step / per_side
            ring.append([lng + x0 + (x1 - x0) * t, lat + y0 + (y1 - y0) * t])
    ring.append(list(ring[0]))
    return {"type": "Polygon", "coordinates": [ring]}


def feature(properties: dict, geometry: dict | None = None) -> dict:
    return {
        "type": "Feature",
        "properties": properties,
        "geometry": geometry if geometry is not None else polygon(28.0, -26.0),
    }


def feature_collection(features: list) -> dict:
    return {"type": "FeatureCollection", "features": features}
