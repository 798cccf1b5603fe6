"""
Outbound HTTP client dependency.

Routes that call third-party sources (GeoJSON downloads) take an
httpx.AsyncClient through Depends(get_http_client) so tests can swap in
a client backed by httpx.MockTransport via app.dependency_overrides.
"""

from typing import AsyncIterator

import httpx

from wardwatch.core.config import settings


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    """FastAPI dependency — one AsyncClient per request, closed afterwards."""
    async with httpx.AsyncClient(
        timeout=settings.ward_import_fetch_timeout_seconds,
        follow_redirects=True,
    ) as client:
        yield client
