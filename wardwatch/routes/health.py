"""
health.py — Liveness endpoint.

Always answers 200 while the process is up. The body tells the map
client whether MongoDB is reachable and whether any ward boundaries have
been imported yet, so an empty map can be told apart from an outage.
"""

import logging
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel

from wardwatch import __version__
from wardwatch.core import database as db_module
from wardwatch.core.config import settings

logger = logging.getLogger(__name__)
router = APIRouter()


class HealthResponse(BaseModel):
    status: str  # "ok" while the process is alive
    version: str
    environment: str
    database: str  # "connected" | "disconnected"
    wards_loaded: Optional[int] = None  # None when the DB is unreachable


async def _ward_count() -> Optional[int]:
    """Ping MongoDB and count imported wards; None if either fails."""
    # Looked up on the module at call time so tests can patch db_client.
    client = db_module.db_client.client
    if client is None:
        return None
    try:
        await client.admin.command("ping")
        db = db_module.db_client.db
        if db is None:
            return 0
        return await db[db_module.WARDS_COLLECTION].count_documents({})
    except Exception as exc:
        logger.warning("Health check database lookup failed: %s", exc)
        return None


@router.get("", response_model=HealthResponse, summary="API health check")
async def health_check() -> HealthResponse:
    wards_loaded = await _ward_count()
    return HealthResponse(
        status="ok",
        version=__version__,
        environment=settings.environment,
        database="connected" if wards_loaded is not None else "disconnected",
        wards_loaded=wards_loaded,
    )
