"""
wardwatch API — FastAPI application.

Serves ward boundaries to the citizen map, lets municipal officials
import new boundary datasets, and clusters reports into map markers.

Run locally:
    uvicorn wardwatch.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from wardwatch import __version__
from wardwatch.core import database
from wardwatch.core.config import settings
from wardwatch.core.rate_limit import limiter
from wardwatch.routes.clusters import router as clusters_router
from wardwatch.routes.health import router as health_router
from wardwatch.routes.wards import router as wards_router

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)

_show_docs = settings.environment != "production"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open MongoDB on startup and close it on shutdown."""
    logger.info(
        "wardwatch %s starting (env: %s, import batch size: %d)",
        __version__,
        settings.environment,
        settings.ward_import_batch_size,
    )
    # Resolved through the module so tests can patch it.
    await database.connect_to_mongo()
    try:
        yield
    finally:
        logger.info("wardwatch shutting down")
        await database.close_mongo_connection()


app = FastAPI(
    title="wardwatch API",
    description=(
        "Ward boundary import and map clustering backend for municipal "
        "issue reporting."
    ),
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if _show_docs else None,
    redoc_url="/redoc" if _show_docs else None,
)

# Import routes are throttled per client IP; see core/rate_limit.py.
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

app.include_router(health_router, prefix="/health", tags=["health"])
app.include_router(wards_router)
app.include_router(clusters_router)


@app.get("/", tags=["root"])
async def root():
    """Service metadata and the route groups it exposes."""
    return {
        "name": "wardwatch API",
        "version": __version__,
        "status": "running",
        "environment": settings.environment,
        "endpoints": {
            "health": "/health",
            "wards": wards_router.prefix,
            "clusters": clusters_router.prefix,
        },
        "docs": "/docs" if _show_docs else None,
    }
