"""
Motor connection for the wards and reports collections.

One DatabaseClient per process, opened in the app lifespan. Routes get
the database through Depends(get_db), which yields None while MongoDB is
unreachable; they answer 503 in that case instead of failing startup.
"""

import logging
import re

import certifi
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from wardwatch.core.config import settings

logger = logging.getLogger(__name__)

WARDS_COLLECTION = "wards"
REPORTS_COLLECTION = "reports"


class DatabaseClient:
    """Motor client plus the selected database. Both None when disconnected."""

    client: AsyncIOMotorClient | None = None
    db: AsyncIOMotorDatabase | None = None


db_client = DatabaseClient()


async def connect_to_mongo() -> None:
    """Connect, ping, and create indexes. Leaves the client unset on failure."""
    logger.info("Connecting to MongoDB at %s", _redact_uri(settings.mongo_uri))
    try:
        db_client.client = AsyncIOMotorClient(
            settings.mongo_uri,
            serverSelectionTimeoutMS=5000,
            tlsCAFile=certifi.where(),
        )
        db_client.db = db_client.client[settings.mongo_db_name]
        await db_client.client.admin.command("ping")
        logger.info("MongoDB connection established (db: %s)", settings.mongo_db_name)
    except Exception as exc:
        logger.warning(
            "MongoDB unavailable at startup: %s. "
            "Ward and cluster routes will answer 503 until it is back.",
            exc,
        )
        db_client.client = None
        db_client.db = None
        return

    await ensure_indexes(db_client.db)


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    """
    Create the indexes the ward import relies on.

    ward_id must be unique: the import upserts on it, and a duplicate
    would make re-imports grow the collection.
    """
    try:
        await db[WARDS_COLLECTION].create_index("ward_id", unique=True)
        await db[WARDS_COLLECTION].create_index("municipality_id")
        await db[WARDS_COLLECTION].create_index("name")
        # $merge into the simplified view matches on ward_id.
        await db[settings.simplified_wards_view].create_index("ward_id", unique=True)
    except Exception as exc:
        logger.warning("Could not create ward indexes: %s", exc)


async def close_mongo_connection() -> None:
    """Close the client opened by connect_to_mongo, if any."""
    if db_client.client is not None:
        db_client.client.close()
        logger.info("MongoDB connection closed")


def get_db() -> AsyncIOMotorDatabase | None:
    """FastAPI dependency: the wardwatch database, or None when disconnected."""
    return db_client.db


def _redact_uri(uri: str) -> str:
    """Hide user:password in a MongoDB URI."""
    return re.sub(r"://[^:]+:[^@]+@", "://<redacted>@", uri)
