"""
pytest configuration and shared fixtures for the wardwatch API tests.

Tests must not require a live MongoDB or network access:
  1. connect_to_mongo / close_mongo_connection are patched to no-ops so
     FastAPI's lifespan doesn't try to reach a real database.
  2. db_client.client / db are None (disconnected) unless a test
     overrides get_db with a FakeDB.
  3. Outbound GeoJSON fetches go through httpx.MockTransport.
"""

import os
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from tests.helpers import make_token

# Set env vars BEFORE importing the app so Settings picks them up correctly
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("AUTH_JWT_SECRET", "test-secret")
os.environ.setdefault("WARD_IMPORT_BATCH_DELAY_SECONDS", "0")


@pytest.fixture(autouse=True)
async def mock_db():
    """
    Patch the MongoDB lifecycle for every test and leave the DB disconnected.

    Tests that need a database override get_db with a FakeDB.
    """
    with (
        patch("wardwatch.core.database.connect_to_mongo", new_callable=AsyncMock),
        patch("wardwatch.core.database.close_mongo_connection", new_callable=AsyncMock),
    ):
        import wardwatch.core.database as db_module

        original_client = db_module.db_client.client
        original_db = db_module.db_client.db

        db_module.db_client.client = None
        db_module.db_client.db = None

        yield

        db_module.db_client.client = original_client
        db_module.db_client.db = original_db


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """The limiter keeps counters in memory; start every test from zero."""
    from wardwatch.core.rate_limit import limiter

    limiter.reset()
    yield


@pytest.fixture()
async def client(mock_db):  # noqa: ARG001  mock_db must run first
    """HTTPX async test client wired to the FastAPI app."""
    from wardwatch.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture()
def official_headers():
    return {"Authorization": f"Bearer {make_token(role='official')}"}


@pytest.fixture()
def citizen_headers():
    return {"Authorization": f"Bearer {make_token(sub='citizen-1', role='citizen')}"}
