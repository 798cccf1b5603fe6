#!/usr/bin/env python3
"""
import_wards.py — Import ward boundaries from a GeoJSON URL straight into MongoDB.

Runs the same pipeline as POST /api/v1/wards/import, without the API or
an official's token. Handy for first-time seeding and for large datasets
that would time out behind a proxy.

Usage (from the repo root):
    python scripts/import_wards.py https://example.org/wards.geojson

    # Attach wards to a municipality and simplify harder
    python scripts/import_wards.py URL --municipality-id jhb --tolerance 0.005

    # Private source (sent as "Authorization: token <value>")
    python scripts/import_wards.py URL --token ghp_xxx

Prints the import result as JSON. Exit code 1 on a fatal import error or
when every batch was rejected, 2 on a partial import, 0 otherwise.
Ctrl+C stops the import after the batch in flight.

Requires MONGO_URI (and optionally MONGO_DB_NAME) in the environment or .env.
"""

import argparse
import asyncio
import contextlib
import json
import os
import signal
import sys
from functools import partial
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ROOT = Path(__file__).parent.parent
load_dotenv(ROOT / ".env")

import certifi  # noqa: E402
import httpx  # noqa: E402
from motor.motor_asyncio import AsyncIOMotorClient  # noqa: E402

from wardwatch.core.config import settings  # noqa: E402
from wardwatch.core.database import WARDS_COLLECTION, ensure_indexes  # noqa: E402
from wardwatch.models.ward import WardImportResult  # noqa: E402
from wardwatch.services.ward_import import (  # noqa: E402
    WardImportError,
    WardImportPipeline,
    refresh_simplified_view,
)

MONGO_URI = os.environ.get("MONGO_URI", settings.mongo_uri)
MONGO_DB_NAME = os.environ.get("MONGO_DB_NAME", settings.mongo_db_name)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_PARTIAL = 2


def exit_code(result: WardImportResult) -> int:
    if result.status == "failure":
        return EXIT_FAILED
    if result.status == "partial_success":
        return EXIT_PARTIAL
    return EXIT_OK


async def import_into(
    db,
    args: argparse.Namespace,
    http: httpx.AsyncClient,
    cancel_event: Optional[asyncio.Event] = None,
) -> int:
    """Run one import against `db` and print the outcome. Returns the exit code."""
    await ensure_indexes(db)
    auth_header = f"token {args.token}" if args.token else None

    pipeline = WardImportPipeline(
        db[WARDS_COLLECTION],
        http,
        view_refresher=partial(refresh_simplified_view, db, settings.simplified_wards_view),
        batch_size=args.batch_size,
        fetch_timeout=args.timeout,
    )
    try:
        result = await pipeline.run(
            args.url,
            municipality_id=args.municipality_id,
            tolerance=args.tolerance,
            auth_header=auth_header,
            cancel_event=cancel_event,
        )
    except WardImportError as exc:
        print(json.dumps(exc.to_dict(), indent=2))
        return EXIT_FAILED

    print(json.dumps(result.model_dump(mode="json"), indent=2))
    print(f"\n{result.message}" + (" (cancelled)" if result.cancelled else ""))
    return exit_code(result)


async def run(args: argparse.Namespace) -> int:
    client = AsyncIOMotorClient(MONGO_URI, tlsCAFile=certifi.where())
    db = client[MONGO_DB_NAME]

    try:
        await client.admin.command("ping")
        print(f"Connected to MongoDB ({MONGO_DB_NAME})")
    except Exception as exc:
        print(f"ERROR: Cannot connect to MongoDB: {exc}")
        client.close()
        return EXIT_FAILED

    # Ctrl+C: stop after the batch in flight.
    cancel_event = asyncio.Event()
    with contextlib.suppress(NotImplementedError):  # no signal handlers on Windows
        asyncio.get_running_loop().add_signal_handler(signal.SIGINT, cancel_event.set)

    try:
        async with httpx.AsyncClient(follow_redirects=True) as http:
            return await import_into(db, args, http, cancel_event)
    finally:
        client.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Import ward boundaries from GeoJSON")
    parser.add_argument("url", help="URL of a GeoJSON FeatureCollection")
    parser.add_argument("--municipality-id", default=None, help="Municipality to attach wards to")
    parser.add_argument(
        "--tolerance",
        type=float,
        default=settings.ward_import_default_tolerance,
        help="Simplification tolerance in [0, 1] (default: %(default)s, 0 disables)",
    )
    parser.add_argument(
        "--token",
        default=settings.ward_source_token or None,
        help="Token for private sources (default: WARD_SOURCE_TOKEN)",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=settings.ward_import_batch_size,
        help="Wards per upsert batch (default: %(default)s)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=settings.ward_import_fetch_timeout_seconds,
        help="Fetch timeout in seconds (default: %(default)s)",
    )
    args = parser.parse_args()

    if not 0 <= args.tolerance <= 1:
        print("ERROR: --tolerance must be between 0 and 1")
        sys.exit(1)

    sys.exit(asyncio.run(run(args)))
