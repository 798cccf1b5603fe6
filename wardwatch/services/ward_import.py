"""
ward_import.py — Import ward boundaries from a GeoJSON FeatureCollection.

PIPELINE
────────
1. Fetch the GeoJSON URL (optionally with an Authorization header).
2. Check it is a FeatureCollection (a "features" list).
3. Normalize + simplify every feature (see ward_normalizer.py).
4. Upsert the wards in batches of 50, keyed by ward_id.
5. Refresh the simplified_wards collection the map reads from.

FAILURE MODEL
─────────────
Two tiers. Anything that goes wrong before the first write is fatal and
raised as WardImportError: nothing from this run is persisted. After
that, problems are per-item and only recorded:

  per feature — missing ward id        → processing_errors (max 10)
  per feature — geometry not simplified → warnings (max 10)
  per batch   — datastore rejected it   → batch_errors (max 5); wards
                written before the rejection still count as inserted
  view refresh failed                   → logged, swallowed

Third-party ward datasets are messy; an import should make as much
progress as it can instead of being all-or-nothing. Re-running the same
import is idempotent because every write is an upsert on ward_id.

Batches run one after another with a short pause between them so a
managed MongoDB tier does not throttle us.

Cancellation: pass an asyncio.Event. Set while fetching, it abandons the
download; set before writing, it raises CANCELLED; set between batches, it
stops and returns what was written with cancelled=True.

USAGE
─────
    async with httpx.AsyncClient() as http:
        pipeline = WardImportPipeline(db["wards"], http)
        result = await pipeline.run(url, municipality_id="jhb", tolerance=0.002)
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import httpx
from pymongo import UpdateOne
from pymongo.errors import BulkWriteError

from wardwatch.core.config import settings
from wardwatch.core.database import WARDS_COLLECTION
from wardwatch.models.ward import NormalizationError, Ward, WardImportResult
from wardwatch.services.geometry import count_vertices
from wardwatch.services.ward_normalizer import normalize_feature

logger = logging.getLogger(__name__)

MAX_PROCESSING_ERRORS = 10
MAX_BATCH_ERRORS = 5
MAX_WARNINGS = 10

ViewRefresher = Callable[[], Awaitable[Any]]


class ImportErrorKind(str, Enum):
    FETCH_FAILED = "FetchFailed"
    INVALID_FORMAT = "InvalidFormat"
    NO_VALID_WARDS = "NoValidWards"
    CANCELLED = "Cancelled"


class WardImportError(Exception):
    """Fatal import failure. Raised before anything was written."""

    def __init__(
        self,
        kind: ImportErrorKind,
        message: str,
        processing_errors: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.processing_errors = processing_errors or []

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "processing_errors": self.processing_errors,
        }


def _append_capped(items: list[str], message: str, cap: int) -> None:
    if len(items) < cap:
        items.append(message)


async def refresh_simplified_view(db, view_name: Optional[str] = None) -> None:
    """
    Rebuild the simplified_wards collection from wards.

    An on-demand materialized view: a $merge aggregation keyed on ward_id
    (the target needs a unique index on ward_id, see ensure_indexes).
    """
    view_name = view_name or settings.simplified_wards_view
    pipeline = [
        {
            "$project": {
                "_id": 0,
                "ward_id": 1,
                "name": 1,
                "municipality_id": 1,
                "geojson": 1,
                "properties": 1,
            }
        },
        {
            "$merge": {
                "into": view_name,
                "on": "ward_id",
                "whenMatched": "replace",
                "whenNotMatched": "insert",
            }
        },
    ]
    await db[WARDS_COLLECTION].aggregate(pipeline).to_list(length=None)
    logger.info("Refreshed %s view", view_name)


class WardImportPipeline:
    """
    One configured importer. Construct per request; holds no state between runs.

    collection     — Motor collection (or any object with async bulk_write)
    http_client    — httpx.AsyncClient used to fetch the source
    view_refresher — optional coroutine factory run after the batches
    """

    def __init__(
        self,
        collection,
        http_client: httpx.AsyncClient,
        *,
        view_refresher: Optional[ViewRefresher] = None,
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
        fetch_timeout: Optional[float] = None,
    ) -> None:
        self.collection = collection
        self.http_client = http_client
        self.view_refresher = view_refresher
        self.batch_size = batch_size or settings.ward_import_batch_size
        self.batch_delay = (
            settings.ward_import_batch_delay_seconds if batch_delay is None else batch_delay
        )
        self.fetch_timeout = fetch_timeout or settings.ward_import_fetch_timeout_seconds

    # ── Public API ────────────────────────────────────────────────────────────

    async def run(
        self,
        geojson_url: str,
        municipality_id: Optional[str] = None,
        tolerance: float = 0.001,
        auth_header: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> WardImportResult:
        """
        Import every ward in the FeatureCollection at `geojson_url`.

        Raises WardImportError for fatal failures. Returns a result (which
        may carry batch errors) once writing has started.
        """
        logger.info("Starting ward import from %s", geojson_url)

        payload = await self._fetch_unless_cancelled(geojson_url, auth_header, cancel_event)
        features = payload.get("features") if isinstance(payload, dict) else None
        if not isinstance(features, list):
            raise WardImportError(ImportErrorKind.INVALID_FORMAT, "Invalid GeoJSON format")

        logger.info("Processing %d ward features", len(features))
        result = WardImportResult(source_url=geojson_url, total_features=len(features))
        wards = self._normalize_all(features, municipality_id, tolerance, geojson_url, result)

        if not wards:
            raise WardImportError(
                ImportErrorKind.NO_VALID_WARDS,
                "No valid wards found in GeoJSON",
                result.processing_errors,
            )
        result.processed_count = len(wards)

        if cancel_event is not None and cancel_event.is_set():
            raise WardImportError(ImportErrorKind.CANCELLED, "Import cancelled before writing")

        unique_wards = _last_write_wins(wards)
        if len(unique_wards) < len(wards):
            logger.info(
                "Collapsed %d duplicate ward ids (later features win)",
                len(wards) - len(unique_wards),
            )
        logger.info("Prepared %d wards for insertion", len(unique_wards))

        await self._write_batches(unique_wards, result, cancel_event)
        await self._refresh_view()

        logger.info(
            "Ward import finished: %d inserted, %d batch errors, status=%s",
            result.inserted_count,
            len(result.batch_errors),
            result.status,
        )
        return result

    # ── Steps ─────────────────────────────────────────────────────────────────

    async def _fetch_unless_cancelled(
        self,
        url: str,
        auth_header: Optional[str],
        cancel_event: Optional[asyncio.Event],
    ) -> Any:
        """Fetch the source, abandoning the download if cancel_event fires first."""
        if cancel_event is None:
            return await self._fetch(url, auth_header)
        if cancel_event.is_set():
            raise WardImportError(ImportErrorKind.CANCELLED, "Import cancelled before fetching")

        fetch = asyncio.ensure_future(self._fetch(url, auth_header))
        cancelled = asyncio.ensure_future(cancel_event.wait())
        done, _ = await asyncio.wait({fetch, cancelled}, return_when=asyncio.FIRST_COMPLETED)

        if fetch in done:
            cancelled.cancel()
            return fetch.result()

        fetch.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await fetch
        logger.warning("Ward import cancelled while fetching %s", url)
        raise WardImportError(ImportErrorKind.CANCELLED, "Import cancelled while fetching")

    async def _fetch(self, url: str, auth_header: Optional[str]) -> Any:
        headers = {"Accept": "application/json"}
        if auth_header:
            headers["Authorization"] = auth_header

        try:
            response = await self.http_client.get(url, headers=headers, timeout=self.fetch_timeout)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "GeoJSON source returned %s: %s",
                exc.response.status_code,
                exc.response.text[:200],
            )
            raise WardImportError(
                ImportErrorKind.FETCH_FAILED,
                f"Failed to fetch GeoJSON data: HTTP {exc.response.status_code} "
                f"{exc.response.reason_phrase}",
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("GeoJSON fetch failed: %s", exc)
            raise WardImportError(
                ImportErrorKind.FETCH_FAILED,
                f"Failed to fetch GeoJSON data: {exc}",
            ) from exc

        try:
            return response.json()
        except ValueError as exc:
            raise WardImportError(
                ImportErrorKind.INVALID_FORMAT,
                "Response body is not valid JSON",
            ) from exc

    def _normalize_all(
        self,
        features: list[Any],
        municipality_id: Optional[str],
        tolerance: float,
        source_url: str,
        result: WardImportResult,
    ) -> list[Ward]:
        imported_at = datetime.now(tz=timezone.utc)
        wards: list[Ward] = []
        vertices_in = vertices_out = 0

        for feature in features:
            outcome = normalize_feature(feature, municipality_id, tolerance, source_url, imported_at)
            if isinstance(outcome, NormalizationError):
                logger.debug("%s: %s", outcome.kind.value, outcome.message)
                _append_capped(result.processing_errors, outcome.message, MAX_PROCESSING_ERRORS)
                continue

            for warning in outcome.warnings:
                logger.warning("Geometry warning: %s", warning)
                _append_capped(result.warnings, warning, MAX_WARNINGS)

            if isinstance(feature.get("geometry"), dict):
                vertices_in += count_vertices(feature["geometry"])
            vertices_out += count_vertices(outcome.geojson)
            wards.append(outcome)

        if wards:
            logger.info("Simplified %d → %d vertices", vertices_in, vertices_out)
        return wards

    async def _write_batches(
        self,
        wards: list[Ward],
        result: WardImportResult,
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        total_batches = (len(wards) + self.batch_size - 1) // self.batch_size

        for index, start in enumerate(range(0, len(wards), self.batch_size)):
            batch_number = index + 1
            if index > 0:
                if cancel_event is not None and cancel_event.is_set():
                    logger.warning(
                        "Ward import cancelled after %d/%d batches", index, total_batches
                    )
                    result.cancelled = True
                    return
                await asyncio.sleep(self.batch_delay)

            batch = wards[start:start + self.batch_size]
            try:
                result.inserted_count += await self._upsert_batch(batch)
                logger.info("Processed batch %d/%d", batch_number, total_batches)
            except BulkWriteError as exc:
                # Ordered writes stop at the first rejected ward; earlier ones are committed.
                written = exc.details.get("nUpserted", 0) + exc.details.get("nMatched", 0)
                result.inserted_count += written
                logger.error(
                    "Batch %d stopped after %d/%d wards: %s",
                    batch_number,
                    written,
                    len(batch),
                    exc,
                )
                _append_capped(result.batch_errors, f"Batch {batch_number}: {exc}", MAX_BATCH_ERRORS)
            except Exception as exc:
                logger.error("Batch %d upsert failed: %s", batch_number, exc)
                _append_capped(result.batch_errors, f"Batch {batch_number}: {exc}", MAX_BATCH_ERRORS)

    async def _upsert_batch(self, batch: list[Ward]) -> int:
        now = datetime.now(tz=timezone.utc)
        operations = [
            UpdateOne(
                {"ward_id": ward.ward_id},
                {
                    "$set": {**ward.to_document(), "updated_at": now},
                    "$setOnInsert": {"created_at": now},
                },
                upsert=True,
            )
            for ward in batch
        ]
        outcome = await self.collection.bulk_write(operations, ordered=True)
        return outcome.matched_count + outcome.upserted_count

    async def _refresh_view(self) -> None:
        if self.view_refresher is None:
            return
        try:
            await self.view_refresher()
        except Exception as exc:
            logger.warning("Could not refresh simplified ward view: %s", exc)


def _last_write_wins(wards: list[Ward]) -> list[Ward]:
    """Drop earlier duplicates of a ward_id, keeping first-seen order."""
    latest: dict[str, Ward] = {}
    for ward in wards:
        latest[ward.ward_id] = ward
    return list(latest.values())
