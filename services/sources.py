"""Asynchronous collaborators that answer the two reading-store queries."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import List, Optional, Protocol

import httpx
from pydantic import ValidationError

from app.schemas import AggregatedBucketSchema, DeviceSnapshotSchema
from datastore.reading_store import ReadingStore
from models.errors import DatastoreUnavailable
from models.records import AggregatedBucket, DeviceSnapshot
from services.aggregator import DEFAULT_BUCKET, DEFAULT_WINDOW


class ReadingSource(Protocol):
    async def latest_per_device(self) -> List[DeviceSnapshot]: ...

    async def aggregated_history(self) -> List[AggregatedBucket]: ...


class StoreReadingSource:
    """Queries a local :class:`ReadingStore` off the event loop thread."""

    def __init__(
        self,
        store: ReadingStore,
        window: timedelta = DEFAULT_WINDOW,
        bucket: timedelta = DEFAULT_BUCKET,
    ) -> None:
        self.store = store
        self.window = window
        self.bucket = bucket

    async def latest_per_device(self) -> List[DeviceSnapshot]:
        return await asyncio.to_thread(self.store.latest_per_device)

    async def aggregated_history(self) -> List[AggregatedBucket]:
        return await asyncio.to_thread(
            self.store.aggregated_history, self.window, self.bucket
        )


class HttpReadingSource:
    """Queries the dashboard API over HTTP."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def latest_per_device(self) -> List[DeviceSnapshot]:
        payload = await self._get_json("/devices/latest")
        try:
            return [DeviceSnapshotSchema.model_validate(item).to_record() for item in payload]
        except ValidationError as exc:
            raise DatastoreUnavailable(f"/devices/latest returned an invalid row: {exc}") from exc

    async def aggregated_history(self) -> List[AggregatedBucket]:
        payload = await self._get_json("/history")
        try:
            return [AggregatedBucketSchema.model_validate(item).to_record() for item in payload]
        except ValidationError as exc:
            raise DatastoreUnavailable(f"/history returned an invalid row: {exc}") from exc

    async def _get_json(self, path: str) -> list:
        try:
            response = await self._client.get(path)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise DatastoreUnavailable(
                f"{path} answered with status {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise DatastoreUnavailable(f"{path} is unreachable: {exc}") from exc
        try:
            payload = response.json()
        except ValueError as exc:
            raise DatastoreUnavailable(f"{path} did not return JSON.") from exc
        if not isinstance(payload, list):
            raise DatastoreUnavailable(f"{path} returned an unexpected payload.")
        return payload
