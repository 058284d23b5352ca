from __future__ import annotations

from typing import Any, List

import httpx
import typer

from app.schemas import AggregatedBucketSchema, DeviceSnapshotSchema
from cli.config import CLIConfig
from models.records import AggregatedBucket, DeviceSnapshot


class ApiClient:
    """Minimal blocking HTTP client for one-shot dashboard queries."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def latest_devices(self) -> List[DeviceSnapshot]:
        payload = self._get_list("/devices/latest")
        return [DeviceSnapshotSchema.model_validate(item).to_record() for item in payload]

    def history(self) -> List[AggregatedBucket]:
        payload = self._get_list("/history")
        return [AggregatedBucketSchema.model_validate(item).to_record() for item in payload]

    def _get_list(self, path: str) -> List[Any]:
        try:
            response = self._client.get(path)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            typer.secho(
                f"Could not reach {self._config.base_url}: {exc}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(code=1)
        payload = response.json()
        if not isinstance(payload, list):
            raise typer.BadParameter(f"Unexpected response payload from {path}.")
        return payload

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except ValueError:
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
