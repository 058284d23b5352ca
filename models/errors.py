"""Errors raised by the telemetry pipeline."""

from __future__ import annotations


class DatastoreUnavailable(RuntimeError):
    """The reading store could not be reached or could not answer a query."""


class MalformedLocation(ValueError):
    """A ``"lat,lon"`` location string could not be parsed into coordinates."""

    def __init__(self, location: str, reason: str) -> None:
        super().__init__(f"Malformed location {location!r}: {reason}")
        self.location = location
        self.reason = reason
