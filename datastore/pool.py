from __future__ import annotations

import logging
from contextlib import contextmanager
from threading import BoundedSemaphore, Lock
from typing import Iterator

from models.errors import DatastoreUnavailable

logger = logging.getLogger(__name__)


class Connection:
    """Handle for one checked-out slot of a :class:`ConnectionPool`."""

    def __init__(self, pool: "ConnectionPool", slot: int) -> None:
        self.pool = pool
        self.slot = slot


class ConnectionPool:
    """Bounded pool of query slots, sized explicitly at construction."""

    def __init__(self, size: int = 10, acquire_timeout: float = 5.0) -> None:
        if size < 1:
            raise ValueError("Pool size must be at least 1.")
        self.size = size
        self.acquire_timeout = acquire_timeout
        self._semaphore = BoundedSemaphore(size)
        self._lock = Lock()
        self._in_use = 0
        self._next_slot = 0

    @property
    def in_use(self) -> int:
        with self._lock:
            return self._in_use

    @contextmanager
    def connection(self) -> Iterator[Connection]:
        """Check out a connection for the duration of one query."""
        if not self._semaphore.acquire(timeout=self.acquire_timeout):
            logger.warning(
                "Connection pool exhausted",
                extra={"reason": f"no slot free after {self.acquire_timeout}s"},
            )
            raise DatastoreUnavailable(
                f"No connection available within {self.acquire_timeout} seconds."
            )
        with self._lock:
            self._in_use += 1
            self._next_slot += 1
            slot = self._next_slot
        try:
            yield Connection(self, slot)
        finally:
            with self._lock:
                self._in_use -= 1
            self._semaphore.release()
