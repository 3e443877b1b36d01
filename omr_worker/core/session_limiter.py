"""Process-wide concurrent session limiter.

Tracks in-flight processing sessions in memory. Use as an async context
manager around one request's pipeline run; raises ``SessionLimitExceeded``
when the configured ceiling is reached. A limit of ``0`` disables it.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

logger = logging.getLogger(__name__)


class SessionLimitExceeded(Exception):
    """Raised when too many sessions are already running."""

    def __init__(self, limit: int, active: int):
        self.limit = limit
        self.active = active
        super().__init__(f"{active} sessions already running (limit: {limit})")


class SessionLimiter:
    """In-memory concurrent session counter."""

    def __init__(self, max_sessions: int = 0):
        self._max = max_sessions
        self._active = 0
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[None]:
        """Acquire a session slot. Raises SessionLimitExceeded if full."""
        if self._max <= 0:
            yield
            return

        async with self._lock:
            if self._active >= self._max:
                logger.warning(
                    "⚠️ Rejecting session: %d active (limit %d)", self._active, self._max
                )
                raise SessionLimitExceeded(self._max, self._active)
            self._active += 1

        try:
            yield
        finally:
            async with self._lock:
                self._active = max(0, self._active - 1)

    @property
    def active_count(self) -> int:
        """Number of sessions currently holding a slot."""
        return self._active

    @property
    def limit(self) -> int:
        return self._max
