"""Per-(student, content) serialization for the Web API.

Mutating requests for the same student and content run one at a time in
this process. The database guards (conditional updates, the partial
unique index) still hold across processes.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog

logger = structlog.get_logger(__name__)


class KeyedLocks:
    """Registry of asyncio locks keyed by (student_id, content_id)."""

    def __init__(self):
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}
        self._waiters: dict[tuple[str, str], int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, student_id: str, content_id: str) -> AsyncGenerator[None, None]:
        """Hold the lock for a key; idle locks are dropped on release."""
        key = (student_id, content_id)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]


_locks: KeyedLocks | None = None


def get_keyed_locks() -> KeyedLocks:
    """Get the global lock registry."""
    global _locks
    if _locks is None:
        _locks = KeyedLocks()
    return _locks


def reset_keyed_locks() -> None:
    """Reset the lock registry (for testing)."""
    global _locks
    _locks = None
