"""
Per-student mutual exclusion

Every read-then-write sequence against a student's progression records runs
inside ``KeyedLock.hold(student_id)``. The lock is reentrant within one task:
a section that already holds a key (e.g. the orchestrator) can call into
engines that take the same key again (Quest -> XP, Achievement -> XP) without
deadlocking.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import AsyncIterator

logger = logging.getLogger(__name__)

_held_keys: ContextVar[frozenset] = ContextVar("progression_held_lock_keys", default=frozenset())


class KeyedLock:
    """Sharded asyncio lock manager; one lock per key, dropped when unused"""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    def is_held(self, key: str) -> bool:
        """True if the current task already holds key"""
        return key in _held_keys.get()

    def active_keys(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        held = _held_keys.get()
        if key in held:
            yield
            return

        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._waiters[key] = self._waiters.get(key, 0) + 1

        try:
            async with lock:
                token = _held_keys.set(held | {key})
                try:
                    yield
                finally:
                    _held_keys.reset(token)
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]


# Shared lock manager for student-keyed sections
student_locks = KeyedLock()
