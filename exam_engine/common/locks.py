"""
Per-key asyncio locks.

Used to make check-then-write sequences atomic per (definition, participant)
pair inside a single service instance.
"""

import asyncio
import contextlib
import logging
from typing import AsyncIterator, Dict, Hashable

logger = logging.getLogger(__name__)


class _Entry:
    __slots__ = ("lock", "waiters")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.waiters = 0


class KeyedLock:
    """
    Registry of asyncio locks keyed by any hashable value.

    Entries are reference counted and dropped once no coroutine holds or
    waits on them, so the registry does not grow with every participant.
    """

    def __init__(self):
        self._entries: Dict[Hashable, _Entry] = {}

    @contextlib.asynccontextmanager
    async def acquire(self, key: Hashable) -> AsyncIterator[None]:
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry()
        entry.waiters += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.waiters -= 1
            if entry.waiters == 0:
                self._entries.pop(key, None)

    def locked(self, key: Hashable) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        return len(self._entries)
