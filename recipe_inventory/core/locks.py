import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Hashable

from recipe_inventory.core.config import LOCK_TIMEOUT_SECONDS
from recipe_inventory.core.exceptions import LockTimeoutError


class KeyedLock:
    """
    One asyncio.Lock per key, created on demand and dropped once nobody holds
    or waits for it. Several keys are always acquired in sorted order so two
    callers locking overlapping key sets cannot deadlock.
    """

    def __init__(self, timeout: float = LOCK_TIMEOUT_SECONDS):
        self.timeout = timeout
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._refs: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, *keys: Hashable):
        ordered = sorted(set(keys), key=str)
        # Register interest before waiting so the lock is not dropped under a waiter
        for key in ordered:
            self._refs[key] = self._refs.get(key, 0) + 1
            self._locks.setdefault(key, asyncio.Lock())

        acquired = []
        try:
            for key in ordered:
                try:
                    await asyncio.wait_for(self._locks[key].acquire(), timeout=self.timeout)
                except asyncio.TimeoutError:
                    raise LockTimeoutError(f"Timed out waiting for stock lock on {key}") from None
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self._locks[key].release()
            for key in ordered:
                self._refs[key] -= 1
                if not self._refs[key]:
                    del self._refs[key]
                    del self._locks[key]

    def __len__(self):
        return len(self._locks)


# Process-wide lock table for inventory snapshot keys
snapshot_locks = KeyedLock()
