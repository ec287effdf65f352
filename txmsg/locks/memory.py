"""
In-Memory Lock Provider - For testing and single-process deployments.
"""

import asyncio

from txmsg.exceptions import LockError
from txmsg.locks.base import LockProvider


class InMemoryLockProvider(LockProvider):
    """
    Named asyncio locks, shared by everything using the same provider
    instance. Not visible to other processes.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, name: str) -> asyncio.Lock:
        if name not in self._locks:
            self._locks[name] = asyncio.Lock()
        return self._locks[name]

    async def acquire(self, name: str, timeout: float | None = None) -> bool:
        """Acquire a named lock."""
        lock = self._lock(name)

        if timeout is not None and timeout <= 0:
            if lock.locked():
                return False
            await lock.acquire()
            return True

        try:
            await asyncio.wait_for(lock.acquire(), timeout=timeout)
        except TimeoutError:
            return False
        return True

    async def release(self, name: str) -> None:
        """Release a named lock."""
        lock = self._locks.get(name)
        if lock is None or not lock.locked():
            msg = f"Lock {name} is not held"
            raise LockError(msg)
        lock.release()

    def is_locked(self, name: str) -> bool:
        """Check if a named lock is held (for testing)."""
        lock = self._locks.get(name)
        return lock is not None and lock.locked()
