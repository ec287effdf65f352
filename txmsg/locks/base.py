"""
Lock Provider - cluster-wide named mutual exclusion.

Schedulers only start a pass while holding their named lock, so at most one
worker process runs a given pass at a time. Per-message safety does not
depend on the lock; it comes from conditional updates in the store.

Providers whose locks expire set renew_interval; hold() then renews the
lock on that interval for as long as the holder runs.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from txmsg.exceptions import LockError
from txmsg.logger import get_logger

logger = get_logger(__name__)

LOCK_TX_MSG_DO_RETRY = "txMsg:doRetry"
LOCK_TX_MSG_DO_CLEAR = "txMsg:doClear"


class LockProvider(ABC):
    """
    Abstract named lock.

    Usage:
        >>> async with provider.hold("txMsg:doRetry", timeout=5.0) as acquired:
        ...     if acquired:
        ...         await do_pass()
    """

    renew_interval: float | None = None

    @abstractmethod
    async def acquire(self, name: str, timeout: float | None = None) -> bool:
        """
        Acquire the lock, waiting at most timeout seconds.

        Args:
            name: Lock name
            timeout: Max seconds to wait (None = wait forever, 0 = don't wait)

        Returns:
            True if acquired, False if the wait timed out

        Raises:
            LockError: If the provider is unavailable
        """
        ...

    @abstractmethod
    async def release(self, name: str) -> None:
        """Release a lock held by this provider."""
        ...

    async def renew(self, name: str) -> None:  # noqa: B027
        """
        Restart the expiry of a held lock.

        Raises:
            LockError: If the lock is no longer owned
        """

    @asynccontextmanager
    async def hold(self, name: str, timeout: float | None = None) -> AsyncIterator[bool]:
        """
        Scoped acquisition. Yields whether the lock was obtained; an obtained
        lock is renewed while held and released on every exit path.
        """
        if not await self.acquire(name, timeout):
            logger.debug(f"Lock {name} not acquired within {timeout}s")
            yield False
            return

        renewer = None
        if self.renew_interval:
            renewer = asyncio.create_task(self._renew_while_held(name, self.renew_interval))

        try:
            yield True
        except BaseException:
            await self._end_hold(name, renewer, unwinding=True)
            raise
        await self._end_hold(name, renewer)

    async def _renew_while_held(self, name: str, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.renew(name)
            except LockError as e:
                logger.error(f"Lock {name} could not be renewed, another worker may take it: {e}")
                return

    async def _end_hold(
        self,
        name: str,
        renewer: asyncio.Task | None,
        unwinding: bool = False,
    ) -> None:
        if renewer is not None:
            renewer.cancel()
            try:
                await renewer
            except asyncio.CancelledError:
                pass

        try:
            await self.release(name)
        except LockError as e:
            if not unwinding:
                raise
            # keep the holder's own error
            logger.error(f"Lock {name} release failed after an error in its holder: {e}")

    async def close(self) -> None:  # noqa: B027
        """Release provider resources."""
