"""
Redis Lock Provider - cluster-wide locks using redis-py's asyncio Lock.

Locks carry an expiry so a crashed holder cannot block other workers
forever. A held lock is renewed every third of its expiry, so a long pass
keeps it while its process is alive.

Usage:
    >>> from txmsg.locks import RedisLockProvider
    >>>
    >>> provider = RedisLockProvider("redis://localhost:6379")
    >>> async with provider.hold("txMsg:doRetry", timeout=5.0) as acquired:
    ...     ...
"""

from typing import Any

from txmsg.exceptions import LockError, MissingDependencyError
from txmsg.locks.base import LockProvider
from txmsg.logger import get_logger

try:
    import redis.asyncio as redis
    from redis.exceptions import LockError as RedisLockError, RedisError

    REDIS_AVAILABLE = True
except ImportError:  # pragma: no cover
    REDIS_AVAILABLE = False
    redis: Any = None  # type: ignore[no-redef]

logger = get_logger(__name__)


class RedisLockProvider(LockProvider):
    """
    Named locks stored in Redis.

    Attributes:
        redis_url: Redis connection URL
        prefix: Key prefix for lock names
        expire_seconds: Lock expiry, restarted by each renewal
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        prefix: str = "lock:",
        expire_seconds: float = 60.0,
        **redis_kwargs,
    ):
        if not REDIS_AVAILABLE:
            msg = "redis"
            raise MissingDependencyError(msg, "Redis lock provider")  # pragma: no cover

        self.redis_url = redis_url
        self.prefix = prefix
        self.expire_seconds = expire_seconds
        self.renew_interval = expire_seconds / 3
        self._redis_kwargs = redis_kwargs
        self._redis = None
        self._held: dict[str, Any] = {}

    def _client(self):
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url, **self._redis_kwargs)
        return self._redis

    def _key(self, name: str) -> str:
        return f"{self.prefix}{name}"

    async def acquire(self, name: str, timeout: float | None = None) -> bool:
        """Acquire a lock in Redis, waiting at most timeout seconds."""
        lock = self._client().lock(
            self._key(name),
            timeout=self.expire_seconds,
            blocking_timeout=timeout,
        )

        try:
            acquired = await lock.acquire(blocking=timeout is None or timeout > 0)
        except RedisError as e:
            msg = f"Failed to acquire lock {name}: {e}"
            raise LockError(msg) from e

        if acquired:
            self._held[name] = lock
        return bool(acquired)

    async def release(self, name: str) -> None:
        """Release a lock acquired by this provider."""
        lock = self._held.pop(name, None)
        if lock is None:
            msg = f"Lock {name} is not held"
            raise LockError(msg)

        try:
            await lock.release()
        except RedisLockError as e:
            # expired and possibly taken over by another worker
            logger.warning(f"Lock {name} was no longer owned on release: {e}")
        except RedisError as e:
            msg = f"Failed to release lock {name}: {e}"
            raise LockError(msg) from e

    async def renew(self, name: str) -> None:
        """Reset the expiry of a held lock to expire_seconds."""
        lock = self._held.get(name)
        if lock is None:
            msg = f"Lock {name} is not held"
            raise LockError(msg)

        try:
            await lock.reacquire()
        except RedisError as e:
            msg = f"Failed to renew lock {name}: {e}"
            raise LockError(msg) from e

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
