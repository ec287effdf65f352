"""
Lock Providers

Available backends:
    - InMemoryLockProvider: For testing and single-process use
    - RedisLockProvider: Cluster-wide (requires redis)
"""

from txmsg.locks.base import LOCK_TX_MSG_DO_CLEAR, LOCK_TX_MSG_DO_RETRY, LockProvider
from txmsg.locks.memory import InMemoryLockProvider


# Lazy import for optional Redis backend
def RedisLockProvider(*args, **kwargs):
    """Redis lock provider (requires redis)."""
    from txmsg.locks.redis import RedisLockProvider as _Impl
    return _Impl(*args, **kwargs)


__all__ = [
    "LOCK_TX_MSG_DO_CLEAR",
    "LOCK_TX_MSG_DO_RETRY",
    "InMemoryLockProvider",
    "LockProvider",
    "RedisLockProvider",
]
