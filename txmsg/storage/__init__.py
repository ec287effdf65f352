"""
Outbox Storage Implementations

Available backends:
    - InMemoryOutboxStorage: For testing
    - PostgreSQLOutboxStorage: Production (requires asyncpg)
"""

from txmsg.exceptions import OutboxStorageError
from txmsg.storage.base import UPDATABLE_FIELDS, OutboxStorage
from txmsg.storage.memory import InMemoryOutboxStorage


# Lazy import for optional PostgreSQL backend
def PostgreSQLOutboxStorage(*args, **kwargs):
    """PostgreSQL outbox storage (requires asyncpg)."""
    from txmsg.storage.postgresql import PostgreSQLOutboxStorage as _Impl
    return _Impl(*args, **kwargs)


__all__ = [
    "UPDATABLE_FIELDS",
    "InMemoryOutboxStorage",
    "OutboxStorage",
    "OutboxStorageError",
    "PostgreSQLOutboxStorage",
]
