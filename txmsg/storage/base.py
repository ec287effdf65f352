"""
Outbox Storage - Base classes and interface.

The store is the single source of truth. Every cross-component update goes
through conditional_update, which applies only if the record is still in
the expected state (compare-and-swap on the state column).
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from txmsg.exceptions import OutboxStorageError
from txmsg.types import OutboxMessage, SendState

UPDATABLE_FIELDS = frozenset({"state", "cause", "curr_retry_times", "next_retry_time"})


def check_fields(fields: dict[str, Any]) -> None:
    """Reject updates of columns other than the mutable ones."""
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        msg = f"Fields not updatable: {', '.join(sorted(unknown))}"
        raise OutboxStorageError(msg)
    if not fields:
        msg = "No fields to update"
        raise OutboxStorageError(msg)


class OutboxStorage(ABC):
    """
    Abstract storage interface for outbox messages.

    Implementations must make conditional_update atomic: of two concurrent
    calls expecting the same state, at most one may succeed.

    Usage:
        >>> # Insert atomically with business data
        >>> async with pool.acquire() as conn, conn.transaction():
        ...     await orders.save(order, conn)
        ...     await outbox_storage.insert(message, connection=conn)
        >>>
        >>> # Confirm handling
        >>> await outbox_storage.conditional_update(
        ...     message.id, SendState.PREPARING, state=SendState.OVER
        ... )
    """

    @abstractmethod
    async def insert(
        self,
        message: OutboxMessage,
        connection: Any | None = None,
    ) -> OutboxMessage:
        """
        Insert a new outbox message.

        Args:
            message: The message to insert
            connection: Optional database connection (for transactions)

        Raises:
            OutboxStorageError: If the id already exists or insert fails
        """
        ...

    @abstractmethod
    async def conditional_update(
        self,
        message_id: str,
        expected_state: SendState,
        **fields: Any,
    ) -> bool:
        """
        Update a message only if its current state is expected_state.

        Returns:
            True if the row was updated, False if it is missing, no
            longer in expected_state, or the update would lower
            curr_retry_times
        """
        ...

    @abstractmethod
    async def update(self, message_id: str, **fields: Any) -> bool:
        """
        Update a message regardless of its state.

        True if it was updated; False if it is missing or the update would
        lower curr_retry_times.
        """
        ...

    @abstractmethod
    async def get_by_id(self, message_id: str) -> OutboxMessage | None:
        """Get a message by its ID."""
        ...

    @abstractmethod
    async def query_fail_due(self, now: datetime, limit: int = 100) -> list[OutboxMessage]:
        """
        FAIL messages with retry budget left whose next_retry_time <= now,
        oldest retry time first.
        """
        ...

    @abstractmethod
    async def query_stale_preparing(
        self,
        cutoff: datetime,
        limit: int = 100,
    ) -> list[OutboxMessage]:
        """PREPARING messages whose next_retry_time <= cutoff."""
        ...

    @abstractmethod
    async def query_over_older_than(self, cutoff: datetime, limit: int = 1000) -> list[str]:
        """IDs of OVER messages created before cutoff."""
        ...

    @abstractmethod
    async def delete_batch(self, message_ids: list[str]) -> bool:
        """Delete messages by id. True if anything was deleted."""
        ...

    @abstractmethod
    async def count_by_state(self) -> dict[SendState, int]:
        """Number of messages per state."""
        ...

    async def initialize(self) -> None:  # noqa: B027
        """Prepare the backend (connections, schema)."""

    async def close(self) -> None:  # noqa: B027
        """Release backend resources."""
