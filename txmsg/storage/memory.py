"""
In-Memory Outbox Storage - For testing and development.
"""

import copy
from datetime import datetime
from typing import Any

from txmsg.exceptions import OutboxStorageError
from txmsg.state_machine import OutboxStateMachine
from txmsg.storage.base import OutboxStorage, check_fields
from txmsg.types import OutboxMessage, SendState


class InMemoryOutboxStorage(OutboxStorage):
    """
    In-memory implementation of outbox storage for testing.

    Safe for concurrent coroutines on one event loop (no method awaits
    between its read and its write), not for multiple processes. Records
    are copied in and out so callers never share state with the store.

    Usage:
        >>> storage = InMemoryOutboxStorage()
        >>> await storage.insert(message)
        >>> await storage.conditional_update(message.id, SendState.PREPARING,
        ...                                  state=SendState.OVER)
        True
    """

    def __init__(self):
        self._messages: dict[str, OutboxMessage] = {}

    async def insert(
        self,
        message: OutboxMessage,
        connection: Any | None = None,
    ) -> OutboxMessage:
        """Insert message into in-memory storage."""
        if message.id in self._messages:
            msg = f"Message {message.id} already exists"
            raise OutboxStorageError(msg)

        self._messages[message.id] = copy.deepcopy(message)
        return message

    async def conditional_update(
        self,
        message_id: str,
        expected_state: SendState,
        **fields: Any,
    ) -> bool:
        """Compare-and-swap on state."""
        check_fields(fields)
        message = self._messages.get(message_id)
        if message is None or message.state != expected_state:
            return False

        new_state = fields.get("state")
        if new_state is not None and new_state != message.state:
            OutboxStateMachine.validate(message, new_state)

        return self._apply(message, fields)

    async def update(self, message_id: str, **fields: Any) -> bool:
        """Update message regardless of state."""
        check_fields(fields)
        message = self._messages.get(message_id)
        if message is None:
            return False

        return self._apply(message, fields)

    async def get_by_id(self, message_id: str) -> OutboxMessage | None:
        """Get message by ID."""
        message = self._messages.get(message_id)
        return copy.deepcopy(message) if message else None

    async def query_fail_due(self, now: datetime, limit: int = 100) -> list[OutboxMessage]:
        """Get FAIL messages due for retry."""
        due = [
            m
            for m in self._messages.values()
            if OutboxStateMachine.can_retry(m)
            and m.next_retry_time is not None
            and m.next_retry_time <= now
        ]
        due.sort(key=lambda m: m.next_retry_time)
        return [copy.deepcopy(m) for m in due[:limit]]

    async def query_stale_preparing(
        self,
        cutoff: datetime,
        limit: int = 100,
    ) -> list[OutboxMessage]:
        """Get PREPARING messages that never got a confirm."""
        stale = [
            m
            for m in self._messages.values()
            if m.state == SendState.PREPARING
            and m.next_retry_time is not None
            and m.next_retry_time <= cutoff
        ]
        stale.sort(key=lambda m: m.next_retry_time)
        return [copy.deepcopy(m) for m in stale[:limit]]

    async def query_over_older_than(self, cutoff: datetime, limit: int = 1000) -> list[str]:
        """Get ids of old OVER messages."""
        return [
            m.id
            for m in self._messages.values()
            if m.state == SendState.OVER and m.create_time < cutoff
        ][:limit]

    async def delete_batch(self, message_ids: list[str]) -> bool:
        """Delete messages by id."""
        deleted = 0
        for message_id in message_ids:
            if self._messages.pop(message_id, None) is not None:
                deleted += 1
        return deleted > 0

    async def count_by_state(self) -> dict[SendState, int]:
        """Count messages per state."""
        counts = dict.fromkeys(SendState, 0)
        for message in self._messages.values():
            counts[message.state] += 1
        return counts

    def clear(self) -> None:
        """Clear all messages (for testing)."""
        self._messages.clear()

    @staticmethod
    def _apply(message: OutboxMessage, fields: dict[str, Any]) -> bool:
        # curr_retry_times never goes down; such an update matches nothing
        retries = fields.get("curr_retry_times")
        if retries is not None and retries < message.curr_retry_times:
            return False

        for name, value in fields.items():
            setattr(message, name, value)
        return True
