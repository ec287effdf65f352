"""
In-Memory Message Broker - For testing and development.
"""

import asyncio
import uuid
from dataclasses import dataclass, field

from txmsg.brokers.base import (
    BaseBroker,
    BrokerConfig,
    BrokerConnectionError,
    BrokerPublishError,
    CorrelationData,
    ReturnedMessage,
)

NO_ROUTE = 312


@dataclass
class PublishedMessage:
    """A message recorded by the in-memory broker."""

    target: str
    routing_key: str
    payload: bytes
    correlation_id: str
    headers: dict[str, str] = field(default_factory=dict)


class InMemoryBroker(BaseBroker):
    """
    In-memory message broker for testing and development.

    Messages are stored in memory and can be inspected. Confirms and
    returns are scripted by the test, or produced automatically:

        auto_confirm: ack every routable message right after publish
        routes: (target, routing_key) pairs that have a queue; anything
            else is returned (then acked, as RabbitMQ does). None routes
            everything.

    Usage:
        >>> broker = InMemoryBroker()
        >>> await broker.connect()
        >>> cid = await broker.publish("orders", "order.created", b'{"id": 1}')
        >>>
        >>> await broker.confirm(cid, ack=False, cause="queue full")
    """

    def __init__(
        self,
        config: BrokerConfig | None = None,
        auto_confirm: bool = False,
        routes: set[tuple[str, str]] | None = None,
    ):
        super().__init__(config)
        self.auto_confirm = auto_confirm
        self.routes = routes
        self._messages: list[PublishedMessage] = []
        self._by_correlation: dict[str, PublishedMessage] = {}
        self._fail_next: Exception | None = None

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True

    async def publish(
        self,
        target: str,
        routing_key: str,
        payload: bytes,
        headers: dict[str, str] | None = None,
        correlation_id: str | None = None,
    ) -> str:
        """Record message and optionally emit return/confirm."""
        if not self._connected:
            msg = "Broker not connected"
            raise BrokerConnectionError(msg)

        if self._fail_next is not None:
            error, self._fail_next = self._fail_next, None
            raise error

        published = PublishedMessage(
            target=target,
            routing_key=routing_key,
            payload=payload,
            correlation_id=correlation_id or uuid.uuid4().hex,
            headers=dict(headers or {}),
        )
        self._messages.append(published)
        self._by_correlation[published.correlation_id] = published

        if self.routes is not None and (target, routing_key) not in self.routes:
            self.return_message(published.correlation_id)
            if self.auto_confirm:
                self.confirm(published.correlation_id)
        elif self.auto_confirm:
            self.confirm(published.correlation_id)

        return published.correlation_id

    def confirm(
        self,
        correlation_id: str,
        ack: bool = True,
        cause: str | None = None,
    ) -> asyncio.Task | None:
        """Deliver a confirm callback for a published message."""
        published = self._get(correlation_id)
        return self._dispatch_confirm(
            CorrelationData(id=correlation_id, headers=dict(published.headers)),
            ack,
            cause,
        )

    def return_message(
        self,
        correlation_id: str,
        reply_code: int = NO_ROUTE,
        reply_text: str = "NO_ROUTE",
    ) -> asyncio.Task | None:
        """Deliver a returned-message callback for a published message."""
        published = self._get(correlation_id)
        return self._dispatch_returned(
            ReturnedMessage(
                payload=published.payload,
                headers=dict(published.headers),
                reply_code=reply_code,
                reply_text=reply_text,
                target=published.target,
                routing_key=published.routing_key,
            )
        )

    def fail_next(self, error: Exception | None = None) -> None:
        """Make the next publish raise error (a BrokerPublishError by default)."""
        self._fail_next = error or BrokerPublishError("Simulated publish failure")

    def _get(self, correlation_id: str) -> PublishedMessage:
        published = self._by_correlation.get(correlation_id)
        if published is None:
            msg = f"Unknown correlation id {correlation_id}"
            raise KeyError(msg)
        return published

    async def close(self) -> None:
        """Close connection."""
        self._connected = False

    async def health_check(self) -> bool:
        """Check health (always healthy for in-memory)."""
        return self._connected

    def get_messages(self, target: str | None = None) -> list[PublishedMessage]:
        """Get published messages, optionally for one target (for testing)."""
        if target is None:
            return list(self._messages)
        return [m for m in self._messages if m.target == target]

    def clear(self) -> None:
        """Clear all messages (for testing)."""
        self._messages.clear()
        self._by_correlation.clear()
