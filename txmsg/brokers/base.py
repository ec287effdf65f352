"""
Message Broker - Abstract interface for brokers with delivery feedback.

A broker publishes a message and later reports its fate through two
asynchronous callbacks on a registered listener:

    on_confirm(correlation, ack, cause)  - broker accepted (ack) or rejected it
    on_returned(returned)                - broker could not route it to a queue

Callbacks run as tasks on the broker's event loop, concurrently with new
publishes and with scheduler passes.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from txmsg.exceptions import TxMsgError
from txmsg.logger import get_logger

logger = get_logger(__name__)


class BrokerError(TxMsgError):
    """Base exception for broker errors."""


class BrokerConnectionError(BrokerError):
    """Error connecting to the broker."""


class BrokerPublishError(BrokerError):
    """Error publishing a message."""


@dataclass
class CorrelationData:
    """Identifies a published message in confirm callbacks."""

    id: str
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class ReturnedMessage:
    """A message the broker could not route."""

    payload: bytes
    headers: dict[str, str]
    reply_code: int
    reply_text: str
    target: str
    routing_key: str


@runtime_checkable
class BrokerListener(Protocol):
    """Receiver of broker delivery feedback."""

    async def on_confirm(
        self,
        correlation: CorrelationData,
        ack: bool,
        cause: str | None = None,
    ) -> bool:
        ...

    async def on_returned(self, returned: ReturnedMessage) -> bool:
        ...


@dataclass
class BrokerConfig:
    """
    Base configuration for message brokers.

    Subclass for broker-specific config.
    """

    connection_timeout_seconds: float = 30.0
    publish_timeout_seconds: float = 10.0
    confirm_timeout_seconds: float = 30.0


class BaseBroker(ABC):
    """
    Abstract base class for message broker implementations.

    Holds the listener and dispatches callbacks as background tasks whose
    errors are logged rather than raised into the transport.
    """

    def __init__(self, config: BrokerConfig | None = None):
        self.config = config or BrokerConfig()
        self._connected = False
        self._listener: BrokerListener | None = None
        self._callback_tasks: set[asyncio.Task] = set()

    @abstractmethod
    async def connect(self) -> None:
        """Establish connection to the broker."""
        ...

    @abstractmethod
    async def publish(
        self,
        target: str,
        routing_key: str,
        payload: bytes,
        headers: dict[str, str] | None = None,
        correlation_id: str | None = None,
    ) -> str:
        """
        Publish a message.

        Args:
            target: Exchange/topic to publish to
            routing_key: Routing key
            payload: Message body
            headers: Message headers
            correlation_id: Id reported back in confirm callbacks
                (generated when omitted)

        Returns:
            The correlation id

        Raises:
            BrokerError: If the message could not be handed to the broker
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the broker connection."""
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Check broker health."""
        ...

    @property
    def is_connected(self) -> bool:
        """Check if broker is connected."""
        return self._connected

    def set_listener(self, listener: BrokerListener | None) -> None:
        """Register the receiver of confirm/return callbacks."""
        self._listener = listener

    def _dispatch_confirm(
        self,
        correlation: CorrelationData,
        ack: bool,
        cause: str | None = None,
    ) -> asyncio.Task | None:
        if self._listener is None:
            return None
        return self._spawn(self._listener.on_confirm(correlation, ack, cause), "confirm")

    def _dispatch_returned(self, returned: ReturnedMessage) -> asyncio.Task | None:
        if self._listener is None:
            return None
        return self._spawn(self._listener.on_returned(returned), "return")

    def _spawn(self, coro, kind: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        # Keep a reference until done
        self._callback_tasks.add(task)
        task.add_done_callback(lambda t: self._on_callback_done(t, kind))
        return task

    def _on_callback_done(self, task: asyncio.Task, kind: str) -> None:
        self._callback_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Broker {kind} callback failed: {error!r}")

    async def drain_callbacks(self) -> None:
        """Wait for in-flight listener callbacks to finish."""
        while self._callback_tasks:
            await asyncio.gather(*list(self._callback_tasks), return_exceptions=True)
