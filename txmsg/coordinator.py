"""
Send Coordinator - records a message in the outbox, then publishes it.

    check_before_send → register (PREPARING, durable) → send (publish)

Usage:
    >>> coordinator = SendCoordinator(storage, broker, config)
    >>>
    >>> # Outside a transaction: validate, record and send in one go
    >>> await coordinator.submit(message)
    >>>
    >>> # Inside a business transaction: record now, send after commit
    >>> async with pool.acquire() as conn:
    ...     async with conn.transaction():
    ...         await orders.save(order, conn)
    ...         await coordinator.submit(message, connection=conn)
    ...     await coordinator.send(message)
"""

import traceback
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from txmsg import metrics
from txmsg.backoff import next_retry_time
from txmsg.brokers.base import BaseBroker
from txmsg.config import OutboxConfig
from txmsg.exceptions import SendError, ValidationError
from txmsg.logger import get_logger
from txmsg.storage.base import OutboxStorage
from txmsg.types import OutboxMessage, SendState

logger = get_logger(__name__)


def format_cause(error: BaseException) -> str:
    """Exception type, message and traceback, as stored in the cause column."""
    return "".join(traceback.format_exception(type(error), error, error.__traceback__)).strip()


class SendCoordinator:
    """
    Validates, registers and publishes outbox messages.

    Args:
        storage: Outbox store
        broker: Broker client
        config: Defaults for per-message retry/backoff settings
        id_factory: Generates ids for messages submitted without one
    """

    def __init__(
        self,
        storage: OutboxStorage,
        broker: BaseBroker,
        config: OutboxConfig | None = None,
        id_factory: Callable[[], str] | None = None,
    ):
        self.storage = storage
        self.broker = broker
        self.config = config or OutboxConfig()
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex)

    def check_before_send(self, message: OutboxMessage | None) -> OutboxMessage:
        """
        Validate addressing and payload; assign an id if missing.

        Raises:
            ValidationError: If message, target, routing key or payload is None
                (empty strings are valid AMQP addressing and bodies)
        """
        if message is None:
            msg = "TxMsg null"
            raise ValidationError(msg)
        if message.target is None:
            msg = "TxMsg target null"
            raise ValidationError(msg)
        if message.routing_key is None:
            msg = "TxMsg routing key null"
            raise ValidationError(msg)
        if message.payload is None:
            msg = "TxMsg payload null"
            raise ValidationError(msg)

        if not message.id:
            message.id = self._id_factory()
        return message

    async def register(
        self,
        message: OutboxMessage,
        connection: Any | None = None,
        now: datetime | None = None,
    ) -> OutboxMessage:
        """
        Persist the message as PREPARING with its first retry time.

        No network call is made. With a connection, the insert joins the
        caller's transaction.
        """
        now = now or datetime.now(UTC)

        message.apply_options(self.config.default_options())
        message.state = SendState.PREPARING
        message.curr_retry_times = 0
        message.cause = None
        message.create_time = now
        message.next_retry_time = next_retry_time(
            now,
            message.backoff_init_interval,
            message.backoff_multiplier,
            message.backoff_max_interval,
            message.curr_retry_times,
        )

        await self.storage.insert(message, connection=connection)
        metrics.record_registered()
        logger.debug(f"TxMsg save, txMsg:{message.id}, biz:{message.biz_tag}")
        return message

    async def publish(self, message: OutboxMessage) -> str:
        """
        Hand the message to the broker with the outbox headers attached.

        Returns:
            The broker correlation id (the message id)

        Raises:
            SendError: If the broker call fails
        """
        try:
            correlation_id = await self.broker.publish(
                message.target,
                message.routing_key,
                message.payload,
                headers=message.outbox_headers(),
                correlation_id=message.id,
            )
        except Exception as e:
            metrics.record_sent(False)
            raise SendError(message.id, str(e)) from e

        metrics.record_sent(True)
        return correlation_id

    async def send(self, message: OutboxMessage) -> bool:
        """
        Publish a registered message.

        A failed publish moves the record PREPARING → FAIL with the error as
        cause; the conditional update leaves records that a confirm already
        moved untouched.

        Returns:
            True if the broker accepted the publish call
        """
        try:
            await self.publish(message)
        except SendError as e:
            cause = format_cause(e.__cause__ or e)
            updated = await self.storage.conditional_update(
                message.id,
                SendState.PREPARING,
                state=SendState.FAIL,
                cause=cause,
            )
            logger.warning(
                f"TxMsg send fail on committed, {updated}, txMsg:{message.id}, "
                f"biz:{message.biz_tag}, error:{e.reason}"
            )
            return False

        logger.debug(f"TxMsg sent on committed, txMsg:{message.id}, biz:{message.biz_tag}")
        return True

    async def submit(
        self,
        message: OutboxMessage,
        connection: Any | None = None,
    ) -> OutboxMessage:
        """
        Validate and register a message; send it unless a connection is given.

        With a connection the record is part of the caller's transaction and
        the caller sends it (send()) after commit.
        """
        self.check_before_send(message)
        await self.register(message, connection=connection)
        if connection is None:
            await self.send(message)
        return message
