"""
Confirmation Reconciler - turns broker feedback into outbox state.

    confirm ack       PREPARING → OVER
    confirm nack      PREPARING → FAIL (cause)
    returned message  PREPARING → FAIL (cause)

Every transition is a conditional update on PREPARING, so duplicate and
out-of-order callbacks are no-ops. Only callbacks carrying the TX_MSG_ID
header are outbox messages; anything else is ignored.

With guard_returns=False the return handler updates the record whatever
its state (the reference behavior): a return delivered after a confirm
then flips OVER back to FAIL.
"""

from txmsg import metrics
from txmsg.brokers.base import CorrelationData, ReturnedMessage
from txmsg.exceptions import ConfirmNack, Undeliverable
from txmsg.logger import get_logger
from txmsg.storage.base import OutboxStorage
from txmsg.types import SendState, TxHeader

logger = get_logger(__name__)


class ConfirmationReconciler:
    """
    Broker listener that reconciles confirms and returns with the store.

    Usage:
        >>> reconciler = ConfirmationReconciler(storage)
        >>> broker.set_listener(reconciler)
    """

    def __init__(self, storage: OutboxStorage, guard_returns: bool = True):
        self.storage = storage
        self.guard_returns = guard_returns

    async def on_confirm(
        self,
        correlation: CorrelationData | None,
        ack: bool,
        cause: str | None = None,
    ) -> bool:
        """
        Handle a publisher confirm.

        Returns:
            True if the record changed state
        """
        if correlation is None or not correlation.id:
            return False

        headers = correlation.headers or {}
        if TxHeader.MSG_ID.value not in headers:
            return False

        biz = f"{headers.get(TxHeader.BIZ_TYPE.value)}_{headers.get(TxHeader.BIZ_KEY.value)}"
        metrics.record_confirm(ack)

        if not ack:
            cause = cause or str(ConfirmNack(correlation.id))
            updated = await self.storage.conditional_update(
                correlation.id,
                SendState.PREPARING,
                state=SendState.FAIL,
                cause=cause,
            )
            logger.warning(
                f"TxMsg set to FAIL on confirm, {updated}, txMsg:{correlation.id}, "
                f"biz:{biz}, cause:{cause}"
            )
            return updated

        updated = await self.storage.conditional_update(
            correlation.id,
            SendState.PREPARING,
            state=SendState.OVER,
        )
        logger.debug(f"TxMsg set to OVER on confirm, {updated}, txMsg:{correlation.id}, biz:{biz}")
        return updated

    async def on_returned(self, returned: ReturnedMessage) -> bool:
        """
        Handle a message the broker could not route.

        Returns:
            True if the record was updated
        """
        headers = returned.headers or {}
        message_id = headers.get(TxHeader.MSG_ID.value)
        if not message_id:
            return False

        biz = f"{headers.get(TxHeader.BIZ_TYPE.value)}_{headers.get(TxHeader.BIZ_KEY.value)}"
        metrics.record_return()

        cause = str(
            Undeliverable(
                message_id,
                returned.reply_code,
                returned.reply_text,
                returned.target,
                returned.routing_key,
            )
        )

        if self.guard_returns:
            updated = await self.storage.conditional_update(
                message_id,
                SendState.PREPARING,
                state=SendState.FAIL,
                cause=cause,
            )
        else:
            updated = await self.storage.update(message_id, state=SendState.FAIL, cause=cause)

        logger.warning(f"TxMsg set to FAIL on returned, {updated}, txMsg:{message_id}, biz:{biz}")
        return updated
