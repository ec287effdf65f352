"""
Outbox Schedulers - periodic retry and cleanup passes.

Each pass runs under a cluster-wide named lock so only one worker process
executes it at a time:

    RetryScheduler    txMsg:doRetry   re-send FAIL messages that are due
    CleanupScheduler  txMsg:doClear   delete OVER messages past retention

The lock only guards starting a pass. Individual records are moved with
conditional updates, so a pass racing with broker callbacks is safe.

Usage:
    >>> retry = RetryScheduler(storage, coordinator, locks, config)
    >>> report = await retry.run_once()
    >>>
    >>> job = PeriodicJob("retry", retry.run_once, interval_seconds=10)
    >>> await job.start()
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from txmsg import metrics
from txmsg.backoff import next_retry_time
from txmsg.config import OutboxConfig
from txmsg.coordinator import SendCoordinator, format_cause
from txmsg.exceptions import SendError
from txmsg.locks.base import LOCK_TX_MSG_DO_CLEAR, LOCK_TX_MSG_DO_RETRY, LockProvider
from txmsg.logger import get_logger
from txmsg.storage.base import OutboxStorage
from txmsg.types import OutboxMessage, SendState

logger = get_logger(__name__)


class RetryOutcome(Enum):
    """Result of retrying one message."""

    SENT = "sent"
    """Handed to the broker again, waiting for its confirm"""

    SEND_FAILED = "send_failed"
    """Publish raised, message is FAIL again"""

    SKIPPED = "skipped"
    """Message left FAIL before it could be claimed"""

    ERROR = "error"
    """Store error while handling the message"""


@dataclass
class RetryReport:
    """Summary of a retry pass."""

    started_at: datetime
    skipped: bool = False
    recovered: int = 0
    queried: int = 0
    outcomes: dict[str, RetryOutcome] = field(default_factory=dict)

    def count(self, outcome: RetryOutcome) -> int:
        return sum(1 for o in self.outcomes.values() if o == outcome)

    @property
    def sent(self) -> int:
        return self.count(RetryOutcome.SENT)


@dataclass
class CleanupReport:
    """Summary of a cleanup pass."""

    started_at: datetime
    cutoff: datetime | None = None
    skipped: bool = False
    queried: int = 0
    deleted: int = 0
    failed: bool = False


class RetryScheduler:
    """
    Re-sends FAIL messages whose backoff window has elapsed.

    Per message: the retry count and next retry time advance together with
    the FAIL → PREPARING claim, before the publish, so the backoff grows
    even when the publish fails. A failed publish puts the message back to
    FAIL. Messages whose retry budget is spent are never selected.

    Before retrying, PREPARING messages that got no confirm within
    confirm_timeout_seconds after their retry time are moved to FAIL.
    """

    JOB_NAME = "retry"

    def __init__(
        self,
        storage: OutboxStorage,
        coordinator: SendCoordinator,
        lock_provider: LockProvider,
        config: OutboxConfig | None = None,
    ):
        self.storage = storage
        self.coordinator = coordinator
        self.lock_provider = lock_provider
        self.config = config or OutboxConfig()

    async def _bounded(self, coro: Awaitable[Any]) -> Any:
        return await asyncio.wait_for(coro, timeout=self.config.query_timeout_seconds)

    async def run_once(self, now: datetime | None = None) -> RetryReport:
        """
        Run one retry pass.

        Raises:
            Store or lock provider errors (the pass is aborted, lock released)
        """
        started = time.monotonic()
        now = now or datetime.now(UTC)
        report = RetryReport(started_at=now)

        try:
            async with self.lock_provider.hold(
                LOCK_TX_MSG_DO_RETRY, self.config.lock_timeout_seconds
            ) as acquired:
                if not acquired:
                    report.skipped = True
                    logger.debug("TxMsg retry skipped, lock held by another worker")
                else:
                    report.recovered = await self._recover_stale(now)

                    candidates = await self._bounded(
                        self.storage.query_fail_due(now, self.config.batch_size)
                    )
                    report.queried = len(candidates)

                    for message in candidates:
                        outcome = await self._retry_one(message, now)
                        report.outcomes[message.id] = outcome
                        metrics.record_retry(outcome.value)
        except Exception:
            metrics.record_pass(self.JOB_NAME, "error", time.monotonic() - started)
            raise

        metrics.record_pass(
            self.JOB_NAME, "skipped" if report.skipped else "ok", time.monotonic() - started
        )
        logger.debug(
            f"TxMsg retry, retryCount:{report.sent}, currDate:{now.isoformat()}, "
            f"queryCount:{report.queried}, recovered:{report.recovered}"
        )
        return report

    async def _recover_stale(self, now: datetime) -> int:
        """Move PREPARING messages that never got a confirm to FAIL."""
        cutoff = now - timedelta(seconds=self.config.confirm_timeout_seconds)
        stale = await self._bounded(
            self.storage.query_stale_preparing(cutoff, self.config.batch_size)
        )

        recovered = 0
        for message in stale:
            cause = (
                f"No broker confirmation received by {cutoff.isoformat()} "
                f"(retry time {message.next_retry_time.isoformat()})"
            )
            if await self.storage.conditional_update(
                message.id, SendState.PREPARING, state=SendState.FAIL, cause=cause
            ):
                recovered += 1
                logger.warning(f"TxMsg unconfirmed, set to FAIL, txMsg:{message.id}, biz:{message.biz_tag}")
        return recovered

    async def _retry_one(self, message: OutboxMessage, now: datetime) -> RetryOutcome:
        """Retry one message; never raises."""
        new_retry_times = message.curr_retry_times + 1
        new_next_retry_time = next_retry_time(
            now,
            message.backoff_init_interval,
            message.backoff_multiplier,
            message.backoff_max_interval,
            new_retry_times,
        )

        try:
            claimed = await self.storage.conditional_update(
                message.id,
                SendState.FAIL,
                state=SendState.PREPARING,
                curr_retry_times=new_retry_times,
                next_retry_time=new_next_retry_time,
            )
            if not claimed:
                logger.debug(f"TxMsg retry skipped, no longer FAIL, txMsg:{message.id}")
                return RetryOutcome.SKIPPED

            message.state = SendState.PREPARING
            message.curr_retry_times = new_retry_times
            message.next_retry_time = new_next_retry_time

            try:
                await self.coordinator.publish(message)
            except SendError as e:
                updated = await self.storage.conditional_update(
                    message.id,
                    SendState.PREPARING,
                    state=SendState.FAIL,
                    cause=format_cause(e.__cause__ or e),
                )
                logger.debug(
                    f"TxMsg send fail on retry, updateFlag:{updated}, txMsg:{message.id}, "
                    f"biz:{message.biz_tag}, attempt:{new_retry_times}/{message.max_retry_times}"
                )
                return RetryOutcome.SEND_FAILED

            logger.debug(
                f"TxMsg sent on retry, txMsg:{message.id}, biz:{message.biz_tag}, "
                f"attempt:{new_retry_times}/{message.max_retry_times}"
            )
            return RetryOutcome.SENT

        except Exception:
            logger.exception(f"TxMsg retry error, txMsg:{message.id}, biz:{message.biz_tag}")
            return RetryOutcome.ERROR


class CleanupScheduler:
    """
    Deletes OVER messages created more than auto_clear_interval ms ago.

    Deletion failures are logged; the next pass tries again.
    """

    JOB_NAME = "clear"

    def __init__(
        self,
        storage: OutboxStorage,
        lock_provider: LockProvider,
        config: OutboxConfig | None = None,
    ):
        self.storage = storage
        self.lock_provider = lock_provider
        self.config = config or OutboxConfig()

    async def run_once(self, now: datetime | None = None) -> CleanupReport:
        """
        Run one cleanup pass.

        Raises:
            Query or lock provider errors
        """
        started = time.monotonic()
        now = now or datetime.now(UTC)
        report = CleanupReport(started_at=now)

        try:
            async with self.lock_provider.hold(
                LOCK_TX_MSG_DO_CLEAR, self.config.lock_timeout_seconds
            ) as acquired:
                if not acquired:
                    report.skipped = True
                    logger.debug("TxMsg clear skipped, lock held by another worker")
                else:
                    report.cutoff = now - timedelta(milliseconds=self.config.auto_clear_interval)
                    await self._clear(report)
        except Exception:
            metrics.record_pass(self.JOB_NAME, "error", time.monotonic() - started)
            raise

        metrics.record_pass(
            self.JOB_NAME, "skipped" if report.skipped else "ok", time.monotonic() - started
        )
        logger.debug(
            f"TxMsg clear, deleted:{report.deleted}, currDate:{now.isoformat()}, "
            f"queryCount:{report.queried}"
        )
        return report

    async def _clear(self, report: CleanupReport) -> None:
        batch_size = self.config.batch_size
        while True:
            ids = await asyncio.wait_for(
                self.storage.query_over_older_than(report.cutoff, batch_size),
                timeout=self.config.query_timeout_seconds,
            )
            report.queried += len(ids)
            if not ids:
                return

            try:
                removed = await self.storage.delete_batch(ids)
            except Exception as e:
                logger.error(f"TxMsg clear failed for {len(ids)} messages: {e!r}")
                report.failed = True
                return

            if not removed:
                logger.warning(f"TxMsg clear removed nothing for {len(ids)} messages")
                report.failed = True
                return

            report.deleted += len(ids)
            metrics.record_cleared(len(ids))

            if len(ids) < batch_size:
                return


class PeriodicJob:
    """
    Runs a coroutine function on a fixed interval until stopped.

    Errors from a run are logged and the loop carries on.

    Example:
        job = PeriodicJob("retry", scheduler.run_once, interval_seconds=10)
        await job.start()
        # ... application runs ...
        await job.stop()
    """

    def __init__(
        self,
        name: str,
        func: Callable[[], Awaitable[Any]],
        interval_seconds: float,
    ):
        self.name = name
        self._func = func
        self._interval = interval_seconds
        self._running = False
        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()
        self.runs = 0
        self.failures = 0
        self.last_result: Any = None
        self.last_error: BaseException | None = None

    @property
    def is_running(self) -> bool:
        """Check if the job loop is running."""
        return self._running

    async def start(self) -> None:
        """Start the job loop."""
        if self._running:
            return

        self._running = True
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Job {self.name} started (every {self._interval}s)")

    async def stop(self) -> None:
        """Stop the job loop, letting a running pass finish."""
        self._running = False
        self._stop_event.set()
        if self._task:
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info(f"Job {self.name} stopped")

    async def tick(self) -> Any:
        """Run the job once, logging instead of raising errors."""
        self.runs += 1
        try:
            self.last_result = await self._func()
            self.last_error = None
        except Exception as e:
            self.failures += 1
            self.last_error = e
            logger.exception(f"Job {self.name} failed: {e}")
            return None
        return self.last_result

    async def _run_loop(self) -> None:
        while self._running:
            await self.tick()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except TimeoutError:
                continue
