"""
Outbox Worker - runs the retry and cleanup schedulers in the background.

Wires the reconciler as the broker listener, runs both passes on their own
timers, and shuts down gracefully on SIGTERM/SIGINT.

Usage:
    >>> from txmsg.worker import OutboxWorker
    >>>
    >>> worker = OutboxWorker(storage, broker, locks, config)
    >>> await worker.start()  # Runs until stopped
    >>> # or, from the business side
    >>> await worker.coordinator.submit(message)
"""

import asyncio
import os
import signal
import sys
import uuid

from txmsg import metrics
from txmsg.brokers.base import BaseBroker
from txmsg.config import OutboxConfig
from txmsg.coordinator import SendCoordinator
from txmsg.locks.base import LockProvider
from txmsg.logger import configure_default_logging, get_logger
from txmsg.reconciler import ConfirmationReconciler
from txmsg.scheduler import CleanupScheduler, PeriodicJob, RetryScheduler
from txmsg.storage.base import OutboxStorage

logger = get_logger(__name__)


class OutboxWorker:
    """
    Background worker for the outbox.

    Lifecycle:
        1. Reconciler receives broker confirms/returns (always on)
        2. Retry pass every retry_interval_seconds
        3. Cleanup pass every clear_interval_seconds
        4. stop() or a signal ends both loops after their current pass
    """

    def __init__(
        self,
        storage: OutboxStorage,
        broker: BaseBroker,
        lock_provider: LockProvider,
        config: OutboxConfig | None = None,
        worker_id: str | None = None,
    ):
        self.storage = storage
        self.broker = broker
        self.lock_provider = lock_provider
        self.config = config or OutboxConfig()
        self.worker_id = worker_id or f"worker-{uuid.uuid4().hex[:8]}"

        self.coordinator = SendCoordinator(storage, broker, self.config)
        self.reconciler = ConfirmationReconciler(storage, guard_returns=self.config.guard_returns)
        self.broker.set_listener(self.reconciler)

        self.retry_scheduler = RetryScheduler(storage, self.coordinator, lock_provider, self.config)
        self.cleanup_scheduler = CleanupScheduler(storage, lock_provider, self.config)

        self.retry_job = PeriodicJob(
            "retry", self.retry_scheduler.run_once, self.config.retry_interval_seconds
        )
        self.cleanup_job = PeriodicJob(
            "clear", self.cleanup_scheduler.run_once, self.config.clear_interval_seconds
        )

        self._running = False
        self._shutdown_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """
        Start both jobs and block until stop() or a shutdown signal.
        """
        self._running = True
        self._shutdown_event.clear()

        logger.info(f"Outbox worker {self.worker_id} starting")
        self._setup_signal_handlers()

        await self.retry_job.start()
        await self.cleanup_job.start()
        try:
            await self._shutdown_event.wait()
        finally:
            await self.retry_job.stop()
            await self.cleanup_job.stop()
            self._running = False
            logger.info(f"Outbox worker {self.worker_id} stopped")

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._handle_shutdown)
            except (NotImplementedError, RuntimeError):  # pragma: no cover
                pass  # Windows, or not the main thread

    def _handle_shutdown(self) -> None:
        logger.info(f"Shutdown signal received for worker {self.worker_id}")
        self._shutdown_event.set()

    async def stop(self) -> None:
        """Stop the worker gracefully."""
        logger.info(f"Stopping worker {self.worker_id}")
        self._shutdown_event.set()

    def get_stats(self) -> dict:
        """Get worker statistics."""
        return {
            "worker_id": self.worker_id,
            "running": self._running,
            "retry_runs": self.retry_job.runs,
            "retry_failures": self.retry_job.failures,
            "clear_runs": self.cleanup_job.runs,
            "clear_failures": self.cleanup_job.failures,
        }


def get_storage() -> OutboxStorage:
    """Create storage backend from environment."""
    database_url = os.getenv("DATABASE_URL")

    if not database_url:
        logger.error("DATABASE_URL environment variable is required")
        sys.exit(1)

    from txmsg.storage.postgresql import PostgreSQLOutboxStorage

    return PostgreSQLOutboxStorage(connection_string=database_url)


def get_broker() -> BaseBroker:
    """Create broker from environment."""
    if not os.getenv("RABBITMQ_URL"):
        logger.error("RABBITMQ_URL environment variable is required")
        sys.exit(1)

    from txmsg.brokers.rabbitmq import RabbitMQBroker

    return RabbitMQBroker.from_env()


def get_lock_provider(config: OutboxConfig) -> LockProvider:
    """Create lock provider from environment (in-memory without REDIS_URL)."""
    redis_url = os.getenv("REDIS_URL")

    if not redis_url:
        logger.warning("REDIS_URL not set, using process-local locks")
        from txmsg.locks.memory import InMemoryLockProvider

        return InMemoryLockProvider()

    from txmsg.locks.redis import RedisLockProvider

    return RedisLockProvider(redis_url, expire_seconds=config.lock_expire_seconds)


async def main() -> None:
    """Main entry point."""
    configure_default_logging(os.getenv("LOG_LEVEL", "INFO"))
    logger.info("Starting txmsg outbox worker...")

    config = OutboxConfig.from_env()
    storage = get_storage()
    broker = get_broker()
    lock_provider = get_lock_provider(config)

    metrics_port = os.getenv("METRICS_PORT")
    if metrics_port:
        metrics.start_metrics_server(int(metrics_port))

    worker = OutboxWorker(
        storage=storage,
        broker=broker,
        lock_provider=lock_provider,
        config=config,
        worker_id=os.getenv("WORKER_ID"),
    )

    try:
        logger.info("Initializing storage...")
        await storage.initialize()

        logger.info("Connecting to broker...")
        await broker.connect()

        await worker.start()
    finally:
        logger.info("Shutting down...")
        await broker.close()
        await lock_provider.close()
        await storage.close()
        logger.info("Worker stopped.")


if __name__ == "__main__":
    asyncio.run(main())
