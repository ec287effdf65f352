"""
txmsg - Transactional Outbox for Reliable Broker Publication

A message is recorded in the outbox as PREPARING before any network send,
then moved to OVER when the broker confirms it or to FAIL on a send error,
nack or return. FAIL messages are retried with backoff; old OVER messages
are cleaned up. Delivery is at-least-once.

Quick Start:
    >>> from txmsg import (
    ...     InMemoryBroker,
    ...     InMemoryLockProvider,
    ...     InMemoryOutboxStorage,
    ...     OutboxMessage,
    ...     OutboxWorker,
    ... )
    >>>
    >>> storage = InMemoryOutboxStorage()
    >>> broker = InMemoryBroker(auto_confirm=True)
    >>> await broker.connect()
    >>>
    >>> worker = OutboxWorker(storage, broker, InMemoryLockProvider())
    >>> await worker.coordinator.submit(
    ...     OutboxMessage(target="orders", routing_key="order.created", payload=b"{}")
    ... )

Components:
    - OutboxMessage, SendState, TxHeader: the persisted record
    - SendCoordinator: validate, register, publish
    - ConfirmationReconciler: broker confirms/returns → state
    - RetryScheduler, CleanupScheduler, PeriodicJob: background passes
    - OutboxWorker: wires everything together
"""

from txmsg.backoff import backoff_interval, next_retry_time
from txmsg.brokers import (
    BaseBroker,
    BrokerConfig,
    BrokerConnectionError,
    BrokerError,
    BrokerListener,
    BrokerPublishError,
    CorrelationData,
    InMemoryBroker,
    RabbitMQBroker,
    ReturnedMessage,
)
from txmsg.config import OutboxConfig
from txmsg.coordinator import SendCoordinator
from txmsg.exceptions import (
    ConfirmNack,
    LockError,
    MissingDependencyError,
    OutboxStorageError,
    SendError,
    TxMsgError,
    Undeliverable,
    ValidationError,
)
from txmsg.locks import (
    LOCK_TX_MSG_DO_CLEAR,
    LOCK_TX_MSG_DO_RETRY,
    InMemoryLockProvider,
    LockProvider,
    RedisLockProvider,
)
from txmsg.reconciler import ConfirmationReconciler
from txmsg.scheduler import (
    CleanupReport,
    CleanupScheduler,
    PeriodicJob,
    RetryOutcome,
    RetryReport,
    RetryScheduler,
)
from txmsg.state_machine import InvalidStateTransitionError, OutboxStateMachine
from txmsg.storage import InMemoryOutboxStorage, OutboxStorage, PostgreSQLOutboxStorage
from txmsg.types import MessageOptions, OutboxMessage, SendState, TxHeader
from txmsg.worker import OutboxWorker

__version__ = "0.1.0"

__all__ = [
    # Core types
    "OutboxMessage",
    "SendState",
    "TxHeader",
    "MessageOptions",
    "OutboxConfig",

    # Backoff & state machine
    "backoff_interval",
    "next_retry_time",
    "OutboxStateMachine",
    "InvalidStateTransitionError",

    # Storage
    "OutboxStorage",
    "InMemoryOutboxStorage",
    "PostgreSQLOutboxStorage",

    # Brokers
    "BaseBroker",
    "BrokerConfig",
    "BrokerListener",
    "CorrelationData",
    "ReturnedMessage",
    "InMemoryBroker",
    "RabbitMQBroker",

    # Locks
    "LockProvider",
    "InMemoryLockProvider",
    "RedisLockProvider",
    "LOCK_TX_MSG_DO_RETRY",
    "LOCK_TX_MSG_DO_CLEAR",

    # Components
    "SendCoordinator",
    "ConfirmationReconciler",
    "RetryScheduler",
    "RetryReport",
    "RetryOutcome",
    "CleanupScheduler",
    "CleanupReport",
    "PeriodicJob",
    "OutboxWorker",

    # Exceptions
    "TxMsgError",
    "ValidationError",
    "SendError",
    "ConfirmNack",
    "Undeliverable",
    "OutboxStorageError",
    "LockError",
    "MissingDependencyError",
    "BrokerError",
    "BrokerConnectionError",
    "BrokerPublishError",
]
