"""
Pytest configuration and shared fixtures for outbox tests
"""

from datetime import UTC, datetime

import pytest

from txmsg.brokers.memory import InMemoryBroker
from txmsg.config import OutboxConfig
from txmsg.coordinator import SendCoordinator
from txmsg.locks.memory import InMemoryLockProvider
from txmsg.logger import set_logger
from txmsg.reconciler import ConfirmationReconciler
from txmsg.storage.memory import InMemoryOutboxStorage
from txmsg.types import OutboxMessage

# ============================================
# AUTO-USE FIXTURES
# ============================================


@pytest.fixture(autouse=True)
def reset_logger():
    """Make sure a custom logger set by one test does not leak into others."""
    yield
    set_logger(None)


# ============================================
# OUTBOX FIXTURES
# ============================================


@pytest.fixture
def now():
    """A fixed reference time."""
    return datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def config():
    """Small backoff schedule: I=1000ms, M=2, X=5000ms, 3 retries."""
    return OutboxConfig(
        max_retry_times=3,
        backoff_init_interval=1000,
        backoff_multiplier=2.0,
        backoff_max_interval=5000,
        lock_timeout_seconds=0.1,
        query_timeout_seconds=5.0,
    )


@pytest.fixture
def storage():
    return InMemoryOutboxStorage()


@pytest.fixture
async def broker():
    """Connected in-memory broker; confirms are scripted by the test."""
    broker = InMemoryBroker()
    await broker.connect()
    yield broker
    await broker.close()


@pytest.fixture
def locks():
    return InMemoryLockProvider()


@pytest.fixture
def coordinator(storage, broker, config):
    counter = iter(range(1, 1_000_000))
    return SendCoordinator(storage, broker, config, id_factory=lambda: f"msg-{next(counter)}")


@pytest.fixture
def reconciler(storage, broker):
    reconciler = ConfirmationReconciler(storage)
    broker.set_listener(reconciler)
    return reconciler


@pytest.fixture
def make_message():
    """Factory for valid, unregistered outbox messages."""

    def _make(**overrides) -> OutboxMessage:
        values = {
            "target": "orders",
            "routing_key": "order.created",
            "payload": b'{"order_id": "ORD-1"}',
            "biz_type": "order",
            "biz_key": "ORD-1",
        }
        values.update(overrides)
        return OutboxMessage(**values)

    return _make
