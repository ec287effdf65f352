"""
Outbox Broker Implementations

Available backends:
    - InMemoryBroker: For testing
    - RabbitMQBroker: RabbitMQ/AMQP with publisher confirms (requires aio-pika)
"""

from txmsg.brokers.base import (
    BaseBroker,
    BrokerConfig,
    BrokerConnectionError,
    BrokerError,
    BrokerListener,
    BrokerPublishError,
    CorrelationData,
    ReturnedMessage,
)
from txmsg.brokers.memory import InMemoryBroker, PublishedMessage


# Lazy import for optional backend
def RabbitMQBroker(*args, **kwargs):
    """RabbitMQ message broker (requires aio-pika)."""
    from txmsg.brokers.rabbitmq import RabbitMQBroker as _Impl
    return _Impl(*args, **kwargs)


__all__ = [
    "BaseBroker",
    "BrokerConfig",
    "BrokerConnectionError",
    "BrokerError",
    "BrokerListener",
    "BrokerPublishError",
    "CorrelationData",
    "InMemoryBroker",
    "PublishedMessage",
    "RabbitMQBroker",
    "ReturnedMessage",
]
