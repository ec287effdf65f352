"""
Outbox types - the persisted message record and its lifecycle states.

A message is recorded as PREPARING before any network send is attempted,
then moved to OVER (broker confirmed) or FAIL (send error, nack, return).
FAIL records are retried with backoff until their retry budget runs out.

Quick Start:
    >>> from txmsg.types import OutboxMessage
    >>>
    >>> msg = OutboxMessage(
    ...     target="orders",
    ...     routing_key="order.created",
    ...     payload=b'{"order_id": "ORD-456"}',
    ...     biz_type="order",
    ...     biz_key="ORD-456",
    ... )
"""

from dataclasses import dataclass, field, fields
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class SendState(Enum):
    """
    Delivery state of an outbox message.

    State transitions:
        PREPARING → OVER
            ↓  ↑
            FAIL
    """

    PREPARING = "PREPARING"
    """Recorded, sent or about to be sent, waiting for the broker confirm"""

    FAIL = "FAIL"
    """Send failed, nacked or returned (retried while budget remains)"""

    OVER = "OVER"
    """Broker confirmed the message (terminal)"""


class TxHeader(str, Enum):
    """Broker header keys carried on every outbox-originated message."""

    MSG_ID = "TX_MSG_ID"
    BIZ_TYPE = "TX_MSG_BIZ_TYPE"
    BIZ_KEY = "TX_MSG_BIZ_KEY"


@dataclass
class MessageOptions:
    """
    Per-message retry and backoff settings.

    Intervals are in milliseconds.
    """

    max_retry_times: int = 5
    backoff_init_interval: int = 1000
    backoff_multiplier: float = 2.0
    backoff_max_interval: int = 60000


@dataclass
class OutboxMessage:
    """
    A message in the transactional outbox.

    Attributes:
        target: Broker destination (exchange)
        routing_key: Routing key used by the broker
        payload: Message body
        id: Unique identifier (generated before send when left empty)
        biz_type: Business type tag, copied into broker headers
        biz_key: Business key tag, copied into broker headers
        state: Current delivery state
        curr_retry_times: Retries attempted so far
        max_retry_times: Retry budget (None = configured default)
        backoff_init_interval: First backoff interval in ms (None = default)
        backoff_multiplier: Backoff growth per retry (None = default)
        backoff_max_interval: Backoff cap in ms (None = default)
        next_retry_time: Earliest time the message may be retried
        cause: Last failure description
        create_time: When the record was created
        headers: Extra broker headers sent along with the outbox headers
    """

    target: str | None
    routing_key: str | None
    payload: bytes | None

    id: str = ""
    biz_type: str | None = None
    biz_key: str | None = None
    state: SendState = SendState.PREPARING
    curr_retry_times: int = 0
    max_retry_times: int | None = None
    backoff_init_interval: int | None = None
    backoff_multiplier: float | None = None
    backoff_max_interval: int | None = None
    next_retry_time: datetime | None = None
    cause: str | None = None
    create_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    headers: dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        if isinstance(self.payload, str):
            self.payload = self.payload.encode("utf-8")

    @property
    def biz_tag(self) -> str:
        """Business tag used in log lines."""
        return f"{self.biz_type}_{self.biz_key}"

    def apply_options(self, options: MessageOptions) -> None:
        """Fill unset retry and backoff settings from options."""
        for opt in fields(options):
            if getattr(self, opt.name) is None:
                setattr(self, opt.name, getattr(options, opt.name))

    def outbox_headers(self) -> dict[str, str]:
        """Headers that let the reconciler correlate broker callbacks."""
        return {
            **self.headers,
            TxHeader.MSG_ID.value: self.id,
            TxHeader.BIZ_TYPE.value: self.biz_type or "",
            TxHeader.BIZ_KEY.value: self.biz_key or "",
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert message to dictionary for serialization."""
        return {
            "id": self.id,
            "target": self.target,
            "routing_key": self.routing_key,
            "payload": self.payload.decode("utf-8", errors="replace") if self.payload else None,
            "biz_type": self.biz_type,
            "biz_key": self.biz_key,
            "state": self.state.value,
            "curr_retry_times": self.curr_retry_times,
            "max_retry_times": self.max_retry_times,
            "backoff_init_interval": self.backoff_init_interval,
            "backoff_multiplier": self.backoff_multiplier,
            "backoff_max_interval": self.backoff_max_interval,
            "next_retry_time": self.next_retry_time.isoformat() if self.next_retry_time else None,
            "cause": self.cause,
            "create_time": self.create_time.isoformat() if self.create_time else None,
            "headers": self.headers,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OutboxMessage":
        """Create message from dictionary."""
        return cls(
            id=data.get("id", ""),
            target=data["target"],
            routing_key=data["routing_key"],
            payload=data["payload"],
            biz_type=data.get("biz_type"),
            biz_key=data.get("biz_key"),
            state=cls._parse_state(data.get("state", "PREPARING")),
            curr_retry_times=data.get("curr_retry_times", 0),
            max_retry_times=data.get("max_retry_times"),
            backoff_init_interval=data.get("backoff_init_interval"),
            backoff_multiplier=data.get("backoff_multiplier"),
            backoff_max_interval=data.get("backoff_max_interval"),
            next_retry_time=cls._parse_datetime(data.get("next_retry_time")),
            cause=data.get("cause"),
            create_time=cls._parse_datetime(data.get("create_time")) or datetime.now(UTC),
            headers=data.get("headers") or {},
        )

    @staticmethod
    def _parse_state(state: str | SendState) -> SendState:
        """Parse state from string or SendState."""
        if isinstance(state, str):
            return SendState(state)
        return state

    @staticmethod
    def _parse_datetime(value: str | datetime | None) -> datetime | None:
        """Parse datetime from string or return as-is."""
        if isinstance(value, str):
            return datetime.fromisoformat(value)
        return value
