"""
Outbox State Machine - valid lifecycle transitions of an outbox message.

State Diagram:

    ┌───────────┐   confirm ack   ┌──────┐
    │ PREPARING │ ──────────────► │ OVER │
    └─────┬─────┘                 └──────┘
          │  ▲
    send  │  │ retry attempt
    error │  │ (retries < max)
    nack  │  │
    return▼  │
       ┌──────┐
       │ FAIL │  (retries == max: stays FAIL for an operator)
       └──────┘

Stores consult this table before applying a conditional update, so a
record can never leave OVER.
"""

from txmsg.exceptions import TxMsgError
from txmsg.types import OutboxMessage, SendState


class InvalidStateTransitionError(TxMsgError):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, message_id: str, from_state: SendState, to_state: SendState):
        self.message_id = message_id
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid transition for message {message_id}: {from_state.value} → {to_state.value}"
        )


class OutboxStateMachine:
    """
    State table for outbox messages.

    Valid Transitions:
        PREPARING → OVER (broker ack)
        PREPARING → FAIL (send error, nack, return)
        FAIL → PREPARING (retry attempt, if retries < max)

    Usage:
        >>> OutboxStateMachine.can_transition(SendState.PREPARING, SendState.OVER)
        True
        >>> OutboxStateMachine.can_transition(SendState.OVER, SendState.FAIL)
        False
    """

    # Valid transitions: from_state -> [to_state, ...]
    VALID_TRANSITIONS = {
        SendState.PREPARING: [SendState.OVER, SendState.FAIL],
        SendState.FAIL: [SendState.PREPARING],
        SendState.OVER: [],  # Terminal state
    }

    @classmethod
    def can_transition(cls, from_state: SendState, to_state: SendState) -> bool:
        """Check whether from_state → to_state is allowed."""
        return to_state in cls.VALID_TRANSITIONS.get(from_state, [])

    @classmethod
    def validate(cls, message: OutboxMessage, to_state: SendState) -> None:
        """
        Validate a transition for a message.

        Raises:
            InvalidStateTransitionError: If the transition is not allowed
        """
        if not cls.can_transition(message.state, to_state):
            raise InvalidStateTransitionError(message.id, message.state, to_state)

    @staticmethod
    def can_retry(message: OutboxMessage) -> bool:
        """True if the message is FAIL and has retry budget left."""
        return (
            message.state == SendState.FAIL
            and message.curr_retry_times < (message.max_retry_times or 0)
        )

    @staticmethod
    def is_exhausted(message: OutboxMessage) -> bool:
        """True if the message is FAIL and its retry budget is spent."""
        return (
            message.state == SendState.FAIL
            and message.curr_retry_times >= (message.max_retry_times or 0)
        )
