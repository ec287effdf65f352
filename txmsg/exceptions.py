"""
All outbox-related exceptions
"""


class TxMsgError(Exception):
    """Base outbox error"""


class ValidationError(TxMsgError):
    """Message is missing addressing or payload fields"""


class SendError(TxMsgError):
    """Transport-level failure while publishing a message."""

    def __init__(self, message_id: str, reason: str):
        self.message_id = message_id
        self.reason = reason
        super().__init__(f"Failed to send message {message_id}: {reason}")


class ConfirmNack(TxMsgError):
    """Broker explicitly rejected a published message."""

    def __init__(self, message_id: str, reason: str | None = None):
        self.message_id = message_id
        self.reason = reason
        super().__init__(f"Broker nack for message {message_id}: {reason or 'no reason given'}")


class Undeliverable(TxMsgError):
    """Broker could not route a published message to any queue."""

    def __init__(
        self,
        message_id: str,
        reply_code: int,
        reply_text: str,
        target: str,
        routing_key: str,
    ):
        self.message_id = message_id
        self.reply_code = reply_code
        self.reply_text = reply_text
        self.target = target
        self.routing_key = routing_key
        super().__init__(
            f"Returned message {message_id}, reply_code:{reply_code}, "
            f"reply_text:{reply_text}, target:{target}, routing_key:{routing_key}"
        )


class OutboxStorageError(TxMsgError):
    """Base exception for outbox storage errors."""


class LockError(TxMsgError):
    """Lock provider failure"""


class MissingDependencyError(TxMsgError):
    """
    Raised when an optional dependency is not installed.

    Carries the install command for the missing package.
    """

    INSTALL_COMMANDS = {
        "redis": "pip install txmsg[redis]",
        "asyncpg": "pip install txmsg[postgresql]",
        "aio-pika": "pip install txmsg[rabbitmq]",
        "prometheus-client": "pip install txmsg[metrics]",
        "click": "pip install txmsg[cli]",
    }

    def __init__(self, package: str, feature: str | None = None):
        self.package = package
        self.feature = feature

        install_cmd = self.INSTALL_COMMANDS.get(package, f"pip install {package}")

        if feature:
            message = (
                f"\n╔══════════════════════════════════════════════════════════════╗\n"
                f"║  Missing Dependency: {package:<40} ║\n"
                f"╠══════════════════════════════════════════════════════════════╣\n"
                f"║  Required for: {feature:<45} ║\n"
                f"║  Install with: {install_cmd:<45} ║\n"
                f"╚══════════════════════════════════════════════════════════════╝"
            )
        else:
            message = (
                f"\n╔══════════════════════════════════════════════════════════════╗\n"
                f"║  Missing Dependency: {package:<40} ║\n"
                f"╠══════════════════════════════════════════════════════════════╣\n"
                f"║  Install with: {install_cmd:<45} ║\n"
                f"╚══════════════════════════════════════════════════════════════╝"
            )

        super().__init__(message)
