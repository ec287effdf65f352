"""
Logging for txmsg.

Every module logs through get_logger(__name__), so records land under the
'txmsg' namespace:

    txmsg.coordinator   TxMsg save / sent on committed / send fail on committed
    txmsg.reconciler    TxMsg set to OVER|FAIL on confirm, FAIL on returned
    txmsg.scheduler     TxMsg retry / clear pass summaries (DEBUG)
    txmsg.worker        worker start, stop and job errors

Library use stays silent until the application configures logging. The
worker and the CLI call configure_default_logging().

Usage:
    >>> import structlog
    >>> from txmsg.logger import set_logger
    >>>
    >>> set_logger(structlog.get_logger("outbox"))
    >>> await worker.start()   # outbox log lines now go through structlog
"""

import logging
from typing import Any

# Client libraries that log every reconnect and channel event
BROKER_LOGGERS = ("aio_pika", "aiormq")

_custom_logger: Any = None


class TxMsgLogger:
    """
    Module logger handle. Each call goes to the logger set with set_logger(),
    or to logging.getLogger(name) when none is set.
    """

    def __init__(self, name: str):
        self.name = name

    @property
    def target(self) -> Any:
        if _custom_logger is not None:
            return _custom_logger

        logger = logging.getLogger(self.name)
        if not logger.handlers:
            logger.addHandler(logging.NullHandler())
        return logger

    def __getattr__(self, attr: str) -> Any:
        return getattr(self.target, attr)


def set_logger(logger: Any) -> None:
    """
    Route all txmsg logging to logger (structlog, loguru, ...).

    Takes effect for loggers already handed out by get_logger(). Pass None
    to go back to standard logging.
    """
    global _custom_logger
    _custom_logger = logger


def get_logger(name: str = "txmsg") -> TxMsgLogger:
    """Logger handle for a txmsg module, usually get_logger(__name__)."""
    return TxMsgLogger(name)


def configure_default_logging(
    level: int | str = logging.INFO,
    format_string: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    broker_level: int | str = logging.WARNING,
) -> None:
    """
    Console logging for the txmsg worker and CLI.

    Args:
        level: Level for the txmsg namespace, as a number or a name ("debug")
        format_string: Log record format
        broker_level: Level for the aio-pika/aiormq client loggers
    """
    level = _level(level)
    logging.basicConfig(level=level, format=format_string)
    logging.getLogger("txmsg").setLevel(level)

    for name in BROKER_LOGGERS:
        logging.getLogger(name).setLevel(_level(broker_level))


def _level(level: int | str) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    return level
