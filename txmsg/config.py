"""
OutboxConfig - configuration for coordinator, reconciler and schedulers.

Message-level defaults (retry budget, backoff schedule) are applied at
registration time to messages that do not set their own. Intervals that
belong to a message are milliseconds; scheduler timings are seconds.

Example:
    >>> from txmsg.config import OutboxConfig
    >>>
    >>> config = OutboxConfig(max_retry_times=3, backoff_max_interval=30000)
    >>> # or from OUTBOX_* environment variables (and a .env file)
    >>> config = OutboxConfig.from_env()
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from txmsg.types import MessageOptions

DAY_MS = 24 * 60 * 60 * 1000


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class OutboxConfig:
    """
    Configuration for the outbox.

    Attributes:
        max_retry_times: Default retry budget per message
        backoff_init_interval: Default first backoff interval (ms)
        backoff_multiplier: Default backoff growth per retry
        backoff_max_interval: Default backoff cap (ms)
        auto_clear_interval: Retention of OVER records before cleanup (ms)
        retry_interval_seconds: Seconds between retry passes
        clear_interval_seconds: Seconds between cleanup passes
        batch_size: Max records handled per pass
        lock_timeout_seconds: Bounded wait for a scheduler lock
        lock_expire_seconds: Expiry of a held lock (distributed backends)
        query_timeout_seconds: Timeout for store calls made by schedulers
        confirm_timeout_seconds: PREPARING records without a confirm for
            this long after their retry time are moved to FAIL
        guard_returns: Only fail PREPARING records on broker returns
    """

    max_retry_times: int = 5
    backoff_init_interval: int = 1000
    backoff_multiplier: float = 2.0
    backoff_max_interval: int = 60000
    auto_clear_interval: int = 7 * DAY_MS

    retry_interval_seconds: float = 10.0
    clear_interval_seconds: float = 3600.0
    batch_size: int = 100
    lock_timeout_seconds: float = 5.0
    lock_expire_seconds: float = 60.0
    query_timeout_seconds: float = 30.0
    confirm_timeout_seconds: float = 300.0

    guard_returns: bool = True

    def __post_init__(self) -> None:
        if self.max_retry_times < 0:
            msg = f"max_retry_times must be >= 0, got {self.max_retry_times}"
            raise ValueError(msg)

        for name in ("backoff_init_interval", "backoff_max_interval", "auto_clear_interval"):
            if getattr(self, name) < 0:
                msg = f"{name} must be >= 0, got {getattr(self, name)}"
                raise ValueError(msg)

        if self.backoff_max_interval < self.backoff_init_interval:
            msg = (
                f"backoff_max_interval ({self.backoff_max_interval}) must be >= "
                f"backoff_init_interval ({self.backoff_init_interval})"
            )
            raise ValueError(msg)

        if self.batch_size <= 0:
            msg = f"batch_size must be > 0, got {self.batch_size}"
            raise ValueError(msg)

    def default_options(self) -> MessageOptions:
        """Message options used for messages that do not set their own."""
        return MessageOptions(
            max_retry_times=self.max_retry_times,
            backoff_init_interval=self.backoff_init_interval,
            backoff_multiplier=self.backoff_multiplier,
            backoff_max_interval=self.backoff_max_interval,
        )

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> OutboxConfig:
        """
        Create config from OUTBOX_* environment variables.

        A .env file (env_file, or ./.env) is loaded first when it exists;
        variables already set in the environment win.
        """
        path = Path(env_file) if env_file else Path.cwd() / ".env"
        if path.exists():
            load_dotenv(path, override=False)

        return cls(
            max_retry_times=int(os.getenv("OUTBOX_MAX_RETRY_TIMES", 5)),
            backoff_init_interval=int(os.getenv("OUTBOX_BACKOFF_INIT_INTERVAL", 1000)),
            backoff_multiplier=float(os.getenv("OUTBOX_BACKOFF_MULTIPLIER", 2.0)),
            backoff_max_interval=int(os.getenv("OUTBOX_BACKOFF_MAX_INTERVAL", 60000)),
            auto_clear_interval=int(os.getenv("OUTBOX_AUTO_CLEAR_INTERVAL", 7 * DAY_MS)),
            retry_interval_seconds=float(os.getenv("OUTBOX_RETRY_INTERVAL", 10.0)),
            clear_interval_seconds=float(os.getenv("OUTBOX_CLEAR_INTERVAL", 3600.0)),
            batch_size=int(os.getenv("OUTBOX_BATCH_SIZE", 100)),
            lock_timeout_seconds=float(os.getenv("OUTBOX_LOCK_TIMEOUT", 5.0)),
            lock_expire_seconds=float(os.getenv("OUTBOX_LOCK_EXPIRE", 60.0)),
            query_timeout_seconds=float(os.getenv("OUTBOX_QUERY_TIMEOUT", 30.0)),
            confirm_timeout_seconds=float(os.getenv("OUTBOX_CONFIRM_TIMEOUT", 300.0)),
            guard_returns=_env_bool("OUTBOX_GUARD_RETURNS", True),
        )
