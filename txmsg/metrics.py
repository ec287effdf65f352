"""
Prometheus metrics for the outbox (optional - skipped if not installed).

Requirements:
    pip install txmsg[metrics]
"""

from typing import Any

from txmsg.logger import get_logger

logger = get_logger(__name__)

try:
    from prometheus_client import Counter, Histogram, start_http_server

    PROMETHEUS_AVAILABLE = True

    TXMSG_REGISTERED = Counter(
        "txmsg_registered_total",
        "Messages recorded in the outbox",
    )

    TXMSG_SENT = Counter(
        "txmsg_sent_total",
        "Messages handed to the broker",
    )

    TXMSG_SEND_FAILURES = Counter(
        "txmsg_send_failures_total",
        "Publish calls that raised",
    )

    TXMSG_CONFIRMS = Counter(
        "txmsg_confirms_total",
        "Broker confirms received for outbox messages",
        ["result"],
    )

    TXMSG_RETURNS = Counter(
        "txmsg_returns_total",
        "Broker returns received for outbox messages",
    )

    TXMSG_RETRIES = Counter(
        "txmsg_retries_total",
        "Retry attempts by outcome",
        ["outcome"],
    )

    TXMSG_CLEARED = Counter(
        "txmsg_cleared_total",
        "OVER records deleted by cleanup",
    )

    TXMSG_SCHEDULER_PASSES = Counter(
        "txmsg_scheduler_passes_total",
        "Scheduler passes by job and result",
        ["job", "result"],
    )

    TXMSG_PASS_DURATION = Histogram(
        "txmsg_scheduler_pass_duration_seconds",
        "Duration of a scheduler pass",
        ["job"],
        buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0],
    )

except ImportError:  # pragma: no cover
    PROMETHEUS_AVAILABLE = False
    start_http_server: Any = None  # type: ignore[no-redef]
    logger.debug("prometheus-client not installed, metrics disabled")


def record_registered() -> None:
    if PROMETHEUS_AVAILABLE:
        TXMSG_REGISTERED.inc()


def record_sent(ok: bool) -> None:
    if not PROMETHEUS_AVAILABLE:
        return
    if ok:
        TXMSG_SENT.inc()
    else:
        TXMSG_SEND_FAILURES.inc()


def record_confirm(ack: bool) -> None:
    if PROMETHEUS_AVAILABLE:
        TXMSG_CONFIRMS.labels(result="ack" if ack else "nack").inc()


def record_return() -> None:
    if PROMETHEUS_AVAILABLE:
        TXMSG_RETURNS.inc()


def record_retry(outcome: str) -> None:
    if PROMETHEUS_AVAILABLE:
        TXMSG_RETRIES.labels(outcome=outcome).inc()


def record_cleared(count: int) -> None:
    if PROMETHEUS_AVAILABLE and count:
        TXMSG_CLEARED.inc(count)


def record_pass(job: str, result: str, duration: float) -> None:
    if not PROMETHEUS_AVAILABLE:
        return
    TXMSG_SCHEDULER_PASSES.labels(job=job, result=result).inc()
    TXMSG_PASS_DURATION.labels(job=job).observe(duration)


def start_metrics_server(port: int) -> bool:
    """Serve /metrics on port. Returns False when metrics are unavailable."""
    if not PROMETHEUS_AVAILABLE:
        logger.warning("prometheus-client not installed, metrics server not started")
        return False
    start_http_server(port)
    logger.info(f"Metrics server listening on :{port}")
    return True
