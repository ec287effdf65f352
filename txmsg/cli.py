"""
txmsg CLI - operate the outbox from the command line.

Commands:
    txmsg worker    # Run retry and cleanup schedulers until stopped
    txmsg retry     # Run one retry pass
    txmsg clear     # Run one cleanup pass
    txmsg status    # Message counts per state

Backends come from the environment (DATABASE_URL, RABBITMQ_URL, REDIS_URL)
and OUTBOX_* settings, as for the worker.

Install:
    pip install txmsg[cli]
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from txmsg.brokers.memory import InMemoryBroker
from txmsg.config import OutboxConfig
from txmsg.logger import configure_default_logging
from txmsg.scheduler import RetryOutcome
from txmsg.types import SendState
from txmsg.worker import OutboxWorker, get_broker, get_lock_provider, get_storage
from txmsg.worker import main as worker_main

console = Console()


async def _with_worker(action: Callable[[OutboxWorker], Awaitable[Any]], need_broker: bool) -> Any:
    """Build backends from the environment, run action, close everything."""
    config = OutboxConfig.from_env()
    storage = get_storage()
    broker = get_broker() if need_broker else InMemoryBroker()
    lock_provider = get_lock_provider(config)

    await storage.initialize()
    try:
        await broker.connect()
        worker = OutboxWorker(storage, broker, lock_provider, config)
        return await action(worker)
    finally:
        await broker.close()
        await lock_provider.close()
        await storage.close()


class OrderedGroup(click.Group):
    """Click Group that lists commands in the order they were added."""

    def list_commands(self, ctx):
        return list(self.commands.keys())


@click.group(cls=OrderedGroup)
@click.version_option(version="0.1.0", prog_name="txmsg")
@click.option("--log-level", default="WARNING", show_default=True, help="Logging level")
def cli(log_level: str):
    """txmsg - transactional outbox for reliable broker publication."""
    configure_default_logging(log_level)


@cli.command()
def worker():
    """Run the outbox worker until SIGTERM/SIGINT."""
    asyncio.run(worker_main())


@cli.command()
def retry():
    """Run one retry pass."""
    report = asyncio.run(
        _with_worker(lambda w: w.retry_scheduler.run_once(), need_broker=True)
    )

    if report.skipped:
        console.print("[yellow]Retry pass skipped: lock held by another worker[/yellow]")
        return

    table = Table(title="Retry pass")
    table.add_column("Result")
    table.add_column("Messages", justify="right")
    table.add_row("due", str(report.queried))
    table.add_row("recovered (unconfirmed)", str(report.recovered))
    for outcome in RetryOutcome:
        table.add_row(outcome.value, str(report.count(outcome)))
    console.print(table)


@cli.command()
def clear():
    """Run one cleanup pass."""
    report = asyncio.run(
        _with_worker(lambda w: w.cleanup_scheduler.run_once(), need_broker=False)
    )

    if report.skipped:
        console.print("[yellow]Cleanup pass skipped: lock held by another worker[/yellow]")
        return

    color = "red" if report.failed else "green"
    console.print(
        f"[{color}]Deleted {report.deleted} of {report.queried} OVER messages "
        f"created before {report.cutoff.isoformat()}[/{color}]"
    )


@cli.command()
def status():
    """Show message counts per state."""
    counts = asyncio.run(
        _with_worker(lambda w: w.storage.count_by_state(), need_broker=False)
    )

    table = Table(title="Outbox")
    table.add_column("State")
    table.add_column("Messages", justify="right")
    for state in SendState:
        table.add_row(state.value, str(counts.get(state, 0)))
    console.print(table)


def main():
    """Main entry point for the txmsg CLI."""
    cli()


if __name__ == "__main__":
    main()
