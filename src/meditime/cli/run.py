"""
CLI: ``meditime run`` - start the reminder scheduler.
"""

from __future__ import annotations

import signal
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import typer

from meditime.cli.utils import console, get_settings, handle_errors, open_store
from meditime.core.logging import configure_logging, get_logger
from meditime.scheduling.lifecycle import Cancellation, LifecycleController
from meditime.scheduling.registry import ScheduleRegistry
from meditime.transports import ConsoleTransport, PushoverTransport
from meditime.transports.protocol import DeliveryTransport

logger = get_logger(__name__)

_SIGNAL_REASONS = {
    signal.SIGINT: "interrupt",
    signal.SIGTERM: "terminated",
}


@contextmanager
def cancel_on_signals(cancellation: Cancellation) -> Iterator[None]:
    """Route SIGINT / SIGTERM to ``cancellation`` for the duration of the block."""
    previous = {}

    def _handle(signum: int, frame: object) -> None:
        logger.info("signal_received", signal=signal.Signals(signum).name)
        cancellation.cancel(_SIGNAL_REASONS.get(signum, "signal"))

    try:
        for signum in _SIGNAL_REASONS:
            previous[signum] = signal.signal(signum, _handle)
    except ValueError:
        pass  # Not in main thread - skip signal registration

    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


def run(
    dry_run: bool = typer.Option(False, "--dry-run", help="Log notifications instead of sending them"),
    store: Path | None = typer.Option(None, "--store", "-s", help="Record store path (overrides MEDITIME_STORE_PATH)"),
) -> None:
    """Schedule every stored medication and send reminders until interrupted.

    Example::

        MEDITIME_STORE_PATH=~/.meditime/records.db PUSHOVER_API_TOKEN=... meditime run
    """
    with handle_errors():
        settings = get_settings(store)
        configure_logging(level=settings.log_level, format=settings.log_format)

        transport: DeliveryTransport
        if dry_run:
            transport = ConsoleTransport()
        else:
            transport = PushoverTransport(
                settings.require_pushover_token(),
                api_url=settings.pushover_api_url,
                timeout=settings.pushover_timeout_seconds,
            )

        cancellation = Cancellation()
        with open_store(store) as records, cancel_on_signals(cancellation):
            controller = LifecycleController(
                records,
                transport,
                registry=ScheduleRegistry(max_sleep=settings.max_sleep_seconds),
                drain_timeout=settings.drain_timeout_seconds,
            )
            reason = controller.run(cancellation)

    console.print(f"[yellow]Scheduler stopped ({reason})[/yellow]")
