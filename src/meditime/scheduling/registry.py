"""Schedule registry - cron-driven job firing on a background thread.

┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULE REGISTRY                                                            │
│                                                                               │
│   add_job(expr, callback) ──► croniter validates ──► JobHandle(next_fire)    │
│                                                                               │
│   start()                                                                     │
│      │                                                                        │
│      ▼                                                                        │
│   ┌─────────────────────────────────────────────────────────┐                │
│   │              Scheduler Thread (loop)                     │                │
│   │                                                          │                │
│   │   while not stopping:                                    │                │
│   │       now = clock()                                      │                │
│   │       for job due at now:                                │                │
│   │           spawn firing thread ──► callback()             │                │
│   │           next_fire = next after now   (no backfill)     │                │
│   │       wait(min(next_fire) - now, capped at max_sleep)    │                │
│   │            ▲                                             │                │
│   │            └── woken early by add_job() / stop()         │                │
│   └─────────────────────────────────────────────────────────┘                │
│                                                                               │
│   stop()                                                                      │
│      ├── stopping = True, wake loop, join loop thread                        │
│      └── wait until in_flight == 0   (firings run to completion)             │
└──────────────────────────────────────────────────────────────────────────────┘

Each firing gets its own thread, so a callback blocked on a slow push never
delays other jobs or the loop's next wake-up. The wait is capped so wall
clock adjustments are picked up within ``max_sleep`` seconds.
"""

from __future__ import annotations

import itertools
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from croniter import CroniterError, croniter
from dateutil import tz

from meditime.core.errors import ScheduleConfigError
from meditime.core.logging import get_logger

logger = get_logger(__name__)

JobCallback = Callable[[], Any]
Clock = Callable[[], datetime]


def local_now() -> datetime:
    """Current local time in a zone that follows DST transitions."""
    return datetime.now(tz.tzlocal())


def next_fire_time(expression: str, after: datetime) -> datetime:
    """Earliest instant strictly after ``after`` matching ``expression``.

    Pure function of its arguments: the same expression and instant always
    give the same result.

    Raises:
        ScheduleConfigError: expression does not parse or never matches
    """
    try:
        return croniter(expression, after).get_next(datetime)
    except (CroniterError, ValueError, KeyError, TypeError) as exc:
        raise ScheduleConfigError(expression, f"invalid cron expression {expression!r}: {exc}", cause=exc) from exc


def validate_expression(expression: str, now: datetime | None = None) -> None:
    """Raise ScheduleConfigError unless ``expression`` is a usable cron schedule.

    Accepts five fields (minute hour day-of-month month day-of-week), six
    fields (trailing seconds), or an ``@hourly``/``@daily`` style alias.
    """
    if not isinstance(expression, str) or not expression.strip():
        raise ScheduleConfigError(str(expression), "cron expression must not be empty")

    stripped = expression.strip()
    if not stripped.startswith("@") and len(stripped.split()) not in (5, 6):
        raise ScheduleConfigError(
            expression,
            f"invalid cron expression {expression!r}: expected 5 or 6 fields, got {len(stripped.split())}",
        )
    if not croniter.is_valid(stripped):
        raise ScheduleConfigError(expression)

    # Parses but may still never match (e.g. "0 0 30 2 *").
    next_fire_time(stripped, now or local_now())


@dataclass
class JobHandle:
    """Registered job as seen from outside the registry."""

    id: int
    name: str
    expression: str
    next_fire: datetime
    prev_fire: datetime | None = None
    fire_count: int = 0


@dataclass
class _Entry:
    handle: JobHandle
    callback: JobCallback


class ScheduleRegistry:
    """Holds cron jobs and fires their callbacks while running.

    Example:
        >>> registry = ScheduleRegistry()
        >>> registry.add_job("0 8 * * *", lambda: print("take aspirin"), name="aspirin")
        JobHandle(id=1, name='aspirin', ...)
        >>> registry.start()
        >>> # ... later ...
        >>> registry.stop()
        True
    """

    def __init__(self, *, clock: Clock = local_now, max_sleep: float = 60.0) -> None:
        self._clock = clock
        self._max_sleep = max_sleep

        self._lock = threading.Lock()
        self._wake = threading.Condition(self._lock)
        self._idle = threading.Condition(self._lock)

        self._entries: list[_Entry] = []
        self._ids = itertools.count(1)
        self._thread: threading.Thread | None = None
        self._running = False
        self._stopping = False
        self._in_flight = 0
        self._fire_count = 0
        self._last_fire: datetime | None = None

    # === Registration ===

    def add_job(self, expression: str, callback: JobCallback, *, name: str | None = None) -> JobHandle:
        """Register ``callback`` to run at every instant matching ``expression``.

        Raises:
            ScheduleConfigError: the expression is malformed; nothing is registered
        """
        now = self._clock()
        validate_expression(expression, now)
        expression = expression.strip()

        with self._lock:
            job_id = next(self._ids)
            handle = JobHandle(
                id=job_id,
                name=name or f"job-{job_id}",
                expression=expression,
                next_fire=next_fire_time(expression, now),
            )
            self._entries.append(_Entry(handle=handle, callback=callback))
            self._wake.notify_all()

        logger.debug(
            "job_registered",
            job=handle.name,
            expression=expression,
            next_fire=handle.next_fire.isoformat(),
        )
        return handle

    def jobs(self) -> list[JobHandle]:
        with self._lock:
            return [entry.handle for entry in self._entries]

    # === Lifecycle ===

    def start(self) -> None:
        """Start the scheduling loop in a daemon thread."""
        with self._lock:
            if self._running:
                logger.warning("schedule_registry_already_started")
                return

            # Jobs registered before start never fire for instants already past.
            now = self._clock()
            for entry in self._entries:
                entry.handle.next_fire = next_fire_time(entry.handle.expression, now)

            self._stopping = False
            self._running = True
            self._thread = threading.Thread(target=self._loop, daemon=True, name="meditime-scheduler")
            self._thread.start()

        logger.info("schedule_registry_started", jobs=len(self._entries), max_sleep=self._max_sleep)

    def stop(self, timeout: float | None = None) -> bool:
        """Stop scheduling and wait for in-flight firings to finish.

        No firing starts after this is called. Firings already running are
        never interrupted; ``timeout`` only bounds how long this call waits.

        Returns:
            True if every in-flight firing completed, False on timeout.
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        with self._lock:
            self._stopping = True
            self._wake.notify_all()
            thread = self._thread

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

        remaining = None if deadline is None else max(deadline - time.monotonic(), 0.0)
        with self._lock:
            drained = self._idle.wait_for(lambda: self._in_flight == 0, timeout=remaining)
            self._running = False
            self._thread = None
            in_flight = self._in_flight

        if drained:
            logger.info("schedule_registry_stopped")
        else:
            logger.warning("schedule_registry_drain_timeout", in_flight=in_flight, timeout=timeout)
        return drained

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no firing is in flight. Returns False on timeout."""
        with self._lock:
            return self._idle.wait_for(lambda: self._in_flight == 0, timeout=timeout)

    # === Firing ===

    def tick(self, now: datetime | None = None) -> list[JobHandle]:
        """Fire every job due at ``now`` and schedule its next instant.

        Each due job fires at most once per tick however many instants were
        missed, then its next instant is computed strictly after ``now``.

        Returns:
            Handles of the jobs fired, in next-fire order.
        """
        now = now or self._clock()
        with self._lock:
            return self._fire_due(now)

    def _fire_due(self, now: datetime) -> list[JobHandle]:
        if self._stopping:
            return []

        due = sorted(
            (e for e in self._entries if e.handle.next_fire <= now),
            key=lambda e: (e.handle.next_fire, e.handle.id),
        )
        fired = []
        for entry in due:
            handle = entry.handle
            scheduled = handle.next_fire
            handle.prev_fire = scheduled
            handle.fire_count += 1
            handle.next_fire = next_fire_time(handle.expression, now)

            self._in_flight += 1
            self._fire_count += 1
            self._last_fire = now
            threading.Thread(
                target=self._run_callback,
                args=(entry, scheduled),
                daemon=True,
                name=f"meditime-fire-{handle.id}",
            ).start()
            fired.append(handle)
        return fired

    def _run_callback(self, entry: _Entry, scheduled: datetime) -> None:
        handle = entry.handle
        try:
            logger.debug("job_firing", job=handle.name, scheduled=scheduled.isoformat())
            entry.callback()
        except Exception:
            logger.exception("job_failed", job=handle.name, scheduled=scheduled.isoformat())
        finally:
            with self._lock:
                self._in_flight -= 1
                if self._in_flight == 0:
                    self._idle.notify_all()

    def _loop(self) -> None:
        with self._lock:
            while not self._stopping:
                now = self._clock()
                try:
                    self._fire_due(now)
                except Exception:
                    logger.exception("schedule_tick_failed")
                self._wake.wait(timeout=self._seconds_until_next(now))

    def _seconds_until_next(self, now: datetime) -> float:
        if not self._entries:
            return self._max_sleep
        earliest = min(entry.handle.next_fire for entry in self._entries)
        delay = (earliest - now).total_seconds()
        return min(max(delay, 0.0), self._max_sleep)

    # === Introspection ===

    @property
    def is_running(self) -> bool:
        return self._running and self._thread is not None and self._thread.is_alive()

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def health(self) -> dict[str, Any]:
        """Return registry health status."""
        with self._lock:
            next_fire = min((e.handle.next_fire for e in self._entries), default=None)
            return {
                "healthy": self.is_running,
                "jobs": len(self._entries),
                "in_flight": self._in_flight,
                "fire_count": self._fire_count,
                "last_fire": self._last_fire.isoformat() if self._last_fire else None,
                "next_fire": next_fire.isoformat() if next_fire else None,
            }


__all__ = [
    "JobCallback",
    "JobHandle",
    "ScheduleRegistry",
    "local_now",
    "next_fire_time",
    "validate_expression",
]
