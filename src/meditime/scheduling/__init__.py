"""
Scheduling and dispatch engine.

- :class:`ScheduleRegistry`: cron jobs fired from one background thread,
  each firing on its own thread
- :class:`Dispatcher` / :class:`Job`: resolve device labels and deliver
- :class:`LifecycleController`: build jobs from the store, run until
  cancelled, drain

Quick start::

    from meditime.core.store import RecordStore
    from meditime.scheduling import Cancellation, LifecycleController
    from meditime.transports import ConsoleTransport

    with RecordStore.open("meditime.db") as store:
        cancellation = Cancellation()
        LifecycleController(store, ConsoleTransport()).run(cancellation)
"""

from meditime.scheduling.dispatch import Dispatcher, FiringReport, Job, reminder_message
from meditime.scheduling.lifecycle import Cancellation, LifecycleController
from meditime.scheduling.registry import (
    JobHandle,
    ScheduleRegistry,
    next_fire_time,
    validate_expression,
)

__all__ = [
    "Cancellation",
    "Dispatcher",
    "FiringReport",
    "Job",
    "JobHandle",
    "LifecycleController",
    "ScheduleRegistry",
    "next_fire_time",
    "reminder_message",
    "validate_expression",
]
