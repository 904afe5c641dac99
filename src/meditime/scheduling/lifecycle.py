"""Lifecycle controller - load records, run the scheduler, shut down cleanly.

::

    run(cancellation)
      1. store.list_users()                       StoreError ──► raise
      2. store.list_medications_for_user(id)      StoreError ──► raise
      3. dispatcher.schedule(registry, job)       ScheduleConfigError ──► raise
      4. registry.start()
      5. cancellation.wait()
      6. registry.stop()   (drain in-flight firings)
      7. return cancellation.reason
"""

from __future__ import annotations

import threading

from meditime.core.errors import ScheduleConfigError
from meditime.core.logging import get_logger
from meditime.core.store import RecordStore
from meditime.scheduling.dispatch import Dispatcher, Job
from meditime.scheduling.registry import ScheduleRegistry
from meditime.transports.protocol import DeliveryTransport

logger = get_logger(__name__)


class Cancellation:
    """Thread-safe, one-shot cancellation token carrying a reason."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: str | None = None
        self._lock = threading.Lock()

    def cancel(self, reason: str = "cancelled") -> None:
        """Trigger the token. Only the first reason is kept."""
        with self._lock:
            if self._reason is None:
                self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)


class LifecycleController:
    """Builds jobs from the record store and runs them until cancelled."""

    def __init__(
        self,
        store: RecordStore,
        transport: DeliveryTransport,
        *,
        registry: ScheduleRegistry | None = None,
        drain_timeout: float | None = None,
    ) -> None:
        self.store = store
        self.dispatcher = Dispatcher(transport)
        self.registry = registry or ScheduleRegistry()
        self.drain_timeout = drain_timeout

    def build_jobs(self) -> list[Job]:
        """One job per stored medication, each with its owner's token snapshot."""
        jobs = []
        for user in self.store.list_users():
            for medication in self.store.list_medications_for_user(user.id):
                jobs.append(Job.from_records(user, medication))
        return jobs

    def register(self, jobs: list[Job]) -> None:
        for job in jobs:
            try:
                self.dispatcher.schedule(self.registry, job)
            except ScheduleConfigError as exc:
                raise ScheduleConfigError(
                    job.expression,
                    f"failed to add medication ID {job.medication.id} to cron: {exc.message}",
                    cause=exc,
                ).with_context(user_id=str(job.user_id), medication_id=str(job.medication.id)) from exc

    def run(self, cancellation: Cancellation) -> str:
        """Schedule every medication and block until ``cancellation`` fires.

        Returns:
            The cancellation reason.

        Raises:
            StoreError: records could not be loaded
            ScheduleConfigError: a medication has an invalid cron expression
        """
        jobs = self.build_jobs()
        self.register(jobs)

        self.registry.start()
        logger.info("scheduler_running", jobs=len(jobs), transport=self.dispatcher.transport.name)

        try:
            # Short waits keep the main thread responsive to signal handlers.
            while not cancellation.wait(timeout=1.0):
                pass
        finally:
            drained = self.registry.stop(timeout=self.drain_timeout)

        reason = cancellation.reason or "cancelled"
        logger.info("scheduler_shutdown", reason=reason, drained=drained)
        return reason


__all__ = ["Cancellation", "LifecycleController"]
