"""Dispatch engine - turns one job firing into push notifications.

Manifesto:
    A firing belongs to one medication and fans out to every device label
    the medication names. Each label is resolved and delivered on its own:
    a missing label or a failed push is logged and the next label is
    tried. Nothing raised here ever reaches the scheduler.

Per firing of ``Job(medication m, user u)``::

    for label in m.interval_devices:          (declared order)
        token = u.device_tokens[label]  ──► missing: ResolutionError, continue
        transport.send(token, notification) ► fails:  DeliveryError,   continue

Tags:
    meditime, scheduling, dispatch, notifications
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from types import MappingProxyType
from uuid import UUID

from meditime.core.errors import DeliveryError, ErrorCategory, ResolutionError, categorize_error
from meditime.core.logging import LogContext, get_logger
from meditime.core.models import Medication, User
from meditime.scheduling.registry import JobHandle, ScheduleRegistry
from meditime.transports.protocol import DeliveryTransport, Notification, Priority

logger = get_logger(__name__)

RETRY_INTERVAL = timedelta(minutes=5)
EXPIRY = timedelta(hours=24)


def reminder_message(quantity: int, name: str) -> str:
    return f"take {quantity} dose(s) of {name}"


@dataclass(frozen=True)
class Job:
    """
    One medication bound to a snapshot of its owner's device tokens.

    The snapshot is copied when the job is built; later edits to the user
    are not seen until the process restarts.
    """

    user_id: UUID
    user_name: str
    medication: Medication
    device_tokens: Mapping[str, str]

    @classmethod
    def from_records(cls, user: User, medication: Medication) -> Job:
        return cls(
            user_id=user.id,
            user_name=user.name,
            medication=medication,
            device_tokens=MappingProxyType(dict(user.device_tokens)),
        )

    @property
    def name(self) -> str:
        return f"{self.user_name}/{self.medication.name}"

    @property
    def expression(self) -> str:
        return self.medication.interval_crontab

    def notification(self) -> Notification:
        return Notification(
            message=reminder_message(self.medication.interval_quantity, self.medication.name),
            priority=Priority.EMERGENCY,
            retry=RETRY_INTERVAL,
            expire=EXPIRY,
        )


@dataclass
class FiringReport:
    """Outcome of one firing."""

    job: str
    started_at: datetime
    finished_at: datetime | None = None
    delivered: dict[str, str] = field(default_factory=dict)  # label -> receipt
    resolution_errors: list[ResolutionError] = field(default_factory=list)
    delivery_errors: list[DeliveryError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.resolution_errors and not self.delivery_errors

    def to_dict(self) -> dict:
        return {
            "job": self.job,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "delivered": sorted(self.delivered),
            "resolution_errors": [e.to_dict() for e in self.resolution_errors],
            "delivery_errors": [e.to_dict() for e in self.delivery_errors],
        }


class Dispatcher:
    """Resolves device labels and hands notifications to a transport."""

    def __init__(self, transport: DeliveryTransport) -> None:
        self.transport = transport

    def fire(self, job: Job) -> FiringReport:
        """Deliver one reminder per device label of ``job``. Never raises."""
        medication = job.medication
        report = FiringReport(job=job.name, started_at=datetime.now(UTC))
        notification = job.notification()

        with LogContext(job=job.name, user_id=str(job.user_id), medication_id=str(medication.id)):
            for label in medication.interval_devices:
                token = job.device_tokens.get(label)
                if token is None:
                    error = ResolutionError(
                        f"invalid device name {label} for id medication {medication.id} "
                        f"for id user {job.user_id}"
                    ).with_context(
                        user_id=str(job.user_id),
                        medication_id=str(medication.id),
                        device_label=label,
                    )
                    report.resolution_errors.append(error)
                    logger.error("device_label_unresolved", device_label=label, error=error.to_dict())
                    continue

                try:
                    receipt = self.transport.send(token, notification)
                except DeliveryError as exc:
                    error = exc
                except Exception as exc:
                    error = DeliveryError(
                        f"{self.transport.name} transport failed: {exc}",
                        retryable=categorize_error(exc) is ErrorCategory.DELIVERY,
                        cause=exc,
                    )
                else:
                    report.delivered[label] = receipt
                    logger.info("notification_sent", device_label=label, transport=self.transport.name)
                    continue

                error.with_context(user_id=str(job.user_id), device_label=label)
                report.delivery_errors.append(error)
                logger.error(
                    "notification_failed",
                    device_label=label,
                    transport=self.transport.name,
                    error=error.to_dict(),
                )

        report.finished_at = datetime.now(UTC)
        logger.info("firing_completed", ok=report.ok, **report.to_dict())
        return report

    def schedule(self, registry: ScheduleRegistry, job: Job) -> JobHandle:
        """Register ``job`` with ``registry``; its callback is :meth:`fire`.

        Raises:
            ScheduleConfigError: the medication's cron expression is invalid
        """
        return registry.add_job(job.expression, lambda: self.fire(job), name=job.name)


__all__ = [
    "Dispatcher",
    "FiringReport",
    "Job",
    "reminder_message",
    "RETRY_INTERVAL",
    "EXPIRY",
]
