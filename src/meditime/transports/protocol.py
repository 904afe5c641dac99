"""
Delivery transport protocol and notification payload.

A transport takes a device token and a notification and either accepts
it (returning a receipt) or raises :class:`~meditime.core.errors.DeliveryError`.
Retrying an accepted emergency notification until it is acknowledged is the
push service's job, bounded by ``retry`` and ``expire``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from enum import IntEnum
from typing import Any, Protocol, runtime_checkable


class Priority(IntEnum):
    """Push priority levels (Pushover scale)."""

    LOWEST = -2
    LOW = -1
    NORMAL = 0
    HIGH = 1
    EMERGENCY = 2  # repeats until acknowledged

    @property
    def requires_acknowledgement(self) -> bool:
        return self is Priority.EMERGENCY


@dataclass(frozen=True)
class Notification:
    """A single push notification to deliver to one device token."""

    message: str
    priority: Priority = Priority.NORMAL
    retry: timedelta = timedelta(minutes=5)
    expire: timedelta = timedelta(hours=24)
    title: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "message": self.message,
            "priority": int(self.priority),
            "retry": int(self.retry.total_seconds()),
            "expire": int(self.expire.total_seconds()),
        }
        if self.title:
            result["title"] = self.title
        return result


@runtime_checkable
class DeliveryTransport(Protocol):
    """
    Protocol for push delivery transports.

    Implementations must provide:
    - name: transport identifier used in logs
    - send(): deliver one notification, return a receipt, raise DeliveryError on failure
    """

    @property
    def name(self) -> str:
        ...

    def send(self, device_token: str, notification: Notification) -> str:
        ...


__all__ = ["Priority", "Notification", "DeliveryTransport"]
