"""
Push delivery transports.

- :class:`PushoverTransport`: sends through the Pushover messages API
- :class:`ConsoleTransport`: logs instead of sending (``meditime run --dry-run``)
"""

from meditime.transports.console import ConsoleTransport
from meditime.transports.protocol import DeliveryTransport, Notification, Priority
from meditime.transports.pushover import PushoverTransport

__all__ = [
    "ConsoleTransport",
    "DeliveryTransport",
    "Notification",
    "Priority",
    "PushoverTransport",
]
