"""Console transport - logs notifications instead of sending them."""

from __future__ import annotations

import threading
import uuid

from meditime.core.logging import get_logger
from meditime.transports.protocol import Notification

logger = get_logger(__name__)


class ConsoleTransport:
    """
    Dry-run transport.

    Logs every notification and keeps a copy in ``sent`` for inspection.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.sent: list[tuple[str, Notification]] = []

    @property
    def name(self) -> str:
        return "console"

    def send(self, device_token: str, notification: Notification) -> str:
        receipt = uuid.uuid4().hex
        with self._lock:
            self.sent.append((device_token, notification))
        logger.info(
            "notification_logged",
            device_token=device_token,
            receipt=receipt,
            **notification.to_dict(),
        )
        return receipt
