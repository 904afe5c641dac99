"""Pushover API transport."""

from __future__ import annotations

import json
import urllib.error
import urllib.parse
import urllib.request
from datetime import timedelta
from typing import Any

from meditime.core.errors import DeliveryError
from meditime.core.logging import get_logger
from meditime.core.settings import PUSHOVER_MESSAGES_URL
from meditime.transports.protocol import Notification, Priority

logger = get_logger(__name__)

# Limits the Pushover API enforces for emergency-priority messages.
MIN_EMERGENCY_RETRY = timedelta(seconds=30)
MAX_EMERGENCY_EXPIRE = timedelta(hours=3)


class PushoverTransport:
    """
    Pushover message transport.

    POSTs one message per call to the messages endpoint. The device token is
    sent as the Pushover ``user`` key, so it may be a user key or a group key.
    """

    def __init__(
        self,
        api_token: str,
        *,
        api_url: str = PUSHOVER_MESSAGES_URL,
        timeout: float = 10.0,
    ) -> None:
        self._api_token = api_token
        self._api_url = api_url
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "pushover"

    def build_form(self, device_token: str, notification: Notification) -> dict[str, str]:
        """Build the form fields for one message."""
        form = {
            "token": self._api_token,
            "user": device_token,
            "message": notification.message,
            "priority": str(int(notification.priority)),
        }
        if notification.title:
            form["title"] = notification.title

        if notification.priority is Priority.EMERGENCY:
            retry = max(notification.retry, MIN_EMERGENCY_RETRY)
            expire = min(notification.expire, MAX_EMERGENCY_EXPIRE)
            if retry != notification.retry or expire != notification.expire:
                logger.debug(
                    "pushover_emergency_window_clamped",
                    retry_seconds=int(retry.total_seconds()),
                    expire_seconds=int(expire.total_seconds()),
                )
            form["retry"] = str(int(retry.total_seconds()))
            form["expire"] = str(int(expire.total_seconds()))
        return form

    def send(self, device_token: str, notification: Notification) -> str:
        """Send a message; return the request id (or receipt for emergency messages)."""
        data = urllib.parse.urlencode(self.build_form(device_token, notification)).encode("utf-8")
        req = urllib.request.Request(
            self._api_url,
            data=data,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            method="POST",
        )

        try:
            with urllib.request.urlopen(req, timeout=self._timeout) as response:
                body = self._parse_body(response.read())
        except urllib.error.HTTPError as e:
            body = self._parse_body(e.read())
            raise DeliveryError(
                f"pushover rejected message (HTTP {e.code}): {self._describe_errors(body)}",
                retryable=e.code >= 500,
                cause=e,
            ).with_context(http_status=e.code) from e
        except (urllib.error.URLError, OSError) as e:
            raise DeliveryError(
                f"failed to reach pushover: {e}", retryable=True, cause=e
            ) from e

        if body.get("status") != 1:
            raise DeliveryError(f"pushover rejected message: {self._describe_errors(body)}")

        return str(body.get("receipt") or body.get("request") or "")

    @staticmethod
    def _parse_body(raw: bytes) -> dict[str, Any]:
        try:
            body = json.loads(raw or b"{}")
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    @staticmethod
    def _describe_errors(body: dict[str, Any]) -> str:
        errors = body.get("errors")
        if isinstance(errors, list) and errors:
            return "; ".join(str(e) for e in errors)
        return "unknown error"

    def __repr__(self) -> str:
        return f"PushoverTransport(api_url={self._api_url!r})"
