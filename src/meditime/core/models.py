"""
Persisted records: users and their medications.

Both records serialize to JSON objects; the store keys them so that a
single prefix scan returns all medications of one user.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from .errors import RecordValidationError

DEFAULT_DEVICE_LABEL = "default"

USER_PREFIX = b"user:"
MEDICATION_PREFIX = b"medication:"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def user_key(name: str) -> bytes:
    return USER_PREFIX + name.encode("utf-8")


def medication_prefix(user_id: UUID) -> bytes:
    return MEDICATION_PREFIX + user_id.bytes


def medication_key(user_id: UUID, medication_id: UUID) -> bytes:
    return medication_prefix(user_id) + medication_id.bytes


@dataclass
class User:
    """A person receiving reminders, identified by a unique name."""

    id: UUID
    name: str
    device_tokens: dict[str, str] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if not self.name:
            raise RecordValidationError("user name must not be empty")

    @classmethod
    def create(cls, name: str, device_token: str, label: str = DEFAULT_DEVICE_LABEL) -> User:
        if not device_token:
            raise RecordValidationError("no device token provided").with_context(user_name=name)
        return cls(id=uuid4(), name=name, device_tokens={label: device_token})

    @property
    def key(self) -> bytes:
        return user_key(self.name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "device_tokens": dict(self.device_tokens),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> User:
        return cls(
            id=UUID(data["id"]),
            name=data["name"],
            device_tokens=dict(data.get("device_tokens") or {}),
            created_at=datetime.fromisoformat(data["created_at"]),
        )

    def to_json(self) -> bytes:
        return json.dumps(self.to_dict()).encode("utf-8")

    @classmethod
    def from_json(cls, raw: bytes) -> User:
        return cls.from_dict(json.loads(raw))


@dataclass
class Medication:
    """
    A medication a user takes on a recurring cron schedule.

    ``interval_devices`` names labels in the owner's ``device_tokens``.
    They are checked by :meth:`create` only; labels can dangle later.
    """

    user_id: UUID
    id: UUID
    name: str
    interval_crontab: str
    interval_quantity: int
    interval_devices: list[str]
    created_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if not self.name:
            raise RecordValidationError("medication name must not be empty")
        if not self.interval_crontab:
            raise RecordValidationError("medication cron schedule must not be empty")
        if isinstance(self.interval_quantity, bool) or self.interval_quantity <= 0:
            raise RecordValidationError(
                f"interval quantity must be a positive integer, got {self.interval_quantity!r}"
            )
        if not self.interval_devices:
            raise RecordValidationError("medication needs at least one device label")

    @classmethod
    def create(
        cls,
        user: User,
        name: str,
        crontab: str,
        quantity: int,
        devices: list[str],
    ) -> Medication:
        for label in devices:
            if label not in user.device_tokens:
                raise RecordValidationError(
                    f"the '{label}' device token name doesn't exist for user {user.name}"
                ).with_context(user_id=str(user.id), device_label=label)
        return cls(
            user_id=user.id,
            id=uuid4(),
            name=name,
            interval_crontab=crontab,
            interval_quantity=quantity,
            interval_devices=list(devices),
        )

    @property
    def key(self) -> bytes:
        return medication_key(self.user_id, self.id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": str(self.user_id),
            "id": str(self.id),
            "name": self.name,
            "interval_crontab": self.interval_crontab,
            "interval_quantity": self.interval_quantity,
            "interval_devices": list(self.interval_devices),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Medication:
        return cls(
            user_id=UUID(data["user_id"]),
            id=UUID(data["id"]),
            name=data["name"],
            interval_crontab=data["interval_crontab"],
            interval_quantity=int(data["interval_quantity"]),
            interval_devices=list(data["interval_devices"]),
            created_at=datetime.fromisoformat(data["created_at"]),
        )

    def to_json(self) -> bytes:
        return json.dumps(self.to_dict()).encode("utf-8")

    @classmethod
    def from_json(cls, raw: bytes) -> Medication:
        return cls.from_dict(json.loads(raw))


__all__ = [
    "DEFAULT_DEVICE_LABEL",
    "User",
    "Medication",
    "user_key",
    "medication_key",
    "medication_prefix",
]
