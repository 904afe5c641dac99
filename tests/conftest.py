"""
Shared pytest fixtures for meditime tests.

This module provides:
- Environment isolation (no stray MEDITIME_* / .env settings)
- A record store on a temporary file
- A controllable clock for deterministic scheduling
- A recording delivery transport that can fail or block on demand
"""

from __future__ import annotations

import sys
import threading
from datetime import UTC, datetime, timedelta
from pathlib import Path
from uuid import uuid4

import pytest

# Ensure meditime package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from meditime.core.errors import DeliveryError
from meditime.core.models import Medication, User
from meditime.core.store import RecordStore
from meditime.transports.protocol import Notification

_ENV_VARS = (
    "MEDITIME_STORE_PATH",
    "BADGER_PATH",
    "MEDITIME_PUSHOVER_API_TOKEN",
    "PUSHOVER_API_TOKEN",
    "MEDITIME_LOG_LEVEL",
    "MEDITIME_LOG_FORMAT",
    "MEDITIME_DRAIN_TIMEOUT_SECONDS",
)


# =============================================================================
# Environment
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Run every test in an empty directory with no meditime env vars set."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


# =============================================================================
# Store
# =============================================================================


@pytest.fixture
def store_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "records.db"


@pytest.fixture
def records(store_path: Path):
    """RecordStore on a temporary file, without background compaction."""
    store = RecordStore.open(store_path, compaction_interval=None)
    yield store
    store.close()


@pytest.fixture
def alice() -> User:
    return User.create("alice", "tok1")


@pytest.fixture
def make_medication():
    """Factory for medications that skips the creation-time label check."""

    def _make(
        user: User,
        name: str = "Aspirin",
        crontab: str = "0 8 * * *",
        quantity: int = 2,
        devices: list[str] | None = None,
    ) -> Medication:
        return Medication(
            user_id=user.id,
            id=uuid4(),
            name=name,
            interval_crontab=crontab,
            interval_quantity=quantity,
            interval_devices=devices or ["default"],
        )

    return _make


# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Wall clock the test moves by hand."""

    def __init__(self, start: datetime) -> None:
        self._now = start
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            return self._now

    def set(self, when: datetime) -> datetime:
        with self._lock:
            self._now = when
            return when

    def advance(self, **kwargs: float) -> datetime:
        with self._lock:
            self._now += timedelta(**kwargs)
            return self._now


@pytest.fixture
def clock() -> FakeClock:
    """Clock starting at 2026-10-17 07:59:00 UTC."""
    return FakeClock(datetime(2026, 10, 17, 7, 59, tzinfo=UTC))


# =============================================================================
# Transport
# =============================================================================


class RecordingTransport:
    """In-memory transport.

    Tokens in ``fail_tokens`` raise DeliveryError. When ``release`` is given,
    every send blocks until it is set; ``started`` is set when a send begins.
    """

    name = "recording"

    def __init__(self, fail_tokens=(), release: threading.Event | None = None) -> None:
        self.fail_tokens = set(fail_tokens)
        self.release = release
        self.started = threading.Event()
        self.sent: list[tuple[str, Notification]] = []
        self.attempts: list[str] = []
        self._lock = threading.Lock()

    def send(self, device_token: str, notification: Notification) -> str:
        with self._lock:
            self.attempts.append(device_token)
        self.started.set()
        if self.release is not None:
            self.release.wait(timeout=10)
        if device_token in self.fail_tokens:
            raise DeliveryError(f"device {device_token} rejected")
        with self._lock:
            self.sent.append((device_token, notification))
        return f"receipt-{device_token}"


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def recording_transport():
    """Factory for RecordingTransport with custom failure/blocking behaviour."""
    return RecordingTransport
