"""End-to-end tests for LifecycleController.

The controller runs in a background thread against a registry on a fake
clock; tests drive firings with ``registry.tick()``.
"""

import threading
import time
from datetime import UTC, datetime

import pytest

from meditime.core.errors import ScheduleConfigError, StoreError
from meditime.core.models import User
from meditime.scheduling.lifecycle import Cancellation, LifecycleController
from meditime.scheduling.registry import ScheduleRegistry

EIGHT_AM = datetime(2026, 10, 17, 8, 0, tzinfo=UTC)


class ControllerThread:
    """Runs ``controller.run`` in a thread and keeps the outcome."""

    def __init__(self, controller: LifecycleController, cancellation: Cancellation) -> None:
        self.result: str | None = None
        self.error: BaseException | None = None
        self._thread = threading.Thread(target=self._target, args=(controller, cancellation), daemon=True)

    def _target(self, controller, cancellation):
        try:
            self.result = controller.run(cancellation)
        except BaseException as exc:
            self.error = exc

    def start(self, registry: ScheduleRegistry) -> "ControllerThread":
        self._thread.start()
        deadline = time.monotonic() + 2
        while not registry.is_running:
            assert time.monotonic() < deadline, "scheduler did not start"
            time.sleep(0.01)
        return self

    def join(self, timeout: float) -> bool:
        self._thread.join(timeout)
        return not self._thread.is_alive()


@pytest.fixture
def registry(clock) -> ScheduleRegistry:
    return ScheduleRegistry(clock=clock)


class TestCancellation:
    def test_first_reason_wins(self):
        cancellation = Cancellation()
        assert not cancellation.cancelled
        assert cancellation.reason is None

        cancellation.cancel("interrupt")
        cancellation.cancel("terminated")

        assert cancellation.cancelled
        assert cancellation.reason == "interrupt"
        assert cancellation.wait(timeout=0)


class TestBuildJobs:
    def test_one_job_per_medication(self, records, alice, make_medication, transport):
        bob = User.create("bob", "tok-bob")
        records.add_user(alice)
        records.add_user(bob)
        records.add_medication(make_medication(alice, name="Aspirin"))
        records.add_medication(make_medication(alice, name="Vitamin D"))
        records.add_medication(make_medication(bob, name="Metformin"))

        jobs = LifecycleController(records, transport).build_jobs()

        assert sorted(job.name for job in jobs) == ["alice/Aspirin", "alice/Vitamin D", "bob/Metformin"]
        bob_job = next(job for job in jobs if job.user_name == "bob")
        assert dict(bob_job.device_tokens) == {"default": "tok-bob"}

    def test_empty_store(self, records, transport):
        assert LifecycleController(records, transport).build_jobs() == []


class TestRun:
    def test_invalid_stored_crontab_aborts_startup(self, records, alice, make_medication, transport, registry):
        records.add_user(alice)
        medication = make_medication(alice, crontab="every morning")
        records.add_medication(medication)
        controller = LifecycleController(records, transport, registry=registry)

        with pytest.raises(ScheduleConfigError) as exc_info:
            controller.run(Cancellation())

        assert str(medication.id) in exc_info.value.message
        assert exc_info.value.context.medication_id == str(medication.id)
        assert not registry.is_running

    def test_corrupt_record_aborts_startup(self, records, transport, registry):
        records.kv.put(b"user:bob", b"not json")
        controller = LifecycleController(records, transport, registry=registry)

        with pytest.raises(StoreError) as exc_info:
            controller.run(Cancellation())

        assert exc_info.value.context.key == "user:bob"
        assert not registry.is_running

    def test_returns_cancellation_reason(self, records, alice, make_medication, transport, registry):
        records.add_user(alice)
        records.add_medication(make_medication(alice))
        cancellation = Cancellation()
        runner = ControllerThread(
            LifecycleController(records, transport, registry=registry), cancellation
        ).start(registry)

        cancellation.cancel("terminated")

        assert runner.join(timeout=3)
        assert runner.error is None
        assert runner.result == "terminated"
        assert not registry.is_running

    def test_reminder_delivered_at_scheduled_instant(self, records, alice, make_medication, transport, registry):
        records.add_user(alice)
        records.add_medication(make_medication(alice))
        cancellation = Cancellation()
        runner = ControllerThread(
            LifecycleController(records, transport, registry=registry), cancellation
        ).start(registry)

        try:
            registry.tick(EIGHT_AM)
            assert registry.wait_idle(timeout=2)
        finally:
            cancellation.cancel("interrupt")
            assert runner.join(timeout=3)

        assert len(transport.sent) == 1
        token, notification = transport.sent[0]
        assert token == "tok1"
        assert notification.message == "take 2 dose(s) of Aspirin"

    def test_failure_for_one_user_does_not_affect_another(
        self, records, make_medication, recording_transport, registry
    ):
        """Two users due at the same instant; the first user's push fails."""
        user_a = User.create("anna", "tok-a")
        user_b = User.create("ben", "tok-b")
        records.add_user(user_a)
        records.add_user(user_b)
        records.add_medication(make_medication(user_a, name="Aspirin"))
        records.add_medication(make_medication(user_b, name="Ibuprofen", quantity=1))

        transport = recording_transport(fail_tokens={"tok-a"})
        cancellation = Cancellation()
        runner = ControllerThread(
            LifecycleController(records, transport, registry=registry), cancellation
        ).start(registry)

        try:
            fired = registry.tick(EIGHT_AM)
            assert len(fired) == 2
            assert registry.wait_idle(timeout=2)
        finally:
            cancellation.cancel("interrupt")
            assert runner.join(timeout=3)

        assert sorted(transport.attempts) == ["tok-a", "tok-b"]
        assert [(t, n.message) for t, n in transport.sent] == [("tok-b", "take 1 dose(s) of Ibuprofen")]
        assert runner.error is None

    def test_shutdown_waits_for_in_flight_delivery(
        self, records, alice, make_medication, recording_transport, registry
    ):
        """Cancelling mid-delivery returns only after the delivery finishes."""
        records.add_user(alice)
        records.add_medication(make_medication(alice))

        release = threading.Event()
        transport = recording_transport(release=release)
        cancellation = Cancellation()
        runner = ControllerThread(
            LifecycleController(records, transport, registry=registry), cancellation
        ).start(registry)

        registry.tick(EIGHT_AM)
        assert transport.started.wait(timeout=2)

        cancellation.cancel("interrupt")
        assert not runner.join(timeout=0.3)
        assert transport.sent == []

        release.set()
        assert runner.join(timeout=3)
        assert runner.result == "interrupt"
        assert [t for t, _ in transport.sent] == ["tok1"]

    def test_drain_timeout_bounds_shutdown(self, records, alice, make_medication, recording_transport, registry):
        records.add_user(alice)
        records.add_medication(make_medication(alice))

        release = threading.Event()
        transport = recording_transport(release=release)
        cancellation = Cancellation()
        runner = ControllerThread(
            LifecycleController(records, transport, registry=registry, drain_timeout=0.1), cancellation
        ).start(registry)

        try:
            registry.tick(EIGHT_AM)
            assert transport.started.wait(timeout=2)
            cancellation.cancel("terminated")
            assert runner.join(timeout=3)
            assert runner.result == "terminated"
        finally:
            release.set()
            registry.wait_idle(timeout=2)
