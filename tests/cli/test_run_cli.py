"""Tests for ``meditime run``."""

from __future__ import annotations

import os
import signal
import threading
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from meditime.cli.app import app
from meditime.cli.run import cancel_on_signals
from meditime.scheduling.lifecycle import Cancellation
from meditime.transports import ConsoleTransport, PushoverTransport

runner = CliRunner()


@pytest.fixture
def controller():
    """Patch LifecycleController; the mock's run() returns immediately."""
    with patch("meditime.cli.run.LifecycleController") as mock_cls, patch("meditime.cli.run.configure_logging"):
        mock_cls.return_value.run.return_value = "interrupt"
        yield mock_cls


class TestRunCommand:
    def test_dry_run_uses_console_transport(self, store_path, controller):
        result = runner.invoke(app, ["run", "--dry-run", "--store", str(store_path)])

        assert result.exit_code == 0, result.output
        assert "Scheduler stopped (interrupt)" in result.output
        _, transport = controller.call_args.args
        assert isinstance(transport, ConsoleTransport)
        controller.return_value.run.assert_called_once()
        assert isinstance(controller.return_value.run.call_args.args[0], Cancellation)

    def test_pushover_transport_from_env(self, store_path, controller, monkeypatch):
        monkeypatch.setenv("PUSHOVER_API_TOKEN", "app-token")
        monkeypatch.setenv("MEDITIME_DRAIN_TIMEOUT_SECONDS", "5")

        result = runner.invoke(app, ["run", "--store", str(store_path)])

        assert result.exit_code == 0, result.output
        _, transport = controller.call_args.args
        assert isinstance(transport, PushoverTransport)
        assert controller.call_args.kwargs["drain_timeout"] == 5

    def test_missing_pushover_token(self, store_path, controller):
        result = runner.invoke(app, ["run", "--store", str(store_path)])

        assert result.exit_code == 1
        assert "unable to get pushover API token" in result.output
        controller.assert_not_called()

    def test_missing_store_path(self, controller):
        result = runner.invoke(app, ["run", "--dry-run"])

        assert result.exit_code == 1
        assert "unable to get store path" in result.output

    def test_startup_failure_exits_nonzero(self, store_path, records, alice, make_medication):
        """A stored medication with a bad schedule stops the run before it starts."""
        records.add_user(alice)
        medication = make_medication(alice, crontab="every morning")
        records.add_medication(medication)

        with patch("meditime.cli.run.configure_logging"):
            result = runner.invoke(app, ["run", "--dry-run", "--store", str(store_path)])

        assert result.exit_code == 1
        assert f"failed to add medication ID {medication.id} to cron" in result.output


class TestCancelOnSignals:
    def test_sigterm_cancels(self):
        cancellation = Cancellation()

        with cancel_on_signals(cancellation):
            os.kill(os.getpid(), signal.SIGTERM)
            assert cancellation.wait(timeout=2)

        assert cancellation.reason == "terminated"

    def test_handlers_restored(self):
        before = signal.getsignal(signal.SIGINT)

        with cancel_on_signals(Cancellation()):
            assert signal.getsignal(signal.SIGINT) is not before

        assert signal.getsignal(signal.SIGINT) is before

    def test_outside_main_thread_is_noop(self):
        errors = []

        def target():
            try:
                with cancel_on_signals(Cancellation()):
                    pass
            except Exception as exc:  # pragma: no cover
                errors.append(exc)

        thread = threading.Thread(target=target)
        thread.start()
        thread.join(timeout=2)

        assert errors == []


def test_version():
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert "meditime 0.1.0" in result.output


def test_help_lists_commands():
    result = runner.invoke(app, ["--help"])

    assert result.exit_code == 0
    for command in ("run", "user", "medication"):
        assert command in result.output

