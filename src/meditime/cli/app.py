"""
Root Typer application for the meditime CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from meditime import __version__

app = Typer(
    name="meditime",
    help="meditime - medication reminders over push notifications.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"meditime {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """meditime CLI - manage users and medications, run the scheduler."""


# ── Sub-command registration ─────────────────────────────────────────────

from meditime.cli.medication import app as medication_app  # noqa: E402
from meditime.cli.run import run  # noqa: E402
from meditime.cli.user import app as user_app  # noqa: E402

app.command("run")(run)
app.add_typer(user_app, name="user", help="User and device token management.")
app.add_typer(medication_app, name="medication", help="Medication schedule management.")
