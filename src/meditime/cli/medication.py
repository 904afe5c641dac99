"""
CLI: ``meditime medication`` - medication schedules per user.
"""

from __future__ import annotations

from pathlib import Path
from uuid import UUID

import typer

from meditime.cli.utils import console, handle_errors, open_store, print_json, print_record, print_table, require_user
from meditime.core.errors import RecordValidationError, StoreError
from meditime.core.models import DEFAULT_DEVICE_LABEL, Medication
from meditime.scheduling.registry import validate_expression

app = typer.Typer(no_args_is_help=True)

_STORE_OPTION = typer.Option(None, "--store", "-s", help="Record store path (overrides MEDITIME_STORE_PATH)")


@app.command("add")
def add_medication(
    username: str = typer.Option(..., "--username", "-u", prompt="username"),
    name: str = typer.Option(..., "--name", "-n", prompt="name"),
    cron: str = typer.Option(..., "--cron", "-c", prompt="cron schedule"),
    quantity: int = typer.Option(..., "--quantity", "-q", prompt="interval quantity"),
    devices: list[str] | None = typer.Option(
        None, "--device", "-D", help="Device label to notify (repeatable)"
    ),
    store: Path | None = _STORE_OPTION,
) -> None:
    """Add a medication schedule for a user."""
    if not devices:
        devices = [typer.prompt("interval device token name", default=DEFAULT_DEVICE_LABEL)]

    with handle_errors(), open_store(store) as records:
        user = require_user(records, username.strip())
        validate_expression(cron)
        medication = Medication.create(
            user,
            name.strip(),
            cron.strip(),
            quantity,
            [d.strip() for d in devices],
        )
        records.add_medication(medication)

    print_record(medication.to_dict(), title=f"Medication: {medication.name}")


@app.command("remove")
def remove_medication(
    username: str = typer.Option(..., "--username", "-u", prompt="username"),
    medication_id: str = typer.Option(..., "--id", prompt="medication id"),
    store: Path | None = _STORE_OPTION,
) -> None:
    """Remove a medication schedule."""
    with handle_errors(), open_store(store) as records:
        user = require_user(records, username.strip())
        try:
            parsed = UUID(medication_id.strip())
        except ValueError as exc:
            raise RecordValidationError(f"invalid medication id {medication_id!r}", cause=exc) from exc

        if not records.remove_medication(user.id, parsed):
            raise StoreError(f"medication {parsed} doesn't exist for user {user.name}")

    console.print(f"removed medication {parsed}")


@app.command("list")
def list_medications(
    username: str = typer.Option(..., "--username", "-u", prompt="username"),
    json_out: bool = typer.Option(False, "--json"),
    store: Path | None = _STORE_OPTION,
) -> None:
    """List a user's medication schedules."""
    with handle_errors(), open_store(store) as records:
        user = require_user(records, username.strip())
        medications = records.list_medications_for_user(user.id)

    rows = [m.to_dict() for m in medications]
    if json_out:
        print_json(rows)
    else:
        print_table(rows, title=f"Medications: {user.name}")
