"""
CLI: ``meditime user`` - user records and their device tokens.
"""

from __future__ import annotations

from pathlib import Path

import typer

from meditime.cli.utils import console, handle_errors, open_store, print_json, print_record, print_table, require_user
from meditime.core.models import DEFAULT_DEVICE_LABEL, User

app = typer.Typer(no_args_is_help=True)

_STORE_OPTION = typer.Option(None, "--store", "-s", help="Record store path (overrides MEDITIME_STORE_PATH)")


@app.command("add")
def add_user(
    username: str = typer.Option(..., "--username", "-u", prompt="username"),
    device_token: str = typer.Option(..., "--device-token", "-t", prompt="pushover device token"),
    label: str = typer.Option(DEFAULT_DEVICE_LABEL, "--label", "-l", help="Label for the device token"),
    store: Path | None = _STORE_OPTION,
) -> None:
    """Create a user with one device token."""
    with handle_errors(), open_store(store) as records:
        user = User.create(username.strip(), device_token.strip(), label=label.strip())
        records.add_user(user)
    console.print(f"created user id {user.id}")


@app.command("get")
def get_user(
    username: str = typer.Option(..., "--username", "-u", prompt="username"),
    json_out: bool = typer.Option(False, "--json"),
    store: Path | None = _STORE_OPTION,
) -> None:
    """Show one user."""
    with handle_errors(), open_store(store) as records:
        user = require_user(records, username.strip())

    if json_out:
        print_json(user.to_dict())
    else:
        print_record(user.to_dict(), title=f"User: {user.name}")


@app.command("list")
def list_users(
    json_out: bool = typer.Option(False, "--json"),
    store: Path | None = _STORE_OPTION,
) -> None:
    """List all users."""
    with handle_errors(), open_store(store) as records:
        users = records.list_users()

    rows = [u.to_dict() for u in users]
    if json_out:
        print_json(rows)
    else:
        print_table(rows, title="Users")


@app.command("add-device")
def add_device(
    username: str = typer.Option(..., "--username", "-u", prompt="username"),
    label: str = typer.Option(..., "--label", "-l", prompt="device token name"),
    device_token: str = typer.Option(..., "--device-token", "-t", prompt="pushover device token"),
    store: Path | None = _STORE_OPTION,
) -> None:
    """Add another device token under a new label."""
    with handle_errors(), open_store(store) as records:
        user = records.add_device_token(username.strip(), label.strip(), device_token.strip())
    console.print(f"added device {label.strip()} for user {user.name}")
