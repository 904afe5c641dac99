"""
CLI utility helpers - output formatting, settings and store access.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from meditime.core.errors import MeditimeError, UserNotFoundError
from meditime.core.models import User
from meditime.core.settings import MeditimeSettings, load_settings
from meditime.core.store import RecordStore

console = Console()
err_console = Console(stderr=True)


# ── Settings / store helpers ─────────────────────────────────────────────


def get_settings(store_path: Path | None = None) -> MeditimeSettings:
    """Load settings, letting ``--store`` override the environment."""
    if store_path is not None:
        return load_settings(store_path=store_path)
    return load_settings()


@contextmanager
def handle_errors() -> Iterator[None]:
    """Turn meditime errors into ``Error: ...`` on stderr and exit code 1."""
    try:
        yield
    except MeditimeError as exc:
        err_console.print(f"[bold red]Error:[/bold red] {escape(exc.message)}", highlight=False, soft_wrap=True)
        raise typer.Exit(code=1) from exc


@contextmanager
def open_store(store_path: Path | None = None) -> Iterator[RecordStore]:
    """Open the record store named by settings; closed on exit."""
    settings = get_settings(store_path)
    store = RecordStore.open(
        settings.require_store_path(),
        compaction_interval=settings.compaction_interval_seconds,
    )
    try:
        yield store
    finally:
        store.close()


def require_user(store: RecordStore, username: str) -> User:
    user = store.get_user(username)
    if user is None:
        raise UserNotFoundError(username)
    return user


# ── Output helpers ───────────────────────────────────────────────────────


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def print_record(data: dict[str, Any], *, title: str = "") -> None:
    """Render one record as a two-column table."""
    table = Table(title=title or None, show_header=False)
    table.add_column("Field", style="bold cyan")
    table.add_column("Value")
    for key, value in data.items():
        if isinstance(value, (dict, list)):
            value = json.dumps(value)
        table.add_row(str(key), str(value))
    console.print(table)


def print_table(rows: list[dict[str, Any]], *, title: str = "") -> None:
    """Render a list of records as a table."""
    if not rows:
        console.print("[dim]No items.[/dim]")
        return

    table = Table(title=title or None)
    columns = list(rows[0].keys())
    for col in columns:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(
            *(json.dumps(row.get(c)) if isinstance(row.get(c), (dict, list)) else str(row.get(c, ""))
              for c in columns)
        )
    console.print(table)
