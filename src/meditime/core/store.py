"""
Record store: an ordered key-value table plus a typed adapter for users
and medications.

┌──────────────────────────────────────────────────────────────────────────────┐
│  RECORD STORE                                                                 │
│                                                                               │
│   RecordStore (typed)                                                         │
│   ├── add_user / get_user / list_users / add_device_token                    │
│   └── add_medication / remove_medication / list_medications_for_user         │
│            │                                                                  │
│            ▼                                                                  │
│   KeyValueStore (SQLite file, one table)                                      │
│   ├── get / put / delete / scan_prefix                                       │
│   ├── transaction()      all-or-nothing writes                               │
│   └── compaction thread  VACUUM every compaction_interval seconds            │
│                                                                               │
│   Keys:                                                                       │
│     user:<name>                              -> User JSON                    │
│     medication:<user-id 16B><medication-id 16B> -> Medication JSON           │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any
from uuid import UUID

from .errors import (
    DuplicateDeviceError,
    DuplicateUserError,
    RecordValidationError,
    StoreError,
    UserNotFoundError,
)
from .logging import get_logger
from .models import USER_PREFIX, Medication, User, medication_key, medication_prefix, user_key

logger = get_logger(__name__)

_SCHEMA = "CREATE TABLE IF NOT EXISTS kv (key BLOB PRIMARY KEY, value BLOB NOT NULL) WITHOUT ROWID"


def _prefix_upper_bound(prefix: bytes) -> bytes | None:
    """Smallest key greater than every key starting with ``prefix``."""
    stripped = prefix.rstrip(b"\xff")
    if not stripped:
        return None
    return stripped[:-1] + bytes([stripped[-1] + 1])


class Transaction:
    """Operations bound to one open transaction."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def get(self, key: bytes) -> bytes | None:
        row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return None if row is None else bytes(row[0])

    def put(self, key: bytes, value: bytes) -> None:
        self._conn.execute(
            "INSERT INTO kv (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value),
        )

    def delete(self, key: bytes) -> bool:
        cursor = self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        return cursor.rowcount > 0

    def scan_prefix(self, prefix: bytes) -> list[tuple[bytes, bytes]]:
        upper = _prefix_upper_bound(prefix)
        if upper is None:
            rows = self._conn.execute(
                "SELECT key, value FROM kv WHERE key >= ? ORDER BY key", (prefix,)
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT key, value FROM kv WHERE key >= ? AND key < ? ORDER BY key",
                (prefix, upper),
            ).fetchall()
        return [(bytes(k), bytes(v)) for k, v in rows]


class KeyValueStore:
    """
    Ordered key-value table in a single SQLite file.

    One connection is shared across threads behind a lock. A daemon thread
    compacts the file periodically until :meth:`close`.

    Example:
        >>> with KeyValueStore(":memory:") as kv:
        ...     kv.put(b"user:alice", b"{}")
        ...     kv.scan_prefix(b"user:")
        [(b'user:alice', b'{}')]
    """

    def __init__(self, path: str | Path, *, compaction_interval: float | None = 3600.0) -> None:
        self._path = str(path)
        self._lock = threading.RLock()
        self._stop = threading.Event()
        self._closed = False
        self._compactor: threading.Thread | None = None

        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self._path, check_same_thread=False, isolation_level=None)
            self._conn.execute(_SCHEMA)
        except (OSError, sqlite3.Error) as exc:
            raise StoreError(f"failed to open store at path {self._path}: {exc}", cause=exc) from exc

        if compaction_interval:
            self._compactor = threading.Thread(
                target=self._compaction_loop,
                args=(compaction_interval,),
                daemon=True,
                name="meditime-store-compaction",
            )
            self._compactor.start()

    @property
    def path(self) -> str:
        return self._path

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """Run the block in one transaction; roll back if it raises."""
        with self._lock:
            if self._closed:
                raise StoreError(f"store at path {self._path} is closed")
            try:
                self._conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                raise StoreError(f"failed to begin transaction: {exc}", cause=exc) from exc
            try:
                yield Transaction(self._conn)
            except sqlite3.Error as exc:
                self._conn.execute("ROLLBACK")
                raise StoreError(f"store operation failed: {exc}", cause=exc) from exc
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            try:
                self._conn.execute("COMMIT")
            except sqlite3.Error as exc:
                raise StoreError(f"failed to commit transaction: {exc}", cause=exc) from exc

    def get(self, key: bytes) -> bytes | None:
        with self.transaction() as tx:
            return tx.get(key)

    def put(self, key: bytes, value: bytes) -> None:
        with self.transaction() as tx:
            tx.put(key, value)

    def delete(self, key: bytes) -> bool:
        with self.transaction() as tx:
            return tx.delete(key)

    def scan_prefix(self, prefix: bytes) -> list[tuple[bytes, bytes]]:
        with self.transaction() as tx:
            return tx.scan_prefix(prefix)

    def compact(self) -> None:
        """Rebuild the database file, reclaiming space from deleted records."""
        with self._lock:
            if self._closed:
                return
            try:
                self._conn.execute("VACUUM")
            except sqlite3.Error as exc:
                raise StoreError(f"compaction failed: {exc}", cause=exc) from exc

    def _compaction_loop(self, interval: float) -> None:
        while not self._stop.wait(interval):
            try:
                self.compact()
                logger.debug("store_compacted", path=self._path)
            except StoreError as exc:
                logger.warning("store_compaction_failed", path=self._path, error=str(exc))

    def close(self) -> None:
        """Stop compaction and close the file. Safe to call more than once."""
        if self._closed:
            return
        self._stop.set()
        if self._compactor is not None:
            self._compactor.join()
        with self._lock:
            self._closed = True
            try:
                self._conn.close()
            except sqlite3.Error as exc:
                raise StoreError(f"failed to close store: {exc}", cause=exc) from exc

    def __enter__(self) -> KeyValueStore:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class RecordStore:
    """
    Typed access to users and medications.

    Example:
        >>> with RecordStore.open(":memory:") as store:
        ...     store.add_user(User.create("alice", "tok1"))
        ...     [u.name for u in store.list_users()]
        ['alice']
    """

    def __init__(self, kv: KeyValueStore) -> None:
        self._kv = kv

    @classmethod
    def open(cls, path: str | Path, *, compaction_interval: float | None = 3600.0) -> RecordStore:
        return cls(KeyValueStore(path, compaction_interval=compaction_interval))

    @property
    def kv(self) -> KeyValueStore:
        return self._kv

    # === Users ===

    def add_user(self, user: User) -> None:
        """Insert a new user; the name must not be taken."""
        with self._kv.transaction() as tx:
            if tx.get(user.key) is not None:
                raise DuplicateUserError(user.name)
            tx.put(user.key, user.to_json())
        logger.info("user_added", user_id=str(user.id), user_name=user.name)

    def get_user(self, name: str) -> User | None:
        raw = self._kv.get(user_key(name))
        if raw is None:
            return None
        return self._decode(User, user_key(name), raw)

    def list_users(self) -> list[User]:
        return [self._decode(User, key, raw) for key, raw in self._kv.scan_prefix(USER_PREFIX)]

    def add_device_token(self, name: str, label: str, token: str) -> User:
        """Register another device token under a new label."""
        if not label or not token:
            raise RecordValidationError("device label and token must not be empty")
        key = user_key(name)
        with self._kv.transaction() as tx:
            raw = tx.get(key)
            if raw is None:
                raise UserNotFoundError(name)
            user = self._decode(User, key, raw)
            if label in user.device_tokens:
                raise DuplicateDeviceError(name, label)
            user.device_tokens[label] = token
            tx.put(key, user.to_json())
        logger.info("device_token_added", user_id=str(user.id), device_label=label)
        return user

    # === Medications ===

    def add_medication(self, medication: Medication) -> None:
        self._kv.put(medication.key, medication.to_json())
        logger.info(
            "medication_added",
            user_id=str(medication.user_id),
            medication_id=str(medication.id),
            expression=medication.interval_crontab,
        )

    def remove_medication(self, user_id: UUID, medication_id: UUID) -> bool:
        removed = self._kv.delete(medication_key(user_id, medication_id))
        logger.info(
            "medication_removed",
            user_id=str(user_id),
            medication_id=str(medication_id),
            found=removed,
        )
        return removed

    def list_medications_for_user(self, user_id: UUID) -> list[Medication]:
        return [
            self._decode(Medication, key, raw)
            for key, raw in self._kv.scan_prefix(medication_prefix(user_id))
        ]

    # === Lifecycle ===

    def close(self) -> None:
        self._kv.close()

    def __enter__(self) -> RecordStore:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    @staticmethod
    def _decode(record_type: Any, key: bytes, raw: bytes) -> Any:
        try:
            return record_type.from_json(raw)
        except (ValueError, KeyError, TypeError, RecordValidationError) as exc:
            readable = key.decode("utf-8", errors="backslashreplace")
            raise StoreError(
                f"failed to decode {record_type.__name__.lower()} value for key {readable}: {exc}",
                cause=exc,
            ).with_context(key=readable) from exc


__all__ = ["KeyValueStore", "RecordStore", "Transaction"]
