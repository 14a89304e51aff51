"""SQLite-backed key/value state.

Used for:
- Incremental fetch watermark (`last_processed_timestamp`)
- Active context cache (`active_context`), stored with a TTL

The store is single-writer: only one run may be in flight at a time, and
writes are last-writer-wins.
"""

from __future__ import annotations

import sqlite3
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

import structlog

from mail_triage_agent.exceptions import StateStoreError

logger = structlog.get_logger()


_SCHEMA_VERSION = 1

KEY_LAST_PROCESSED_TIMESTAMP = "last_processed_timestamp"


class KeyValueStore(Protocol):
    """Minimal persistence interface injected into the pipeline."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None: ...

    def delete(self, key: str) -> None: ...


class SQLiteStateRepository:
    """Key/value store with optional per-entry expiry."""

    def __init__(
        self,
        db_path: Path,
        *,
        max_value_bytes: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Create a repository.

        Args:
            db_path: Path to the SQLite database file.
            max_value_bytes: Reject values larger than this (UTF-8 encoded).
            clock: Source of the current Unix time, used for expiry.
        """

        self._db_path = db_path
        self._max_value_bytes = max_value_bytes
        self._clock = clock

    def initialize(self) -> None:
        """Create or upgrade the state schema."""

        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL;")

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS _schema_meta (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );
                """
            )

            current_version = self._get_schema_version(conn)
            if current_version is None:
                self._create_schema_v1(conn)
                self._set_schema_version(conn, _SCHEMA_VERSION)
                conn.commit()
                logger.info("state_schema_created", version=_SCHEMA_VERSION)
                return

            if current_version != _SCHEMA_VERSION:
                raise StateStoreError(
                    f"Unsupported schema version {current_version}; expected {_SCHEMA_VERSION}"
                )

    def get(self, key: str) -> str | None:
        """Return the value for ``key``, or None if missing or expired."""

        with self._connect() as conn:
            row = conn.execute(
                "SELECT value, expires_at FROM state_kv WHERE key = ?",
                (key,),
            ).fetchone()

            if row is None:
                return None

            expires_at = row["expires_at"]
            if expires_at is not None and expires_at <= self._clock():
                conn.execute("DELETE FROM state_kv WHERE key = ?", (key,))
                conn.commit()
                return None

        return str(row["value"])

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        """Insert or replace ``key``.

        Raises:
            StateStoreError: If the value exceeds the configured size limit.
        """

        size = len(value.encode("utf-8"))
        if self._max_value_bytes is not None and size > self._max_value_bytes:
            raise StateStoreError(
                f"Value for {key!r} is {size} bytes; limit is {self._max_value_bytes}"
            )

        expires_at = None if ttl_seconds is None else self._clock() + ttl_seconds

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO state_kv (key, value, expires_at, updated_at_iso)
                VALUES (:key, :value, :expires_at, :updated_at_iso)
                ON CONFLICT(key) DO UPDATE SET
                    value=excluded.value,
                    expires_at=excluded.expires_at,
                    updated_at_iso=excluded.updated_at_iso
                """,
                {
                    "key": key,
                    "value": value,
                    "expires_at": expires_at,
                    "updated_at_iso": datetime.now(timezone.utc).isoformat(),
                },
            )
            conn.commit()

    def delete(self, key: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM state_kv WHERE key = ?", (key,))
            conn.commit()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._db_path)
        try:
            conn.row_factory = sqlite3.Row
            yield conn
        finally:
            conn.close()

    def _get_schema_version(self, conn: sqlite3.Connection) -> int | None:
        row = conn.execute(
            "SELECT value FROM _schema_meta WHERE key = 'schema_version'"
        ).fetchone()
        if row is None:
            return None
        return int(row[0])

    def _set_schema_version(self, conn: sqlite3.Connection, version: int) -> None:
        conn.execute(
            "INSERT OR REPLACE INTO _schema_meta(key, value) VALUES('schema_version', ?) ",
            (str(version),),
        )

    def _create_schema_v1(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS state_kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                expires_at REAL,
                updated_at_iso TEXT NOT NULL
            );
            """
        )


def get_watermark(store: KeyValueStore) -> int | None:
    """Return the stored watermark (Unix seconds), if any."""

    raw = store.get(KEY_LAST_PROCESSED_TIMESTAMP)
    if raw is None or raw.strip() == "":
        return None

    try:
        return int(float(raw.strip()))
    except ValueError:
        logger.warning("watermark_unparseable", raw=raw)
        return None


def set_watermark(store: KeyValueStore, timestamp: int) -> None:
    store.set(KEY_LAST_PROCESSED_TIMESTAMP, str(int(timestamp)))


def clear_watermark(store: KeyValueStore) -> None:
    """Clear the watermark (the next run falls back to the default window)."""

    store.delete(KEY_LAST_PROCESSED_TIMESTAMP)
