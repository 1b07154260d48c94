"""
SQLite-backed store.

Tables:
- notifications: one row per occurrence, UNIQUE(type, timestamp)
- subscribers: one row per recipient
- delivery_settings: per-subscriber, per-type delivery targets

Blocking sqlite3 calls run in a worker thread; a single connection is shared
and serialized with an asyncio.Lock.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import orjson

from eventbeacon.contracts.events import (
    DeliverySetting,
    EventType,
    NotificationRecord,
    Subscriber,
)
from eventbeacon.errors import StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCHEMA = """
CREATE TABLE IF NOT EXISTS notifications (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    type TEXT NOT NULL,
    timestamp INTEGER NOT NULL,
    refresh_timestamp INTEGER NOT NULL DEFAULT 0,
    refreshed INTEGER NOT NULL DEFAULT 0,
    data BLOB NOT NULL,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (type, timestamp)
);

CREATE TABLE IF NOT EXISTS subscribers (
    id TEXT PRIMARY KEY,
    locale TEXT NOT NULL DEFAULT 'en'
);

CREATE TABLE IF NOT EXISTS delivery_settings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    subscriber_id TEXT NOT NULL REFERENCES subscribers(id) ON DELETE CASCADE,
    type TEXT NOT NULL,
    channel_id TEXT,
    role_id TEXT,
    message_id TEXT,
    enabled INTEGER NOT NULL DEFAULT 1
);

CREATE INDEX IF NOT EXISTS idx_delivery_settings_type ON delivery_settings(type);
"""


class SqliteStore:
    """NotificationStore and SubscriberStore on top of a SQLite file."""

    def __init__(self, path: Path | str = ":memory:") -> None:
        self._path = str(path)
        self._conn: sqlite3.Connection | None = None
        self._lock = asyncio.Lock()

    async def open(self) -> None:
        """Open the database and create tables if needed."""
        if self._conn is not None:
            return
        self._conn = await asyncio.to_thread(self._connect)
        logger.info("Opened notification store", extra={"db_path": self._path})

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.executescript(SCHEMA)
        conn.commit()
        return conn

    async def close(self) -> None:
        if self._conn is not None:
            conn, self._conn = self._conn, None
            await asyncio.to_thread(conn.close)

    async def _run(self, operation: str, fn: Callable[[sqlite3.Connection], T]) -> T:
        """Run fn(conn) in a worker thread, mapping sqlite errors to StorageError."""
        if self._conn is None:
            raise StorageError("store is not open", operation=operation)
        conn = self._conn

        def call() -> T:
            try:
                with conn:
                    return fn(conn)
            except sqlite3.Error as e:
                raise StorageError(f"{operation} failed: {e}", operation=operation) from e

        async with self._lock:
            return await asyncio.to_thread(call)

    # Notification records

    async def find_record(self, event_type: EventType, timestamp: int) -> NotificationRecord | None:
        def query(conn: sqlite3.Connection) -> sqlite3.Row | None:
            cur = conn.execute(
                "SELECT * FROM notifications WHERE type = ? AND timestamp = ?",
                (event_type.value, timestamp),
            )
            row: sqlite3.Row | None = cur.fetchone()
            return row

        row = await self._run("find", query)
        return _row_to_record(row) if row is not None else None

    async def create_record(self, record: NotificationRecord) -> NotificationRecord:
        def insert(conn: sqlite3.Connection) -> int:
            cur = conn.execute(
                "INSERT INTO notifications (type, timestamp, refresh_timestamp, refreshed, data) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    record.type.value,
                    record.timestamp,
                    record.refresh_timestamp,
                    int(record.refreshed),
                    record.payload_json(),
                ),
            )
            return int(cur.lastrowid or 0)

        record_id = await self._run("create", insert)
        return record.model_copy(update={"id": record_id})

    async def mark_refreshed(self, record_id: int) -> None:
        def update(conn: sqlite3.Connection) -> int:
            cur = conn.execute(
                "UPDATE notifications SET refreshed = 1 WHERE id = ?",
                (record_id,),
            )
            return cur.rowcount

        if await self._run("update", update) == 0:
            raise StorageError(f"no record with id {record_id}", operation="update")

    # Subscribers

    async def list_subscribers_for_type(self, event_type: EventType) -> list[Subscriber]:
        def query(conn: sqlite3.Connection) -> list[Subscriber]:
            ids = [
                row["subscriber_id"]
                for row in conn.execute(
                    "SELECT DISTINCT subscriber_id FROM delivery_settings "
                    "WHERE type = ? AND enabled = 1 ORDER BY subscriber_id",
                    (event_type.value,),
                )
            ]
            return [_load_subscriber(conn, sub_id) for sub_id in ids]

        return await self._run("list_subscribers", query)

    async def write_back_message_id(
        self,
        subscriber_id: str,
        event_type: EventType,
        channel_id: str,
        message_id: str,
    ) -> None:
        def update(conn: sqlite3.Connection) -> None:
            conn.execute(
                "UPDATE delivery_settings SET message_id = ? "
                "WHERE subscriber_id = ? AND type = ? AND channel_id = ?",
                (message_id, subscriber_id, event_type.value, channel_id),
            )

        await self._run("write_back", update)

    async def upsert_subscriber(self, subscriber: Subscriber) -> None:
        def upsert(conn: sqlite3.Connection) -> None:
            conn.execute(
                "INSERT INTO subscribers (id, locale) VALUES (?, ?) "
                "ON CONFLICT(id) DO UPDATE SET locale = excluded.locale",
                (subscriber.id, subscriber.locale),
            )
            conn.execute("DELETE FROM delivery_settings WHERE subscriber_id = ?", (subscriber.id,))
            conn.executemany(
                "INSERT INTO delivery_settings "
                "(subscriber_id, type, channel_id, role_id, message_id, enabled) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                [
                    (
                        subscriber.id,
                        s.type.value,
                        s.channel_id,
                        s.role_id,
                        s.message_id,
                        int(s.enabled),
                    )
                    for s in subscriber.settings
                ],
            )

        await self._run("upsert_subscriber", upsert)

    async def get_subscriber(self, subscriber_id: str) -> Subscriber | None:
        def query(conn: sqlite3.Connection) -> Subscriber | None:
            row = conn.execute("SELECT id FROM subscribers WHERE id = ?", (subscriber_id,)).fetchone()
            return _load_subscriber(conn, subscriber_id) if row is not None else None

        return await self._run("get_subscriber", query)


def _row_to_record(row: sqlite3.Row) -> NotificationRecord:
    data: Any = orjson.loads(row["data"]) if row["data"] else {}
    return NotificationRecord(
        id=row["id"],
        type=EventType(row["type"]),
        timestamp=row["timestamp"],
        refresh_timestamp=row["refresh_timestamp"],
        refreshed=bool(row["refreshed"]),
        payload=data if isinstance(data, dict) else {},
    )


def _load_subscriber(conn: sqlite3.Connection, subscriber_id: str) -> Subscriber:
    row = conn.execute("SELECT id, locale FROM subscribers WHERE id = ?", (subscriber_id,)).fetchone()
    locale = row["locale"] if row is not None else "en"
    settings = [
        DeliverySetting(
            type=EventType(s["type"]),
            channel_id=s["channel_id"],
            role_id=s["role_id"],
            message_id=s["message_id"],
            enabled=bool(s["enabled"]),
        )
        for s in conn.execute(
            "SELECT * FROM delivery_settings WHERE subscriber_id = ? ORDER BY id",
            (subscriber_id,),
        )
    ]
    return Subscriber(id=subscriber_id, locale=locale, settings=settings)
