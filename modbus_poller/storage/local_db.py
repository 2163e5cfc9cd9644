"""
Local SQLite Snapshot Store

Append-only storage for device snapshots, one table per device name.
The poller only ever inserts; `recent()` exists for history tooling.

A single SnapshotStore is created at startup and shared by every
Saver; per-device DeviceCollection handles are cached on it.
"""

import asyncio
import json
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from modbus_poller.common.exceptions import PersistenceError
from modbus_poller.common.logging_setup import get_service_logger

logger = get_service_logger("storage.local_db")


@dataclass
class Snapshot:
    """Point-in-time copy of a device dataset"""
    slave_id: int
    data: dict[str, Any]
    date: str               # local display string
    timestamp: datetime     # instant


def _quote_identifier(name: str) -> str:
    """Quote a device name for use as an SQLite table name"""
    return '"' + name.replace('"', '""') + '"'


class DeviceCollection:
    """Snapshot table of one device"""

    def __init__(self, store: "SnapshotStore", name: str):
        self.store = store
        self.name = name
        self._table = _quote_identifier(name)
        self._created = False

    def _ensure_table(self, conn: sqlite3.Connection) -> None:
        if self._created:
            return
        conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {self._table} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                slave_id INTEGER NOT NULL,
                data TEXT NOT NULL,
                date TEXT NOT NULL,
                timestamp TEXT NOT NULL
            )
        """)
        index_name = _quote_identifier(f"idx_{self.name}_timestamp")
        conn.execute(f"""
            CREATE INDEX IF NOT EXISTS {index_name}
            ON {self._table}(timestamp DESC)
        """)
        self._created = True

    def insert_sync(self, snapshot: Snapshot) -> int:
        """
        Insert a snapshot (blocking).

        Raises:
            PersistenceError: on any database error
        """
        try:
            with self.store._get_connection() as conn:
                self._ensure_table(conn)
                cursor = conn.execute(
                    f"INSERT INTO {self._table} (slave_id, data, date, timestamp) "
                    "VALUES (?, ?, ?, ?)",
                    (
                        snapshot.slave_id,
                        json.dumps(snapshot.data, ensure_ascii=False),
                        snapshot.date,
                        snapshot.timestamp.isoformat(),
                    ),
                )
                conn.commit()
                return cursor.lastrowid
        except (sqlite3.Error, TypeError, ValueError) as e:
            self._created = False
            raise PersistenceError(str(e), collection=self.name) from e

    async def insert(self, snapshot: Snapshot) -> int:
        """Insert a snapshot without blocking the event loop"""
        return await asyncio.to_thread(self.insert_sync, snapshot)

    def recent(self, limit: int = 100) -> list[dict]:
        """Newest snapshots first"""
        try:
            with self.store._get_connection() as conn:
                self._ensure_table(conn)
                rows = conn.execute(
                    f"SELECT slave_id, data, date, timestamp FROM {self._table} "
                    "ORDER BY id DESC LIMIT ?",
                    (limit,),
                ).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(str(e), collection=self.name) from e

        return [
            {
                "slave_id": row["slave_id"],
                "data": json.loads(row["data"]),
                "date": row["date"],
                "timestamp": row["timestamp"],
            }
            for row in rows
        ]

    def count(self) -> int:
        with self.store._get_connection() as conn:
            self._ensure_table(conn)
            return conn.execute(f"SELECT COUNT(*) FROM {self._table}").fetchone()[0]


class SnapshotStore:
    """
    SQLite database holding one snapshot table per device.

    Features:
    - Table created lazily on first insert
    - WAL journal for reduced disk wear
    """

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self._collections: dict[str, DeviceCollection] = {}

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(
                f"Cannot create database directory {self.db_path.parent}: {e}"
            ) from e

        logger.info(f"Snapshot store at {self.db_path}")

    @contextmanager
    def _get_connection(self):
        """Get database connection with disk-wear optimizations"""
        # Fail fast on lock contention instead of blocking forever
        conn = sqlite3.connect(str(self.db_path), timeout=10.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        try:
            yield conn
        finally:
            conn.close()

    def collection(self, device_name: str) -> DeviceCollection:
        """Storage handle for one device"""
        if device_name not in self._collections:
            self._collections[device_name] = DeviceCollection(self, device_name)
        return self._collections[device_name]

    def list_collections(self) -> list[str]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' "
                "AND name NOT LIKE 'sqlite_%' ORDER BY name"
            ).fetchall()
        return [row["name"] for row in rows]
