"""SQLite connection cache with the listing schema."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from threading import Lock
from typing import Dict

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS tracked_targets (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        url TEXT NOT NULL,
        max_price_per_sqm REAL,
        created_at TEXT DEFAULT (datetime('now'))
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS seen_listings (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        target_id INTEGER NOT NULL,
        token TEXT NOT NULL,
        price REAL,
        sqm REAL,
        price_per_sqm REAL,
        address TEXT,
        rooms REAL,
        property_type TEXT,
        first_seen_at TEXT DEFAULT (datetime('now')),
        FOREIGN KEY (target_id) REFERENCES tracked_targets(id) ON DELETE CASCADE,
        UNIQUE(target_id, token)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_seen_listings_ppsqm ON seen_listings(target_id, price_per_sqm)",
)


class SQLiteManager:
    """Manage SQLite connections with basic schema guarantees."""

    def __init__(self) -> None:
        self._connections: Dict[Path, sqlite3.Connection] = {}
        self._lock = Lock()

    def connect(self, path: Path) -> sqlite3.Connection:
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            if path not in self._connections:
                conn = sqlite3.connect(path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA foreign_keys = ON")
                self._connections[path] = conn
                self._ensure_schema(conn)
            return self._connections[path]

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        for statement in SCHEMA:
            conn.execute(statement)
        conn.commit()

    def close_all(self) -> None:
        with self._lock:
            for conn in self._connections.values():
                conn.close()
            self._connections.clear()


__all__ = ["SQLiteManager"]
