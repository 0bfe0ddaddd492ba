"""Durable key-value persistence for the learner's save state."""

import json
import logging
import os
import sqlite3
from typing import Any, Iterable, Optional

from db_pool import SQLiteConnectionPool
from schemas import ProgressRecord

logger = logging.getLogger(__name__)

DB_PATH = os.getenv("DB_PATH", "data.db")
SAVE_KEY = "aq_save"

_pool = SQLiteConnectionPool(DB_PATH, max_connections=4)


def _exec(sql: str, params: Iterable = ()):
    with _pool.get_connection() as con:
        cur = con.execute(sql, params)
        con.commit()
        return cur


def _query(sql: str, params: Iterable = ()) -> list[sqlite3.Row]:
    with _pool.get_connection() as con:
        cur = con.execute(sql, params)
        return cur.fetchall()


def use_database(path: str) -> None:
    """Point the module at another database file, e.g. a temporary test db."""
    global DB_PATH, _pool
    _pool.close_all()
    DB_PATH = path
    _pool = SQLiteConnectionPool(path, max_connections=4)


def init() -> None:
    _exec(
        """
        CREATE TABLE IF NOT EXISTS kv_store (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """
    )


def get_value(key: str) -> Optional[str]:
    rows = _query("SELECT value FROM kv_store WHERE key = ?", (key,))
    if not rows:
        return None
    return rows[0]["value"]


def set_value(key: str, value: str) -> None:
    _exec(
        """
        INSERT INTO kv_store (key, value, updated_at)
        VALUES (?, ?, CURRENT_TIMESTAMP)
        ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP
        """,
        (key, value),
    )


class SaveStateStore:
    """Best-effort store for the single :class:`ProgressRecord`.

    ``load`` never raises: absent, unreadable or malformed payloads yield the
    zero-value record. ``save`` never raises either; when the medium fails the
    in-memory record stays authoritative for the rest of the session.
    """

    def __init__(self, key: str = SAVE_KEY) -> None:
        self.key = key

    def load_payload(self) -> Any:
        """Return the decoded payload, or ``None`` when absent or unreadable."""

        try:
            init()
            raw = get_value(self.key)
        except Exception as exc:
            logger.warning("Save state unavailable, starting fresh: %s", exc)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding corrupt save payload for key %s", self.key)
            return None

    def load(self) -> ProgressRecord:
        payload = self.load_payload()
        record = ProgressRecord.from_payload(payload)
        if payload is not None:
            logger.info(
                "Loaded save state: xp=%s modules=%s challenges=%s",
                record.xp,
                len(record.completed_modules),
                len(record.completed_challenges),
            )
        return record

    def save(self, record: ProgressRecord) -> bool:
        """Write the full record; return ``False`` when the write was dropped."""

        try:
            init()
            set_value(self.key, json.dumps(record.to_payload()))
        except Exception as exc:
            logger.warning("Could not persist save state (continuing in memory): %s", exc)
            return False
        return True
