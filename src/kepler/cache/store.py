"""SQLite-backed key/value store with timestamped entries."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

LOGGER = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class PersistentCache:
    """Best-effort persistence for fetched data.

    Every entry is stored as a JSON payload together with the epoch-millis
    timestamp of the write. Reads and writes never raise: a missing database,
    a corrupt payload or a failed write all behave like a cache miss.
    """

    def __init__(self, db_path: Path | str, *, clock: Callable[[], int] = now_ms) -> None:
        self.db_path = db_path
        self._clock = clock
        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = None
        try:
            if str(db_path) != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
            self._conn.execute("PRAGMA journal_mode=WAL;")
            self._ensure_schema()
        except (sqlite3.Error, OSError) as exc:
            LOGGER.warning("Cache unavailable at %s: %s", db_path, exc)
            self._conn = None

    @property
    def available(self) -> bool:
        return self._conn is not None

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        if self._conn is None:
            raise sqlite3.OperationalError("cache is not available")
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS entries (
                    key TEXT PRIMARY KEY,
                    payload TEXT NOT NULL,
                    timestamp INTEGER NOT NULL
                )
                """
            )

    def get(self, key: str, ttl_ms: Optional[int] = None) -> Any:
        """Return the stored value, or ``None`` when absent or older than ``ttl_ms``."""
        try:
            with self.transaction() as conn:
                row = conn.execute(
                    "SELECT payload, timestamp FROM entries WHERE key = ?", (key,)
                ).fetchone()
            if row is None:
                return None
            payload, timestamp = row
            if ttl_ms is not None and self._clock() - int(timestamp) >= ttl_ms:
                return None
            return json.loads(payload)
        except (sqlite3.Error, ValueError, TypeError) as exc:
            LOGGER.debug("Cache read failed for %s: %s", key, exc)
            return None

    def set(self, key: str, value: Any) -> None:
        try:
            payload = json.dumps(value)
            with self.transaction() as conn:
                conn.execute(
                    "INSERT OR REPLACE INTO entries(key, payload, timestamp) VALUES (?, ?, ?)",
                    (key, payload, self._clock()),
                )
        except (sqlite3.Error, ValueError, TypeError) as exc:
            LOGGER.debug("Cache write failed for %s: %s", key, exc)

    def delete(self, *keys: str) -> None:
        if not keys:
            return
        try:
            with self.transaction() as conn:
                conn.executemany("DELETE FROM entries WHERE key = ?", [(key,) for key in keys])
        except sqlite3.Error as exc:
            LOGGER.debug("Cache delete failed for %s: %s", keys, exc)

    def timestamp(self, key: str) -> Optional[int]:
        """Epoch-millis write time of ``key``, regardless of expiry."""
        try:
            with self.transaction() as conn:
                row = conn.execute("SELECT timestamp FROM entries WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as exc:
            LOGGER.debug("Cache read failed for %s: %s", key, exc)
            return None
        return int(row[0]) if row else None

    def now(self) -> int:
        return self._clock()
