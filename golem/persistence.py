"""
SQLite-backed store for persisted learned categories.

One row per PatternKey. WAL mode lets the chat threads write while another
process reads; every operation opens its own short-lived connection so the
store can be shared across threads.
"""

import json
import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import List, Union

from golem.category import LearnedCategoryRecord, PatternKey
from golem.errors import CategoryError, PersistenceError

logger = logging.getLogger(__name__)


class LearnedCategoryStore:
    """Durable key/value table of learned categories."""

    def __init__(self, storage_path: Union[str, Path]):
        self.storage_path = Path(storage_path)
        self.storage_path.parent.mkdir(parents=True, exist_ok=True)
        self._write_lock = threading.Lock()
        self._init_database()

    def _init_database(self):
        """Create the schema and enable WAL mode."""
        try:
            conn = sqlite3.connect(str(self.storage_path))
            try:
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA synchronous=NORMAL")

                integrity = conn.execute("PRAGMA integrity_check").fetchone()[0]
                if integrity != "ok":
                    raise sqlite3.DatabaseError(f"Database integrity check failed: {integrity}")

                conn.execute("""
                    CREATE TABLE IF NOT EXISTS learned_categories (
                        pattern_key TEXT PRIMARY KEY,
                        record TEXT NOT NULL,
                        updated_at REAL NOT NULL
                    )
                """)
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to initialize {self.storage_path}: {e}") from e

    def _get_connection(self):
        """Get a new database connection with proper timeout."""
        conn = sqlite3.connect(str(self.storage_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        return conn

    def put(self, key: PatternKey, record: LearnedCategoryRecord) -> None:
        payload = json.dumps(record.to_dict())
        try:
            with self._write_lock:
                conn = self._get_connection()
                try:
                    conn.execute(
                        "INSERT OR REPLACE INTO learned_categories (pattern_key, record, updated_at) VALUES (?, ?, ?)",
                        (key.encode(), payload, time.time()),
                    )
                    conn.commit()
                finally:
                    conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to store {key}: {e}") from e

    def delete(self, key: PatternKey) -> bool:
        try:
            with self._write_lock:
                conn = self._get_connection()
                try:
                    cursor = conn.execute("DELETE FROM learned_categories WHERE pattern_key = ?", (key.encode(),))
                    conn.commit()
                    return cursor.rowcount > 0
                finally:
                    conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to delete {key}: {e}") from e

    def list_all(self) -> List[LearnedCategoryRecord]:
        """All stored records, oldest first. Undecodable rows are skipped."""
        try:
            conn = self._get_connection()
            try:
                rows = conn.execute(
                    "SELECT pattern_key, record FROM learned_categories ORDER BY updated_at"
                ).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to read {self.storage_path}: {e}") from e

        records = []
        for row in rows:
            try:
                records.append(LearnedCategoryRecord.from_dict(json.loads(row["record"])))
            except (ValueError, KeyError, CategoryError) as e:
                logger.warning("Skipping unreadable learned category %s: %s", row["pattern_key"], e)
        return records

    def count(self) -> int:
        try:
            conn = self._get_connection()
            try:
                return conn.execute("SELECT COUNT(*) FROM learned_categories").fetchone()[0]
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to count {self.storage_path}: {e}") from e
