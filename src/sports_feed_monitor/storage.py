from __future__ import annotations

import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

from sports_feed_monitor.domain import NormalizedItem, ProcessOutcome
from sports_feed_monitor.normalize import canonical_link, stable_url_key

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS content_links (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    url_key TEXT NOT NULL UNIQUE,
    link TEXT NOT NULL,
    title TEXT NOT NULL,
    source TEXT NOT NULL,
    outcome TEXT NOT NULL,
    published_at TEXT NOT NULL,
    recorded_at TEXT NOT NULL
);
"""


class SQLiteStore:
    """Durable ledger of canonical links already handed to content generation."""

    def __init__(self, db_path: str) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        # The monitor thread and the CLI thread may share one store.
        self.connection = sqlite3.connect(self.db_path, check_same_thread=False)
        self.connection.row_factory = sqlite3.Row
        self._lock = threading.Lock()

    def close(self) -> None:
        self.connection.close()

    def initialize(self) -> None:
        with self._lock, self.connection:
            self.connection.executescript(SCHEMA_SQL)

    def has_link(self, link: str) -> bool:
        with self._lock:
            row = self.connection.execute(
                "SELECT 1 FROM content_links WHERE url_key = ?",
                (stable_url_key(link),),
            ).fetchone()
        return row is not None

    def record_link(
        self,
        item: NormalizedItem,
        outcome: ProcessOutcome,
        recorded_at: datetime | None = None,
    ) -> bool:
        timestamp = (recorded_at or datetime.now(timezone.utc)).isoformat()
        with self._lock, self.connection:
            cursor = self.connection.execute(
                """
                INSERT OR IGNORE INTO content_links (
                    url_key, link, title, source, outcome, published_at, recorded_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    stable_url_key(item.link),
                    canonical_link(item.link),
                    item.title,
                    item.source,
                    outcome.value,
                    item.published_at.isoformat(),
                    timestamp,
                ),
            )
        return cursor.rowcount > 0

    def count_links(self) -> int:
        with self._lock:
            row = self.connection.execute("SELECT COUNT(*) AS total FROM content_links").fetchone()
        return int(row["total"])

    def purge_older_than(self, *, days: int, now: datetime | None = None) -> int:
        if days <= 0:
            raise ValueError("days must be > 0")
        current = now or datetime.now(timezone.utc)
        cutoff = (current - timedelta(days=days)).isoformat()
        with self._lock, self.connection:
            cursor = self.connection.execute(
                "DELETE FROM content_links WHERE recorded_at < ?",
                (cutoff,),
            )
        return cursor.rowcount
