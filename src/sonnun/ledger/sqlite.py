"""SQLite ledger store.

Each call opens its own connection, so reads run concurrently under SQLite's
own isolation. Appends additionally hold an instance lock and an IMMEDIATE
transaction so ids are never duplicated or skipped by interleaving writers.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from sonnun.errors import StorageError
from sonnun.ledger.base import KindTotals, LedgerStore, check_limit
from sonnun.provenance.events import EventKind, ProvenanceEvent

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    kind TEXT NOT NULL,
    content_digest TEXT NOT NULL,
    source TEXT NOT NULL,
    span_length INTEGER NOT NULL CHECK (span_length >= 0)
);
CREATE INDEX IF NOT EXISTS idx_events_order ON events (timestamp DESC, id DESC);
"""


class SqliteLedgerStore(LedgerStore):
    """Ledger persisted in a SQLite database file."""

    def __init__(self, db_path: Path | str, timeout: float = 30.0) -> None:
        self._db_path = Path(db_path)
        self._timeout = timeout
        self._write_lock = threading.Lock()
        self._init_db()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _init_db(self) -> None:
        """Initialize database schema."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._get_conn() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def _get_conn(self) -> Iterator[sqlite3.Connection]:
        """Get database connection; backend failures surface as StorageError."""
        try:
            conn = sqlite3.connect(self._db_path, timeout=self._timeout, isolation_level=None)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open ledger database {self._db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        except sqlite3.Error as e:
            raise StorageError(f"Ledger storage failure: {e}") from e
        finally:
            conn.close()

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> ProvenanceEvent:
        return ProvenanceEvent(
            timestamp=row["timestamp"],
            kind=EventKind.parse(row["kind"]),
            content_digest=row["content_digest"],
            source=row["source"],
            span_length=row["span_length"],
        )

    def append(self, event: ProvenanceEvent) -> int:
        with self._write_lock, self._get_conn() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                cursor = conn.execute(
                    "INSERT INTO events (timestamp, kind, content_digest, source, span_length) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (
                        event.timestamp,
                        event.kind.value,
                        event.content_digest,
                        event.source,
                        event.span_length,
                    ),
                )
                conn.execute("COMMIT")
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            event_id = cursor.lastrowid
        logger.debug("Appended %s event %d to %s", event.kind.value, event_id, self._db_path)
        return event_id

    def query(
        self,
        kind: EventKind | str | None = None,
        limit: int | None = None,
    ) -> list[ProvenanceEvent]:
        check_limit(limit)
        sql = "SELECT timestamp, kind, content_digest, source, span_length FROM events"
        params: list[object] = []
        if kind is not None:
            sql += " WHERE kind = ?"
            params.append(EventKind.parse(kind).value)
        sql += " ORDER BY timestamp DESC, id DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        with self._get_conn() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_event(row) for row in rows]

    def aggregate(self) -> KindTotals:
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT kind, COALESCE(SUM(span_length), 0) AS chars FROM events GROUP BY kind"
            ).fetchall()
        return KindTotals.from_mapping(
            {EventKind.parse(row["kind"]): row["chars"] for row in rows}
        )

    def count_by_kind(self) -> dict[EventKind, int]:
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT kind, COUNT(*) AS n FROM events GROUP BY kind"
            ).fetchall()
        return {EventKind.parse(row["kind"]): row["n"] for row in rows}

    def clear(self) -> None:
        with self._write_lock, self._get_conn() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                conn.execute("DELETE FROM events")
                conn.execute("DELETE FROM sqlite_sequence WHERE name = 'events'")
                conn.execute("COMMIT")
            except BaseException:
                conn.execute("ROLLBACK")
                raise
        logger.info("Cleared ledger %s", self._db_path)
