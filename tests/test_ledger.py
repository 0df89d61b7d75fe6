"""Tests for the ledger stores (run against every backend)."""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path

import pytest
from conftest import make_event

from sonnun.errors import InvalidInputError, StorageError
from sonnun.ledger import KindTotals, MemoryLedgerStore, SqliteLedgerStore, open_ledger
from sonnun.provenance.events import EventKind


class TestAppend:
    def test_append_returns_increasing_ids(self, ledger):
        ids = [ledger.append(make_event(span_length=i)) for i in range(3)]
        assert ids == [1, 2, 3]

    def test_append_never_overwrites(self, ledger):
        ledger.append(make_event(source="a"))
        ledger.append(make_event(source="b"))

        assert {e.source for e in ledger.query()} == {"a", "b"}

    def test_concurrent_appends(self, ledger):
        """Concurrent appends neither lose events nor reuse ids."""
        ids: list[int] = []
        ids_lock = threading.Lock()

        def worker(n: int) -> None:
            for i in range(10):
                event_id = ledger.append(make_event(source=f"w{n}", span_length=i))
                with ids_lock:
                    ids.append(event_id)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(ids) == list(range(1, 41))
        assert len(ledger.query()) == 40


class TestQuery:
    def test_filter_by_kind(self, ledger):
        ledger.append(make_event(EventKind.HUMAN, 10, source="user"))
        ledger.append(make_event(EventKind.AI, 15, source="gpt-4"))
        ledger.append(make_event(EventKind.CITED, 20, source="wikipedia"))

        human = ledger.query(kind=EventKind.HUMAN)
        assert len(human) == 1
        assert human[0].kind is EventKind.HUMAN
        assert len(ledger.query()) == 3

    def test_filter_accepts_wire_value(self, ledger):
        ledger.append(make_event(EventKind.AI))
        assert len(ledger.query(kind="ai")) == 1

    def test_unknown_kind_filter(self, ledger):
        with pytest.raises(InvalidInputError):
            ledger.query(kind="robot")

    def test_newest_single_human_event(self, ledger):
        """Limit 1 on three human events returns the newest one."""
        for day in (1, 2, 3):
            ledger.append(make_event(EventKind.HUMAN, timestamp=f"2025-01-0{day}T00:00:00Z", source=f"d{day}"))

        result = ledger.query(kind="human", limit=1)
        assert [e.source for e in result] == ["d3"]

    def test_orders_by_timestamp_not_insertion(self, ledger):
        ledger.append(make_event(timestamp="2025-01-02T00:00:00Z", source="middle"))
        ledger.append(make_event(timestamp="2025-01-01T00:00:00Z", source="oldest"))
        ledger.append(make_event(timestamp="2025-01-03T00:00:00Z", source="newest"))

        assert [e.source for e in ledger.query()] == ["newest", "middle", "oldest"]

    def test_timestamp_ties_newest_inserted_first(self, ledger):
        for name in ("first", "second", "third"):
            ledger.append(make_event(timestamp="2025-01-01T00:00:00Z", source=name))

        assert [e.source for e in ledger.query()] == ["third", "second", "first"]

    def test_limit(self, ledger):
        for i in range(5):
            ledger.append(make_event(source=f"user{i}"))

        assert len(ledger.query(limit=3)) == 3
        assert ledger.query(limit=0) == []
        assert len(ledger.query(limit=50)) == 5

    def test_negative_limit_rejected(self, ledger):
        with pytest.raises(InvalidInputError):
            ledger.query(limit=-1)


class TestAggregate:
    def test_aggregate_totals(self, ledger):
        ledger.append(make_event(EventKind.HUMAN, 60))
        ledger.append(make_event(EventKind.AI, 20))
        ledger.append(make_event(EventKind.AI, 10))
        ledger.append(make_event(EventKind.CITED, 10))

        assert ledger.aggregate() == KindTotals(human=60, ai=30, cited=10)

    def test_aggregate_matches_query_sums(self, ledger):
        for kind, span in [("human", 3), ("ai", 7), ("human", 11), ("cited", 0)]:
            ledger.append(make_event(kind, span))

        totals = ledger.aggregate()
        for kind in EventKind:
            assert totals.for_kind(kind) == sum(e.span_length for e in ledger.query(kind))

    def test_empty_aggregate(self, ledger):
        assert ledger.aggregate() == KindTotals()

    def test_count_by_kind(self, ledger):
        ledger.append(make_event(EventKind.HUMAN, source="user1"))
        ledger.append(make_event(EventKind.HUMAN, source="user2"))
        ledger.append(make_event(EventKind.AI, source="gpt-4"))

        counts = ledger.count_by_kind()
        assert counts.get(EventKind.HUMAN) == 2
        assert counts.get(EventKind.AI) == 1
        assert counts.get(EventKind.CITED) is None


class TestClear:
    def test_clear_events(self, ledger):
        ledger.append(make_event())
        assert ledger.query()

        ledger.clear()
        assert ledger.query() == []

    def test_clear_resets_ids(self, ledger):
        ledger.append(make_event())
        ledger.append(make_event())
        ledger.clear()

        assert ledger.append(make_event()) == 1


class TestIsolation:
    def test_memory_instances_are_independent(self):
        """No ambient global store."""
        a = MemoryLedgerStore()
        b = MemoryLedgerStore()
        a.append(make_event())

        assert len(a) == 1
        assert len(b) == 0
        assert b.append(make_event()) == 1


class TestSqliteStore:
    def test_persists_across_instances(self, tmp_path: Path):
        db = tmp_path / "ledger.db"
        SqliteLedgerStore(db).append(make_event(source="persisted"))

        assert [e.source for e in SqliteLedgerStore(db).query()] == ["persisted"]

    def test_schema_has_no_text_column(self, tmp_path: Path):
        db = tmp_path / "ledger.db"
        SqliteLedgerStore(db)
        conn = sqlite3.connect(db)
        columns = {row[1] for row in conn.execute("PRAGMA table_info(events)")}
        conn.close()

        assert columns == {"id", "timestamp", "kind", "content_digest", "source", "span_length"}

    def test_storage_failure_is_wrapped(self, tmp_path: Path):
        db = tmp_path / "ledger.db"
        store = SqliteLedgerStore(db)
        conn = sqlite3.connect(db)
        conn.execute("DROP TABLE events")
        conn.commit()
        conn.close()

        with pytest.raises(StorageError) as excinfo:
            store.aggregate()
        assert isinstance(excinfo.value.__cause__, sqlite3.Error)


class TestOpenLedger:
    def test_memory(self):
        assert isinstance(open_ledger(":memory:"), MemoryLedgerStore)

    def test_sqlite(self, tmp_path: Path):
        store = open_ledger(tmp_path / "x.db")
        assert isinstance(store, SqliteLedgerStore)
        assert store.db_path == tmp_path / "x.db"
