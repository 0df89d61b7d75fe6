"""In-memory ledger store."""

from __future__ import annotations

import logging
import threading

from sonnun.ledger.base import KindTotals, LedgerStore, check_limit, newest_first
from sonnun.provenance.events import EventKind, ProvenanceEvent

logger = logging.getLogger(__name__)


class MemoryLedgerStore(LedgerStore):
    """Ledger held in this instance only.

    Each instance owns its rows and id counter, so independent instances can
    be used concurrently (for example one per test).
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows: list[tuple[int, ProvenanceEvent]] = []
        self._next_id = 1

    def append(self, event: ProvenanceEvent) -> int:
        with self._lock:
            event_id = self._next_id
            self._next_id += 1
            self._rows.append((event_id, event))
        logger.debug("Appended %s event %d", event.kind.value, event_id)
        return event_id

    def _snapshot(self) -> list[tuple[int, ProvenanceEvent]]:
        with self._lock:
            return list(self._rows)

    def query(
        self,
        kind: EventKind | str | None = None,
        limit: int | None = None,
    ) -> list[ProvenanceEvent]:
        check_limit(limit)
        wanted = EventKind.parse(kind) if kind is not None else None
        rows = [
            row for row in self._snapshot()
            if wanted is None or row[1].kind is wanted
        ]
        events = newest_first(rows)
        if limit is not None:
            events = events[:limit]
        return events

    def aggregate(self) -> KindTotals:
        totals = {kind: 0 for kind in EventKind}
        for _, event in self._snapshot():
            totals[event.kind] += event.span_length
        return KindTotals.from_mapping(totals)

    def count_by_kind(self) -> dict[EventKind, int]:
        counts: dict[EventKind, int] = {}
        for _, event in self._snapshot():
            counts[event.kind] = counts.get(event.kind, 0) + 1
        return counts

    def clear(self) -> None:
        with self._lock:
            self._rows.clear()
            self._next_id = 1
        logger.info("Cleared in-memory ledger")

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)
