"""Ledger store interface.

A ledger is an append-only sequence of provenance events. Stores are plain
objects handed to whoever needs them; there is no process-wide ledger.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable

from sonnun.errors import InvalidInputError
from sonnun.provenance.events import EventKind, KindTotals, ProvenanceEvent


def check_limit(limit: int | None) -> None:
    if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit < 0):
        raise InvalidInputError(f"limit must be a non-negative integer, got {limit!r}")


def newest_first(rows: Iterable[tuple[int, ProvenanceEvent]]) -> list[ProvenanceEvent]:
    """Order (id, event) rows by timestamp descending, newest id first on ties."""
    ordered = sorted(rows, key=lambda row: (row[1].timestamp, row[0]), reverse=True)
    return [event for _, event in ordered]


class LedgerStore(ABC):
    """Storage capability consumed by the manifest builder.

    ``append`` must be serialized against other appends. ``query`` and
    ``aggregate`` are idempotent reads; ``append`` is never retried.
    """

    @abstractmethod
    def append(self, event: ProvenanceEvent) -> int:
        """Store an event and return its monotonically increasing id."""

    @abstractmethod
    def query(
        self,
        kind: EventKind | str | None = None,
        limit: int | None = None,
    ) -> list[ProvenanceEvent]:
        """Return events newest first, optionally filtered and truncated."""

    @abstractmethod
    def aggregate(self) -> KindTotals:
        """Return total span length per kind over the whole ledger."""

    @abstractmethod
    def count_by_kind(self) -> dict[EventKind, int]:
        """Return the number of events per kind (kinds with none are absent)."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every event and restart id assignment. Development use only."""

    def close(self) -> None:
        """Release backend resources."""

    def __enter__(self) -> LedgerStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
