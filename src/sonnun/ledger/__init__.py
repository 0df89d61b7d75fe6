"""Provenance ledger stores.

Stores are constructed explicitly and passed to every consumer; any object
implementing ``LedgerStore`` can stand in for the built-in backends.
"""

from __future__ import annotations

from pathlib import Path

from sonnun.ledger.base import KindTotals, LedgerStore
from sonnun.ledger.memory import MemoryLedgerStore
from sonnun.ledger.sqlite import SqliteLedgerStore

MEMORY_DATABASE = ":memory:"


def open_ledger(database_path: Path | str) -> LedgerStore:
    """Open the store for a configured database path.

    ``":memory:"`` selects a fresh in-memory ledger; anything else is a
    SQLite file.
    """
    if str(database_path) == MEMORY_DATABASE:
        return MemoryLedgerStore()
    return SqliteLedgerStore(database_path)


__all__ = [
    "KindTotals",
    "LedgerStore",
    "MemoryLedgerStore",
    "SqliteLedgerStore",
    "open_ledger",
]
