"""Shared fixtures for the provenance tests."""

from __future__ import annotations

import pytest

from sonnun.ledger import MemoryLedgerStore, SqliteLedgerStore
from sonnun.provenance.events import EventKind, ProvenanceEvent, hash_text
from sonnun.provenance.signing import KeyPair, generate_keypair


def make_event(
    kind: EventKind | str = EventKind.HUMAN,
    span_length: int = 10,
    timestamp: str = "2025-01-01T00:00:00Z",
    source: str = "user",
) -> ProvenanceEvent:
    return ProvenanceEvent(
        timestamp=timestamp,
        kind=EventKind.parse(kind),
        content_digest=hash_text(f"{source}:{timestamp}:{span_length}"),
        source=source,
        span_length=span_length,
    )


@pytest.fixture
def keypair() -> KeyPair:
    return generate_keypair()


@pytest.fixture(params=["memory", "sqlite"])
def ledger(request, tmp_path):
    """Each ledger backend, freshly created."""
    if request.param == "memory":
        store = MemoryLedgerStore()
    else:
        store = SqliteLedgerStore(tmp_path / "ledger.db")
    yield store
    store.close()
