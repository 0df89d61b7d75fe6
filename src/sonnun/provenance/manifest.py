"""Provenance manifest: percentage breakdown of a ledger.

Percentage policy:
- per kind, sum span_length over all events of that kind
- total_characters = human + ai + cited
- empty ledger: 0.0 / 0.0 / 0.0 (nothing is attributed to anyone)
- otherwise kind_chars / total * 100 in double precision, unrounded

Rounding belongs to presentation (``format_summary``) and happens after the
signed values are fixed.

The ``events`` excerpt holds only the most recent N events. It is carried in
the signed encoding, but it is advisory: it is truncated and its digests are
never checked against the document text.

A manifest can be bound to the document it is embedded in (``generated_at`` and
``document_digest``, see ``sonnun.provenance.embed.bind_to_document``). Both
fields are signed; unbound manifests simply omit them.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sonnun.provenance.events import KindTotals, ProvenanceEvent, is_content_digest

if TYPE_CHECKING:
    from sonnun.ledger.base import LedgerStore

logger = logging.getLogger(__name__)

DEFAULT_EXCERPT_LIMIT = 50

# Zero-corpus default (human, ai, cited)
EMPTY_PERCENTAGES = (0.0, 0.0, 0.0)


def compute_percentages(totals: KindTotals) -> tuple[float, float, float]:
    """Return (human, ai, cited) percentages for character totals."""
    total = totals.total
    if total == 0:
        return EMPTY_PERCENTAGES
    return (
        totals.human / total * 100,
        totals.ai / total * 100,
        totals.cited / total * 100,
    )


@dataclass(frozen=True)
class ManifestData:
    """Point-in-time provenance summary.

    Attributes:
        human_percentage: Share of characters of human origin, 0-100
        ai_percentage: Share of characters produced by an AI assistant, 0-100
        cited_percentage: Share of characters from cited sources, 0-100
        total_characters: Sum of span lengths used in the aggregation
        events: Most recent events, newest first (advisory excerpt)
        generated_at: ISO-8601 time the manifest was bound to a document
        document_digest: SHA-256 of the bound document's visible text
    """

    human_percentage: float
    ai_percentage: float
    cited_percentage: float
    total_characters: int
    events: tuple[ProvenanceEvent, ...] = field(default_factory=tuple)
    generated_at: str | None = None
    document_digest: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "events", tuple(self.events))
        for name in ("human_percentage", "ai_percentage", "cited_percentage"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise TypeError(f"{name} must be a number, got {type(value).__name__}")
            if not math.isfinite(value) or not 0.0 <= value <= 100.0:
                raise ValueError(f"{name} must be within [0, 100], got {value!r}")
            object.__setattr__(self, name, float(value))
        if (
            isinstance(self.total_characters, bool)
            or not isinstance(self.total_characters, int)
            or self.total_characters < 0
        ):
            raise ValueError(
                f"total_characters must be a non-negative integer, got {self.total_characters!r}"
            )
        if self.generated_at is not None and (
            not isinstance(self.generated_at, str) or not self.generated_at
        ):
            raise ValueError("generated_at must be a non-empty string")
        if self.document_digest is not None and not is_content_digest(self.document_digest):
            raise ValueError("document_digest must be a SHA-256 hex digest")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary; binding fields only when set."""
        data: dict[str, Any] = {
            "human_percentage": self.human_percentage,
            "ai_percentage": self.ai_percentage,
            "cited_percentage": self.cited_percentage,
            "total_characters": self.total_characters,
            "events": [e.to_dict() for e in self.events],
        }
        if self.generated_at is not None:
            data["generated_at"] = self.generated_at
        if self.document_digest is not None:
            data["document_digest"] = self.document_digest
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ManifestData:
        """Create from dictionary."""
        return cls(
            human_percentage=data["human_percentage"],
            ai_percentage=data["ai_percentage"],
            cited_percentage=data["cited_percentage"],
            total_characters=data["total_characters"],
            events=tuple(ProvenanceEvent.from_dict(e) for e in data.get("events", [])),
            generated_at=data.get("generated_at"),
            document_digest=data.get("document_digest"),
        )

    @classmethod
    def from_totals(
        cls,
        totals: KindTotals,
        events: tuple[ProvenanceEvent, ...] | list[ProvenanceEvent] = (),
    ) -> ManifestData:
        human, ai, cited = compute_percentages(totals)
        return cls(
            human_percentage=human,
            ai_percentage=ai,
            cited_percentage=cited,
            total_characters=totals.total,
            events=tuple(events),
        )


def build_manifest(
    ledger: LedgerStore,
    excerpt_limit: int = DEFAULT_EXCERPT_LIMIT,
) -> ManifestData:
    """Build a manifest from the current ledger state.

    Args:
        ledger: Store to read from
        excerpt_limit: Number of recent events to include

    Returns:
        ManifestData

    Raises:
        StorageError: Propagated unchanged from the ledger
    """
    totals = ledger.aggregate()
    excerpt = ledger.query(None, excerpt_limit)
    manifest = ManifestData.from_totals(totals, excerpt)
    logger.debug(
        "Built manifest: %d characters, %d excerpt events",
        manifest.total_characters,
        len(manifest.events),
    )
    return manifest


def format_summary(manifest: ManifestData, places: int = 1) -> str:
    """Human-readable breakdown, rounded for display only."""
    return (
        f"Human {manifest.human_percentage:.{places}f}% | "
        f"AI {manifest.ai_percentage:.{places}f}% | "
        f"Cited {manifest.cited_percentage:.{places}f}% "
        f"({manifest.total_characters} characters)"
    )
