"""Provenance events: one attributed span of text.

The ledger never sees raw text. Callers either supply a SHA-256 digest or use
``ProvenanceEvent.from_text`` which digests the text before the event exists.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sonnun.errors import InvalidInputError

_DIGEST_RE = re.compile(r"^[0-9a-f]{64}$")


class EventKind(Enum):
    """Origin of an attributed span."""

    HUMAN = "human"
    AI = "ai"
    CITED = "cited"

    @classmethod
    def parse(cls, value: EventKind | str) -> EventKind:
        """Parse a wire value. Unknown values are rejected, never coerced."""
        if isinstance(value, EventKind):
            return value
        for member in cls:
            if member.value == value:
                return member
        raise InvalidInputError(
            f"Unknown event kind: {value!r} (expected one of human, ai, cited)"
        )


def hash_text(text: str) -> str:
    """SHA-256 hex digest of text, as stored in place of the text itself."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def is_content_digest(value: Any) -> bool:
    """True for a 64-char lowercase hex string."""
    return isinstance(value, str) and bool(_DIGEST_RE.match(value))


@dataclass(frozen=True)
class ProvenanceEvent:
    """An immutable attribution record.

    Attributes:
        timestamp: ISO-8601 string supplied by the caller
        kind: Human, AI or Cited origin
        content_digest: SHA-256 hex digest of the attributed text
        source: Author id, model name or citation identifier
        span_length: Number of characters attributed
    """

    timestamp: str
    kind: EventKind
    content_digest: str
    source: str
    span_length: int

    def __post_init__(self) -> None:
        if not isinstance(self.timestamp, str) or not self.timestamp:
            raise InvalidInputError("Event timestamp is required")
        # Accept wire strings for kind, but store the enum
        object.__setattr__(self, "kind", EventKind.parse(self.kind))
        if not is_content_digest(self.content_digest):
            raise InvalidInputError(
                "content_digest must be a 64-character lowercase hex SHA-256 digest"
            )
        if not isinstance(self.source, str):
            raise InvalidInputError("Event source must be a string")
        if (
            isinstance(self.span_length, bool)
            or not isinstance(self.span_length, int)
            or self.span_length < 0
        ):
            raise InvalidInputError(
                f"span_length must be a non-negative integer, got {self.span_length!r}"
            )

    @classmethod
    def from_text(
        cls,
        timestamp: str,
        kind: EventKind | str,
        text: str,
        source: str,
        span_length: int | None = None,
    ) -> ProvenanceEvent:
        """Create an event from raw text; only the digest is kept."""
        return cls(
            timestamp=timestamp,
            kind=EventKind.parse(kind),
            content_digest=hash_text(text),
            source=source,
            span_length=len(text) if span_length is None else span_length,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (wire names)."""
        return {
            "timestamp": self.timestamp,
            "kind": self.kind.value,
            "content_digest": self.content_digest,
            "source": self.source,
            "span_length": self.span_length,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProvenanceEvent:
        """Create from dictionary."""
        return cls(
            timestamp=data["timestamp"],
            kind=EventKind.parse(data["kind"]),
            content_digest=data["content_digest"],
            source=data["source"],
            span_length=data["span_length"],
        )


@dataclass(frozen=True)
class KindTotals:
    """Character totals per event kind."""

    human: int = 0
    ai: int = 0
    cited: int = 0

    @property
    def total(self) -> int:
        return self.human + self.ai + self.cited

    def for_kind(self, kind: EventKind) -> int:
        return getattr(self, kind.name.lower())

    @classmethod
    def from_mapping(cls, totals: dict[EventKind, int]) -> KindTotals:
        return cls(
            human=totals.get(EventKind.HUMAN, 0),
            ai=totals.get(EventKind.AI, 0),
            cited=totals.get(EventKind.CITED, 0),
        )


def validate_event_dict(data: dict[str, Any]) -> list[str]:
    """Collect every problem with an incoming event payload without raising.

    Used by editors that want to show all problems at once before calling
    ``ProvenanceEvent.from_dict``.
    """
    errors: list[str] = []

    if not data.get("timestamp"):
        errors.append("Timestamp is required")
    kind = data.get("kind")
    if not isinstance(kind, str) or kind not in {k.value for k in EventKind}:
        errors.append("Event kind must be human, ai, or cited")
    if not is_content_digest(data.get("content_digest")):
        errors.append("Content digest must be a SHA-256 hex digest")
    if not data.get("source"):
        errors.append("Source is required")
    span = data.get("span_length")
    if isinstance(span, bool) or not isinstance(span, int) or span < 0:
        errors.append("Span length must be a non-negative integer")

    return errors
