"""Canonical manifest encoding.

The signature covers these bytes, not any in-memory representation, so the
signer and the verifier must both go through ``encode_manifest``. The format
is fixed here rather than left to a JSON library's defaults.

Design decisions:
- Output: ASCII JSON, no whitespace
- Manifest key order: human_percentage, ai_percentage, cited_percentage,
  total_characters, events, then the optional binding keys
  generated_at, document_digest (omitted entirely when unset)
- Event key order: timestamp, kind, content_digest, source, span_length;
  events keep manifest order (newest first)
- Percentages: fixed-point with exactly 6 fractional digits ("60.000000");
  negative zero is written as "0.000000"; NaN/Inf are rejected
- Integers: base-10, no sign for non-negative values
- Strings: JSON literals; '"' and '\\' escaped, \\b \\f \\n \\r \\t short forms,
  every other character outside 0x20-0x7E as lowercase \\uXXXX (UTF-16
  surrogate pairs above the BMP)
"""

from __future__ import annotations

import hashlib
import json
import math
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sonnun.provenance.events import ProvenanceEvent
    from sonnun.provenance.manifest import ManifestData

PERCENT_PLACES = 6

MANIFEST_KEYS = (
    "human_percentage",
    "ai_percentage",
    "cited_percentage",
    "total_characters",
    "events",
)
EVENT_KEYS = ("timestamp", "kind", "content_digest", "source", "span_length")
BINDING_KEYS = ("generated_at", "document_digest")


def _percent(value: float) -> str:
    if not math.isfinite(value):
        raise ValueError(f"Cannot canonicalize non-finite percentage: {value}")
    text = f"{value:.{PERCENT_PLACES}f}"
    if text.startswith("-") and float(text) == 0.0:
        text = text[1:]
    return text


def is_canonical_percentage(value: float) -> bool:
    """True if the value survives the fixed-point encoding unchanged."""
    return math.isfinite(value) and float(_percent(value)) == value


def _string(value: str) -> str:
    return json.dumps(value, ensure_ascii=True)


def _event(event: ProvenanceEvent) -> str:
    values = (
        _string(event.timestamp),
        _string(event.kind.value),
        _string(event.content_digest),
        _string(event.source),
        str(int(event.span_length)),
    )
    return "{" + ",".join(f'"{key}":{val}' for key, val in zip(EVENT_KEYS, values)) + "}"


def canonical_manifest_text(manifest: ManifestData) -> str:
    """Canonical encoding as text."""
    values = (
        _percent(manifest.human_percentage),
        _percent(manifest.ai_percentage),
        _percent(manifest.cited_percentage),
        str(int(manifest.total_characters)),
        "[" + ",".join(_event(e) for e in manifest.events) + "]",
    )
    pairs = [f'"{key}":{val}' for key, val in zip(MANIFEST_KEYS, values)]
    for key in BINDING_KEYS:
        value = getattr(manifest, key)
        if value is not None:
            pairs.append(f'"{key}":{_string(value)}')
    return "{" + ",".join(pairs) + "}"


def canonical_manifest_dict(manifest: ManifestData) -> dict[str, Any]:
    """The signed content as plain data (percentages at encoded precision)."""
    return json.loads(canonical_manifest_text(manifest))


def encode_manifest(manifest: ManifestData) -> bytes:
    """Canonical encoding as the bytes that get signed."""
    return canonical_manifest_text(manifest).encode("ascii")


def manifest_digest(manifest: ManifestData) -> str:
    """SHA-256 hex digest of the canonical encoding, for display and logs."""
    return hashlib.sha256(encode_manifest(manifest)).hexdigest()
