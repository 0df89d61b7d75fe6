"""Embedding signed manifests in HTML documents.

Envelope shape:

    {"manifest": {...}, "signature": "<base64>", "public_key": "<base64>"}

It travels inside ``<script type="application/json" id="sonnun-manifest">``.
Both embedding and extraction locate the element by parsing the document, so
attribute order, quoting and whitespace do not matter, and a marker inside a
comment or a script with a merely similar id is never touched.

Binding: ``bind_to_document`` stamps a manifest with the SHA-256 of the
document's visible text. Whitespace-only text and script/style/head contents
are excluded, so embedding (or replacing) the envelope does not change it.
"""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

from bs4 import BeautifulSoup, NavigableString, Tag

from sonnun.canonical import canonical_manifest_dict
from sonnun.errors import EnvelopeNotFoundError, MalformedEnvelopeError
from sonnun.provenance.events import EventKind, KindTotals
from sonnun.provenance.manifest import ManifestData
from sonnun.provenance.signing import b64encode

MARKER_ID = "sonnun-manifest"
MARKER_TYPE = "application/json"

_SCRIPT_ELEMENT_RE = re.compile(r"<script\b[^>]*>.*?</script\s*>", re.IGNORECASE | re.DOTALL)
_BODY_CLOSE_RE = re.compile(r"</body\s*>", re.IGNORECASE)

_SKIP_PARENTS = {"script", "style", "template", "head", "title"}


@dataclass(frozen=True)
class SignedEnvelope:
    """Manifest plus the signature over its canonical encoding."""

    manifest: ManifestData
    signature: bytes = field(repr=False)
    public_key: bytes

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (wire format).

        The manifest is written exactly as signed, so percentages carry the
        encoded precision rather than the in-memory double.
        """
        return {
            "manifest": canonical_manifest_dict(self.manifest),
            "signature": b64encode(self.signature),
            "public_key": b64encode(self.public_key),
        }

    def to_json(self, indent: int | None = 2) -> str:
        """Serialize for embedding; '<' is escaped so the JSON cannot end the tag."""
        text = json.dumps(self.to_dict(), indent=indent, ensure_ascii=True)
        return text.replace("<", "\\u003c")


def _parse(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def _find_marker(soup: BeautifulSoup) -> Tag | None:
    return soup.find("script", attrs={"id": MARKER_ID})


def _marker_span(html: str) -> tuple[int, int] | None:
    """Character offsets of the envelope element in the source text."""
    tag = _find_marker(_parse(html))
    if tag is None:
        return None

    # html.parser reports 1-based lines (split on "\n") and 0-based columns
    lines = html.split("\n")
    start = sum(len(line) + 1 for line in lines[: tag.sourceline - 1]) + tag.sourcepos
    match = _SCRIPT_ELEMENT_RE.match(html, start)
    return start, match.end() if match else len(html)


def render_envelope_tag(envelope: SignedEnvelope) -> str:
    """Render the script element carrying an envelope."""
    return (
        f'<script type="{MARKER_TYPE}" id="{MARKER_ID}">\n'
        f"{envelope.to_json()}\n"
        f"</script>"
    )


def embed_envelope(html: str, envelope: SignedEnvelope) -> str:
    """Place an envelope in a document.

    An existing envelope is replaced; otherwise the tag goes right before
    ``</body>``, or at the end when the document has no body close tag.
    """
    tag = render_envelope_tag(envelope)

    span = _marker_span(html)
    if span is not None:
        start, end = span
        return html[:start] + tag + html[end:]

    closes = list(_BODY_CLOSE_RE.finditer(html))
    if closes:
        pos = closes[-1].start()
        return html[:pos] + tag + "\n" + html[pos:]

    separator = "" if html.endswith("\n") or not html else "\n"
    return html + separator + tag + "\n"


def extract_envelope(html: str) -> dict[str, Any]:
    """Locate and parse the embedded envelope.

    Returns:
        The parsed JSON object (not yet validated)

    Raises:
        EnvelopeNotFoundError: If the document has no envelope marker
        MalformedEnvelopeError: If the marker body is not a JSON object
    """
    tag = _find_marker(_parse(html))
    if tag is None:
        raise EnvelopeNotFoundError("No Sonnun manifest found in document")

    body = tag.get_text().strip()
    if not body:
        raise MalformedEnvelopeError("Manifest script tag is empty")
    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise MalformedEnvelopeError(f"Invalid manifest JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedEnvelopeError(
            f"Manifest JSON must be an object, got {type(data).__name__}"
        )
    return data


def _visible_strings(soup: BeautifulSoup) -> Iterator[NavigableString]:
    for node in soup.find_all(string=True):
        if type(node) is not NavigableString or not node.strip():
            continue
        if any(parent.name in _SKIP_PARENTS for parent in node.parents):
            continue
        yield node


def document_digest(html: str) -> str:
    """SHA-256 hex digest of a document's visible text.

    Each visible text node is whitespace-normalized and the nodes are joined
    with single spaces, so markup-only edits around the text (including the
    envelope itself) leave the digest unchanged.
    """
    text = " ".join(" ".join(node.split()) for node in _visible_strings(_parse(html)))
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def bind_to_document(
    manifest: ManifestData,
    html: str,
    generated_at: str | None = None,
) -> ManifestData:
    """Return a copy of the manifest bound to a document's content."""
    return replace(
        manifest,
        generated_at=generated_at or datetime.now(UTC).isoformat(),
        document_digest=document_digest(html),
    )


def tally_marked_html(html: str) -> KindTotals:
    """Count characters per origin from provenance-marked HTML.

    Text inside an element carrying ``data-provenance`` is counted under that
    element's ``data-type`` (nearest marked ancestor wins; unknown types are
    ignored). Unmarked text counts as human. Whitespace-only text and the
    contents of script/style/head elements are not counted.
    """
    totals = {kind: 0 for kind in EventKind}
    known = {k.value for k in EventKind}

    for node in _visible_strings(_parse(html)):
        marked = next(
            (p for p in node.parents if p.has_attr("data-provenance")),
            None,
        )

        if marked is None:
            totals[EventKind.HUMAN] += len(node)
            continue
        data_type = marked.get("data-type")
        if data_type in known:
            totals[EventKind.parse(data_type)] += len(node)

    return KindTotals.from_mapping(totals)
