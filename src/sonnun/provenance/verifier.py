"""Document verification for signed provenance manifests.

Stages, in order:
1. extract the envelope from the document
2. validate its structure (no cryptography before this passes)
3. compare the embedded key with the caller's expected key, if any
4. decode signature and public key
5. re-encode the extracted manifest canonically and check the signature
6. for a document-bound manifest, compare the signed digest with the
   document's visible text (a transplanted envelope fails here)

Only fields the canonical encoding covers are accepted, and the returned
manifest is the re-encoded signed content, never the raw parsed object.

A document is either authentic and unmodified (``valid=True``) or it is not;
there are no partial states.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from sonnun.canonical import (
    BINDING_KEYS,
    EVENT_KEYS,
    MANIFEST_KEYS,
    PERCENT_PLACES,
    canonical_manifest_dict,
    encode_manifest,
    is_canonical_percentage,
    manifest_digest,
)
from sonnun.errors import (
    InvalidEncodingError,
    InvalidInputError,
    InvalidKeyLengthError,
    InvalidSignatureLengthError,
    InvalidStructureError,
    KeyMismatchError,
)
from sonnun.provenance import signing
from sonnun.provenance.embed import document_digest, extract_envelope
from sonnun.provenance.events import EventKind, is_content_digest
from sonnun.provenance.manifest import ManifestData

logger = logging.getLogger(__name__)

DEFAULT_MAX_DOCUMENT_SIZE = 50 * 1024 * 1024  # 50 MB

ENVELOPE_FIELDS = ("manifest", "signature", "public_key")
PERCENT_FIELDS = ("human_percentage", "ai_percentage", "cited_percentage")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_count(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _reject_unknown(obj: dict[str, Any], allowed: tuple[str, ...], path: str) -> None:
    for key in obj:
        if key not in allowed:
            raise InvalidStructureError(f"{path}.{key}", "unexpected field")


def _validate_event(event: Any, path: str) -> None:
    if not isinstance(event, dict):
        raise InvalidStructureError(path, "expected an object")
    for key in EVENT_KEYS:
        if key not in event:
            raise InvalidStructureError(f"{path}.{key}")
    _reject_unknown(event, EVENT_KEYS, path)

    if not isinstance(event["timestamp"], str) or not event["timestamp"]:
        raise InvalidStructureError(f"{path}.timestamp", "expected a non-empty string")
    if not isinstance(event["kind"], str) or event["kind"] not in {k.value for k in EventKind}:
        raise InvalidStructureError(f"{path}.kind", "expected one of human, ai, cited")
    if not is_content_digest(event["content_digest"]):
        raise InvalidStructureError(f"{path}.content_digest", "expected a SHA-256 hex digest")
    if not isinstance(event["source"], str):
        raise InvalidStructureError(f"{path}.source", "expected a string")
    if not _is_count(event["span_length"]):
        raise InvalidStructureError(f"{path}.span_length", "expected a non-negative integer")


def validate_envelope(data: Any) -> None:
    """Check an extracted envelope field by field.

    Raises:
        InvalidStructureError: Naming the first missing or ill-typed field
    """
    if not isinstance(data, dict):
        raise InvalidStructureError("envelope", "expected an object")
    for key in ENVELOPE_FIELDS:
        if key not in data:
            raise InvalidStructureError(key)

    manifest = data["manifest"]
    if not isinstance(manifest, dict):
        raise InvalidStructureError("manifest", "expected an object")
    for key in MANIFEST_KEYS:
        if key not in manifest:
            raise InvalidStructureError(f"manifest.{key}")
    _reject_unknown(manifest, (*MANIFEST_KEYS, *BINDING_KEYS), "manifest")

    for key in ("signature", "public_key"):
        if not isinstance(data[key], str):
            raise InvalidStructureError(key, "expected a base64 string")

    for key in PERCENT_FIELDS:
        value = manifest[key]
        if not _is_number(value):
            raise InvalidStructureError(f"manifest.{key}", "expected a number")
        if not math.isfinite(value) or not 0 <= value <= 100:
            raise InvalidStructureError(f"manifest.{key}", "expected a percentage in [0, 100]")
        if not is_canonical_percentage(value):
            raise InvalidStructureError(
                f"manifest.{key}", f"expected at most {PERCENT_PLACES} decimal places"
            )
    if not _is_count(manifest["total_characters"]):
        raise InvalidStructureError("manifest.total_characters", "expected a non-negative integer")

    events = manifest["events"]
    if not isinstance(events, list):
        raise InvalidStructureError("manifest.events", "expected a list")
    for index, event in enumerate(events):
        _validate_event(event, f"manifest.events[{index}]")

    if "generated_at" in manifest and (
        not isinstance(manifest["generated_at"], str) or not manifest["generated_at"]
    ):
        raise InvalidStructureError("manifest.generated_at", "expected a non-empty string")
    if "document_digest" in manifest and not is_content_digest(manifest["document_digest"]):
        raise InvalidStructureError("manifest.document_digest", "expected a SHA-256 hex digest")


def _check_expected_key(expected: bytes | str, embedded_b64: str) -> None:
    """Raise KeyMismatchError unless both keys denote the same bytes."""
    if isinstance(expected, str):
        if expected.strip() == embedded_b64.strip():
            return
        expected_bytes = signing.b64decode(expected, "expected public key")
    else:
        expected_bytes = bytes(expected)

    try:
        embedded_bytes = signing.b64decode(embedded_b64, "public key")
    except InvalidEncodingError:
        embedded_bytes = None
    if embedded_bytes != expected_bytes:
        raise KeyMismatchError("Provided public key does not match document key")


@dataclass
class VerificationResult:
    """Result of verifying a document.

    ``valid`` is True only when the signature checks out and, for a manifest
    bound to a document, the document's visible text still matches the signed
    digest. ``manifest`` is the signed content as re-encoded from the
    document. It is returned even when ``valid`` is False so callers can show
    "claimed but unverifiable" provenance; it must not be trusted in that case.
    """

    valid: bool
    public_key: str
    manifest: dict[str, Any]
    manifest_data: ManifestData | None = None
    key_fingerprint: str = ""
    manifest_digest: str = ""
    signature_valid: bool | None = None
    document_match: bool | None = None
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "valid": self.valid,
            "signature_valid": self.signature_valid,
            "document_match": self.document_match,
            "public_key": self.public_key,
            "key_fingerprint": self.key_fingerprint,
            "manifest_digest": self.manifest_digest,
            "manifest": self.manifest,
            "timestamp": self.timestamp,
        }

    def write_json(self, path: Path) -> None:
        """Write to JSON file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, sort_keys=True)

    def format_report(self) -> str:
        """Human-readable report."""
        lines = [
            "✅ VALID signature" if self.valid else "❌ INVALID signature",
            f"Public key: {self.public_key}",
        ]
        if self.key_fingerprint:
            lines.append(f"Key fingerprint: {self.key_fingerprint}")
        if self.document_match is False:
            lines.append("Document text does not match the signed document digest")
        elif self.document_match is None and self.manifest_data is not None:
            lines.append("Manifest is not bound to this document's text")
        if self.manifest_data is not None:
            m = self.manifest_data
            lines.extend([
                f"Human: {m.human_percentage:.1f}%",
                f"AI: {m.ai_percentage:.1f}%",
                f"Cited: {m.cited_percentage:.1f}%",
                f"Total characters: {m.total_characters}",
                f"Events in excerpt (advisory): {len(m.events)}",
            ])
            if m.generated_at:
                lines.append(f"Generated at: {m.generated_at}")
        if not self.valid:
            lines.append("The manifest above is claimed, not verified.")
        return "\n".join(lines)


class DocumentVerifier:
    """Verifier for documents carrying an embedded signed manifest."""

    def __init__(
        self,
        expected_public_key: bytes | str | None = None,
        max_document_size: int = DEFAULT_MAX_DOCUMENT_SIZE,
    ) -> None:
        self.expected_public_key = expected_public_key
        self.max_document_size = max_document_size

    def verify_envelope(self, data: Any, html: str | None = None) -> VerificationResult:
        """Verify an already extracted envelope (stages 2-5).

        Args:
            data: Parsed envelope
            html: Document the envelope came from; needed to check a
                document-bound manifest against its text
        """
        validate_envelope(data)
        public_key_b64 = data["public_key"]

        if self.expected_public_key is not None:
            _check_expected_key(self.expected_public_key, public_key_b64)

        public_key = signing.b64decode(public_key_b64, "public key")
        signature = signing.b64decode(data["signature"], "signature")
        if len(public_key) != signing.KEY_LENGTH:
            raise InvalidKeyLengthError(
                f"Invalid public key length: expected {signing.KEY_LENGTH} bytes, got {len(public_key)}"
            )
        if len(signature) != signing.SIGNATURE_LENGTH:
            raise InvalidSignatureLengthError(
                f"Invalid signature length: expected {signing.SIGNATURE_LENGTH} bytes, "
                f"got {len(signature)}"
            )

        manifest_data = ManifestData.from_dict(data["manifest"])
        signature_valid = signing.verify(encode_manifest(manifest_data), signature, public_key)

        document_match = None
        if manifest_data.document_digest is not None and html is not None:
            document_match = document_digest(html) == manifest_data.document_digest
        valid = signature_valid and document_match is not False

        result = VerificationResult(
            valid=valid,
            public_key=public_key_b64,
            manifest=canonical_manifest_dict(manifest_data),
            manifest_data=manifest_data,
            key_fingerprint=signing.key_fingerprint(public_key),
            manifest_digest=manifest_digest(manifest_data),
            signature_valid=signature_valid,
            document_match=document_match,
        )
        logger.info(
            "Verification %s for key %s (signature %s, document match %s)",
            "passed" if valid else "failed",
            result.key_fingerprint,
            signature_valid,
            document_match,
        )
        return result

    def verify_html(self, html: str) -> VerificationResult:
        """Verify a document given as text."""
        return self.verify_envelope(extract_envelope(html), html)

    def verify_file(self, path: Path) -> VerificationResult:
        """Verify a document on disk.

        Raises:
            InvalidInputError: If the document cannot be read, is too large
                or is not UTF-8 text
        """
        path = Path(path)
        try:
            size = path.stat().st_size
        except OSError as e:
            raise InvalidInputError(f"Cannot read document {path}: {e.strerror or e}") from e
        if size > self.max_document_size:
            raise InvalidInputError(
                f"Document too large: {path} ({size} bytes > {self.max_document_size})"
            )
        try:
            html = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise InvalidInputError(f"Document is not UTF-8 text: {path}") from e
        except OSError as e:
            raise InvalidInputError(f"Cannot read document {path}: {e.strerror or e}") from e
        logger.debug("Verifying %s (%d bytes)", path, size)
        return self.verify_html(html)


def verify_document(
    path: Path,
    expected_public_key: bytes | str | None = None,
) -> VerificationResult:
    """Verify a document file with default limits."""
    return DocumentVerifier(expected_public_key=expected_public_key).verify_file(path)
