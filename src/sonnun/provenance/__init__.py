"""Signed provenance manifests.

Records who produced each span of a document, summarizes the record into a
percentage manifest, signs the manifest's canonical encoding with Ed25519 and
verifies documents that carry the result.
"""

from __future__ import annotations

from sonnun.provenance.embed import (
    SignedEnvelope,
    embed_envelope,
    extract_envelope,
    tally_marked_html,
)
from sonnun.provenance.events import EventKind, KindTotals, ProvenanceEvent, hash_text
from sonnun.provenance.manifest import ManifestData, build_manifest
from sonnun.provenance.signing import (
    KeyPair,
    Signer,
    SigningError,
    generate_keypair,
    sign,
    verify,
)
from sonnun.provenance.verifier import DocumentVerifier, VerificationResult, verify_document

__all__ = [
    "DocumentVerifier",
    "EventKind",
    "KeyPair",
    "KindTotals",
    "ManifestData",
    "ProvenanceEvent",
    "SignedEnvelope",
    "Signer",
    "SigningError",
    "VerificationResult",
    "build_manifest",
    "embed_envelope",
    "extract_envelope",
    "generate_keypair",
    "hash_text",
    "sign",
    "tally_marked_html",
    "verify",
    "verify_document",
]
