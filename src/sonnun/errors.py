"""Error kinds raised by the provenance core.

Every error names the stage it was raised in so command-line callers can tell
"not our document" from "tampered document" from "wrong expected key".
A well-formed signature that simply does not match is NOT an error; the
verifier reports it as ``valid=False``.
"""

from __future__ import annotations


class ProvenanceError(Exception):
    """Base class for all provenance errors."""

    stage = "provenance"


class InvalidInputError(ProvenanceError):
    """Caller supplied unusable input (empty message, unknown kind, ...)."""

    stage = "input"


class InvalidEncodingError(ProvenanceError):
    """Bytes or text could not be decoded (base64, key material)."""

    stage = "decoding"


class InvalidKeyLengthError(InvalidEncodingError):
    """Key is not the algorithm's fixed length."""


class InvalidSignatureLengthError(InvalidEncodingError):
    """Signature is not the algorithm's fixed length."""


class EnvelopeNotFoundError(ProvenanceError):
    """Document carries no embedded envelope marker."""

    stage = "extraction"


class MalformedEnvelopeError(InvalidEncodingError):
    """Envelope marker is present but its body is not a JSON object."""

    stage = "extraction"


class InvalidStructureError(ProvenanceError):
    """Envelope is missing a required field or has one of the wrong type."""

    stage = "structural validation"

    def __init__(self, field: str, problem: str = "missing required field") -> None:
        self.field = field
        self.problem = problem
        super().__init__(f"{problem}: {field}")


class KeyMismatchError(ProvenanceError):
    """Embedded public key differs from the key the caller expected."""

    stage = "key match"


class StorageError(ProvenanceError):
    """Ledger storage failed; the backend error is chained as ``__cause__``."""

    stage = "storage"
