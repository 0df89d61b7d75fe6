"""Ed25519 signing for provenance manifests.

Uses environment variables for key storage when keys are not passed in:
- SONNUN_SIGNING_PRIVATE_KEY: Base64-encoded 32-byte seed
- SONNUN_SIGNING_PUBLIC_KEY: Base64-encoded 32-byte public key (optional)

Ed25519 is deterministic, so signing the same bytes with the same key always
yields the same signature. The signing key is never logged or persisted here.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from sonnun.errors import (
    InvalidEncodingError,
    InvalidInputError,
    InvalidKeyLengthError,
    InvalidSignatureLengthError,
    ProvenanceError,
)

if TYPE_CHECKING:
    from sonnun.provenance.embed import SignedEnvelope
    from sonnun.provenance.manifest import ManifestData

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
SIGNATURE_LENGTH = 64

PRIVATE_KEY_ENV = "SONNUN_SIGNING_PRIVATE_KEY"
PUBLIC_KEY_ENV = "SONNUN_SIGNING_PUBLIC_KEY"


class SigningError(ProvenanceError):
    """Signer is not configured or its keys disagree."""

    stage = "signing"


@dataclass(frozen=True)
class KeyPair:
    """Ed25519 key pair as raw bytes."""

    signing_key: bytes = field(repr=False)
    verifying_key: bytes


def b64encode(data: bytes) -> str:
    """Standard base64 with padding, as embedded in envelopes."""
    return base64.b64encode(data).decode("ascii")


def b64decode(text: str, what: str = "value") -> bytes:
    """Strict standard base64 decode.

    Raises:
        InvalidEncodingError: If text is not valid base64
    """
    try:
        return base64.b64decode(text.strip(), validate=True)
    except (binascii.Error, ValueError, AttributeError) as e:
        raise InvalidEncodingError(f"Invalid {what} encoding: {e}") from e


def key_fingerprint(public_key: bytes) -> str:
    """Short printable id for a public key (safe to log)."""
    return hashlib.sha256(public_key).hexdigest()[:8]


def _check_key(key: bytes, what: str) -> None:
    if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_LENGTH:
        size = len(key) if isinstance(key, (bytes, bytearray)) else type(key).__name__
        raise InvalidKeyLengthError(
            f"Invalid {what} length: expected {KEY_LENGTH} bytes, got {size}"
        )


def generate_keypair() -> KeyPair:
    """Generate a new key pair from the operating system CSPRNG."""
    private_key = Ed25519PrivateKey.generate()
    signing_key = private_key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    verifying_key = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    logger.debug("Generated key pair %s", key_fingerprint(verifying_key))
    return KeyPair(signing_key=signing_key, verifying_key=verifying_key)


def public_key_of(signing_key: bytes) -> bytes:
    """Derive the public key for a 32-byte seed."""
    _check_key(signing_key, "private key")
    return Ed25519PrivateKey.from_private_bytes(bytes(signing_key)).public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def sign(message: bytes, signing_key: bytes) -> bytes:
    """Sign a message.

    Args:
        message: Non-empty bytes to sign
        signing_key: 32-byte Ed25519 seed

    Returns:
        64-byte signature

    Raises:
        InvalidInputError: If message is empty
        InvalidKeyLengthError: If the key is not 32 bytes
    """
    if not message:
        raise InvalidInputError("Content cannot be empty")
    _check_key(signing_key, "private key")
    return Ed25519PrivateKey.from_private_bytes(bytes(signing_key)).sign(message)


def verify(message: bytes, signature: bytes, verifying_key: bytes) -> bool:
    """Verify a signature.

    Returns False for a well-formed signature that does not match. Only
    malformed inputs raise.

    Raises:
        InvalidInputError: If message is empty
        InvalidKeyLengthError: If the public key is not 32 bytes
        InvalidSignatureLengthError: If the signature is not 64 bytes
        InvalidEncodingError: If the key bytes are not a usable Ed25519 key
    """
    if not message:
        raise InvalidInputError("Content cannot be empty")
    _check_key(verifying_key, "public key")
    if not isinstance(signature, (bytes, bytearray)) or len(signature) != SIGNATURE_LENGTH:
        size = len(signature) if isinstance(signature, (bytes, bytearray)) else type(signature).__name__
        raise InvalidSignatureLengthError(
            f"Invalid signature length: expected {SIGNATURE_LENGTH} bytes, got {size}"
        )

    try:
        public_key = Ed25519PublicKey.from_public_bytes(bytes(verifying_key))
    except ValueError as e:
        raise InvalidEncodingError(f"Invalid public key format: {e}") from e

    try:
        public_key.verify(bytes(signature), message)
    except InvalidSignature:
        return False
    return True


class Signer:
    """Manifest signer bound to one key pair."""

    def __init__(
        self,
        signing_key: bytes | None = None,
        verifying_key: bytes | None = None,
    ) -> None:
        """Initialize signer.

        Args:
            signing_key: 32-byte seed (optional)
            verifying_key: 32-byte public key (optional, derived when omitted)

        If no signing key is given, attempts to load keys from environment
        variables.
        """
        self._signing_key = signing_key
        self._verifying_key = verifying_key

        if self._signing_key is None:
            self._load_keys_from_env()

        if self._signing_key is not None:
            derived = public_key_of(self._signing_key)
            if self._verifying_key is not None and bytes(self._verifying_key) != derived:
                raise SigningError("Public key does not belong to the signing key")
            self._verifying_key = derived

    def _load_keys_from_env(self) -> None:
        """Load keys from environment variables."""
        priv_b64 = os.environ.get(PRIVATE_KEY_ENV)
        pub_b64 = os.environ.get(PUBLIC_KEY_ENV)

        if priv_b64:
            self._signing_key = b64decode(priv_b64, PRIVATE_KEY_ENV)
        if pub_b64 and self._verifying_key is None:
            self._verifying_key = b64decode(pub_b64, PUBLIC_KEY_ENV)

    @classmethod
    def from_keypair(cls, keypair: KeyPair) -> Signer:
        return cls(signing_key=keypair.signing_key, verifying_key=keypair.verifying_key)

    @property
    def public_key(self) -> bytes | None:
        return self._verifying_key

    def is_configured(self) -> bool:
        """Check if signer has a signing key."""
        return self._signing_key is not None

    def sign(self, message: bytes) -> bytes:
        """Sign raw bytes with the configured key.

        Raises:
            SigningError: If no signing key is configured
        """
        if not self.is_configured():
            raise SigningError("No private key configured")
        return sign(message, self._signing_key)

    def sign_manifest(self, manifest: ManifestData) -> SignedEnvelope:
        """Canonically encode and sign a manifest."""
        from sonnun.canonical import encode_manifest
        from sonnun.provenance.embed import SignedEnvelope

        signature = self.sign(encode_manifest(manifest))
        logger.info(
            "Signed manifest (%d characters) with key %s",
            manifest.total_characters,
            key_fingerprint(self._verifying_key),
        )
        return SignedEnvelope(
            manifest=manifest,
            signature=signature,
            public_key=self._verifying_key,
        )

    @classmethod
    def keys_to_env_format(cls, keypair: KeyPair) -> tuple[str, str]:
        """Convert keys to environment variable format.

        Returns:
            Tuple of (private_key_b64, public_key_b64)
        """
        return (b64encode(keypair.signing_key), b64encode(keypair.verifying_key))
