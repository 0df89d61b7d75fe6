"""Tests for the Ed25519 signing primitive."""

from __future__ import annotations

import pytest

from sonnun.errors import (
    InvalidEncodingError,
    InvalidInputError,
    InvalidKeyLengthError,
    InvalidSignatureLengthError,
)
from sonnun.provenance.signing import (
    KeyPair,
    Signer,
    SigningError,
    b64decode,
    b64encode,
    generate_keypair,
    key_fingerprint,
    public_key_of,
    sign,
    verify,
)


class TestKeyGeneration:
    """Test key pair generation."""

    def test_generate_keys(self):
        """Keys have the algorithm's fixed sizes."""
        keypair = generate_keypair()

        assert len(keypair.signing_key) == 32
        assert len(keypair.verifying_key) == 32

    def test_keys_are_not_correlated(self):
        """Two invocations never produce the same key."""
        first = generate_keypair()
        second = generate_keypair()

        assert first.signing_key != second.signing_key
        assert first.verifying_key != second.verifying_key

    def test_public_key_derivation(self):
        """Public key can be derived from the seed."""
        keypair = generate_keypair()
        assert public_key_of(keypair.signing_key) == keypair.verifying_key

    def test_repr_hides_signing_key(self):
        """The seed never shows up in reprs (and therefore logs)."""
        keypair = generate_keypair()
        assert keypair.signing_key.hex() not in repr(keypair)
        assert "signing_key" not in repr(keypair)


class TestSignVerify:
    """Test signing and verification."""

    def test_sign_and_verify(self, keypair: KeyPair):
        """A fresh signature verifies."""
        message = b"This is a test document."
        signature = sign(message, keypair.signing_key)

        assert len(signature) == 64
        assert verify(message, signature, keypair.verifying_key) is True

    def test_signing_is_deterministic(self, keypair: KeyPair):
        """Ed25519 has no per-call randomness."""
        message = b"same bytes"
        assert sign(message, keypair.signing_key) == sign(message, keypair.signing_key)

    def test_verify_wrong_message(self, keypair: KeyPair):
        """Verification fails with a different message."""
        signature = sign(b"original message", keypair.signing_key)
        assert verify(b"different message", signature, keypair.verifying_key) is False

    @pytest.mark.parametrize("index", [0, 7, 23])
    def test_flipped_message_byte(self, keypair: KeyPair, index: int):
        """Flipping any byte of the message gives False, not an error."""
        message = bytearray(b"The quick brown fox jumps over it")
        signature = sign(bytes(message), keypair.signing_key)
        message[index] ^= 0x01

        assert verify(bytes(message), signature, keypair.verifying_key) is False

    @pytest.mark.parametrize("index", [0, 31, 63])
    def test_flipped_signature_byte(self, keypair: KeyPair, index: int):
        """Flipping any byte of the signature gives False."""
        message = b"payload"
        signature = bytearray(sign(message, keypair.signing_key))
        signature[index] ^= 0x80

        assert verify(message, bytes(signature), keypair.verifying_key) is False

    def test_unrelated_public_key(self, keypair: KeyPair):
        """A different key does not verify."""
        message = b"payload"
        signature = sign(message, keypair.signing_key)
        other = generate_keypair()

        assert verify(message, signature, other.verifying_key) is False


class TestSigningErrors:
    """Malformed input raises; mismatches do not."""

    def test_empty_message_sign(self):
        with pytest.raises(InvalidInputError, match="Content cannot be empty"):
            sign(b"", b"\x00" * 32)

    def test_empty_message_verify(self, keypair: KeyPair):
        with pytest.raises(InvalidInputError):
            verify(b"", b"\x00" * 64, keypair.verifying_key)

    def test_invalid_private_key_length(self):
        with pytest.raises(InvalidKeyLengthError, match="private key length"):
            sign(b"test", b"\x00" * 10)

    def test_invalid_public_key_length(self, keypair: KeyPair):
        signature = sign(b"test", keypair.signing_key)
        with pytest.raises(InvalidKeyLengthError):
            verify(b"test", signature, keypair.verifying_key[:31])

    def test_invalid_signature_length(self, keypair: KeyPair):
        with pytest.raises(InvalidSignatureLengthError):
            verify(b"test", b"\x00" * 63, keypair.verifying_key)

    def test_key_length_error_is_encoding_error(self):
        """Length errors are a kind of decoding failure."""
        assert issubclass(InvalidKeyLengthError, InvalidEncodingError)


class TestBase64:
    """Test base64 helpers."""

    def test_roundtrip(self):
        data = bytes(range(32))
        assert b64decode(b64encode(data)) == data

    def test_invalid_base64(self):
        with pytest.raises(InvalidEncodingError, match="signature"):
            b64decode("invalid_base64!", "signature")

    def test_fingerprint(self):
        assert len(key_fingerprint(b"\x01" * 32)) == 8


class TestSigner:
    """Test the Signer class."""

    def test_unconfigured_signer(self, monkeypatch: pytest.MonkeyPatch):
        """Unconfigured signer raises on sign."""
        monkeypatch.delenv("SONNUN_SIGNING_PRIVATE_KEY", raising=False)
        signer = Signer()
        assert signer.is_configured() is False

        with pytest.raises(SigningError):
            signer.sign(b"test")

    def test_derives_public_key(self, keypair: KeyPair):
        signer = Signer(signing_key=keypair.signing_key)
        assert signer.public_key == keypair.verifying_key

    def test_mismatched_public_key(self, keypair: KeyPair):
        with pytest.raises(SigningError, match="does not belong"):
            Signer(signing_key=keypair.signing_key, verifying_key=generate_keypair().verifying_key)

    def test_loads_keys_from_env(self, keypair: KeyPair, monkeypatch: pytest.MonkeyPatch):
        priv_b64, pub_b64 = Signer.keys_to_env_format(keypair)
        monkeypatch.setenv("SONNUN_SIGNING_PRIVATE_KEY", priv_b64)
        monkeypatch.setenv("SONNUN_SIGNING_PUBLIC_KEY", pub_b64)

        signer = Signer()
        assert signer.is_configured() is True
        assert verify(b"x", signer.sign(b"x"), keypair.verifying_key) is True

    def test_invalid_env_key(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("SONNUN_SIGNING_PRIVATE_KEY", "not base64!!")
        with pytest.raises(InvalidEncodingError):
            Signer()
