# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Ed25519 signatures over registry messages.

Keys and signatures travel as standard base64. Decoding problems are
client errors (ValidationException); a well-formed signature that does not
verify is simply False.
"""

from __future__ import annotations

import base64
import binascii
import logging

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from ..core.exceptions import ValidationException

logger = logging.getLogger(__name__)

PUBLIC_KEY_LENGTH = 32
SIGNATURE_LENGTH = 64


def decode_b64(value: str, field: str) -> bytes:
    """Strictly decode standard base64.

    Raises:
        ValidationException: if the value is not a string or not valid base64
    """
    if not isinstance(value, str):
        raise ValidationException(f"{field} must be a base64 string", field=field)
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationException(f"invalid base64 in {field}: {e}", field=field) from e


def encode_b64(data: bytes) -> str:
    """Encode bytes as standard base64 text."""
    return base64.b64encode(data).decode("ascii")


def load_public_key(pubkey_b64: str) -> Ed25519PublicKey:
    """Parse a base64 Ed25519 public key.

    Raises:
        ValidationException: on bad base64 or wrong key length
    """
    raw = decode_b64(pubkey_b64, "pubkey_b64")
    if len(raw) != PUBLIC_KEY_LENGTH:
        raise ValidationException(
            f"invalid pubkey: expected {PUBLIC_KEY_LENGTH} bytes, got {len(raw)}",
            field="pubkey_b64",
        )
    return Ed25519PublicKey.from_public_bytes(raw)


def decode_signature(signature_b64: str) -> bytes:
    """Parse a base64 Ed25519 signature.

    Raises:
        ValidationException: on bad base64 or wrong signature length
    """
    raw = decode_b64(signature_b64, "signature_b64")
    if len(raw) != SIGNATURE_LENGTH:
        raise ValidationException(
            f"invalid signature: expected {SIGNATURE_LENGTH} bytes, got {len(raw)}",
            field="signature_b64",
        )
    return raw


def verify(pubkey_b64: str, signature_b64: str, message: bytes) -> bool:
    """Verify an Ed25519 signature over ``message``.

    Args:
        pubkey_b64: Base64 public key of the signer
        signature_b64: Base64 signature
        message: The exact bytes that were signed

    Returns:
        True if the signature is valid, False otherwise

    Raises:
        ValidationException: if the key or signature is malformed
    """
    public_key = load_public_key(pubkey_b64)
    signature = decode_signature(signature_b64)
    try:
        public_key.verify(signature, message)
    except InvalidSignature:
        return False
    return True


# =============================================================================
# SIGNING (node side)
# =============================================================================


def generate_keypair() -> tuple[Ed25519PrivateKey, str]:
    """Generate a new Ed25519 keypair.

    Returns:
        Tuple of (private_key, public_key_b64)
    """
    private_key = Ed25519PrivateKey.generate()
    return private_key, public_key_b64(private_key)


def public_key_b64(private_key: Ed25519PrivateKey) -> str:
    """Base64 of the raw public key belonging to ``private_key``."""
    raw = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return encode_b64(raw)


def private_key_b64(private_key: Ed25519PrivateKey) -> str:
    """Base64 of the raw 32-byte private key seed."""
    raw = private_key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return encode_b64(raw)


def load_private_key(private_key_b64_value: str) -> Ed25519PrivateKey:
    """Parse a base64 raw Ed25519 private key seed."""
    raw = decode_b64(private_key_b64_value, "private_key")
    if len(raw) != 32:
        raise ValidationException("invalid private key: expected 32 bytes", field="private_key")
    return Ed25519PrivateKey.from_private_bytes(raw)


def sign_message(private_key: Ed25519PrivateKey, message: bytes) -> str:
    """Sign ``message`` and return the base64 signature."""
    return encode_b64(private_key.sign(message))
