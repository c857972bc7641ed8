"""Node identity: canonical signing targets and Ed25519 signatures."""

from .canonical import (
    canonical_json,
    canonical_json_bytes,
    heartbeat_message,
    registration_message,
)
from .signatures import (
    decode_b64,
    encode_b64,
    generate_keypair,
    load_private_key,
    private_key_b64,
    public_key_b64,
    sign_message,
    verify,
)

__all__ = [
    "canonical_json",
    "canonical_json_bytes",
    "registration_message",
    "heartbeat_message",
    "verify",
    "decode_b64",
    "encode_b64",
    "generate_keypair",
    "public_key_b64",
    "private_key_b64",
    "load_private_key",
    "sign_message",
]
