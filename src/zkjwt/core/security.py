"""Signature utilities built on Ed25519 primitives."""
from __future__ import annotations

import binascii

from nacl.exceptions import BadSignatureError, CryptoError
from nacl.signing import SigningKey, VerifyKey


def sign_payload(private_key: bytes, message: bytes) -> str:
    """Sign ``message`` with a raw 32-byte Ed25519 seed and return the hex signature."""
    return SigningKey(private_key).sign(message).signature.hex()


def verify_signature(pubkey_hex: str, message: bytes, signature_hex: str) -> bool:
    """Verify an Ed25519 signature.

    Args:
        pubkey_hex: Hex-encoded 32-byte public key.
        message: Exact bytes that were signed on the client.
        signature_hex: Hex-encoded 64-byte signature.

    Returns:
        True if the signature is valid for `message` under `pubkey_hex`; False otherwise.
    """
    try:
        pubkey = VerifyKey(binascii.unhexlify(pubkey_hex.removeprefix("0x")))
        signature = binascii.unhexlify(signature_hex.removeprefix("0x"))
        pubkey.verify(message, signature)
    except (BadSignatureError, CryptoError, binascii.Error, ValueError, TypeError):
        return False
    return True
