# src/zkjwt/services/ephemeral.py
"""Ephemeral Ed25519 session keys and the messages they sign."""

from __future__ import annotations

import json
import secrets
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from zkjwt.core.security import sign_payload, verify_signature
from zkjwt.core.settings import settings
from zkjwt.services.nonce import EphemeralKeyMaterial, utc_now
from zkjwt.utils.fields import BN254_SCALAR_MODULUS

PUBKEY_LENGTH_BYTES = 32

# Fields of a message covered by its signature.
SIGNED_MESSAGE_FIELDS = ("anon_group_id", "anon_group_provider", "text", "timestamp", "internal")


def pubkey_to_field(public_key: bytes) -> int:
    """Map a 32-byte Ed25519 public key into the BN254 scalar field.

    The key is read big-endian and shifted right by three bits, which brings
    any 256-bit value below the 254-bit modulus.
    """
    if len(public_key) != PUBKEY_LENGTH_BYTES:
        raise ValueError("Ed25519 public keys must be 32 bytes")
    return int.from_bytes(public_key, "big") >> 3


@dataclass(frozen=True)
class EphemeralKey:
    """A freshly generated session key with its nonce salt and expiry."""

    private_key: bytes = field(repr=False)
    public_key: bytes
    salt: int = field(repr=False)
    expiry: datetime

    @property
    def public_key_hex(self) -> str:
        return self.public_key.hex()

    @property
    def field_public_key(self) -> int:
        return pubkey_to_field(self.public_key)

    def material(self) -> EphemeralKeyMaterial:
        return EphemeralKeyMaterial(public_key=self.field_public_key, salt=self.salt, expiry=self.expiry)

    def sign(self, message: Mapping[str, Any]) -> str:
        return sign_payload(self.private_key, canonical_message_bytes(message))


def generate_ephemeral_key(ttl_seconds: int | None = None, *, now: datetime | None = None) -> EphemeralKey:
    """Create a session key valid for ``ttl_seconds`` (default from settings)."""
    ttl = settings.ephemeral_key_ttl_seconds if ttl_seconds is None else ttl_seconds
    if ttl <= 0:
        raise ValueError("ephemeral key TTL must be positive")

    private = Ed25519PrivateKey.generate()
    private_bytes = private.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_bytes = private.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return EphemeralKey(
        private_key=private_bytes,
        public_key=public_bytes,
        salt=secrets.randbelow(BN254_SCALAR_MODULUS),
        expiry=(now or utc_now()) + timedelta(seconds=ttl),
    )


def canonical_message_bytes(message: Mapping[str, Any]) -> bytes:
    """Serialise the signed fields of a message deterministically."""
    payload = {name: message.get(name) for name in SIGNED_MESSAGE_FIELDS}
    return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")


def sign_message(private_key: bytes, message: Mapping[str, Any]) -> str:
    return sign_payload(private_key, canonical_message_bytes(message))


def verify_message_signature(public_key_hex: str, message: Mapping[str, Any], signature_hex: str) -> bool:
    return verify_signature(public_key_hex, canonical_message_bytes(message), signature_hex)
