# src/zkjwt/utils/fields.py
"""Field-element, word and limb helpers shared by the circuit and ABI encoders."""

from __future__ import annotations

import base64
import binascii
import re
from collections.abc import Sequence

# Scalar field of the BN254 curve used by the proof system.
BN254_SCALAR_MODULUS = 21888242871839275222246405745257275088548364400416034343698204186575808495617

WORD_BYTES = 32
_WORD_LIMIT = 1 << (WORD_BYTES * 8)
_B64URL_RE = re.compile(r"[A-Za-z0-9_-]+")


def is_field_element(value: int) -> bool:
    """Return True when ``value`` is a canonical BN254 scalar."""
    return 0 <= value < BN254_SCALAR_MODULUS


def to_word(value: int) -> bytes:
    """Encode a non-negative integer as a 32-byte big-endian word."""
    if value < 0 or value >= _WORD_LIMIT:
        raise ValueError("value does not fit in a 32-byte word")
    return value.to_bytes(WORD_BYTES, "big")


def from_word(word: bytes) -> int:
    """Decode a 32-byte big-endian word."""
    if len(word) != WORD_BYTES:
        raise ValueError(f"expected a {WORD_BYTES}-byte word, got {len(word)} bytes")
    return int.from_bytes(word, "big")


def split_limbs(value: int, limb_bits: int, limb_count: int) -> list[int]:
    """Split ``value`` into ``limb_count`` little-endian limbs of ``limb_bits`` each."""
    if value < 0:
        raise ValueError("cannot split a negative value into limbs")
    if value.bit_length() > limb_bits * limb_count:
        raise ValueError(f"value needs more than {limb_count} limbs of {limb_bits} bits")
    mask = (1 << limb_bits) - 1
    return [(value >> (limb_bits * index)) & mask for index in range(limb_count)]


def join_limbs(limbs: Sequence[int], limb_bits: int) -> int:
    """Inverse of :func:`split_limbs`."""
    value = 0
    for index, limb in enumerate(limbs):
        if limb < 0 or limb >> limb_bits:
            raise ValueError(f"limb {index} does not fit in {limb_bits} bits")
        value |= limb << (limb_bits * index)
    return value


def b64url_decode(data: str) -> bytes:
    """Decode unpadded base64url text, as used by JWS segments and JWK members."""
    if not _B64URL_RE.fullmatch(data):
        raise ValueError("not a base64url string")
    padding = "=" * (-len(data) % 4)
    try:
        return base64.urlsafe_b64decode(data + padding)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("not a base64url string") from exc


def b64url_encode(data: bytes) -> str:
    """Encode bytes as unpadded base64url text."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def b64url_to_int(data: str) -> int:
    """Decode a base64url big-endian integer such as a JWK ``n`` or ``e``."""
    return int.from_bytes(b64url_decode(data), "big")


def int_to_b64url(value: int) -> str:
    """Encode a positive integer as big-endian base64url (JWK style)."""
    if value <= 0:
        raise ValueError("only positive integers are encoded")
    return b64url_encode(value.to_bytes((value.bit_length() + 7) // 8, "big"))
