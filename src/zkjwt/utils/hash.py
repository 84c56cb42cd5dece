# src/zkjwt/utils/hash.py
"""BLAKE3 helpers and the proof/public-input fingerprint."""

from __future__ import annotations

from collections.abc import Sequence

from blake3 import blake3

_LENGTH_PREFIX_BYTES = 8


def blake3_digest(data: bytes) -> bytes:
    """Return the byte digest of the supplied data."""
    return blake3(data).digest()


def blake3_hexdigest(data: bytes) -> str:
    """Return the hexadecimal digest of the supplied data."""
    return blake3(data).hexdigest()


def proof_fingerprint(proof: bytes, words: Sequence[bytes]) -> str:
    """Return the 64-character fingerprint of a (proof, public-input vector) pair.

    Both parts are length-prefixed so that moving bytes between the proof and
    the vector always changes the fingerprint.
    """
    hasher = blake3()
    hasher.update(len(proof).to_bytes(_LENGTH_PREFIX_BYTES, "big"))
    hasher.update(proof)
    hasher.update(len(words).to_bytes(_LENGTH_PREFIX_BYTES, "big"))
    for word in words:
        hasher.update(word)
    return hasher.hexdigest()
