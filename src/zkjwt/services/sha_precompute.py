# src/zkjwt/services/sha_precompute.py
"""Partial SHA-256 over the signed data.

Long tokens are cheaper to prove when the blocks before the claims the
circuit reads are hashed outside it. The circuit then resumes from the
intermediate state, which ``hashlib`` does not expose, so the compression
function is implemented here.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from zkjwt.core.errors import BindingMismatch, MalformedTokenError
from zkjwt.services.tokens import IdentityToken

BLOCK_SIZE = 64

SHA256_INITIAL_STATE: tuple[int, ...] = (
    0x6A09E667, 0xBB67AE85, 0x3C6EF372, 0xA54FF53A,
    0x510E527F, 0x9B05688C, 0x1F83D9AB, 0x5BE0CD19,
)

_K = (
    0x428A2F98, 0x71374491, 0xB5C0FBCF, 0xE9B5DBA5, 0x3956C25B, 0x59F111F1, 0x923F82A4, 0xAB1C5ED5,
    0xD807AA98, 0x12835B01, 0x243185BE, 0x550C7DC3, 0x72BE5D74, 0x80DEB1FE, 0x9BDC06A7, 0xC19BF174,
    0xE49B69C1, 0xEFBE4786, 0x0FC19DC6, 0x240CA1CC, 0x2DE92C6F, 0x4A7484AA, 0x5CB0A9DC, 0x76F988DA,
    0x983E5152, 0xA831C66D, 0xB00327C8, 0xBF597FC7, 0xC6E00BF3, 0xD5A79147, 0x06CA6351, 0x14292967,
    0x27B70A85, 0x2E1B2138, 0x4D2C6DFC, 0x53380D13, 0x650A7354, 0x766A0ABB, 0x81C2C92E, 0x92722C85,
    0xA2BFE8A1, 0xA81A664B, 0xC24B8B70, 0xC76C51A3, 0xD192E819, 0xD6990624, 0xF40E3585, 0x106AA070,
    0x19A4C116, 0x1E376C08, 0x2748774C, 0x34B0BCB5, 0x391C0CB3, 0x4ED8AA4A, 0x5B9CCA4F, 0x682E6FF3,
    0x748F82EE, 0x78A5636F, 0x84C87814, 0x8CC70208, 0x90BEFFFA, 0xA4506CEB, 0xBEF9A3F7, 0xC67178F2,
)

_MASK = 0xFFFFFFFF


def _rotr(value: int, amount: int) -> int:
    return ((value >> amount) | (value << (32 - amount))) & _MASK


def compress(state: Sequence[int], block: bytes) -> tuple[int, ...]:
    """Run one SHA-256 compression of a 64-byte block."""
    if len(block) != BLOCK_SIZE:
        raise ValueError("SHA-256 blocks are 64 bytes")

    w = [int.from_bytes(block[i:i + 4], "big") for i in range(0, BLOCK_SIZE, 4)]
    for i in range(16, 64):
        s0 = _rotr(w[i - 15], 7) ^ _rotr(w[i - 15], 18) ^ (w[i - 15] >> 3)
        s1 = _rotr(w[i - 2], 17) ^ _rotr(w[i - 2], 19) ^ (w[i - 2] >> 10)
        w.append((w[i - 16] + s0 + w[i - 7] + s1) & _MASK)

    a, b, c, d, e, f, g, h = state
    for i in range(64):
        s1 = _rotr(e, 6) ^ _rotr(e, 11) ^ _rotr(e, 25)
        ch = (e & f) ^ (~e & g)
        temp1 = (h + s1 + ch + _K[i] + w[i]) & _MASK
        s0 = _rotr(a, 2) ^ _rotr(a, 13) ^ _rotr(a, 22)
        maj = (a & b) ^ (a & c) ^ (b & c)
        temp2 = (s0 + maj) & _MASK
        h, g, f, e = g, f, e, (d + temp1) & _MASK
        d, c, b, a = c, b, a, (temp1 + temp2) & _MASK

    return tuple((x + y) & _MASK for x, y in zip(state, (a, b, c, d, e, f, g, h)))


def partial_sha256(data: bytes, length: int) -> tuple[int, ...]:
    """Return the SHA-256 state after absorbing the first ``length`` bytes.

    ``length`` must be a whole number of blocks and no longer than ``data``.
    """
    if length < 0 or length % BLOCK_SIZE or length > len(data):
        raise ValueError("precomputed length must be a whole number of blocks within the data")
    state = SHA256_INITIAL_STATE
    for offset in range(0, length, BLOCK_SIZE):
        state = compress(state, data[offset:offset + BLOCK_SIZE])
    return state


@dataclass(frozen=True)
class ShaPrecomputeHint:
    """A partial SHA-256 checkpoint: the state after ``precomputed_length`` bytes."""

    partial_hash: tuple[int, ...]
    precomputed_length: int

    def __post_init__(self) -> None:
        if len(self.partial_hash) != 8 or any(not 0 <= word <= _MASK for word in self.partial_hash):
            raise ValueError("partial hash must be eight 32-bit words")
        if self.precomputed_length < 0 or self.precomputed_length % BLOCK_SIZE:
            raise ValueError("precomputed length must be a whole number of blocks")

    @classmethod
    def for_data(cls, data: bytes, length: int) -> ShaPrecomputeHint:
        length -= length % BLOCK_SIZE
        return cls(partial_sha256(data, length), length)

    @classmethod
    def for_claims(cls, token: IdentityToken, claim_names: Sequence[str]) -> ShaPrecomputeHint:
        """Checkpoint just before the earliest of ``claim_names`` in the payload.

        The claim's offset in the decoded payload is mapped to its position in
        the base64url text (three bytes become four characters), then shifted
        past the header and the separating dot.
        """
        if not claim_names:
            raise ValueError("at least one claim name is required")
        payload = token.payload_json
        positions = [payload.find(f'"{name}":') for name in claim_names]
        missing = [name for name, pos in zip(claim_names, positions) if pos < 0]
        if missing:
            raise MalformedTokenError(f"token payload lacks claims: {', '.join(missing)}")

        decoded_offset = len(payload[:min(positions)].encode("utf-8"))
        encoded_offset = decoded_offset * 4 // 3
        slice_start = len(token.header_b64) + 1 + encoded_offset
        return cls.for_data(token.signed_data, slice_start)

    def check(self, data: bytes) -> None:
        """Raise :class:`BindingMismatch` unless this checkpoint matches ``data``."""
        if self.precomputed_length > len(data):
            raise BindingMismatch("precomputed length exceeds the signed data")
        if partial_sha256(data, self.precomputed_length) != tuple(self.partial_hash):
            raise BindingMismatch("partial SHA-256 state does not match the token bytes")
