# src/zkjwt/services/public_inputs.py
"""Versioned packing of the public-input vector passed to the verifier contract.

Schema version 1 lays out 32-byte big-endian words in this order:

=========  =====================================================
words      content
=========  =====================================================
0..17      RSA modulus, 18 little-endian limbs of 120 bits
18..81     domain, one byte per word, zero padded to 64 bytes
82         domain length in bytes
83         ephemeral public key (field element)
84         ephemeral key expiry, unix seconds
=========  =====================================================
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from zkjwt.core.errors import EncodingMismatch
from zkjwt.services.nonce import expiry_seconds
from zkjwt.utils.fields import (
    WORD_BYTES,
    from_word,
    is_field_element,
    join_limbs,
    split_limbs,
    to_word,
)


@dataclass(frozen=True)
class PublicInputSchema:
    version: int
    limb_bits: int
    limb_count: int
    max_domain_length: int

    @property
    def word_count(self) -> int:
        return self.limb_count + self.max_domain_length + 3


SCHEMA_V1 = PublicInputSchema(version=1, limb_bits=120, limb_count=18, max_domain_length=64)
SCHEMAS: dict[int, PublicInputSchema] = {SCHEMA_V1.version: SCHEMA_V1}
CURRENT_SCHEMA_VERSION = SCHEMA_V1.version


@dataclass(frozen=True)
class PublicInputVector:
    """Ordered 32-byte words tagged with the schema that produced them."""

    schema_version: int
    words: tuple[bytes, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "words", tuple(bytes(word) for word in self.words))
        if any(len(word) != WORD_BYTES for word in self.words):
            raise ValueError("public inputs must be 32-byte words")

    def __len__(self) -> int:
        return len(self.words)

    def to_bytes(self) -> bytes:
        return b"".join(self.words)

    def as_hex(self) -> list[str]:
        return ["0x" + word.hex() for word in self.words]

    @classmethod
    def from_hex(cls, values: Sequence[str], schema_version: int = CURRENT_SCHEMA_VERSION) -> PublicInputVector:
        try:
            words = tuple(bytes.fromhex(value.removeprefix("0x")) for value in values)
        except ValueError as exc:
            raise EncodingMismatch("public inputs are not hex words") from exc
        try:
            return cls(schema_version=schema_version, words=words)
        except ValueError as exc:
            raise EncodingMismatch(str(exc)) from exc


@dataclass(frozen=True)
class StructuredPublicInputs:
    """The logical values a vector is derived from."""

    issuer_modulus: int
    domain: str
    ephemeral_pubkey: int
    expiry: int


class PublicInputEncoder:
    """Derives public-input vectors for one schema version."""

    def __init__(self, schema_version: int = CURRENT_SCHEMA_VERSION) -> None:
        schema = SCHEMAS.get(schema_version)
        if schema is None:
            raise EncodingMismatch(f"unknown public-input schema version {schema_version}")
        self._schema = schema

    @property
    def schema(self) -> PublicInputSchema:
        return self._schema

    def encode(
        self,
        modulus: int,
        domain: str,
        ephemeral_pubkey: int,
        expiry: datetime | int,
    ) -> PublicInputVector:
        schema = self._schema
        if modulus <= 0:
            raise ValueError("modulus must be positive")
        domain_bytes = domain.encode("utf-8")
        if not domain_bytes or len(domain_bytes) > schema.max_domain_length:
            raise ValueError(f"domain must be 1..{schema.max_domain_length} bytes")
        if not is_field_element(ephemeral_pubkey):
            raise ValueError("ephemeral public key must be a BN254 field element")
        expiry_ts = expiry if isinstance(expiry, int) else expiry_seconds(expiry)
        if expiry_ts < 0:
            raise ValueError("expiry must not precede the unix epoch")

        words = [to_word(limb) for limb in split_limbs(modulus, schema.limb_bits, schema.limb_count)]
        words.extend(to_word(byte) for byte in domain_bytes.ljust(schema.max_domain_length, b"\x00"))
        words.append(to_word(len(domain_bytes)))
        words.append(to_word(ephemeral_pubkey))
        words.append(to_word(expiry_ts))
        return PublicInputVector(schema_version=schema.version, words=tuple(words))

    def encode_structured(self, structured: StructuredPublicInputs) -> PublicInputVector:
        return self.encode(
            structured.issuer_modulus,
            structured.domain,
            structured.ephemeral_pubkey,
            structured.expiry,
        )

    def decode(self, vector: PublicInputVector) -> StructuredPublicInputs:
        schema = self._schema
        if vector.schema_version != schema.version:
            raise EncodingMismatch(
                f"vector uses schema v{vector.schema_version}, decoder expects v{schema.version}"
            )
        if len(vector) != schema.word_count:
            raise EncodingMismatch(f"expected {schema.word_count} words, got {len(vector)}")

        values = [from_word(word) for word in vector.words]
        limbs_end = schema.limb_count
        domain_end = limbs_end + schema.max_domain_length
        try:
            modulus = join_limbs(values[:limbs_end], schema.limb_bits)
        except ValueError as exc:
            raise EncodingMismatch(str(exc)) from exc

        domain_length = values[domain_end]
        domain_values = values[limbs_end:domain_end]
        if not 0 < domain_length <= schema.max_domain_length:
            raise EncodingMismatch("domain length word is out of range")
        if any(value > 0xFF for value in domain_values) or any(domain_values[domain_length:]):
            raise EncodingMismatch("domain words are not zero-padded bytes")
        try:
            domain = bytes(domain_values[:domain_length]).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise EncodingMismatch("domain is not UTF-8") from exc

        return StructuredPublicInputs(
            issuer_modulus=modulus,
            domain=domain,
            ephemeral_pubkey=values[domain_end + 1],
            expiry=values[domain_end + 2],
        )

    def cross_check(self, vector: PublicInputVector, structured: StructuredPublicInputs) -> None:
        """Raise :class:`EncodingMismatch` unless ``vector`` is exactly what ``structured`` encodes to."""
        if vector.schema_version != self._schema.version:
            raise EncodingMismatch(
                f"vector uses schema v{vector.schema_version}, expected v{self._schema.version}"
            )
        try:
            expected = self.encode_structured(structured)
        except ValueError as exc:
            raise EncodingMismatch(f"structured inputs cannot be encoded: {exc}") from exc
        if len(expected) != len(vector):
            raise EncodingMismatch(f"expected {len(expected)} words, got {len(vector)}")
        for index, (ours, theirs) in enumerate(zip(expected.words, vector.words)):
            if ours != theirs:
                raise EncodingMismatch(f"public input word {index} differs from its derivation")
