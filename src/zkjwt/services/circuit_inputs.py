# src/zkjwt/services/circuit_inputs.py
"""Assembly of the circuit input map from a token, issuer key and key material.

Every slot holds a list of decimal strings, which is the form the prover's
input file takes. Byte arrays are zero-padded to their fixed circuit length
and paired with a ``.len`` slot holding the real length.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from jose import jws
from jose.exceptions import JOSEError

from zkjwt.core.errors import (
    DomainMismatch,
    InputError,
    MalformedTokenError,
    TokenTooLong,
    UnsupportedAlgorithm,
)
from zkjwt.services.jwks import IssuerSigningKey
from zkjwt.services.nonce import EphemeralKeyMaterial, NonceBinder
from zkjwt.services.sha_precompute import ShaPrecomputeHint
from zkjwt.services.tokens import IdentityToken
from zkjwt.utils.fields import split_limbs

logger = logging.getLogger(__name__)

CircuitInputs = dict[str, list[str]]

RSA_MODULUS_BITS = 2048
LIMB_BITS = 120
LIMB_COUNT = 18
REDC_SHIFT = 2 * RSA_MODULUS_BITS + 4
MAX_DOMAIN_LENGTH = 64


def rsa_limbs(value: int) -> list[int]:
    """Split an RSA-sized integer into the circuit's 18 little-endian 120-bit limbs."""
    return split_limbs(value, LIMB_BITS, LIMB_COUNT)


def barrett_reduction_param(modulus: int) -> int:
    """Barrett parameter ``floor(2^(2k+4) / n)`` for a k-bit RSA modulus."""
    return (1 << REDC_SHIFT) // modulus


def _decimal(values: Iterable[int]) -> list[str]:
    return [str(value) for value in values]


def _padded_bytes(data: bytes, length: int) -> list[str]:
    return _decimal(data.ljust(length, b"\x00"))


class CircuitInputBuilder:
    """Builds the prover's input map; pure apart from the signature check.

    Nothing is assembled unless the token is signed by ``issuer_key``, names
    the proven domain and embeds the nonce of the key material, so a prover
    is never invoked for a statement that cannot hold.
    """

    def __init__(
        self,
        binder: NonceBinder,
        *,
        algorithm: str = "RS256",
        domain_claim: str = "hd",
    ) -> None:
        self._binder = binder
        self._algorithm = algorithm
        self._domain_claim = domain_claim

    def build(
        self,
        token: IdentityToken | str,
        issuer_key: IssuerSigningKey,
        key_material: EphemeralKeyMaterial,
        domain: str,
        max_signed_data_len: int,
        sha_precompute_hint: ShaPrecomputeHint | None = None,
    ) -> CircuitInputs:
        parsed = token if isinstance(token, IdentityToken) else IdentityToken.parse(token)
        self._check_algorithm(parsed, issuer_key)
        self._check_signature(parsed, issuer_key)
        domain_bytes = self._check_domain(parsed, domain)
        self._binder.require_binding(
            parsed, key_material.public_key, key_material.salt, key_material.expiry
        )

        signed_data = parsed.signed_data
        if len(signed_data) > max_signed_data_len:
            raise TokenTooLong(
                f"signed data is {len(signed_data)} bytes, circuit accepts {max_signed_data_len}"
            )

        inputs: CircuitInputs = {}
        payload_start = len(parsed.header_b64) + 1
        if sha_precompute_hint is None:
            inputs["data.storage"] = _padded_bytes(signed_data, max_signed_data_len)
            inputs["data.len"] = [str(len(signed_data))]
            inputs["base64_decode_offset"] = [str(payload_start)]
        else:
            sha_precompute_hint.check(signed_data)
            consumed = sha_precompute_hint.precomputed_length
            remaining = signed_data[consumed:]
            if consumed <= payload_start:
                decode_offset = payload_start - consumed
            else:
                decode_offset = -(consumed - payload_start) % 4
            inputs["partial_data.storage"] = _padded_bytes(remaining, max_signed_data_len)
            inputs["partial_data.len"] = [str(len(remaining))]
            inputs["partial_hash"] = _decimal(sha_precompute_hint.partial_hash)
            inputs["full_data_length"] = [str(len(signed_data))]
            inputs["base64_decode_offset"] = [str(decode_offset)]

        inputs["pubkey_modulus_limbs"] = _decimal(rsa_limbs(issuer_key.modulus))
        inputs["redc_params_limbs"] = _decimal(
            rsa_limbs(barrett_reduction_param(issuer_key.modulus))
        )
        inputs["signature_limbs"] = _decimal(
            rsa_limbs(int.from_bytes(parsed.signature, "big"))
        )
        inputs["domain.storage"] = _padded_bytes(domain_bytes, MAX_DOMAIN_LENGTH)
        inputs["domain.len"] = [str(len(domain_bytes))]
        inputs["ephemeral_pubkey"] = [str(key_material.public_key)]
        inputs["ephemeral_pubkey_salt"] = [str(key_material.salt)]
        inputs["ephemeral_pubkey_expiry"] = [str(key_material.expiry_timestamp)]

        logger.debug(
            "Built circuit inputs for kid %s (%d signed bytes, precompute=%s)",
            issuer_key.key_id,
            len(signed_data),
            sha_precompute_hint is not None,
        )
        return inputs

    def _check_algorithm(self, token: IdentityToken, issuer_key: IssuerSigningKey) -> None:
        if token.algorithm != self._algorithm:
            raise UnsupportedAlgorithm(f"token algorithm {token.algorithm!r} is not {self._algorithm}")
        if issuer_key.algorithm != self._algorithm or issuer_key.key_type != "RSA":
            raise UnsupportedAlgorithm(f"issuer key {issuer_key.key_id} is not an {self._algorithm} key")
        if issuer_key.modulus.bit_length() > RSA_MODULUS_BITS:
            raise UnsupportedAlgorithm(f"RSA keys above {RSA_MODULUS_BITS} bits are not supported")
        if token.key_id != issuer_key.key_id:
            raise MalformedTokenError(
                f"token kid {token.key_id!r} does not match issuer key {issuer_key.key_id!r}"
            )

    def _check_signature(self, token: IdentityToken, issuer_key: IssuerSigningKey) -> None:
        try:
            jws.verify(token.compact, issuer_key.to_jwk(), algorithms=[self._algorithm])
        except JOSEError as exc:
            raise MalformedTokenError("token signature does not verify under the issuer key") from exc

    def _check_domain(self, token: IdentityToken, domain: str) -> bytes:
        domain_bytes = domain.encode("utf-8")
        if not domain_bytes:
            raise InputError("domain must not be empty")
        if len(domain_bytes) > MAX_DOMAIN_LENGTH:
            raise InputError(f"domain is longer than {MAX_DOMAIN_LENGTH} bytes")
        claimed = token.claim(self._domain_claim)
        if claimed != domain:
            raise DomainMismatch(f"token {self._domain_claim!r} claim does not match the domain")
        return domain_bytes
