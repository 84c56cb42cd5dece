# src/zkjwt/services/tokens.py
"""Parsed view of an OAuth identity token (compact RS256 JWS)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from jose import jwt
from jose.exceptions import JWTError

from zkjwt.core.errors import MalformedTokenError
from zkjwt.utils.fields import b64url_decode


@dataclass(frozen=True)
class IdentityToken:
    """Immutable identity token with its raw segments kept byte-exact.

    The circuit hashes ``header_b64 + "." + payload_b64`` exactly as issued, so
    the original base64url text is retained next to the decoded JSON.
    """

    compact: str = field(repr=False)
    header_b64: str = field(repr=False)
    payload_b64: str = field(repr=False)
    signature_b64: str = field(repr=False)
    header: dict[str, Any]
    claims: dict[str, Any]

    @classmethod
    def parse(cls, compact: str) -> IdentityToken:
        """Split and decode a compact JWS without verifying it."""
        if not isinstance(compact, str):
            raise MalformedTokenError("identity token must be a string")
        compact = compact.strip()
        parts = compact.split(".")
        if len(parts) != 3 or not all(parts):
            raise MalformedTokenError("identity token must have three non-empty segments")
        try:
            header = jwt.get_unverified_header(compact)
            claims = jwt.get_unverified_claims(compact)
            b64url_decode(parts[2])
        except (JWTError, ValueError) as exc:
            raise MalformedTokenError(f"identity token cannot be decoded: {exc}") from exc
        if not isinstance(claims, dict):
            raise MalformedTokenError("identity token claims must be a JSON object")
        return cls(
            compact=compact,
            header_b64=parts[0],
            payload_b64=parts[1],
            signature_b64=parts[2],
            header=dict(header),
            claims=dict(claims),
        )

    @property
    def signed_data(self) -> bytes:
        return f"{self.header_b64}.{self.payload_b64}".encode("ascii")

    @property
    def signature(self) -> bytes:
        return b64url_decode(self.signature_b64)

    @property
    def payload_json(self) -> str:
        """Decoded payload text, byte-for-byte as signed."""
        return b64url_decode(self.payload_b64).decode("utf-8")

    @property
    def algorithm(self) -> str | None:
        return self.header.get("alg")

    @property
    def key_id(self) -> str | None:
        return self.header.get("kid")

    @property
    def issuer(self) -> str | None:
        return self.claims.get("iss")

    @property
    def audience(self) -> str | list[str] | None:
        return self.claims.get("aud")

    @property
    def subject(self) -> str | None:
        return self.claims.get("sub")

    @property
    def nonce(self) -> Any:
        return self.claims.get("nonce")

    @property
    def issued_at(self) -> int | None:
        return self.claims.get("iat")

    @property
    def expires_at(self) -> int | None:
        return self.claims.get("exp")

    def claim(self, name: str) -> Any:
        return self.claims.get(name)
