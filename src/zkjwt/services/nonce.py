# src/zkjwt/services/nonce.py
"""Nonce derivation binding an ephemeral key, a salt and an expiry to a token."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

from zkjwt.core.errors import BindingMismatch, ExpiredKeyMaterial, MalformedTokenError
from zkjwt.services.tokens import IdentityToken
from zkjwt.utils.fields import BN254_SCALAR_MODULUS, is_field_element

logger = logging.getLogger(__name__)

FieldHasher = Callable[[Sequence[int]], int]
Clock = Callable[[], datetime]

_DECIMAL_RE = re.compile(r"0|[1-9][0-9]*")


def utc_now() -> datetime:
    return datetime.now(UTC)


def parse_expiry(value: str | datetime | int) -> datetime:
    """Normalise an ISO-8601 string, datetime or unix timestamp to aware UTC."""
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, int):
        moment = datetime.fromtimestamp(value, UTC)
    else:
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


def expiry_seconds(expiry: datetime) -> int:
    """Whole unix seconds of an expiry, the unit bound into the nonce."""
    return int(parse_expiry(expiry).timestamp())


@dataclass(frozen=True)
class EphemeralKeyMaterial:
    """Ephemeral public key (as a field element), salt and expiry."""

    public_key: int
    salt: int
    expiry: datetime

    def __post_init__(self) -> None:
        if not is_field_element(self.public_key):
            raise ValueError("ephemeral public key must be a BN254 field element")
        if not is_field_element(self.salt):
            raise ValueError("salt must be a BN254 field element")
        object.__setattr__(self, "expiry", parse_expiry(self.expiry))

    @property
    def expiry_timestamp(self) -> int:
        return expiry_seconds(self.expiry)

    @classmethod
    def from_strings(cls, public_key: str, salt: str, expiry: str) -> EphemeralKeyMaterial:
        """Build from wire form: decimal or 0x-hex integers and an ISO-8601 expiry."""
        return cls(
            public_key=int(public_key, 0),
            salt=int(salt, 0),
            expiry=parse_expiry(expiry),
        )


class NonceBinder:
    """Derives the nonce for a key material and checks it against a token.

    The hash function is injected so the nonce stays identical to the one the
    circuit computes (Poseidon with the circuit's own parameters).
    """

    def __init__(self, hasher: FieldHasher, *, clock: Clock = utc_now) -> None:
        self._hasher = hasher
        self._clock = clock

    def derive_nonce(self, ephemeral_pubkey: int, salt: int, expiry: datetime) -> int:
        for name, value in (("ephemeral_pubkey", ephemeral_pubkey), ("salt", salt)):
            if not is_field_element(value):
                raise ValueError(f"{name} must be a BN254 field element")
        return self._hasher([ephemeral_pubkey, salt, expiry_seconds(expiry)]) % BN254_SCALAR_MODULUS

    def derive_for(self, material: EphemeralKeyMaterial) -> int:
        return self.derive_nonce(material.public_key, material.salt, material.expiry)

    def check_binding(
        self,
        token: IdentityToken | str,
        ephemeral_pubkey: int,
        salt: int,
        expiry: datetime,
    ) -> bool:
        """Return True iff the token embeds the derived nonce and expiry is in the future."""
        try:
            self.require_binding(token, ephemeral_pubkey, salt, expiry)
        except (BindingMismatch, ExpiredKeyMaterial, MalformedTokenError) as exc:
            logger.debug("Nonce binding rejected: %s", exc)
            return False
        return True

    def require_binding(
        self,
        token: IdentityToken | str,
        ephemeral_pubkey: int,
        salt: int,
        expiry: datetime,
    ) -> None:
        """Raise a binding error unless :meth:`check_binding` would return True."""
        if parse_expiry(expiry) <= self._clock():
            raise ExpiredKeyMaterial("ephemeral key expiry is not in the future")

        parsed = token if isinstance(token, IdentityToken) else IdentityToken.parse(token)
        claim = parsed.nonce
        if isinstance(claim, bool) or not isinstance(claim, str | int):
            raise BindingMismatch("token has no usable nonce claim")
        text = str(claim)
        if not _DECIMAL_RE.fullmatch(text):
            raise BindingMismatch("token nonce claim is not a canonical decimal field element")
        embedded = int(text)

        try:
            derived = self.derive_nonce(ephemeral_pubkey, salt, expiry)
        except ValueError as exc:
            raise BindingMismatch(str(exc)) from exc
        if derived != embedded:
            raise BindingMismatch("token nonce does not match the ephemeral key material")
