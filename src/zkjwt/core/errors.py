# src/zkjwt/core/errors.py
"""Exception hierarchy shared by every pipeline component.

Every error carries a ``retryable`` flag. Terminal errors (bad input, broken
binding, malformed keys) need a different input; retryable ones (network,
timeouts, transient chain failures) may succeed if the same step is repeated.
"""

from __future__ import annotations


class ZkJwtError(Exception):
    """Base class for all zkjwt failures."""

    retryable: bool = False

    def __init__(self, message: str = "", *, retryable: bool | None = None) -> None:
        super().__init__(message or self.__class__.__name__)
        if retryable is not None:
            self.retryable = retryable


class ConfigurationError(ZkJwtError):
    """Raised when a component is used without the settings it needs."""


# Input errors


class InputError(ZkJwtError):
    """The caller supplied something that can never produce a valid proof."""


class MalformedTokenError(InputError):
    """The identity token is not a parseable, correctly signed JWS."""


class UnsupportedAlgorithm(InputError):
    """The token or key uses an algorithm other than the circuit's."""


class TokenTooLong(InputError):
    """The signed data exceeds the circuit's maximum signed-data length."""


class DomainMismatch(InputError):
    """The token's domain claim differs from the domain being proven."""


# Binding errors


class BindingError(ZkJwtError):
    """The ephemeral key material is not bound to the identity token."""


class BindingMismatch(BindingError):
    """A derived value disagrees with the value embedded in the token."""


class ExpiredKeyMaterial(BindingError):
    """The ephemeral key expiry is not strictly in the future."""


# Key resolution errors


class KeyResolutionError(ZkJwtError):
    """The issuer signing key could not be obtained."""


class KeyNotFound(KeyResolutionError):
    """The issuer's key set does not contain the requested key id."""


class NetworkError(KeyResolutionError):
    """The issuer's key endpoint could not be reached."""

    retryable = True


class MalformedKeyError(KeyResolutionError):
    """A key entry could not be decoded into a usable RSA public key."""


# Proving errors


class ProvingError(ZkJwtError):
    """Proof generation failed."""


class ProvingBackendError(ProvingError):
    """The proving backend failed or returned an empty proof."""


class LocalVerificationFailure(ZkJwtError):
    """The proof did not pass off-chain verification."""


# On-chain errors


class OnChainRejection(ZkJwtError):
    """The on-chain verifier rejected the proof or could not be reached."""

    def __init__(
        self,
        message: str = "",
        *,
        selector: str | None = None,
        retryable: bool | None = None,
    ) -> None:
        super().__init__(message, retryable=retryable)
        self.selector = selector


class ProofLengthWrong(OnChainRejection):
    """The verifier reverted because the proof has the wrong length."""


class PublicInputsLengthWrong(OnChainRejection):
    """The verifier reverted because the public-input vector has the wrong length."""


class SumcheckFailed(OnChainRejection):
    """The verifier reverted during the sumcheck protocol."""


class ShpleminiFailed(OnChainRejection):
    """The verifier reverted during the Shplemini opening check."""


class UnclassifiedOnChainFailure(OnChainRejection):
    """The verifier reverted with a selector that is not in the known table."""


class OnChainTimeout(OnChainRejection):
    """The on-chain call did not complete before its deadline."""

    retryable = True


# Recording and encoding errors


class RecordingError(ZkJwtError):
    """A verified proof could not be recorded. Verification still stands."""

    retryable = True


class EncodingMismatch(ZkJwtError):
    """Two derivations of a public-input vector disagree, or versions differ."""


class StoreError(ZkJwtError):
    """The flat-file member and message store could not be read or written."""


class StoreNotFound(StoreError):
    """The requested member or message does not exist in the store."""
