# src/zkjwt/services/orchestrator.py
"""Two-stage verification (local, then on-chain) and idempotent recording.

An attempt moves through::

    BUILT -> LOCALLY_VERIFIED -> SUBMITTED -> VERIFIED
      |                             |
      +-> REJECTED_LOCALLY          +-> REJECTED_ON_CHAIN

The on-chain verifier is never called for a proof that failed locally, and a
recording failure after ``VERIFIED`` leaves the attempt verified.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass, field
from enum import Enum

from zkjwt.core.errors import (
    LocalVerificationFailure,
    OnChainRejection,
    RecordingError,
    ZkJwtError,
)
from zkjwt.models.verification import VerificationRecord
from zkjwt.repositories.verification_repo import VerificationRepository
from zkjwt.services.circuit_inputs import CircuitInputBuilder
from zkjwt.services.jwks import IdentityKeyResolver
from zkjwt.services.nonce import EphemeralKeyMaterial
from zkjwt.services.onchain import OnChainVerifier
from zkjwt.services.prover import ProofPipeline
from zkjwt.services.public_inputs import (
    PublicInputEncoder,
    PublicInputVector,
    StructuredPublicInputs,
)
from zkjwt.services.sha_precompute import ShaPrecomputeHint
from zkjwt.services.tokens import IdentityToken
from zkjwt.utils.hash import proof_fingerprint

logger = logging.getLogger(__name__)


class VerificationState(str, Enum):
    BUILT = "built"
    LOCALLY_VERIFIED = "locally_verified"
    SUBMITTED = "submitted"
    VERIFIED = "verified"
    REJECTED_LOCALLY = "rejected_locally"
    REJECTED_ON_CHAIN = "rejected_on_chain"


_TRANSITIONS: dict[VerificationState, frozenset[VerificationState]] = {
    VerificationState.BUILT: frozenset(
        {VerificationState.LOCALLY_VERIFIED, VerificationState.REJECTED_LOCALLY}
    ),
    VerificationState.LOCALLY_VERIFIED: frozenset({VerificationState.SUBMITTED}),
    VerificationState.SUBMITTED: frozenset(
        {VerificationState.VERIFIED, VerificationState.REJECTED_ON_CHAIN}
    ),
}

TERMINAL_STATES = frozenset(
    {
        VerificationState.VERIFIED,
        VerificationState.REJECTED_LOCALLY,
        VerificationState.REJECTED_ON_CHAIN,
    }
)


def _call_failure(exc: Exception) -> OnChainRejection:
    """Wrap an unexpected verifier-call error as a retryable rejection chained to it."""
    rejection = OnChainRejection(f"on-chain verifier call failed: {exc!r}", retryable=True)
    rejection.__cause__ = exc
    return rejection


@dataclass
class ProofBundle:
    """A proof with the public inputs it was generated for."""

    proof: bytes
    public_inputs: PublicInputVector
    structured: StructuredPublicInputs

    @property
    def fingerprint(self) -> str:
        return proof_fingerprint(self.proof, self.public_inputs.words)


@dataclass
class VerificationAttempt:
    """State of one (proof, public inputs) pair as it moves through verification."""

    proof: bytes
    public_inputs: PublicInputVector
    structured: StructuredPublicInputs | None = None
    state: VerificationState = VerificationState.BUILT
    history: list[VerificationState] = field(default_factory=lambda: [VerificationState.BUILT])
    error: ZkJwtError | None = None
    record: VerificationRecord | None = None
    recording_error: RecordingError | None = None

    @property
    def fingerprint(self) -> str:
        return proof_fingerprint(self.proof, self.public_inputs.words)

    @property
    def verified(self) -> bool:
        return self.state is VerificationState.VERIFIED

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, new_state: VerificationState) -> None:
        allowed = _TRANSITIONS.get(self.state, frozenset())
        if new_state not in allowed:
            raise RuntimeError(f"illegal transition {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    def reject(self, new_state: VerificationState, error: ZkJwtError) -> None:
        self.advance(new_state)
        self.error = error


@dataclass(frozen=True)
class ConformanceReport:
    """Outcome of running one proof through both verifiers."""

    locally_valid: bool
    onchain_valid: bool | None
    onchain_error: OnChainRejection | None = None

    @property
    def conforms(self) -> bool:
        """A locally valid proof must also be valid on-chain."""
        if not self.locally_valid:
            return True
        return bool(self.onchain_valid)


class VerificationOrchestrator:
    """Drives a proof from key resolution to a durable verification record."""

    def __init__(
        self,
        *,
        pipeline: ProofPipeline,
        onchain: OnChainVerifier,
        repository: VerificationRepository,
        srs_path: str,
        encoder: PublicInputEncoder | None = None,
        resolver: IdentityKeyResolver | None = None,
        builder: CircuitInputBuilder | None = None,
    ) -> None:
        self._pipeline = pipeline
        self._onchain = onchain
        self._repository = repository
        self._srs_path = srs_path
        self._encoder = encoder or PublicInputEncoder()
        self._resolver = resolver
        self._builder = builder
        self._record_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    @property
    def encoder(self) -> PublicInputEncoder:
        return self._encoder

    async def generate(
        self,
        token: IdentityToken | str,
        key_material: EphemeralKeyMaterial,
        domain: str,
        *,
        max_signed_data_len: int,
        sha_precompute_hint: ShaPrecomputeHint | None = None,
    ) -> ProofBundle:
        """Resolve the issuer key, build inputs, prove and derive the public inputs."""
        if self._resolver is None or self._builder is None:
            raise RuntimeError("proof generation needs a key resolver and an input builder")

        parsed = token if isinstance(token, IdentityToken) else IdentityToken.parse(token)
        issuer_key = await self._resolver.resolve(parsed.issuer or "", parsed.key_id or "")
        inputs = self._builder.build(
            parsed,
            issuer_key,
            key_material,
            domain,
            max_signed_data_len,
            sha_precompute_hint,
        )
        proof = await asyncio.to_thread(self._pipeline.prove, self._srs_path, inputs)

        structured = StructuredPublicInputs(
            issuer_modulus=issuer_key.modulus,
            domain=domain,
            ephemeral_pubkey=key_material.public_key,
            expiry=key_material.expiry_timestamp,
        )
        return ProofBundle(
            proof=proof,
            public_inputs=self._encoder.encode_structured(structured),
            structured=structured,
        )

    async def run(
        self,
        token: IdentityToken | str,
        key_material: EphemeralKeyMaterial,
        domain: str,
        *,
        max_signed_data_len: int,
        sha_precompute_hint: ShaPrecomputeHint | None = None,
    ) -> VerificationAttempt:
        """Generate a proof and take it through verification and recording."""
        bundle = await self.generate(
            token,
            key_material,
            domain,
            max_signed_data_len=max_signed_data_len,
            sha_precompute_hint=sha_precompute_hint,
        )
        return await self.verify(bundle.proof, bundle.public_inputs, bundle.structured)

    async def verify(
        self,
        proof: bytes,
        public_inputs: PublicInputVector,
        structured: StructuredPublicInputs | None = None,
    ) -> VerificationAttempt:
        """Verify locally, then on-chain, then record.

        When ``structured`` is given the vector is re-derived from it first and
        any difference raises :class:`EncodingMismatch` before anything runs.
        """
        if structured is not None:
            self._encoder.cross_check(public_inputs, structured)

        attempt = VerificationAttempt(proof=bytes(proof), public_inputs=public_inputs, structured=structured)
        fingerprint = attempt.fingerprint[:12]

        locally_valid = await asyncio.to_thread(self._pipeline.verify_local, self._srs_path, attempt.proof)
        if not locally_valid:
            logger.info("Proof %s rejected locally", fingerprint)
            attempt.reject(
                VerificationState.REJECTED_LOCALLY,
                LocalVerificationFailure("proof failed local verification"),
            )
            return attempt
        attempt.advance(VerificationState.LOCALLY_VERIFIED)

        attempt.advance(VerificationState.SUBMITTED)
        try:
            accepted = await self._onchain.verify(attempt.proof, public_inputs.words)
        except OnChainRejection as exc:
            logger.warning("Proof %s rejected on-chain: %s", fingerprint, exc)
            attempt.reject(VerificationState.REJECTED_ON_CHAIN, exc)
            return attempt
        except Exception as exc:
            logger.warning("Proof %s rejected on-chain: verifier call failed: %r", fingerprint, exc)
            attempt.reject(VerificationState.REJECTED_ON_CHAIN, _call_failure(exc))
            return attempt
        if not accepted:
            logger.warning("Proof %s rejected on-chain: verifier returned false", fingerprint)
            attempt.reject(
                VerificationState.REJECTED_ON_CHAIN,
                OnChainRejection("on-chain verifier returned false"),
            )
            return attempt

        attempt.advance(VerificationState.VERIFIED)
        logger.info("Proof %s verified on-chain", fingerprint)
        try:
            attempt.record = await self.record(attempt)
        except RecordingError as exc:
            logger.error("Proof %s verified but not recorded: %s", fingerprint, exc)
            attempt.recording_error = exc
        return attempt

    async def record(self, attempt: VerificationAttempt) -> VerificationRecord:
        """Record a verified attempt; an existing record is returned unchanged.

        Safe to call again after a recording failure. Concurrent calls for one
        fingerprint are serialized, so only the first sends the bookkeeping
        transaction.
        """
        if not attempt.verified:
            raise RecordingError("only verified proofs are recorded", retryable=False)

        fingerprint = attempt.fingerprint
        lock = self._record_locks.get(fingerprint)
        if lock is None:
            lock = self._record_locks[fingerprint] = asyncio.Lock()
        async with lock:
            return await self._record_once(attempt, fingerprint)

    async def _record_once(self, attempt: VerificationAttempt, fingerprint: str) -> VerificationRecord:
        existing = self._repository.get(fingerprint)
        if existing is not None:
            return existing

        onchain_id: int | None = None
        if attempt.structured is not None:
            try:
                onchain_id = await self._onchain.record(
                    attempt.proof, attempt.public_inputs.words, attempt.structured
                )
            except ZkJwtError as exc:
                raise RecordingError(f"on-chain bookkeeping failed: {exc}") from exc

        record, _ = self._repository.record(
            fingerprint,
            schema_version=attempt.public_inputs.schema_version,
            proof_size=len(attempt.proof),
            public_input_count=len(attempt.public_inputs),
            onchain_record_id=str(onchain_id) if onchain_id is not None else None,
        )
        return record

    async def check_conformance(self, proof: bytes, public_inputs: PublicInputVector) -> ConformanceReport:
        """Run both verifiers without recording and report whether they agree."""
        locally_valid = await asyncio.to_thread(self._pipeline.verify_local, self._srs_path, bytes(proof))
        if not locally_valid:
            return ConformanceReport(locally_valid=False, onchain_valid=None)
        try:
            onchain_valid = await self._onchain.verify(bytes(proof), public_inputs.words)
        except OnChainRejection as exc:
            return ConformanceReport(locally_valid=True, onchain_valid=False, onchain_error=exc)
        except Exception as exc:
            return ConformanceReport(locally_valid=True, onchain_valid=False, onchain_error=_call_failure(exc))
        if not onchain_valid:
            logger.error("Locally valid proof %s failed on-chain", proof_fingerprint(proof, public_inputs.words)[:12])
        return ConformanceReport(locally_valid=True, onchain_valid=bool(onchain_valid))
