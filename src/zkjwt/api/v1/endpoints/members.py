# src/zkjwt/api/v1/endpoints/members.py
"""Membership endpoints: join a domain group with a proof, look members up."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, HTTPException, status

from zkjwt.core.errors import EncodingMismatch, ZkJwtError
from zkjwt.schemas.member import Member, MemberCreate, MemberJoinResponse
from zkjwt.schemas.proof import VerificationResponse
from zkjwt.services.ephemeral import pubkey_to_field
from zkjwt.services.jwks import modulus_from_jwk_n
from zkjwt.services.nonce import expiry_seconds
from zkjwt.services.orchestrator import VerificationAttempt
from zkjwt.services.public_inputs import PublicInputVector, StructuredPublicInputs

from ..dependencies import OrchestratorDep, StoreDep, http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/members", tags=["members"])


def _verification_response(attempt: VerificationAttempt) -> VerificationResponse:
    record = attempt.record
    return VerificationResponse(
        state=attempt.state.value,
        fingerprint=attempt.fingerprint,
        verified=attempt.verified,
        recorded_at=record.recorded_at if record else None,
        onchain_record_id=record.onchain_record_id if record else None,
        recording_error=str(attempt.recording_error) if attempt.recording_error else None,
    )


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


@router.post("", response_model=MemberJoinResponse, status_code=status.HTTP_201_CREATED)
async def join_group(payload: MemberCreate, store: StoreDep, orchestrator: OrchestratorDep) -> MemberJoinResponse:
    """Verify a membership proof and register its ephemeral key."""
    try:
        proof = bytes.fromhex(payload.proof.removeprefix("0x"))
        pubkey_bytes = bytes.fromhex(payload.ephemeral_pubkey.removeprefix("0x"))
        ephemeral_pubkey = pubkey_to_field(pubkey_bytes)
    except ValueError as exc:
        raise _bad_request(f"invalid proof or public key encoding: {exc}") from exc

    expiry = payload.ephemeral_pubkey_expiry
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=UTC)
    if expiry <= datetime.now(UTC):
        raise _bad_request("ephemeral key has expired")

    try:
        structured = StructuredPublicInputs(
            issuer_modulus=modulus_from_jwk_n(payload.issuer_modulus),
            domain=payload.domain,
            ephemeral_pubkey=ephemeral_pubkey,
            expiry=expiry_seconds(expiry),
        )
        try:
            vector = orchestrator.encoder.encode_structured(structured)
        except ValueError as exc:
            raise EncodingMismatch(str(exc)) from exc
        if payload.public_inputs is not None:
            vector = PublicInputVector.from_hex(payload.public_inputs, vector.schema_version)
        attempt = await orchestrator.verify(proof, vector, structured)
    except ZkJwtError as exc:
        raise http_error(exc) from exc

    if attempt.error is not None:
        logger.info("Join to %s rejected in state %s", payload.domain, attempt.state.value)
        raise http_error(attempt.error)

    member = Member(
        pubkey=pubkey_bytes.hex(),
        pubkey_expiry=expiry,
        provider=payload.provider,
        group_id=payload.domain,
        proof_fingerprint=attempt.fingerprint,
        joined_at=datetime.now(UTC),
    )
    try:
        store.insert_member(member)
    except ZkJwtError as exc:
        raise http_error(exc) from exc
    return MemberJoinResponse(member=member, verification=_verification_response(attempt))


@router.get("/{pubkey}", response_model=Member)
async def get_member(pubkey: str, store: StoreDep) -> Member:
    """Return a registered member by ephemeral public key (hex)."""
    try:
        return store.get_member(pubkey.removeprefix("0x").lower())
    except ZkJwtError as exc:
        raise http_error(exc) from exc
