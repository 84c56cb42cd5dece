# src/zkjwt/schemas/member.py
"""Member-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from .proof import VerificationResponse


class MemberCreate(BaseModel):
    """Schema for joining a domain group with a membership proof."""

    proof: str = Field(..., min_length=2, description="Hex-encoded proof bytes")
    domain: str = Field(..., min_length=1, max_length=64, description="Domain being proven")
    ephemeral_pubkey: str = Field(..., description="Hex-encoded 32-byte Ed25519 public key")
    ephemeral_pubkey_expiry: datetime = Field(..., description="Expiry bound into the token nonce")
    provider: str = Field(default="google-oauth", description="Identity provider name")
    issuer_modulus: str = Field(..., description="Issuer RSA modulus as a base64url JWK 'n'")
    public_inputs: list[str] | None = Field(
        default=None,
        description="Optional client-derived public inputs (hex words), checked against the server's",
    )


class Member(BaseModel):
    """Stored member entry, keyed by ephemeral public key."""

    pubkey: str
    pubkey_expiry: datetime
    provider: str
    group_id: str
    proof_fingerprint: str
    joined_at: datetime


class MemberJoinResponse(BaseModel):
    """Schema returned after a successful join."""

    member: Member
    verification: VerificationResponse
