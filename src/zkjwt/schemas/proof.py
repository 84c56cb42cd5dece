# src/zkjwt/schemas/proof.py
"""Verification outcome schema."""

from datetime import datetime

from pydantic import BaseModel, Field


class VerificationResponse(BaseModel):
    """Outcome of verifying one proof."""

    state: str = Field(..., description="Final verification state")
    fingerprint: str = Field(..., description="BLAKE3 fingerprint of the proof and public inputs")
    verified: bool
    recorded_at: datetime | None = None
    onchain_record_id: str | None = None
    recording_error: str | None = None
