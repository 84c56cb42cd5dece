# src/zkjwt/models/verification.py
"""Durable record of a proof that passed local and on-chain verification."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from zkjwt.db.session import Base


def _utc_now() -> datetime:
    return datetime.now(UTC)


class VerificationRecord(Base):
    """One row per (proof, public-input vector) fingerprint."""

    __tablename__ = "verification_record"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    fingerprint: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    schema_version: Mapped[int] = mapped_column(Integer, nullable=False)
    proof_size: Mapped[int] = mapped_column(Integer, nullable=False)
    public_input_count: Mapped[int] = mapped_column(Integer, nullable=False)
    onchain_record_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now
    )

    @property
    def short_fingerprint(self) -> str:
        """Return the fingerprint prefix used in log lines."""
        return self.fingerprint[:12]
