"""Data access helpers for verification records."""
from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from zkjwt.core.errors import RecordingError
from zkjwt.db.session import SessionLocal
from zkjwt.models.verification import VerificationRecord

__all__ = ["VerificationRepository"]

logger = logging.getLogger(__name__)


class VerificationRepository:
    """Insert-once storage of verification records keyed by fingerprint."""

    def __init__(self, session_factory: sessionmaker[Session] = SessionLocal) -> None:
        """Initialize the repository with a session factory."""
        self._session_factory = session_factory

    def get(self, fingerprint: str) -> VerificationRecord | None:
        """Return the record for ``fingerprint`` if one exists."""
        try:
            with self._session_factory() as session:
                return self._find(session, fingerprint)
        except SQLAlchemyError as exc:
            raise RecordingError(f"cannot read verification record: {exc}") from exc

    def record(
        self,
        fingerprint: str,
        *,
        schema_version: int,
        proof_size: int,
        public_input_count: int,
        onchain_record_id: str | None = None,
    ) -> tuple[VerificationRecord, bool]:
        """Insert a record unless one exists; return it and whether it was created.

        Concurrent callers race on the unique fingerprint constraint. The loser
        rolls back and returns the winner's row unchanged.
        """
        try:
            with self._session_factory() as session:
                existing = self._find(session, fingerprint)
                if existing is not None:
                    return existing, False

                record = VerificationRecord(
                    fingerprint=fingerprint,
                    verified=True,
                    schema_version=schema_version,
                    proof_size=proof_size,
                    public_input_count=public_input_count,
                    onchain_record_id=onchain_record_id,
                )
                session.add(record)
                try:
                    session.commit()
                except IntegrityError:
                    session.rollback()
                    existing = self._find(session, fingerprint)
                    if existing is None:
                        raise
                    logger.info("Record %s was inserted concurrently", fingerprint[:12])
                    return existing, False
                logger.info("Recorded verification %s", record.short_fingerprint)
                return record, True
        except SQLAlchemyError as exc:
            raise RecordingError(f"cannot store verification record: {exc}") from exc

    @staticmethod
    def _find(session: Session, fingerprint: str) -> VerificationRecord | None:
        return session.scalar(
            select(VerificationRecord).where(VerificationRecord.fingerprint == fingerprint)
        )
