# tests/test_verification_repo.py
"""Tests for insert-once verification records."""

from unittest.mock import patch

import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import OperationalError

from zkjwt.core.errors import RecordingError
from zkjwt.db import session as db_session
from zkjwt.repositories.verification_repo import VerificationRepository

FINGERPRINT = "ab" * 32


def _record(repository: VerificationRepository, fingerprint: str = FINGERPRINT, **overrides):
    fields = {"schema_version": 1, "proof_size": 96, "public_input_count": 85}
    fields.update(overrides)
    return repository.record(fingerprint, **fields)


class TestVerificationRepository:
    def test_record_creates_row(self, repository: VerificationRepository) -> None:
        row, created = _record(repository, onchain_record_id="7")

        assert created
        assert row.verified
        assert row.onchain_record_id == "7"
        assert row.short_fingerprint == FINGERPRINT[:12]
        assert repository.get(FINGERPRINT).id == row.id

    def test_second_record_returns_first_row_unchanged(self, repository: VerificationRepository) -> None:
        first, _ = _record(repository, onchain_record_id="7")
        second, created = _record(repository, proof_size=1, onchain_record_id="8")

        assert not created
        assert second.id == first.id
        assert second.proof_size == 96
        assert second.onchain_record_id == "7"

    def test_get_missing_returns_none(self, repository: VerificationRepository) -> None:
        assert repository.get("cd" * 32) is None

    def test_concurrent_insert_returns_winner(self, repository: VerificationRepository) -> None:
        winner, _ = _record(repository)
        real_find = VerificationRepository._find
        calls = []

        def stale_then_real(session, fingerprint):
            calls.append(fingerprint)
            if len(calls) == 1:
                return None
            return real_find(session, fingerprint)

        with patch.object(VerificationRepository, "_find", side_effect=stale_then_real):
            row, created = _record(repository)

        assert not created
        assert row.id == winner.id
        assert len(calls) == 2

    def test_database_failure_is_recording_error(self, repository: VerificationRepository) -> None:
        error = OperationalError("INSERT", {}, Exception("database is locked"))
        with patch.object(VerificationRepository, "_find", side_effect=error):
            with pytest.raises(RecordingError):
                _record(repository)


def test_create_tables_builds_verification_table() -> None:
    db_session.create_tables()
    assert inspect(db_session.engine).has_table("verification_record")
    assert not hasattr(db_session, "get_db")
