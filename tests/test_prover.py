# tests/test_prover.py
"""Tests for the proof pipeline and the command-line backend."""

import sys
import textwrap
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from conftest import SRS_PATH, FakeProvingBackend
from zkjwt.core.errors import ProvingBackendError
from zkjwt.services.prover import CommandLineProvingBackend, ProofPipeline

FAKE_PROVER = textwrap.dedent(
    """
    import json
    import sys

    args = sys.argv[1:]
    command = args[0]
    options = dict(zip(args[1::2], args[2::2]))
    if command == "prove":
        with open(options["--inputs"]) as handle:
            inputs = json.load(handle)
        if "fail" in inputs:
            sys.stderr.write("constraint not satisfied")
            sys.exit(3)
        with open(options["--proof-out"], "wb") as handle:
            handle.write(b"PROOF:" + options["--srs"].encode())
    elif command == "verify":
        with open(options["--proof"], "rb") as handle:
            proof = handle.read()
        sys.exit(0 if proof.startswith(b"PROOF:") else 1)
    """
)


@pytest.fixture()
def cli_backend(tmp_path: Path) -> CommandLineProvingBackend:
    script = tmp_path / "fake_prover.py"
    script.write_text(FAKE_PROVER)
    return CommandLineProvingBackend([sys.executable, str(script)], timeout_seconds=30)


class TestProofPipeline:
    def test_prove_returns_backend_proof(self, fake_backend: FakeProvingBackend) -> None:
        proof = ProofPipeline(fake_backend).prove(SRS_PATH, {"slot": ["1"]})
        assert proof == fake_backend.proof
        assert fake_backend.prove_calls == [{"slot": ["1"]}]

    def test_empty_proof_is_backend_error(self) -> None:
        with pytest.raises(ProvingBackendError):
            ProofPipeline(FakeProvingBackend(proof=b"")).prove(SRS_PATH, {})

    def test_backend_exception_is_wrapped(self) -> None:
        backend = MagicMock()
        backend.prove.side_effect = RuntimeError("witness generation failed")
        with pytest.raises(ProvingBackendError) as excinfo:
            ProofPipeline(backend).prove(SRS_PATH, {})
        assert isinstance(excinfo.value.__cause__, RuntimeError)

    def test_verify_local_true_for_valid_proof(self, fake_backend: FakeProvingBackend) -> None:
        assert ProofPipeline(fake_backend).verify_local(SRS_PATH, fake_backend.proof)

    def test_verify_local_false_for_empty_proof_without_backend_call(self, fake_backend: FakeProvingBackend) -> None:
        assert not ProofPipeline(fake_backend).verify_local(SRS_PATH, b"")
        assert fake_backend.verify_calls == []

    def test_verify_local_false_when_backend_raises(self) -> None:
        backend = MagicMock()
        backend.verify.side_effect = OSError("srs missing")
        assert ProofPipeline(backend).verify_local(SRS_PATH, b"\x01") is False


class TestCommandLineBackend:
    def test_prove_and_verify(self, cli_backend: CommandLineProvingBackend) -> None:
        proof = cli_backend.prove("srs.local", {"ephemeral_pubkey": ["1"]})
        assert proof == b"PROOF:srs.local"
        assert cli_backend.verify("srs.local", proof)
        assert not cli_backend.verify("srs.local", b"garbage")

    def test_prover_failure_carries_stderr(self, cli_backend: CommandLineProvingBackend) -> None:
        with pytest.raises(ProvingBackendError, match="constraint not satisfied"):
            cli_backend.prove("srs.local", {"fail": ["1"]})

    def test_missing_executable(self, tmp_path: Path) -> None:
        backend = CommandLineProvingBackend([str(tmp_path / "does-not-exist")])
        with pytest.raises(ProvingBackendError):
            backend.prove("srs.local", {})

    def test_rejects_empty_command(self) -> None:
        with pytest.raises(ValueError):
            CommandLineProvingBackend([])
