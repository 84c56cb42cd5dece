# src/zkjwt/services/prover.py
"""Proof generation and off-chain verification through a proving backend."""

from __future__ import annotations

import json
import logging
import subprocess
import tempfile
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from zkjwt.core.errors import ProvingBackendError
from zkjwt.services.circuit_inputs import CircuitInputs

logger = logging.getLogger(__name__)

DEFAULT_PROVER_TIMEOUT = 300.0


class ProvingBackend(Protocol):
    """The two operations a proof system exposes to the pipeline."""

    def prove(self, srs_path: str, inputs: CircuitInputs) -> bytes: ...

    def verify(self, srs_path: str, proof: bytes) -> bool: ...


class CommandLineProvingBackend:
    """Drives a prover executable.

    ``<command> prove --srs SRS --inputs INPUTS.json --proof-out PROOF``
    writes the proof file; ``<command> verify --srs SRS --proof PROOF`` exits
    with status 0 when the proof is valid.
    """

    def __init__(self, command: Sequence[str], *, timeout_seconds: float = DEFAULT_PROVER_TIMEOUT) -> None:
        if not command:
            raise ValueError("prover command must not be empty")
        self._command = [str(part) for part in command]
        self._timeout = timeout_seconds

    def prove(self, srs_path: str, inputs: CircuitInputs) -> bytes:
        with tempfile.TemporaryDirectory() as tmp_dir:
            inputs_path = Path(tmp_dir) / "inputs.json"
            proof_path = Path(tmp_dir) / "proof.bin"
            inputs_path.write_text(json.dumps(inputs, sort_keys=True), encoding="utf-8")
            result = self._run(
                "prove",
                "--srs", srs_path,
                "--inputs", str(inputs_path),
                "--proof-out", str(proof_path),
            )
            if result.returncode != 0:
                stderr = result.stderr.strip() or "unknown prover error"
                raise ProvingBackendError(f"prover failed: {stderr}")
            if not proof_path.exists():
                raise ProvingBackendError("prover exited cleanly but wrote no proof")
            return proof_path.read_bytes()

    def verify(self, srs_path: str, proof: bytes) -> bool:
        with tempfile.TemporaryDirectory() as tmp_dir:
            proof_path = Path(tmp_dir) / "proof.bin"
            proof_path.write_bytes(proof)
            result = self._run("verify", "--srs", srs_path, "--proof", str(proof_path))
        if result.returncode != 0:
            logger.info("Prover rejected proof: %s", result.stderr.strip() or "no output")
        return result.returncode == 0

    def _run(self, *args: str) -> subprocess.CompletedProcess[str]:
        command = [*self._command, *args]
        try:
            return subprocess.run(
                command,
                capture_output=True,
                text=True,
                check=False,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise ProvingBackendError(
                f"prover {args[0]} exceeded {self._timeout}s", retryable=True
            ) from exc
        except OSError as exc:
            raise ProvingBackendError(f"cannot run prover {self._command[0]}: {exc}") from exc


class ProofPipeline:
    """Runs the backend and normalises its failures."""

    def __init__(self, backend: ProvingBackend) -> None:
        self._backend = backend

    def prove(self, srs_path: str, inputs: CircuitInputs) -> bytes:
        try:
            proof = self._backend.prove(srs_path, inputs)
        except ProvingBackendError:
            raise
        except Exception as exc:
            raise ProvingBackendError(f"proving backend failed: {exc}") from exc
        if not proof:
            raise ProvingBackendError("proving backend returned an empty proof")
        logger.info("Generated proof of %d bytes", len(proof))
        return bytes(proof)

    def verify_local(self, srs_path: str, proof: bytes) -> bool:
        """Off-chain verification. Any backend failure counts as a rejection."""
        if not proof:
            return False
        try:
            return bool(self._backend.verify(srs_path, proof))
        except Exception:
            logger.warning("Local verification raised; treating proof as invalid", exc_info=True)
            return False
