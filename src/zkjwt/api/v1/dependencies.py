# src/zkjwt/api/v1/dependencies.py
"""Shared FastAPI dependencies and error mapping for the v1 API."""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, HTTPException, status

from zkjwt.core.errors import (
    BindingError,
    ConfigurationError,
    EncodingMismatch,
    InputError,
    KeyResolutionError,
    LocalVerificationFailure,
    NetworkError,
    OnChainRejection,
    RecordingError,
    StoreError,
    StoreNotFound,
    ZkJwtError,
)
from zkjwt.core.settings import settings
from zkjwt.repositories.verification_repo import VerificationRepository
from zkjwt.services.circuit_inputs import CircuitInputBuilder
from zkjwt.services.jwks import IdentityKeyResolver
from zkjwt.services.nonce import NonceBinder
from zkjwt.services.onchain import Web3OnChainVerifier
from zkjwt.services.orchestrator import VerificationOrchestrator
from zkjwt.services.poseidon import hasher_from_file
from zkjwt.services.prover import CommandLineProvingBackend, ProofPipeline
from zkjwt.storage.file_store import FileStore


@lru_cache(maxsize=1)
def get_store() -> FileStore:
    """Return the process-wide file store."""
    return FileStore(settings.store_path)


@lru_cache(maxsize=1)
def get_orchestrator() -> VerificationOrchestrator:
    """Return the process-wide orchestrator wired from settings."""
    resolver = None
    builder = None
    if settings.poseidon_params_path:
        binder = NonceBinder(hasher_from_file(settings.poseidon_params_path))
        resolver = IdentityKeyResolver.from_settings()
        builder = CircuitInputBuilder(
            binder, algorithm=settings.jwt_algorithm, domain_claim=settings.domain_claim
        )
    pipeline = ProofPipeline(
        CommandLineProvingBackend(settings.prover_command, timeout_seconds=settings.prover_timeout_seconds)
    )
    return VerificationOrchestrator(
        pipeline=pipeline,
        onchain=Web3OnChainVerifier.from_settings(),
        repository=VerificationRepository(),
        srs_path=settings.srs_path,
        resolver=resolver,
        builder=builder,
    )


def get_orchestrator_dep() -> VerificationOrchestrator:
    try:
        return get_orchestrator()
    except ConfigurationError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


StoreDep = Annotated[FileStore, Depends(get_store)]
OrchestratorDep = Annotated[VerificationOrchestrator, Depends(get_orchestrator_dep)]


def http_error(exc: ZkJwtError) -> HTTPException:
    """Translate a pipeline error into the matching HTTP error."""
    if isinstance(exc, StoreNotFound):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, InputError | BindingError | EncodingMismatch):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, NetworkError):
        code = status.HTTP_502_BAD_GATEWAY
    elif isinstance(exc, KeyResolutionError):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, LocalVerificationFailure | OnChainRejection):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, RecordingError | StoreError | ConfigurationError):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=str(exc))
