# tests/conftest.py
from __future__ import annotations

import os
import time
from collections.abc import AsyncIterator, Callable, Generator, Iterator, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
import pytest_asyncio
from aiohttp import web
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi import FastAPI
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine, delete
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")

from zkjwt.api.v1.dependencies import get_orchestrator_dep, get_store
from zkjwt.core.errors import OnChainRejection
from zkjwt.db.session import Base
from zkjwt.main import app as fastapi_app
from zkjwt.models import VerificationRecord
from zkjwt.repositories.verification_repo import VerificationRepository
from zkjwt.services.circuit_inputs import CircuitInputBuilder, CircuitInputs
from zkjwt.services.jwks import IssuerSigningKey
from zkjwt.services.nonce import EphemeralKeyMaterial, NonceBinder
from zkjwt.services.orchestrator import VerificationOrchestrator
from zkjwt.services.poseidon import PoseidonHasher, PoseidonParams
from zkjwt.services.prover import ProofPipeline
from zkjwt.services.public_inputs import StructuredPublicInputs
from zkjwt.storage.file_store import FileStore
from zkjwt.utils.fields import BN254_SCALAR_MODULUS
from zkjwt.utils.hash import blake3_digest

TEST_DB_URL = "sqlite://"
ISSUER = "https://accounts.example.com"
KID = "test-key-1"
DOMAIN = "example.org"
SRS_PATH = "/tmp/test-srs.local"
MAX_SIGNED_DATA_LEN = 1024


def field_from_label(label: str) -> int:
    """Deterministic field element for test fixtures."""
    return int.from_bytes(blake3_digest(label.encode()), "big") % BN254_SCALAR_MODULUS


def make_poseidon_params(t: int = 4, full_rounds: int = 8, partial_rounds: int = 56) -> PoseidonParams:
    """A well-formed parameter set with a Cauchy MDS and hashed round constants."""
    mds = tuple(
        tuple(pow(row + col + t, -1, BN254_SCALAR_MODULUS) for col in range(t))
        for row in range(t)
    )
    rc = tuple(
        tuple(field_from_label(f"poseidon-test/rc/{r}/{i}") for i in range(t))
        for r in range(full_rounds + partial_rounds)
    )
    return PoseidonParams(
        t=t,
        full_rounds=full_rounds,
        partial_rounds=partial_rounds,
        alpha=5,
        mds=mds,
        round_constants=rc,
    )


class FakeProvingBackend:
    """Proving backend double that returns a fixed proof and counts calls."""

    def __init__(self, proof: bytes = b"\x42" * 96, *, valid: bool = True) -> None:
        self.proof = proof
        self.valid = valid
        self.prove_calls: list[CircuitInputs] = []
        self.verify_calls: list[bytes] = []

    def prove(self, srs_path: str, inputs: CircuitInputs) -> bytes:
        self.prove_calls.append(inputs)
        return self.proof

    def verify(self, srs_path: str, proof: bytes) -> bool:
        self.verify_calls.append(proof)
        return self.valid and proof == self.proof


class FakeOnChainVerifier:
    """On-chain verifier double with a scripted answer."""

    def __init__(
        self,
        *,
        result: bool = True,
        error: OnChainRejection | None = None,
        record_id: int | None = 7,
    ) -> None:
        self.result = result
        self.error = error
        self.record_id = record_id
        self.verify_calls: list[tuple[bytes, tuple[bytes, ...]]] = []
        self.record_calls: list[StructuredPublicInputs] = []

    async def verify(self, proof: bytes, public_inputs: Sequence[bytes]) -> bool:
        self.verify_calls.append((proof, tuple(public_inputs)))
        if self.error is not None:
            raise self.error
        return self.result

    async def record(
        self,
        proof: bytes,
        public_inputs: Sequence[bytes],
        structured: StructuredPublicInputs,
    ) -> int | None:
        self.record_calls.append(structured)
        return self.record_id


@pytest.fixture(scope="session")
def poseidon_params() -> PoseidonParams:
    return make_poseidon_params()


@pytest.fixture(scope="session")
def hasher(poseidon_params: PoseidonParams) -> PoseidonHasher:
    return PoseidonHasher(poseidon_params)


@pytest.fixture()
def binder(hasher: PoseidonHasher) -> NonceBinder:
    return NonceBinder(hasher)


@pytest.fixture()
def builder(binder: NonceBinder) -> CircuitInputBuilder:
    return CircuitInputBuilder(binder)


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def rsa_private_pem(rsa_private_key: rsa.RSAPrivateKey) -> str:
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture(scope="session")
def issuer_key(rsa_private_key: rsa.RSAPrivateKey) -> IssuerSigningKey:
    numbers = rsa_private_key.public_key().public_numbers()
    return IssuerSigningKey(key_id=KID, modulus=numbers.n, exponent=numbers.e)


@pytest.fixture(scope="session")
def jwks_document(issuer_key: IssuerSigningKey) -> dict[str, Any]:
    return {"keys": [issuer_key.to_jwk()]}


@pytest.fixture()
def key_material() -> EphemeralKeyMaterial:
    expiry = datetime.now(UTC).replace(microsecond=0) + timedelta(days=1)
    return EphemeralKeyMaterial(
        public_key=field_from_label("ephemeral-pubkey"),
        salt=field_from_label("ephemeral-salt"),
        expiry=expiry,
    )


@pytest.fixture()
def make_token(rsa_private_pem: str) -> Callable[..., str]:
    """Return a factory for RS256 identity tokens signed by the test issuer key."""

    def _make(
        overrides: dict[str, Any] | None = None,
        *,
        kid: str = KID,
        algorithm: str = "RS256",
        key: str | None = None,
    ) -> str:
        now = int(time.time())
        claims: dict[str, Any] = {
            "iss": ISSUER,
            "azp": "client-id.apps.example.com",
            "aud": "client-id.apps.example.com",
            "sub": "108522077721826439364",
            "hd": DOMAIN,
            "email": "alice@example.org",
            "email_verified": True,
            "nonce": "0",
            "nbf": now - 300,
            "iat": now,
            "exp": now + 3600,
            "jti": "ffa4ca1d546edfe9b5274467e1982a98215924d9",
        }
        claims.update(overrides or {})
        return jwt.encode(claims, key or rsa_private_pem, algorithm=algorithm, headers={"kid": kid})

    return _make


@pytest.fixture()
def bound_token(
    make_token: Callable[..., str],
    binder: NonceBinder,
    key_material: EphemeralKeyMaterial,
) -> str:
    """A token whose nonce claim is derived from ``key_material``."""
    return make_token({"nonce": str(binder.derive_for(key_material))})


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> Iterator[sessionmaker[Session]]:
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    try:
        yield factory
    finally:
        with factory() as session:
            session.execute(delete(VerificationRecord))
            session.commit()


@pytest.fixture()
def repository(session_factory: sessionmaker[Session]) -> VerificationRepository:
    return VerificationRepository(session_factory)


@pytest.fixture()
def fake_backend() -> FakeProvingBackend:
    return FakeProvingBackend()


@pytest.fixture()
def fake_onchain() -> FakeOnChainVerifier:
    return FakeOnChainVerifier()


@pytest.fixture()
def store(tmp_path) -> FileStore:
    return FileStore(tmp_path / "store")


@pytest.fixture()
def api_orchestrator(
    fake_backend: FakeProvingBackend,
    fake_onchain: FakeOnChainVerifier,
    repository: VerificationRepository,
) -> VerificationOrchestrator:
    return VerificationOrchestrator(
        pipeline=ProofPipeline(fake_backend),
        onchain=fake_onchain,
        repository=repository,
        srs_path=SRS_PATH,
    )


@pytest.fixture()
def app(store: FileStore, api_orchestrator: VerificationOrchestrator) -> Iterator[FastAPI]:
    overrides = {
        get_store: lambda: store,
        get_orchestrator_dep: lambda: api_orchestrator,
    }
    fastapi_app.dependency_overrides.update(overrides)
    try:
        yield fastapi_app
    finally:
        for dependency in overrides:
            fastapi_app.dependency_overrides.pop(dependency, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest_asyncio.fixture()
async def bad_gateway_rpc() -> AsyncIterator[str]:
    """URL of a JSON-RPC endpoint that answers every request with 502."""

    async def reply(request: web.Request) -> web.Response:
        return web.Response(status=502, text="Bad Gateway")

    rpc = web.Application()
    rpc.router.add_post("/", reply)
    runner = web.AppRunner(rpc)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    host, port = runner.addresses[0][:2]
    try:
        yield f"http://{host}:{port}/"
    finally:
        await runner.cleanup()
