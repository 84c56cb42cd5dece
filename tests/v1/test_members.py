# tests/v1/test_members.py
"""Tests for joining a domain group with a membership proof."""

from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi import status
from fastapi.testclient import TestClient

from conftest import DOMAIN, FakeOnChainVerifier, FakeProvingBackend
from zkjwt.core.errors import ShpleminiFailed
from zkjwt.services.ephemeral import EphemeralKey, generate_ephemeral_key
from zkjwt.services.jwks import IssuerSigningKey
from zkjwt.services.public_inputs import PublicInputEncoder, StructuredPublicInputs


def _join_payload(key: EphemeralKey, issuer_key: IssuerSigningKey, proof: bytes) -> dict[str, Any]:
    return {
        "proof": proof.hex(),
        "domain": DOMAIN,
        "ephemeral_pubkey": key.public_key_hex,
        "ephemeral_pubkey_expiry": key.expiry.isoformat(),
        "provider": "google-oauth",
        "issuer_modulus": issuer_key.to_jwk()["n"],
    }


def test_join_registers_member(
    client: TestClient,
    issuer_key: IssuerSigningKey,
    fake_backend: FakeProvingBackend,
    fake_onchain: FakeOnChainVerifier,
) -> None:
    key = generate_ephemeral_key(3600)

    r = client.post("/api/v1/members", json=_join_payload(key, issuer_key, fake_backend.proof))

    assert r.status_code == status.HTTP_201_CREATED
    data = r.json()
    assert data["member"]["pubkey"] == key.public_key_hex
    assert data["member"]["group_id"] == DOMAIN
    assert data["verification"]["state"] == "verified"
    assert data["verification"]["onchain_record_id"] == "7"
    assert data["member"]["proof_fingerprint"] == data["verification"]["fingerprint"]

    structured = fake_onchain.record_calls[0]
    assert structured.ephemeral_pubkey == key.field_public_key
    assert structured.issuer_modulus == issuer_key.modulus

    r = client.get(f"/api/v1/members/{key.public_key_hex}")
    assert r.status_code == status.HTTP_200_OK
    assert r.json()["provider"] == "google-oauth"


def test_join_with_matching_client_inputs(
    client: TestClient, issuer_key: IssuerSigningKey, fake_backend: FakeProvingBackend
) -> None:
    key = generate_ephemeral_key(3600)
    vector = PublicInputEncoder().encode_structured(
        StructuredPublicInputs(issuer_key.modulus, DOMAIN, key.field_public_key, key.expiry)
    )
    payload = _join_payload(key, issuer_key, fake_backend.proof)
    payload["public_inputs"] = vector.as_hex()

    r = client.post("/api/v1/members", json=payload)
    assert r.status_code == status.HTTP_201_CREATED


def test_join_with_mismatched_client_inputs(
    client: TestClient,
    issuer_key: IssuerSigningKey,
    fake_backend: FakeProvingBackend,
    fake_onchain: FakeOnChainVerifier,
) -> None:
    key = generate_ephemeral_key(3600)
    vector = PublicInputEncoder().encode_structured(
        StructuredPublicInputs(issuer_key.modulus, "other.org", key.field_public_key, key.expiry)
    )
    payload = _join_payload(key, issuer_key, fake_backend.proof)
    payload["public_inputs"] = vector.as_hex()

    r = client.post("/api/v1/members", json=payload)

    assert r.status_code == status.HTTP_400_BAD_REQUEST
    assert fake_onchain.verify_calls == []


def test_locally_invalid_proof_is_rejected(
    client: TestClient,
    issuer_key: IssuerSigningKey,
    fake_backend: FakeProvingBackend,
    fake_onchain: FakeOnChainVerifier,
) -> None:
    fake_backend.valid = False
    key = generate_ephemeral_key(3600)

    r = client.post("/api/v1/members", json=_join_payload(key, issuer_key, fake_backend.proof))

    assert r.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert fake_onchain.verify_calls == []
    assert client.get(f"/api/v1/members/{key.public_key_hex}").status_code == status.HTTP_404_NOT_FOUND


def test_onchain_rejection_is_reported(
    client: TestClient,
    issuer_key: IssuerSigningKey,
    fake_backend: FakeProvingBackend,
    fake_onchain: FakeOnChainVerifier,
) -> None:
    fake_onchain.error = ShpleminiFailed("shplemini failed", selector="0xb96ecf7f")
    key = generate_ephemeral_key(3600)

    r = client.post("/api/v1/members", json=_join_payload(key, issuer_key, fake_backend.proof))

    assert r.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert "shplemini" in r.json()["detail"]


def test_expired_key_is_rejected(
    client: TestClient, issuer_key: IssuerSigningKey, fake_backend: FakeProvingBackend
) -> None:
    key = generate_ephemeral_key(60, now=datetime.now(UTC) - timedelta(hours=1))

    r = client.post("/api/v1/members", json=_join_payload(key, issuer_key, fake_backend.proof))

    assert r.status_code == status.HTTP_400_BAD_REQUEST
    assert fake_backend.verify_calls == []


def test_bad_hex_is_rejected(client: TestClient, issuer_key: IssuerSigningKey) -> None:
    key = generate_ephemeral_key(3600)
    payload = _join_payload(key, issuer_key, b"\x01")
    payload["proof"] = "not-hex"

    r = client.post("/api/v1/members", json=payload)
    assert r.status_code == status.HTTP_400_BAD_REQUEST
