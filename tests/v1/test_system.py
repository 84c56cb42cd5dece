# tests/v1/test_system.py
"""Tests for system and health endpoints."""

from fastapi import status
from fastapi.testclient import TestClient


def test_system_config(client: TestClient) -> None:
    r = client.get("/api/v1/system/config")
    assert r.status_code == status.HTTP_200_OK
    data = r.json()
    assert data["public_inputs"]["word_count"] == 85
    assert data["public_inputs"]["limb_count"] == 18
    assert "signer_private_key" not in data["app"]
    assert "database_url" not in data["app"]


def test_health(client: TestClient) -> None:
    r = client.get("/health")
    assert r.status_code == status.HTTP_200_OK
    assert r.json() == {"status": "ok"}


def test_root(client: TestClient) -> None:
    r = client.get("/")
    assert r.status_code == status.HTTP_200_OK
    assert r.json()["name"] == "zkjwt API"
