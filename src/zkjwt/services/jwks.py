# src/zkjwt/services/jwks.py
"""Issuer signing-key resolution from a JSON Web Key Set."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from zkjwt.core.errors import KeyNotFound, MalformedKeyError, NetworkError
from zkjwt.core.settings import settings
from zkjwt.utils.fields import b64url_to_int, int_to_b64url

logger = logging.getLogger(__name__)

HTTP_OK = 200
OIDC_DISCOVERY_PATH = "/.well-known/openid-configuration"


def modulus_from_jwk_n(n: str) -> int:
    """Decode a JWK ``n`` member into the RSA modulus."""
    try:
        modulus = b64url_to_int(n)
    except (TypeError, ValueError) as exc:
        raise MalformedKeyError("RSA modulus is not valid base64url") from exc
    if modulus <= 0:
        raise MalformedKeyError("RSA modulus must be a positive integer")
    return modulus


@dataclass(frozen=True)
class IssuerSigningKey:
    """An issuer's RSA public key as published in its JWKS."""

    key_id: str
    modulus: int
    exponent: int
    algorithm: str = "RS256"
    key_type: str = "RSA"

    @classmethod
    def from_jwk(cls, jwk: Mapping[str, Any]) -> IssuerSigningKey:
        kid = jwk.get("kid")
        if not isinstance(kid, str) or not kid:
            raise MalformedKeyError("JWK has no key id")
        if jwk.get("kty", "RSA") != "RSA":
            raise MalformedKeyError(f"JWK {kid} is not an RSA key")
        n = jwk.get("n")
        e = jwk.get("e", "AQAB")
        if not isinstance(n, str) or not isinstance(e, str):
            raise MalformedKeyError(f"JWK {kid} lacks RSA parameters")
        modulus = modulus_from_jwk_n(n)
        try:
            exponent = b64url_to_int(e)
        except ValueError as exc:
            raise MalformedKeyError(f"JWK {kid} exponent is not valid base64url") from exc
        return cls(
            key_id=kid,
            modulus=modulus,
            exponent=exponent,
            algorithm=str(jwk.get("alg", "RS256")),
            key_type="RSA",
        )

    def to_jwk(self) -> dict[str, str]:
        return {
            "kty": self.key_type,
            "kid": self.key_id,
            "alg": self.algorithm,
            "use": "sig",
            "n": int_to_b64url(self.modulus),
            "e": int_to_b64url(self.exponent),
        }


class IdentityKeyResolver:
    """Fetches issuer keys and caches them per (issuer, kid) for the process lifetime.

    A token naming a kid that is not cached triggers a refetch of the key set,
    which is how issuer key rotation is picked up. Concurrent misses may fetch
    twice; both converge on the same entries.
    """

    def __init__(
        self,
        jwks_urls: Mapping[str, str] | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self._jwks_urls = dict(jwks_urls or {})
        self._timeout = timeout_seconds or settings.jwks_http_timeout_seconds
        self._client = client
        self._owns_client = client is None
        self._client_lock = asyncio.Lock()
        self._cache: dict[tuple[str, str], IssuerSigningKey] = {}
        self._cache_lock = threading.Lock()

    @classmethod
    def from_settings(cls) -> IdentityKeyResolver:
        urls = {settings.issuer_url: settings.jwks_url} if settings.jwks_url else {}
        return cls(urls, timeout_seconds=settings.jwks_http_timeout_seconds)

    def cached(self, issuer_url: str, key_id: str) -> IssuerSigningKey | None:
        with self._cache_lock:
            return self._cache.get((issuer_url, key_id))

    async def resolve(self, issuer_url: str, key_id: str) -> IssuerSigningKey:
        """Return the signing key ``key_id`` of ``issuer_url``."""
        cached = self.cached(issuer_url, key_id)
        if cached is not None:
            return cached

        logger.info("Fetching signing keys for %s (kid %s not cached)", issuer_url, key_id)
        document = await self._get_json(await self._jwks_url(issuer_url))
        entries = document.get("keys") if isinstance(document, dict) else None
        if not isinstance(entries, list):
            raise MalformedKeyError(f"key set from {issuer_url} has no 'keys' array")

        found: IssuerSigningKey | None = None
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            try:
                key = IssuerSigningKey.from_jwk(entry)
            except MalformedKeyError:
                if entry.get("kid") == key_id:
                    raise
                logger.warning("Skipping malformed JWK %r from %s", entry.get("kid"), issuer_url)
                continue
            with self._cache_lock:
                self._cache[(issuer_url, key.key_id)] = key
            if key.key_id == key_id:
                found = key

        if found is None:
            raise KeyNotFound(f"issuer {issuer_url} publishes no key with kid {key_id}")
        return found

    async def _jwks_url(self, issuer_url: str) -> str:
        configured = self._jwks_urls.get(issuer_url)
        if configured:
            return configured
        discovery = await self._get_json(issuer_url.rstrip("/") + OIDC_DISCOVERY_PATH)
        jwks_uri = discovery.get("jwks_uri") if isinstance(discovery, dict) else None
        if not isinstance(jwks_uri, str) or not jwks_uri:
            raise MalformedKeyError(f"discovery document of {issuer_url} has no jwks_uri")
        self._jwks_urls[issuer_url] = jwks_uri
        return jwks_uri

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout))
        return self._client

    async def _get_json(self, url: str) -> Any:
        client = await self._ensure_client()
        try:
            response = await client.get(url, headers={"Accept": "application/json"})
        except httpx.HTTPError as exc:
            logger.warning("Key endpoint %s unreachable: %s", url, exc)
            raise NetworkError(f"cannot reach {url}: {exc}") from exc

        if response.status_code != HTTP_OK:
            raise NetworkError(
                f"{url} responded with {response.status_code}",
                retryable=response.status_code >= 500,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise MalformedKeyError(f"{url} did not return JSON") from exc

    async def close(self) -> None:
        """Release the HTTP client if this resolver created it."""
        async with self._client_lock:
            if self._client is not None and self._owns_client:
                await self._client.aclose()
                self._client = None
