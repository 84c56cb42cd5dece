"""Application settings and configuration.

This module defines all configuration options for the zkjwt service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    Components also accept explicit arguments, so these values act as the
    defaults for the wired-up application only.
    """

    # Application metadata
    app_name: str = Field(default="zkjwt", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")

    # Database configuration (verification records)
    database_url: str = Field(default="sqlite:///./zkjwt.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Flat-file member and message store
    store_path: str = Field(default="./data", alias="STORE_PATH")

    # Identity provider
    issuer_url: str = Field(default="https://accounts.google.com", alias="ISSUER_URL")
    jwks_url: str | None = Field(
        default="https://www.googleapis.com/oauth2/v3/certs",
        alias="JWKS_URL",
    )
    jwks_http_timeout_seconds: float = Field(default=10.0, alias="JWKS_HTTP_TIMEOUT_SECONDS")
    jwt_algorithm: str = Field(default="RS256", alias="JWT_ALGORITHM")
    domain_claim: str = Field(default="hd", alias="DOMAIN_CLAIM")

    # Circuit shape
    max_signed_data_length: int = Field(default=1024, alias="MAX_SIGNED_DATA_LENGTH")
    sha_precompute_keys: list[str] = Field(
        default=["hd", "nonce"],
        alias="SHA_PRECOMPUTE_KEYS",
    )
    poseidon_params_path: str | None = Field(default=None, alias="POSEIDON_PARAMS_PATH")
    poseidon_params_name: str = Field(default="bn254-t4", alias="POSEIDON_PARAMS_NAME")

    # Proving backend
    srs_path: str = Field(default="./public/jwt-srs.local", alias="SRS_PATH")
    prover_command: list[str] = Field(default=["zkjwt-prover"], alias="PROVER_COMMAND")
    prover_timeout_seconds: float = Field(default=300.0, alias="PROVER_TIMEOUT_SECONDS")

    # On-chain verifier and bookkeeping contracts
    rpc_url: str | None = Field(default=None, alias="RPC_URL")
    verifier_address: str | None = Field(default=None, alias="VERIFIER_ADDRESS")
    verifier_artifact_path: str | None = Field(default=None, alias="VERIFIER_ARTIFACT_PATH")
    manager_address: str | None = Field(default=None, alias="MANAGER_ADDRESS")
    manager_artifact_path: str | None = Field(default=None, alias="MANAGER_ARTIFACT_PATH")
    signer_private_key: str | None = Field(default=None, alias="SIGNER_PRIVATE_KEY")
    onchain_timeout_seconds: float = Field(default=30.0, alias="ONCHAIN_TIMEOUT_SECONDS")
    onchain_gas_limit: int = Field(default=8_000_000, alias="ONCHAIN_GAS_LIMIT")

    # Ephemeral keys
    ephemeral_key_ttl_seconds: int = Field(
        default=60 * 60 * 24 * 7,
        alias="EPHEMERAL_KEY_TTL_SECONDS",
    )

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(default=["*"], alias="CORS_ALLOW_HEADERS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def onchain_enabled(self) -> bool:
        """Return True when an RPC endpoint and verifier contract are configured."""
        return bool(self.rpc_url and self.verifier_address)

    def public_snapshot(self) -> dict[str, object]:
        """Return the non-secret settings exposed through the system endpoint."""
        return {
            "app_name": self.app_name,
            "app_version": self.app_version,
            "issuer_url": self.issuer_url,
            "jwt_algorithm": self.jwt_algorithm,
            "domain_claim": self.domain_claim,
            "max_signed_data_length": self.max_signed_data_length,
            "sha_precompute_keys": list(self.sha_precompute_keys),
            "poseidon_params_name": self.poseidon_params_name,
            "onchain_enabled": self.onchain_enabled,
            "verifier_address": self.verifier_address,
            "manager_address": self.manager_address,
            "ephemeral_key_ttl_seconds": self.ephemeral_key_ttl_seconds,
        }


settings = Settings()
