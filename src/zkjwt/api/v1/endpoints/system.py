"""System endpoints exposing public runtime configuration."""

from __future__ import annotations

from fastapi import APIRouter

from zkjwt.core.settings import settings
from zkjwt.services.public_inputs import CURRENT_SCHEMA_VERSION, SCHEMAS

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/config")
async def get_public_config() -> dict[str, object]:
    """Return a sanitized snapshot of public runtime configuration.

    Excludes secrets and connection strings; suitable for clients that need
    to build circuit inputs matching this deployment.
    """
    schema = SCHEMAS[CURRENT_SCHEMA_VERSION]
    return {
        "app": settings.public_snapshot(),
        "public_inputs": {
            "schema_version": schema.version,
            "word_count": schema.word_count,
            "limb_bits": schema.limb_bits,
            "limb_count": schema.limb_count,
            "max_domain_length": schema.max_domain_length,
        },
    }
