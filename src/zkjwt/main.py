# src/zkjwt/main.py
"""Main entry point for the zkjwt service."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from zkjwt import __version__
from zkjwt.api.v1 import members_router, messages_router, system_router
from zkjwt.core.settings import settings
from zkjwt.db.session import create_tables

logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO)

# Initialize FastAPI app
app = FastAPI(
    title="zkjwt API",
    description="Anonymous domain membership proven from OAuth identity tokens",
    version=__version__,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(members_router, prefix="/api/v1")
app.include_router(messages_router, prefix="/api/v1")
app.include_router(system_router, prefix="/api/v1")


@app.on_event("startup")
async def on_startup() -> None:
    create_tables()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": "zkjwt API",
        "version": __version__,
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("zkjwt.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
