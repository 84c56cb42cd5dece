# src/zkjwt/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import members_router, messages_router, system_router

__all__ = ["members_router", "messages_router", "system_router"]
