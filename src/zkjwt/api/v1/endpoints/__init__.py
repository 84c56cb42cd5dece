# src/zkjwt/api/v1/endpoints/__init__.py
"""API endpoint routers."""

from .members import router as members_router
from .messages import router as messages_router
from .system import router as system_router

__all__ = ["members_router", "messages_router", "system_router"]
