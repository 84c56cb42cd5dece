# src/zkjwt/models/__init__.py
"""SQLAlchemy models for the zkjwt service."""

from .verification import VerificationRecord

__all__ = ["VerificationRecord"]
