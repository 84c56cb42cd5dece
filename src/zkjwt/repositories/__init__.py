# src/zkjwt/repositories/__init__.py
"""Data access helpers."""

from .verification_repo import VerificationRepository

__all__ = ["VerificationRepository"]
