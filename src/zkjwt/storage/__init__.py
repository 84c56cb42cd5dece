# src/zkjwt/storage/__init__.py
"""Flat-file member and message store."""

from .file_store import FileStore

__all__ = ["FileStore"]
