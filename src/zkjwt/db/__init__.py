# src/zkjwt/db/__init__.py
"""Database engine and session helpers."""
