# src/zkjwt/utils/__init__.py
"""Hashing and field-arithmetic helpers."""
