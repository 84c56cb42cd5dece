# src/zkjwt/api/__init__.py
"""HTTP API."""
