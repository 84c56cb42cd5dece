# src/zkjwt/__init__.py
"""Proof-input binding and two-stage verification for zk-JWT domain proofs."""

__version__ = "0.1.0"
