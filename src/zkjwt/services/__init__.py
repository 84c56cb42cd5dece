# src/zkjwt/services/__init__.py
"""Pipeline components: key resolution, nonce binding, proving and verification."""
