# src/zkjwt/core/__init__.py
"""Settings, error hierarchy and signature helpers."""
