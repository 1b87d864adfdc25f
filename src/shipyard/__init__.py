"""Idempotent declarative infrastructure reconciler."""

__version__ = "0.1.0"
