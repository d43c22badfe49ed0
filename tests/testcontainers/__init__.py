"""Testcontainers for integration testing."""

from .containers import PostgresContainer

__all__ = [
    "PostgresContainer",
]
