"""API route modules."""

from dreamcut.api.routes import health, queries

__all__ = ["health", "queries"]
