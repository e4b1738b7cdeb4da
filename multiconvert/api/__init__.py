"""API endpoints."""

from multiconvert.api import codes, convert, fetch, health, metrics

__all__ = [
    "codes",
    "convert",
    "fetch",
    "health",
    "metrics",
]
