"""Middleware package for the API."""

from multiconvert.middleware.auth import APIKeyAuth, get_api_key, require_api_key
from multiconvert.middleware.rate_limit import RateLimitMiddleware

__all__ = [
    "APIKeyAuth",
    "get_api_key",
    "require_api_key",
    "RateLimitMiddleware",
]
