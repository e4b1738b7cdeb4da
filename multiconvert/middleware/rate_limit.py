"""Rate limiting middleware for FastAPI.

Checks each request against the token bucket limiter and returns 429
with a Retry-After header when the client's bucket is empty.
"""

from typing import FrozenSet, Optional

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from multiconvert.core.errors import ErrorCode, error_response
from multiconvert.core.metrics import MetricsCollector
from multiconvert.core.rate_limiter import RateLimiter, get_rate_limiter
from multiconvert.middleware.auth import extract_api_key, get_auth, hash_api_key

logger = structlog.get_logger(__name__)


def client_identifier(request: Request) -> str:
    """Configured API key if a valid one was sent, else the client IP.

    Unknown keys share the IP bucket.
    """
    api_key = extract_api_key(request)
    auth = get_auth()
    if api_key and not auth.allow_all and auth.validate_api_key(api_key):
        return f"key:{api_key}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """HTTP middleware for rate limiting API requests.

    Excluded paths (health checks, docs, metrics) are not rate limited.
    """

    DEFAULT_EXCLUDED_PATHS: FrozenSet[str] = frozenset(
        {
            "/health",
            "/readiness",
            "/docs",
            "/redoc",
            "/openapi.json",
            "/metrics",
        }
    )

    def __init__(
        self,
        app: ASGIApp,
        rate_limiter: Optional[RateLimiter] = None,
        excluded_paths: Optional[FrozenSet[str]] = None,
    ) -> None:
        """Initialize rate limit middleware.

        Args:
            app: The ASGI application
            rate_limiter: RateLimiter instance. The global instance is looked
                up per request if not provided, so startup configuration applies.
            excluded_paths: Paths to exclude from rate limiting.
        """
        super().__init__(app)
        self._rate_limiter = rate_limiter
        self.excluded_paths = excluded_paths or self.DEFAULT_EXCLUDED_PATHS

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter or get_rate_limiter()

    def _is_excluded_path(self, path: str) -> bool:
        normalized = path.rstrip("/")
        return normalized in self.excluded_paths or any(
            normalized.startswith(excluded + "/") for excluded in self.excluded_paths
        )

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        path = request.url.path

        if self._is_excluded_path(path):
            return await call_next(request)

        limiter = self.rate_limiter
        category = limiter.get_endpoint_category(request.method, path)
        if category is None:
            return await call_next(request)

        client = client_identifier(request)
        allowed, retry_after = await limiter.check_rate_limit(client, category)

        if not allowed:
            client_hash = hash_api_key(client)
            logger.warning(
                "rate_limit_rejected",
                path=path,
                category=category,
                client_hash=client_hash,
                retry_after=retry_after,
            )
            MetricsCollector.record_rate_limit_exceeded(client_hash, category)

            return error_response(
                429,
                ErrorCode.RATE_LIMIT_EXCEEDED,
                f"Rate limit exceeded for {category} operations",
                headers={"Retry-After": str(int(retry_after) + 1)},
            )

        return await call_next(request)
