"""API key authentication dependencies.

The key is read from the ``X-API-Key`` header or the ``apiKey`` query
parameter. A missing key is rejected with 401, a wrong one with 403.
With no key configured the check is disabled.
"""

import hashlib
import hmac
from typing import FrozenSet, List, Optional, Set

import structlog
from fastapi import Depends, Request
from fastapi.security import APIKeyHeader, APIKeyQuery

from multiconvert.core.errors import APIError, ErrorCode

logger = structlog.get_logger(__name__)

API_KEY_HEADER_NAME = "X-API-Key"
API_KEY_QUERY_NAME = "apiKey"

# FastAPI security schemes for OpenAPI docs
api_key_header = APIKeyHeader(name=API_KEY_HEADER_NAME, auto_error=False)
api_key_query = APIKeyQuery(name=API_KEY_QUERY_NAME, auto_error=False)


def hash_api_key(api_key: Optional[str]) -> str:
    """
    Create a safe hash of an API key for logging.

    Returns:
        SHA256 hash prefix (first 8 characters) for safe logging
    """
    if not api_key:
        return "empty"
    return hashlib.sha256(api_key.encode()).hexdigest()[:8]


def extract_api_key(request: Request) -> Optional[str]:
    """Read the API key from the header, falling back to the query string."""
    return request.headers.get(API_KEY_HEADER_NAME) or request.query_params.get(
        API_KEY_QUERY_NAME
    )


class APIKeyAuth:
    """Validates API keys against the configured set."""

    # Paths that don't require authentication
    DEFAULT_EXCLUDED_PATHS: FrozenSet[str] = frozenset(
        {
            "/",
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
        api_keys: Optional[List[str]] = None,
        excluded_paths: Optional[Set[str]] = None,
    ):
        """
        Initialize API key authentication.

        Args:
            api_keys: Valid API keys. An empty list disables the check.
            excluded_paths: Paths that don't require authentication.
        """
        self._api_keys: Set[str] = {key for key in (api_keys or []) if key}
        self._excluded_paths = frozenset(excluded_paths or self.DEFAULT_EXCLUDED_PATHS)
        self._allow_all = len(self._api_keys) == 0

        if self._allow_all:
            logger.warning("auth_disabled", reason="no API keys configured")
        else:
            logger.info("auth_initialized", num_keys=len(self._api_keys))

    @property
    def allow_all(self) -> bool:
        """Check if authentication is disabled."""
        return self._allow_all

    def is_path_excluded(self, path: str) -> bool:
        path = path.rstrip("/") or "/"
        if path in self._excluded_paths:
            return True
        # Prefix match only on segment boundaries, "/" excluded as a prefix
        return any(
            excluded != "/" and path.startswith(excluded + "/") for excluded in self._excluded_paths
        )

    def validate_api_key(self, api_key: Optional[str]) -> bool:
        if self._allow_all:
            return True
        if not api_key:
            return False
        return any(hmac.compare_digest(api_key, key) for key in self._api_keys)

    def authenticate(self, request: Request, api_key: Optional[str]) -> None:
        """
        Authenticate a request.

        Raises:
            APIError: UNAUTHORIZED when the key is missing, FORBIDDEN when it is wrong
        """
        path = request.url.path

        if self._allow_all or self.is_path_excluded(path):
            return

        client_ip = request.client.host if request.client else "unknown"

        if not api_key:
            logger.warning("auth_missing_key", path=path, client_ip=client_ip)
            raise APIError(
                ErrorCode.UNAUTHORIZED,
                "API key is required",
                headers={"WWW-Authenticate": "ApiKey"},
            )

        if not self.validate_api_key(api_key):
            logger.warning(
                "auth_invalid_key",
                path=path,
                key_hash=hash_api_key(api_key),
                client_ip=client_ip,
            )
            raise APIError(ErrorCode.FORBIDDEN, "Invalid API key")

        logger.debug("auth_succeeded", path=path, key_hash=hash_api_key(api_key))


# Global auth instance (configured at startup)
_auth_instance: Optional[APIKeyAuth] = None


def configure_auth(api_keys: Optional[List[str]] = None) -> APIKeyAuth:
    """Configure the global auth instance."""
    global _auth_instance
    _auth_instance = APIKeyAuth(api_keys=api_keys)
    return _auth_instance


def get_auth() -> APIKeyAuth:
    """Get the global auth instance, a permissive default if not configured."""
    if _auth_instance is None:
        return APIKeyAuth()
    return _auth_instance


async def get_api_key(
    request: Request,
    header_key: Optional[str] = Depends(api_key_header),  # noqa: B008
    query_key: Optional[str] = Depends(api_key_query),  # noqa: B008
) -> Optional[str]:
    """Extract the API key from the request and authenticate it."""
    api_key = header_key or query_key
    get_auth().authenticate(request, api_key)
    return api_key


async def require_api_key(
    api_key: Optional[str] = Depends(get_api_key),  # noqa: B008
) -> Optional[str]:
    """Route dependency guarding the job and QR code endpoints."""
    return api_key
