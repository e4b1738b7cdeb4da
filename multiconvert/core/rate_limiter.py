"""Rate limiting implementation using token bucket algorithm.

Per-client, per-category limits with burst support. Requests that start
work or spawn an external tool count as ``submission``; status polls,
artifact downloads and QR code rendering count as ``query``.
"""

import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import structlog

logger = structlog.get_logger(__name__)

SUBMISSION = "submission"
QUERY = "query"


@dataclass
class TokenBucket:
    """Token bucket for rate limiting.

    Attributes:
        capacity: Maximum number of tokens (burst capacity)
        refill_rate: Tokens added per second
        tokens: Current token count
        last_refill: Timestamp of last refill
    """

    capacity: int
    refill_rate: float
    tokens: float = field(default=0.0)
    last_refill: float = field(default_factory=time.monotonic)

    def __post_init__(self) -> None:
        """Initialize tokens to capacity if not set."""
        if self.tokens == 0.0:
            self.tokens = float(self.capacity)

    def refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now


@dataclass
class RateLimitConfig:
    """Configuration for a rate limit category.

    Attributes:
        rpm: Requests per minute
        burst_capacity: Maximum burst size (tokens)
    """

    rpm: int
    burst_capacity: int = 20


@dataclass(frozen=True)
class EndpointRule:
    """Maps a method and path prefix to a rate limit category."""

    method: str
    prefix: str
    category: str


class RateLimiter:
    """Token bucket rate limiter with per-client, per-category limits.

    Example:
        limiter = RateLimiter()
        allowed, retry_after = await limiter.check_rate_limit("client-key", "submission")
        if not allowed:
            # Return 429 with Retry-After header
            pass
    """

    DEFAULT_LIMITS: Dict[str, RateLimitConfig] = {
        SUBMISSION: RateLimitConfig(rpm=30, burst_capacity=20),
        QUERY: RateLimitConfig(rpm=300, burst_capacity=20),
    }

    # First matching rule wins
    ENDPOINT_RULES: List[EndpointRule] = [
        EndpointRule("POST", "/jobs/convert", SUBMISSION),
        EndpointRule("POST", "/jobs/fetch/info", SUBMISSION),
        EndpointRule("POST", "/jobs/fetch/download", SUBMISSION),
        EndpointRule("GET", "/jobs/", QUERY),
        EndpointRule("POST", "/codes/", QUERY),
    ]

    def __init__(
        self,
        limits: Optional[Dict[str, RateLimitConfig]] = None,
        endpoint_rules: Optional[List[EndpointRule]] = None,
    ) -> None:
        """Initialize rate limiter.

        Args:
            limits: Custom limits per category. Uses DEFAULT_LIMITS if not provided.
            endpoint_rules: Custom method/path to category mapping.
        """
        self.limits = dict(limits or self.DEFAULT_LIMITS)
        self.endpoint_rules = list(endpoint_rules or self.ENDPOINT_RULES)
        self._buckets: Dict[str, Dict[str, TokenBucket]] = defaultdict(dict)

    def configure_limits(
        self,
        submission_rpm: Optional[int] = None,
        query_rpm: Optional[int] = None,
        burst_capacity: Optional[int] = None,
    ) -> None:
        """Configure rate limits from config values."""
        for category, rpm in ((SUBMISSION, submission_rpm), (QUERY, query_rpm)):
            current = self.limits[category]
            self.limits[category] = RateLimitConfig(
                rpm=rpm if rpm is not None else current.rpm,
                burst_capacity=burst_capacity or current.burst_capacity,
            )

    def get_endpoint_category(self, method: str, path: str) -> Optional[str]:
        """Determine the rate limit category for a request.

        Returns:
            Category name or None if the request is not rate limited
        """
        path = path.rstrip("/") or "/"
        for rule in self.endpoint_rules:
            if method.upper() != rule.method:
                continue
            prefix = rule.prefix.rstrip("/")
            if path == prefix or path.startswith(prefix + "/"):
                return rule.category
        return None

    def _get_bucket(self, client: str, category: str) -> TokenBucket:
        if category not in self._buckets[client]:
            config = self.limits.get(category, self.limits[QUERY])
            self._buckets[client][category] = TokenBucket(
                capacity=config.burst_capacity,
                refill_rate=config.rpm / 60.0,
            )
        return self._buckets[client][category]

    async def check_rate_limit(self, client: str, category: str) -> Tuple[bool, float]:
        """Check if a request is allowed under the rate limit.

        Args:
            client: Client identifier (API key or IP address)
            category: The rate limit category

        Returns:
            Tuple of (allowed, retry_after_seconds)
        """
        bucket = self._get_bucket(client, category)
        bucket.refill()

        if bucket.tokens >= 1.0:
            bucket.tokens -= 1.0
            logger.debug(
                "rate_limit_check_passed",
                category=category,
                tokens_remaining=bucket.tokens,
            )
            return True, 0.0

        retry_after = (1.0 - bucket.tokens) / bucket.refill_rate
        logger.info(
            "rate_limit_exceeded",
            category=category,
            retry_after=retry_after,
            tokens_available=bucket.tokens,
        )
        return False, retry_after

    def get_bucket_status(self, client: str, category: str) -> Dict:
        if client not in self._buckets or category not in self._buckets[client]:
            config = self.limits.get(category, self.limits[QUERY])
            return {
                "tokens": config.burst_capacity,
                "capacity": config.burst_capacity,
                "rpm": config.rpm,
            }

        bucket = self._buckets[client][category]
        bucket.refill()
        return {
            "tokens": bucket.tokens,
            "capacity": bucket.capacity,
            "rpm": int(round(bucket.refill_rate * 60)),
        }

    def clear_all_buckets(self) -> None:
        """Clear all rate limit buckets. Useful for testing."""
        self._buckets.clear()


# Global rate limiter instance
_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get the global rate limiter instance."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter()
    return _rate_limiter


def configure_rate_limiter(
    submission_rpm: Optional[int] = None,
    query_rpm: Optional[int] = None,
    burst_capacity: Optional[int] = None,
) -> RateLimiter:
    """Configure the global rate limiter with custom settings."""
    global _rate_limiter
    _rate_limiter = RateLimiter()
    _rate_limiter.configure_limits(
        submission_rpm=submission_rpm,
        query_rpm=query_rpm,
        burst_capacity=burst_capacity,
    )
    return _rate_limiter
