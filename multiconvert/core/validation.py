"""Input validation utilities for the API layer.

Closed vocabularies for conversion kinds, fetch formats and quality tiers,
plus URL and colour validation shared by the endpoints.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Iterable, Optional
from urllib.parse import urlparse

import structlog

logger = structlog.get_logger(__name__)


class ConversionKind(str, Enum):
    """Supported file conversion kinds."""

    MP4_TO_MP3 = "mp4-to-mp3"
    PNG_TO_JPG = "png-to-jpg"
    JPG_TO_PNG = "jpg-to-png"
    PNG_TO_WEBP = "png-to-webp"
    JPG_TO_WEBP = "jpg-to-webp"
    WEBP_TO_PNG = "webp-to-png"
    WEBP_TO_JPG = "webp-to-jpg"
    IMAGE_TO_WEBP = "image-to-webp"
    PDF_TO_JPG = "pdf-to-jpg"
    DOCX_TO_PDF = "docx-to-pdf"


class FetchFormat(str, Enum):
    """Supported remote video fetch formats."""

    AUDIO = "audio"
    VIDEO_ONLY = "video-only"
    VIDEO_AUDIO = "video-audio"
    SEPARATE = "separate"


class VideoQuality(str, Enum):
    """Quality tiers capping the video height of video-bearing fetches."""

    BEST = "best"
    Q2160 = "2160p"
    Q1440 = "1440p"
    Q1080 = "1080p"
    Q720 = "720p"
    Q480 = "480p"
    Q360 = "360p"

    @property
    def max_height(self) -> Optional[int]:
        """Height cap in pixels, None for ``best``."""
        if self is VideoQuality.BEST:
            return None
        return int(self.value.rstrip("p"))


@dataclass(frozen=True)
class ValidationResult:
    """Result of a validation operation."""

    is_valid: bool
    error_message: Optional[str] = None
    sanitized_value: Optional[str] = None


def _choices(values: Iterable[Enum]) -> str:
    return ", ".join(v.value for v in values)


def validate_choice(enum_cls: type, value: Optional[str], label: str) -> ValidationResult:
    """Validate a value against a closed string enum.

    Args:
        enum_cls: One of the ``str`` enums in this module
        value: Raw value from the request
        label: Parameter name for error messages

    Returns:
        ValidationResult with the canonical value on success
    """
    if not value or not isinstance(value, str):
        return ValidationResult(is_valid=False, error_message=f"{label} is required")

    normalized = value.strip().lower()
    try:
        enum_cls(normalized)
    except ValueError:
        return ValidationResult(
            is_valid=False,
            error_message=f"Unsupported {label} '{value}'. Valid options: {_choices(enum_cls)}",
        )
    return ValidationResult(is_valid=True, sanitized_value=normalized)


class URLValidator:
    """Validates URLs against an allowed domain whitelist."""

    DEFAULT_ALLOWED_DOMAINS: FrozenSet[str] = frozenset(
        {
            "youtube.com",
            "www.youtube.com",
            "m.youtube.com",
            "youtu.be",
        }
    )

    # Dangerous URL schemes that should always be rejected
    DANGEROUS_SCHEMES: FrozenSet[str] = frozenset(
        {
            "javascript",
            "data",
            "file",
            "vbscript",
            "about",
        }
    )

    def __init__(self, allowed_domains: Optional[Iterable[str]] = None):
        """
        Initialize URL validator.

        Args:
            allowed_domains: Allowed domain names. Uses default if not provided.
        """
        self.allowed_domains = (
            frozenset(d.lower() for d in allowed_domains)
            if allowed_domains
            else self.DEFAULT_ALLOWED_DOMAINS
        )

    def validate(self, url: Optional[str]) -> ValidationResult:  # noqa: C901
        """Validate a URL against the whitelist.

        Args:
            url: URL to validate

        Returns:
            ValidationResult with validation status and any error message
        """
        if not url or not isinstance(url, str):
            return ValidationResult(is_valid=False, error_message="URL is required")

        url = url.strip()
        if not url:
            return ValidationResult(is_valid=False, error_message="URL cannot be empty")

        if any(ch.isspace() for ch in url):
            return ValidationResult(is_valid=False, error_message="Invalid URL format")

        try:
            parsed = urlparse(url)
        except ValueError as e:
            logger.warning("url_parse_failed", error=str(e))
            return ValidationResult(is_valid=False, error_message="Invalid URL format")

        scheme = parsed.scheme.lower() if parsed.scheme else ""
        if scheme in self.DANGEROUS_SCHEMES:
            logger.warning("dangerous_url_scheme", scheme=scheme)
            return ValidationResult(
                is_valid=False, error_message=f"URL scheme '{scheme}' is not allowed"
            )

        if scheme not in ("http", "https"):
            return ValidationResult(
                is_valid=False, error_message="URL must use http or https scheme"
            )

        netloc = parsed.netloc.lower()
        if not netloc:
            return ValidationResult(is_valid=False, error_message="URL must include a valid domain")

        # Strip credentials and port
        domain = netloc.rsplit("@", 1)[-1].split(":")[0]

        if domain not in self.allowed_domains:
            logger.debug("url_domain_rejected", domain=domain)
            return ValidationResult(
                is_valid=False,
                error_message=f"Domain '{domain}' is not in the allowed list",
            )

        return ValidationResult(is_valid=True, sanitized_value=url)

    def is_valid(self, url: Optional[str]) -> bool:
        return self.validate(url).is_valid


HEX_COLOR_PATTERN = re.compile(r"^#[0-9a-fA-F]{6}$")


def normalize_hex_color(value: Optional[str], default: str) -> str:
    """Return ``value`` if it is a ``#RRGGBB`` colour, else ``default``."""
    if isinstance(value, str) and HEX_COLOR_PATTERN.match(value):
        return value.upper()
    return default


def is_safe_filename(filename: str) -> bool:
    """Check that a client-supplied artifact name is a bare, visible file name."""
    if not filename or filename in (".", ".."):
        return False
    if "/" in filename or "\\" in filename or "\x00" in filename:
        return False
    return not filename.startswith(".")
