"""Tests for input validation utilities."""

import pytest

from multiconvert.core.validation import (
    ConversionKind,
    FetchFormat,
    URLValidator,
    VideoQuality,
    is_safe_filename,
    normalize_hex_color,
    validate_choice,
)


class TestURLValidator:
    """Tests for URLValidator class."""

    @pytest.fixture
    def validator(self) -> URLValidator:
        """Create a URL validator instance."""
        return URLValidator()

    @pytest.mark.parametrize(
        "url",
        [
            "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
            "https://youtube.com/watch?v=dQw4w9WgXcQ",
            "http://www.youtube.com/watch?v=dQw4w9WgXcQ",
            "https://m.youtube.com/watch?v=dQw4w9WgXcQ",
            "https://youtu.be/dQw4w9WgXcQ",
            "https://youtube.com/shorts/dQw4w9WgXcQ",
        ],
    )
    def test_valid_youtube_urls(self, validator: URLValidator, url: str):
        """Test that valid YouTube URLs are accepted."""
        result = validator.validate(url)
        assert result.is_valid is True
        assert result.error_message is None

    @pytest.mark.parametrize(
        "url,expected_domain",
        [
            ("https://vimeo.com/123456", "vimeo.com"),
            ("https://evil-youtube.com/watch?v=abc", "evil-youtube.com"),
            ("https://youtube.com.evil.com/watch?v=abc", "youtube.com.evil.com"),
        ],
    )
    def test_invalid_domains_rejected(
        self, validator: URLValidator, url: str, expected_domain: str
    ):
        """Test that non-whitelisted domains are rejected."""
        result = validator.validate(url)
        assert result.is_valid is False
        assert expected_domain in result.error_message

    @pytest.mark.parametrize(
        "url",
        [
            "javascript:alert('xss')",
            "data:text/html,<script>alert('xss')</script>",
            "file:///etc/passwd",
        ],
    )
    def test_dangerous_schemes_rejected(self, validator: URLValidator, url: str):
        """Test that dangerous URL schemes are rejected."""
        result = validator.validate(url)
        assert result.is_valid is False
        assert "not allowed" in result.error_message.lower()

    def test_ftp_scheme_rejected(self, validator: URLValidator):
        result = validator.validate("ftp://youtube.com/video")
        assert result.is_valid is False
        assert "http" in result.error_message

    @pytest.mark.parametrize("url", [None, "", "   "])
    def test_missing_url(self, validator: URLValidator, url):
        assert validator.validate(url).is_valid is False

    def test_embedded_whitespace_rejected(self, validator: URLValidator):
        assert validator.is_valid("https://youtube.com/watch?v=a b") is False

    def test_credentials_and_port_stripped_for_domain_check(self, validator: URLValidator):
        assert validator.is_valid("https://user:pw@youtube.com:443/watch?v=abc") is True

    def test_custom_domains(self):
        validator = URLValidator(["Example.org"])
        assert validator.is_valid("https://example.org/v/1") is True
        assert validator.is_valid("https://youtube.com/watch?v=1") is False


class TestValidateChoice:
    """Tests for closed vocabularies."""

    def test_conversion_kind_normalized(self):
        result = validate_choice(ConversionKind, "  PNG-to-JPG ", "conversion kind")
        assert result.is_valid is True
        assert result.sanitized_value == "png-to-jpg"

    def test_unknown_value_lists_options(self):
        result = validate_choice(FetchFormat, "gif", "fetch format")
        assert result.is_valid is False
        assert "audio" in result.error_message
        assert "separate" in result.error_message

    def test_missing_value(self):
        result = validate_choice(ConversionKind, None, "conversion kind")
        assert result.error_message == "conversion kind is required"

    def test_all_conversion_kinds(self):
        assert {k.value for k in ConversionKind} == {
            "mp4-to-mp3",
            "png-to-jpg",
            "jpg-to-png",
            "png-to-webp",
            "jpg-to-webp",
            "webp-to-png",
            "webp-to-jpg",
            "image-to-webp",
            "pdf-to-jpg",
            "docx-to-pdf",
        }


class TestVideoQuality:
    """Tests for quality tiers."""

    def test_best_has_no_cap(self):
        assert VideoQuality.BEST.max_height is None

    @pytest.mark.parametrize(
        "quality,height",
        [(VideoQuality.Q2160, 2160), (VideoQuality.Q720, 720), (VideoQuality.Q360, 360)],
    )
    def test_height_cap(self, quality: VideoQuality, height: int):
        assert quality.max_height == height


class TestHexColor:
    """Tests for colour normalization."""

    def test_valid_colour_uppercased(self):
        assert normalize_hex_color("#ff00aa", "#000000") == "#FF00AA"

    @pytest.mark.parametrize("value", [None, "", "red", "#fff", "#GGGGGG", "ff00aa", 123])
    def test_invalid_colour_falls_back(self, value):
        assert normalize_hex_color(value, "#FFFFFF") == "#FFFFFF"


class TestSafeFilename:
    """Tests for artifact name checks."""

    @pytest.mark.parametrize("name", ["abc.jpg", "3b9f0e0c2d6a4e0f_video.mp4"])
    def test_safe(self, name: str):
        assert is_safe_filename(name) is True

    @pytest.mark.parametrize(
        "name", ["", ".", "..", "../etc/passwd", "a/b.jpg", "a\\b.jpg", ".hidden", "a\x00b"]
    )
    def test_unsafe(self, name: str):
        assert is_safe_filename(name) is False
