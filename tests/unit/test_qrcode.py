"""Tests for QR code rendering."""

import base64
import io

import pytest
import qrcode
from PIL import Image

from multiconvert.services.qrcode_service import (
    DEFAULT_SIZE,
    MAX_CONTENT_LENGTH,
    QUIET_ZONE,
    InvalidQRContentError,
    QRCodeOptions,
    QRCodeService,
    render_png,
    validate_content,
)


def _open(png: bytes) -> Image.Image:
    return Image.open(io.BytesIO(png)).convert("RGB")


class TestOptions:
    """Tests for option normalization."""

    def test_defaults(self):
        options = QRCodeOptions.normalize()
        assert options == QRCodeOptions(size=512, dark_color="#000000", light_color="#FFFFFF")

    @pytest.mark.parametrize(
        "size,expected", [(10, 64), (64, 64), (300, 300), (2048, 2048), (5000, 2048), ("abc", 512)]
    )
    def test_size_clamped(self, size, expected):
        assert QRCodeOptions.normalize(size=size).size == expected

    def test_invalid_colors_fall_back(self):
        options = QRCodeOptions.normalize(dark_color="red", light_color="#12345")
        assert options.dark_color == "#000000"
        assert options.light_color == "#FFFFFF"

    def test_valid_colors_kept(self):
        options = QRCodeOptions.normalize(dark_color="#1a2b3c", light_color="#FFEEDD")
        assert options.dark_color == "#1A2B3C"
        assert options.light_color == "#FFEEDD"


class TestContentValidation:
    """Tests for content limits."""

    def test_max_length_accepted(self):
        content = "a" * MAX_CONTENT_LENGTH
        assert validate_content(content) == content

    def test_over_max_rejected(self):
        with pytest.raises(InvalidQRContentError, match="Maximum 2000 characters"):
            validate_content("a" * (MAX_CONTENT_LENGTH + 1))

    @pytest.mark.parametrize("content", [None, "", 42])
    def test_missing_rejected(self, content):
        with pytest.raises(InvalidQRContentError, match="Content/URL is required"):
            validate_content(content)


class TestRendering:
    """Tests for PNG output."""

    def test_exact_size(self):
        png = render_png("https://example.com", QRCodeOptions(size=300))

        assert png[:8] == b"\x89PNG\r\n\x1a\n"
        assert _open(png).size == (300, 300)

    def test_colors_applied(self):
        options = QRCodeOptions.normalize(dark_color="#FF0000", light_color="#00FF00")

        image = _open(render_png("hello", options))

        # Quiet zone corner is light
        assert image.getpixel((0, 0)) == (0, 255, 0)
        assert (255, 0, 0) in {color for _, color in image.getcolors(maxcolors=16)}

    def test_long_content_renders(self):
        png = render_png("x" * MAX_CONTENT_LENGTH, QRCodeOptions(size=DEFAULT_SIZE))
        assert _open(png).size == (DEFAULT_SIZE, DEFAULT_SIZE)

    def test_dense_content_never_shrinks_below_module_grid(self):
        qr = qrcode.QRCode(error_correction=qrcode.constants.ERROR_CORRECT_M, border=QUIET_ZONE)
        qr.add_data("a" * MAX_CONTENT_LENGTH)
        qr.make(fit=True)
        modules = qr.modules_count + 2 * QUIET_ZONE

        image = _open(render_png("a" * MAX_CONTENT_LENGTH, QRCodeOptions.normalize(size=64)))

        assert image.size == (modules, modules)

    def test_small_content_scaled_up_to_size(self):
        image = _open(render_png("hi", QRCodeOptions.normalize(size=64)))
        assert image.size == (64, 64)


class TestQRCodeService:
    """Tests for the async service."""

    async def test_data_url(self):
        service = QRCodeService()

        data_url = await service.generate_data_url("https://example.com", QRCodeOptions())

        prefix = "data:image/png;base64,"
        assert data_url.startswith(prefix)
        png = base64.b64decode(data_url[len(prefix):])
        assert _open(png).size == (512, 512)

    async def test_rejects_too_long(self):
        with pytest.raises(InvalidQRContentError):
            await QRCodeService().generate_png("a" * 2001, QRCodeOptions())
