"""Synchronous QR code rendering.

No job is created; the PNG is rendered in a worker thread and returned
directly to the caller.
"""

import asyncio
import base64
import io
from dataclasses import dataclass

import qrcode
import structlog
from PIL import Image
from qrcode.exceptions import DataOverflowError

from multiconvert.core.validation import normalize_hex_color

logger = structlog.get_logger(__name__)

MAX_CONTENT_LENGTH = 2000
MIN_SIZE = 64
MAX_SIZE = 2048
DEFAULT_SIZE = 512
DEFAULT_DARK = "#000000"
DEFAULT_LIGHT = "#FFFFFF"
QUIET_ZONE = 2  # modules


class QRCodeError(Exception):
    """Raised when a QR code cannot be produced."""

    pass


class InvalidQRContentError(QRCodeError):
    """Raised when the content is missing or too long."""

    pass


@dataclass(frozen=True)
class QRCodeOptions:
    """Normalized rendering options."""

    size: int = DEFAULT_SIZE
    dark_color: str = DEFAULT_DARK
    light_color: str = DEFAULT_LIGHT

    @classmethod
    def normalize(cls, size=None, dark_color=None, light_color=None) -> "QRCodeOptions":
        """Clamp the size to [64, 2048] and fall back to default colours."""
        try:
            size_value = int(size) if size is not None else DEFAULT_SIZE
        except (TypeError, ValueError):
            size_value = DEFAULT_SIZE
        return cls(
            size=min(max(size_value, MIN_SIZE), MAX_SIZE),
            dark_color=normalize_hex_color(dark_color, DEFAULT_DARK),
            light_color=normalize_hex_color(light_color, DEFAULT_LIGHT),
        )


def validate_content(content) -> str:
    """Return the content if it can be encoded.

    Raises:
        InvalidQRContentError: If the content is missing or longer than 2000 characters
    """
    if not content or not isinstance(content, str):
        raise InvalidQRContentError("Content/URL is required")
    if len(content) > MAX_CONTENT_LENGTH:
        raise InvalidQRContentError(
            f"Content too long. Maximum {MAX_CONTENT_LENGTH} characters."
        )
    return content


def render_png(content: str, options: QRCodeOptions) -> bytes:
    """Render a square PNG of ``options.size`` pixels.

    Dense payloads that need more modules than ``options.size`` are kept at
    one pixel per module so the code stays scannable.
    """
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=1,
        border=QUIET_ZONE,
    )
    qr.add_data(content)
    try:
        qr.make(fit=True)
    except DataOverflowError as e:
        raise InvalidQRContentError("Content too long to encode") from e

    modules = qr.modules_count + 2 * QUIET_ZONE
    qr.box_size = max(1, options.size // modules)

    image = qr.make_image(fill_color=options.dark_color, back_color=options.light_color)
    pil_image = image.get_image().convert("RGB")
    if pil_image.size[0] < options.size:
        pil_image = pil_image.resize((options.size, options.size), Image.NEAREST)

    buffer = io.BytesIO()
    pil_image.save(buffer, format="PNG")
    return buffer.getvalue()


class QRCodeService:
    """Validates requests and renders QR codes off the event loop."""

    async def generate_png(self, content, options: QRCodeOptions) -> bytes:
        content = validate_content(content)
        try:
            png = await asyncio.to_thread(render_png, content, options)
        except InvalidQRContentError:
            raise
        except (ValueError, OSError) as e:
            logger.error("qrcode_generation_failed", error=str(e))
            raise QRCodeError(f"QR code generation failed: {e}") from e

        logger.debug(
            "qrcode_generated",
            size=options.size,
            content_length=len(content),
            png_bytes=len(png),
        )
        return png

    async def generate_data_url(self, content, options: QRCodeOptions) -> str:
        png = await self.generate_png(content, options)
        return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


# Global QR code service instance
_qrcode_service = QRCodeService()


def get_qrcode_service() -> QRCodeService:
    """Get the global QR code service instance."""
    return _qrcode_service
