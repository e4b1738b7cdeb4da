"""Raster image conversions backed by Pillow.

Pillow is synchronous, so each conversion runs in a worker thread.
"""

import asyncio
from pathlib import Path
from typing import Any, Callable

import structlog
from PIL import Image, UnidentifiedImageError

from multiconvert.models.conversion import ConversionRequest, ConversionResult
from multiconvert.strategies.exceptions import ConversionError
from multiconvert.strategies.registry import StrategyContext, strategy

logger = structlog.get_logger(__name__)

WHITE = (255, 255, 255)


def _flatten_on_white(image: Image.Image) -> Image.Image:
    """Composite any transparency onto a white background and return RGB."""
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, WHITE)
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    return image.convert("RGB")


def _save_jpeg(source: Path, target: Path, quality: int) -> None:
    with Image.open(source) as image:
        _flatten_on_white(image).save(target, "JPEG", quality=quality)


def _save_png(source: Path, target: Path, compress_level: int) -> None:
    with Image.open(source) as image:
        if image.mode not in ("RGB", "RGBA", "L", "LA", "P"):
            image = image.convert("RGBA")
        image.save(target, "PNG", compress_level=compress_level)


def _save_webp(source: Path, target: Path, quality: int) -> None:
    with Image.open(source) as image:
        if image.mode not in ("RGB", "RGBA"):
            has_alpha = image.mode in ("LA", "PA") or "transparency" in image.info
            image = image.convert("RGBA" if has_alpha else "RGB")
        image.save(target, "WEBP", quality=quality)


async def _convert(
    request: ConversionRequest,
    ctx: StrategyContext,
    extension: str,
    writer: Callable[..., None],
    *args: Any,
) -> ConversionResult:
    source = Path(request.source)
    target = ctx.store.allocate(extension)

    try:
        await asyncio.to_thread(writer, source, target, *args)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        ctx.store.delete(target)
        raise ConversionError(str(e) or type(e).__name__) from e

    logger.info("image_converted", kind=request.kind, filename=target.name)
    return ConversionResult.succeeded(target)


@strategy("png-to-jpg", failure_prefix="PNG to JPG failed")
async def png_to_jpg(request: ConversionRequest, ctx: StrategyContext) -> ConversionResult:
    return await _convert(request, ctx, ".jpg", _save_jpeg, ctx.conversion.image_quality)


@strategy("webp-to-jpg", failure_prefix="WEBP to JPG failed")
async def webp_to_jpg(request: ConversionRequest, ctx: StrategyContext) -> ConversionResult:
    return await _convert(request, ctx, ".jpg", _save_jpeg, ctx.conversion.image_quality)


@strategy("jpg-to-png", failure_prefix="JPG to PNG failed")
async def jpg_to_png(request: ConversionRequest, ctx: StrategyContext) -> ConversionResult:
    return await _convert(request, ctx, ".png", _save_png, ctx.conversion.png_compression)


@strategy("webp-to-png", failure_prefix="WEBP to PNG failed")
async def webp_to_png(request: ConversionRequest, ctx: StrategyContext) -> ConversionResult:
    return await _convert(request, ctx, ".png", _save_png, ctx.conversion.png_compression)


@strategy("png-to-webp", failure_prefix="PNG to WEBP failed")
async def png_to_webp(request: ConversionRequest, ctx: StrategyContext) -> ConversionResult:
    return await _convert(request, ctx, ".webp", _save_webp, ctx.conversion.image_quality)


@strategy("jpg-to-webp", failure_prefix="JPG to WEBP failed")
async def jpg_to_webp(request: ConversionRequest, ctx: StrategyContext) -> ConversionResult:
    return await _convert(request, ctx, ".webp", _save_webp, ctx.conversion.image_quality)


@strategy("image-to-webp", failure_prefix="Image to WEBP failed")
async def image_to_webp(request: ConversionRequest, ctx: StrategyContext) -> ConversionResult:
    """Accepts any format Pillow can decode (PNG, JPEG, GIF, WEBP, ...)."""
    return await _convert(request, ctx, ".webp", _save_webp, ctx.conversion.image_quality)
