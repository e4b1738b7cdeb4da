"""Audio extraction backed by an ffmpeg subprocess."""

from pathlib import Path
from typing import List

import structlog

from multiconvert.models.conversion import ConversionRequest, ConversionResult
from multiconvert.strategies.exceptions import ConversionError, ProcessFailedError
from multiconvert.strategies.process import run_process
from multiconvert.strategies.registry import StrategyContext, strategy

logger = structlog.get_logger(__name__)

MAX_ERROR_LENGTH = 500


def build_ffmpeg_command(executable: str, source: Path, target: Path, bitrate: str) -> List[str]:
    return [
        executable,
        "-hide_banner",
        "-loglevel",
        "error",
        "-y",
        "-i",
        str(source),
        "-vn",
        "-b:a",
        bitrate,
        "-f",
        "mp3",
        str(target),
    ]


@strategy("mp4-to-mp3", failure_prefix="Audio extraction failed")
async def mp4_to_mp3(request: ConversionRequest, ctx: StrategyContext) -> ConversionResult:
    source = Path(request.source)
    target = ctx.store.allocate(".mp3")
    cmd = build_ffmpeg_command(ctx.tools.ffmpeg, source, target, ctx.conversion.audio_bitrate)

    try:
        await run_process(cmd, timeout=ctx.timeouts.process)
    except ProcessFailedError as e:
        ctx.store.delete(target)
        raise ConversionError(e.message[:MAX_ERROR_LENGTH]) from e
    except ConversionError:
        ctx.store.delete(target)
        raise

    if not target.is_file():
        raise ConversionError("ffmpeg produced no output")

    logger.info("audio_extracted", filename=target.name, bitrate=ctx.conversion.audio_bitrate)
    return ConversionResult.succeeded(target)
