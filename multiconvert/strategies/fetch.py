"""Remote video fetches backed by yt-dlp.

Every fetch resolves the video metadata first, so the job can report a
title and overlong videos are rejected before any download starts.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import structlog

from multiconvert.core.config import ToolsConfig
from multiconvert.core.validation import VideoQuality
from multiconvert.models.conversion import ConversionRequest, ConversionResult, FailureCategory
from multiconvert.strategies.exceptions import ConversionError, FetchError, ProcessFailedError
from multiconvert.strategies.process import run_process
from multiconvert.strategies.registry import StrategyContext, strategy

logger = structlog.get_logger(__name__)

UNKNOWN_ERROR_MESSAGE = "Download failed - unknown error"

# Ordered: the first matching rule wins
_ERROR_RULES: List[Tuple[Tuple[str, ...], bool, FailureCategory, str]] = [
    (
        ("video unavailable", "private video"),
        False,
        FailureCategory.UNAVAILABLE,
        "Video is unavailable or private",
    ),
    (
        ("age-restricted", "sign in"),
        False,
        FailureCategory.RESTRICTED,
        "Video is age-restricted and requires sign-in",
    ),
    (
        ("copyright", "blocked"),
        False,
        FailureCategory.BLOCKED,
        "Video is blocked due to copyright",
    ),
    (
        ("does not exist", "removed"),
        False,
        FailureCategory.REMOVED,
        "Video does not exist or has been removed",
    ),
    (
        ("live event", "premiere"),
        False,
        FailureCategory.LIVE_CONTENT,
        "Cannot download live events or premieres",
    ),
    (
        ("yt-dlp", "not found"),
        True,
        FailureCategory.TOOL_MISSING,
        "yt-dlp is not installed. Please install it: https://github.com/yt-dlp/yt-dlp",
    ),
    (
        ("ffmpeg", "not found"),
        True,
        FailureCategory.TOOL_MISSING,
        "FFmpeg is not installed or not in PATH",
    ),
    (
        ("unable to extract", "extractor error"),
        False,
        FailureCategory.TOOL_OUTDATED,
        "YouTube extractor error - yt-dlp may need updating. Run: yt-dlp -U",
    ),
]


def classify_ytdlp_error(stderr: str) -> Tuple[FailureCategory, str]:
    """Map yt-dlp diagnostic output to a failure category and a readable message.

    Rules are case-insensitive substring checks evaluated in order. A rule
    flagged ``require_all`` needs every needle present, otherwise any one.
    Without a match the first non-empty line of the output is returned.
    """
    lowered = stderr.lower()
    for needles, require_all, category, message in _ERROR_RULES:
        matches = (needle in lowered for needle in needles)
        if all(matches) if require_all else any(matches):
            return category, message

    first_line = next((line.strip() for line in stderr.splitlines() if line.strip()), None)
    return FailureCategory.UNKNOWN, first_line or UNKNOWN_ERROR_MESSAGE


@dataclass
class VideoInfo:
    """Metadata resolved before a fetch."""

    title: str
    duration: Optional[int]  # seconds, None when unknown (e.g. live)
    duration_string: str
    thumbnail: str
    is_live: bool = False

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "duration": self.duration_string,
            "thumbnail": self.thumbnail,
        }


def _parse_info(stdout: str) -> VideoInfo:
    # --dump-json prints one JSON document per line; take the first
    line = next((ln for ln in stdout.splitlines() if ln.strip()), "")
    info = json.loads(line)
    duration = info.get("duration")
    duration_seconds = int(duration) if isinstance(duration, (int, float)) else None
    duration_string = info.get("duration_string") or (
        str(duration_seconds) if duration_seconds is not None else "Unknown"
    )
    return VideoInfo(
        title=info.get("title") or "Unknown",
        duration=duration_seconds,
        duration_string=duration_string,
        thumbnail=info.get("thumbnail") or "",
        is_live=bool(info.get("is_live")),
    )


async def get_video_info(url: str, tools: ToolsConfig, timeout: Optional[float] = None) -> VideoInfo:
    """Resolve title, duration and thumbnail without downloading.

    Raises:
        FetchError: With a classified category when yt-dlp fails
        ToolNotFoundError: If yt-dlp is not installed
    """
    cmd = [tools.ytdlp, "--dump-json", "--no-download", "--no-playlist", url]

    try:
        result = await run_process(cmd, timeout=timeout)
    except ProcessFailedError as e:
        category, message = classify_ytdlp_error(e.stderr or e.message)
        logger.warning("video_info_failed", category=category.value, error=message)
        raise FetchError(message, category) from e

    try:
        info = _parse_info(result.stdout)
    except (json.JSONDecodeError, ValueError, TypeError) as e:
        logger.error("video_info_parse_failed", error=str(e))
        raise FetchError("Failed to parse video info", FailureCategory.UNKNOWN) from e

    logger.info("video_info_resolved", title=info.title, duration=info.duration)
    return info


def _height_filter(quality: VideoQuality) -> str:
    height = quality.max_height
    return f"[height<={height}]" if height else ""


def video_only_selector(quality: VideoQuality) -> str:
    h = _height_filter(quality)
    return f"bestvideo[ext=mp4]{h}/bestvideo{h}"


def video_audio_selector(quality: VideoQuality) -> str:
    h = _height_filter(quality)
    return f"bestvideo[ext=mp4]{h}+bestaudio[ext=m4a]/best[ext=mp4]{h}/best{h}"


def _base_args(ctx: StrategyContext, output_template: str) -> List[str]:
    return [
        ctx.tools.ytdlp,
        "-o",
        output_template,
        "--no-playlist",
        # The reaper ages artifacts by local mtime
        "--no-mtime",
        "--ffmpeg-location",
        ctx.tools.ffmpeg,
        # Final path after post-processing, one line on stdout
        "--print",
        "after_move:filepath",
    ]


def audio_args(ctx: StrategyContext, output_template: str) -> List[str]:
    return _base_args(ctx, output_template) + [
        "-x",
        "--audio-format",
        "mp3",
        "--audio-quality",
        "0",
    ]


def video_only_args(ctx: StrategyContext, output_template: str, quality: VideoQuality) -> List[str]:
    return _base_args(ctx, output_template) + ["-f", video_only_selector(quality)]


def video_audio_args(ctx: StrategyContext, output_template: str, quality: VideoQuality) -> List[str]:
    return _base_args(ctx, output_template) + [
        "-f",
        video_audio_selector(quality),
        "--merge-output-format",
        "mp4",
    ]


def _extract_file_path(output: str) -> Optional[Path]:
    """Last non-log line printed by ``--print after_move:filepath``."""
    for line in reversed(output.strip().splitlines()):
        line = line.strip()
        if line and not line.startswith("["):
            return Path(line)
    return None


def _find_output(stem: Path) -> Optional[Path]:
    candidates = sorted(p for p in stem.parent.glob(f"{stem.name}.*") if p.is_file())
    return candidates[0] if candidates else None


async def _run_download(args: List[str], url: str, stem: Path, ctx: StrategyContext) -> Path:
    """Run one yt-dlp download and return the produced file.

    Raises:
        FetchError: With the classified failure category
    """
    try:
        result = await run_process(args + [url], timeout=ctx.timeouts.process)
    except ProcessFailedError as e:
        category, message = classify_ytdlp_error(e.stderr or e.message)
        raise FetchError(message, category) from e

    produced = _extract_file_path(result.stdout)
    if produced is None or not produced.is_file():
        produced = _find_output(stem)
    if produced is None:
        raise FetchError("Could not determine output file path", FailureCategory.UNKNOWN)
    return produced


def _quality(request: ConversionRequest, ctx: StrategyContext) -> VideoQuality:
    value = request.options.get("quality") or ctx.fetch.default_quality
    try:
        return VideoQuality(value)
    except ValueError:
        return VideoQuality.BEST


async def _resolve_info(request: ConversionRequest, ctx: StrategyContext) -> VideoInfo:
    info = await get_video_info(request.source, ctx.tools, timeout=ctx.timeouts.info)

    if info.is_live:
        raise FetchError(
            "Cannot download live events or premieres",
            FailureCategory.LIVE_CONTENT,
            title=info.title,
        )
    if info.duration is not None and info.duration > ctx.fetch.max_duration:
        raise FetchError(
            f"Video exceeds maximum duration of {ctx.fetch.max_duration} seconds",
            FailureCategory.DURATION_EXCEEDED,
            title=info.title,
        )
    return info


async def _single_download(
    request: ConversionRequest,
    ctx: StrategyContext,
    build_args: Callable[[str], List[str]],
) -> ConversionResult:
    info = await _resolve_info(request, ctx)
    stem = ctx.store.allocate("")

    try:
        output = await _run_download(build_args(f"{stem}.%(ext)s"), request.source, stem, ctx)
    except ConversionError as e:
        e.title = info.title
        raise

    logger.info("video_fetched", kind=request.kind, filename=output.name, title=info.title)
    return ConversionResult.succeeded(output, title=info.title)


@strategy("audio")
async def fetch_audio(request: ConversionRequest, ctx: StrategyContext) -> ConversionResult:
    return await _single_download(request, ctx, lambda template: audio_args(ctx, template))


@strategy("video-only")
async def fetch_video_only(request: ConversionRequest, ctx: StrategyContext) -> ConversionResult:
    quality = _quality(request, ctx)
    return await _single_download(
        request, ctx, lambda template: video_only_args(ctx, template, quality)
    )


@strategy("video-audio")
async def fetch_video_audio(request: ConversionRequest, ctx: StrategyContext) -> ConversionResult:
    quality = _quality(request, ctx)
    return await _single_download(
        request, ctx, lambda template: video_audio_args(ctx, template, quality)
    )


@strategy("separate")
async def fetch_separate(request: ConversionRequest, ctx: StrategyContext) -> ConversionResult:
    """Video-only artifact plus an MP3, fetched by two sequential invocations.

    If the audio stage fails the video artifact is deleted before the
    failure is reported.
    """
    info = await _resolve_info(request, ctx)
    quality = _quality(request, ctx)
    base = ctx.store.allocate("")
    video_stem = base.with_name(f"{base.name}_video")
    audio_stem = base.with_name(f"{base.name}_audio")

    try:
        video = await _run_download(
            video_only_args(ctx, f"{video_stem}.%(ext)s", quality),
            request.source,
            video_stem,
            ctx,
        )
    except ConversionError as e:
        raise FetchError(f"Video download failed: {e.message}", e.category, title=info.title) from e

    try:
        audio = await _run_download(
            audio_args(ctx, f"{audio_stem}.%(ext)s"),
            request.source,
            audio_stem,
            ctx,
        )
    except ConversionError as e:
        ctx.store.delete(video)
        logger.info("partial_fetch_discarded", filename=video.name)
        raise FetchError(f"Audio download failed: {e.message}", e.category, title=info.title) from e

    logger.info(
        "video_fetched",
        kind=request.kind,
        filename=video.name,
        audio_filename=audio.name,
        title=info.title,
    )
    return ConversionResult.succeeded(video, secondary_output=audio, title=info.title)
