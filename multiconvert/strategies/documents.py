"""Document conversions backed by poppler's pdftoppm and LibreOffice."""

import tempfile
from pathlib import Path
from typing import List

import structlog

from multiconvert.models.conversion import ConversionRequest, ConversionResult
from multiconvert.strategies.exceptions import ConversionError, ProcessFailedError
from multiconvert.strategies.process import run_process
from multiconvert.strategies.registry import StrategyContext, strategy

logger = structlog.get_logger(__name__)

MAX_ERROR_LENGTH = 500


def build_pdftoppm_command(
    executable: str, source: Path, output_prefix: Path, density: int, quality: int
) -> List[str]:
    """First page only, written to ``<output_prefix>.jpg``."""
    return [
        executable,
        "-jpeg",
        "-r",
        str(density),
        "-jpegopt",
        f"quality={quality}",
        "-f",
        "1",
        "-l",
        "1",
        "-singlefile",
        str(source),
        str(output_prefix),
    ]


def build_soffice_command(
    executable: str, source: Path, outdir: Path, profile_dir: Path
) -> List[str]:
    return [
        executable,
        # Isolated profile so concurrent conversions do not share a lock
        f"-env:UserInstallation={profile_dir.as_uri()}",
        "--headless",
        "--convert-to",
        "pdf",
        "--outdir",
        str(outdir),
        str(source),
    ]


@strategy("pdf-to-jpg", failure_prefix="PDF to JPG failed")
async def pdf_to_jpg(request: ConversionRequest, ctx: StrategyContext) -> ConversionResult:
    source = Path(request.source)
    prefix = ctx.store.allocate("")
    target = prefix.with_name(prefix.name + ".jpg")
    cmd = build_pdftoppm_command(
        ctx.tools.pdftoppm,
        source,
        prefix,
        ctx.conversion.pdf_density,
        ctx.conversion.pdf_jpeg_quality,
    )

    try:
        await run_process(cmd, timeout=ctx.timeouts.process)
    except ProcessFailedError as e:
        ctx.store.delete(target)
        raise ConversionError(e.message[:MAX_ERROR_LENGTH]) from e

    if not target.is_file():
        raise ConversionError("pdftoppm produced no output")

    logger.info("pdf_rendered", filename=target.name, density=ctx.conversion.pdf_density)
    return ConversionResult.succeeded(target)


@strategy("docx-to-pdf", failure_prefix="DOCX to PDF failed")
async def docx_to_pdf(request: ConversionRequest, ctx: StrategyContext) -> ConversionResult:
    source = Path(request.source)
    target = ctx.store.allocate(".pdf")
    outdir = target.parent
    produced = outdir / f"{source.stem}.pdf"

    with tempfile.TemporaryDirectory(prefix="soffice-profile-") as profile_dir:
        cmd = build_soffice_command(ctx.tools.soffice, source, outdir, Path(profile_dir))
        try:
            await run_process(cmd, timeout=ctx.timeouts.process)
        except ProcessFailedError as e:
            ctx.store.delete(produced)
            raise ConversionError(e.message[:MAX_ERROR_LENGTH]) from e

    # soffice exits 0 even when it could not load the input
    if not produced.is_file():
        raise ConversionError("LibreOffice produced no output")

    try:
        produced.replace(target)
    except OSError as e:
        ctx.store.delete(produced)
        raise ConversionError(f"Could not store converted document: {e}") from e

    logger.info("document_converted", filename=target.name)
    return ConversionResult.succeeded(target)
