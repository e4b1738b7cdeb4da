"""File conversion endpoints.

- POST /jobs/convert: upload a file and start a conversion job
- GET /jobs/convert/{job_id}: poll job status
- GET /jobs/convert/download/{filename}: fetch the converted artifact
"""

import re
from pathlib import Path
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import FileResponse

from multiconvert.api.schemas import ConvertStatusResponse, ConvertSubmitResponse, ErrorResponse
from multiconvert.core.errors import APIError, ErrorCode
from multiconvert.middleware.auth import require_api_key
from multiconvert.models.job import JobFamily
from multiconvert.services.artifact_store import ArtifactStore
from multiconvert.services.dispatcher import Dispatcher, DispatcherClosedError
from multiconvert.services.job_registry import JobRegistry
from multiconvert.strategies.exceptions import UnsupportedKindError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/jobs/convert", tags=["convert"])

UPLOAD_CHUNK_SIZE = 1024 * 1024
SUFFIX_PATTERN = re.compile(r"^\.[A-Za-z0-9]{1,10}$")


# Dependency placeholders (to be configured in main app)
async def get_dispatcher() -> Dispatcher:
    """Get dispatcher instance."""
    raise NotImplementedError("Dispatcher dependency not configured")


async def get_job_registry() -> JobRegistry:
    """Get job registry instance."""
    raise NotImplementedError("Job registry dependency not configured")


async def get_artifact_store() -> ArtifactStore:
    """Get artifact store instance."""
    raise NotImplementedError("Artifact store dependency not configured")


def _upload_suffix(filename: Optional[str]) -> str:
    suffix = Path(filename or "").suffix.lower()
    return suffix if SUFFIX_PATTERN.match(suffix) else ""


async def stage_upload(upload: UploadFile, store: ArtifactStore) -> Path:
    """Stream an upload into the artifact store.

    Raises:
        APIError: FILE_TOO_LARGE once more than ``max_file_size`` bytes arrive
    """
    limit = store.max_file_size
    target = store.allocate(_upload_suffix(upload.filename))
    written = 0

    try:
        with open(target, "wb") as out:
            while True:
                chunk = await upload.read(UPLOAD_CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > limit:
                    raise APIError(
                        ErrorCode.FILE_TOO_LARGE,
                        f"File too large. Maximum size is {limit} bytes",
                    )
                out.write(chunk)
    except BaseException:
        store.delete(target)
        raise
    finally:
        await upload.close()

    logger.debug("upload_staged", filename=target.name, size_bytes=written)
    return target


@router.post(
    "",
    response_model=ConvertSubmitResponse,
    response_model_by_alias=True,
    dependencies=[Depends(require_api_key)],
    responses={
        400: {"description": "Missing or unsupported kind, or no file", "model": ErrorResponse},
        413: {"description": "File too large", "model": ErrorResponse},
        415: {"description": "File type not allowed", "model": ErrorResponse},
    },
)
async def submit_conversion(
    file: Optional[UploadFile] = File(None),  # noqa: B008
    kind: Optional[str] = Form(None),  # noqa: B008
    legacy_type: Optional[str] = Form(None, alias="type"),  # noqa: B008
    dispatcher: Dispatcher = Depends(get_dispatcher),  # noqa: B008
    store: ArtifactStore = Depends(get_artifact_store),  # noqa: B008
) -> ConvertSubmitResponse:
    """
    Upload a file and start a conversion.

    The job is created in ``processing`` at 50% because the upload is
    already complete. Conversion failures are reported through the status
    endpoint, never here.
    """
    kind = kind or legacy_type
    if not kind:
        raise APIError(ErrorCode.VALIDATION_ERROR, "Conversion kind is required")
    if not dispatcher.supports_conversion(kind):
        raise APIError(ErrorCode.UNSUPPORTED_KIND, f"Unsupported conversion kind: {kind}")

    if file is None or not file.filename:
        raise APIError(ErrorCode.VALIDATION_ERROR, "No file uploaded")

    allowed = store.config.allowed_mime_types
    if file.content_type not in allowed:
        await file.close()
        raise APIError(
            ErrorCode.UNSUPPORTED_FILE_TYPE,
            f"File type {file.content_type} is not allowed",
        )

    staged = await stage_upload(file, store)

    try:
        job = dispatcher.submit_conversion(kind, staged, original_name=file.filename)
    except UnsupportedKindError as e:
        raise APIError(ErrorCode.UNSUPPORTED_KIND, f"Unsupported conversion kind: {e.kind}")
    except DispatcherClosedError as e:
        raise APIError(ErrorCode.SERVICE_UNAVAILABLE, str(e))

    logger.info(
        "conversion_submitted",
        job_id=job.job_id,
        kind=job.kind,
        original_filename=file.filename,
    )

    return ConvertSubmitResponse(
        id=job.job_id,
        status=job.status.value,
        progress=job.progress,
        original_file_name=job.title,
    )


@router.get(
    "/{job_id}",
    response_model=ConvertStatusResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
    dependencies=[Depends(require_api_key)],
    responses={404: {"description": "Job not found", "model": ErrorResponse}},
)
async def get_conversion_status(
    job_id: str,
    registry: JobRegistry = Depends(get_job_registry),  # noqa: B008
) -> ConvertStatusResponse:
    """Return the status of a conversion job."""
    job = registry.get(job_id)
    if job is None or job.family != JobFamily.CONVERT:
        raise APIError(ErrorCode.JOB_NOT_FOUND, "Job not found")
    return ConvertStatusResponse.from_job(job)


@router.get(
    "/download/{filename}",
    response_class=FileResponse,
    dependencies=[Depends(require_api_key)],
    responses={
        200: {"description": "Converted file"},
        404: {"description": "File not found or expired", "model": ErrorResponse},
    },
)
async def download_converted_file(
    filename: str,
    store: ArtifactStore = Depends(get_artifact_store),  # noqa: B008
) -> FileResponse:
    """Stream a converted artifact. Expired or unknown names return 404."""
    path = store.resolve(filename)
    if path is None:
        raise APIError(ErrorCode.FILE_NOT_FOUND, "File not found")

    logger.info("artifact_served", filename=filename, family="convert")
    return FileResponse(path=path, filename=filename)
