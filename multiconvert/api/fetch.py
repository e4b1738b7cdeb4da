"""Video fetch endpoints.

- POST /jobs/fetch/info: resolve title, duration and thumbnail
- POST /jobs/fetch/download: start a fetch job
- GET /jobs/fetch/{job_id}: poll job status
- GET /jobs/fetch/file/{filename}: fetch a downloaded artifact
"""

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from multiconvert.api.schemas import (
    ErrorResponse,
    FetchDownloadRequest,
    FetchInfoRequest,
    FetchInfoResponse,
    FetchStatusResponse,
    FetchSubmitResponse,
)
from multiconvert.core.errors import APIError, ErrorCode
from multiconvert.middleware.auth import require_api_key
from multiconvert.models.job import JobFamily
from multiconvert.services.artifact_store import ArtifactStore
from multiconvert.services.dispatcher import (
    Dispatcher,
    DispatcherClosedError,
    InvalidOptionError,
    InvalidURLError,
)
from multiconvert.services.job_registry import JobRegistry
from multiconvert.strategies.exceptions import FetchError, ToolNotFoundError, UnsupportedKindError
from multiconvert.strategies.fetch import get_video_info

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/jobs/fetch", tags=["fetch"])

FORMAT_REQUIRED_MESSAGE = "Format must be one of: audio, video-only, video-audio, separate"


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


@router.post(
    "/info",
    response_model=FetchInfoResponse,
    dependencies=[Depends(require_api_key)],
    responses={
        400: {"description": "Missing or invalid URL", "model": ErrorResponse},
        404: {"description": "Video could not be resolved", "model": ErrorResponse},
        503: {"description": "yt-dlp not installed", "model": ErrorResponse},
    },
)
async def get_info(
    request: FetchInfoRequest,
    dispatcher: Dispatcher = Depends(get_dispatcher),  # noqa: B008
) -> FetchInfoResponse:
    """Resolve video metadata without downloading anything."""
    validation = dispatcher.url_validator.validate(request.url)
    if not validation.is_valid:
        raise APIError(ErrorCode.INVALID_URL, validation.error_message or "Invalid URL")

    ctx = dispatcher.context
    try:
        info = await get_video_info(
            validation.sanitized_value or request.url,
            ctx.tools,
            timeout=ctx.timeouts.info,
        )
    except ToolNotFoundError as e:
        raise APIError(ErrorCode.SERVICE_UNAVAILABLE, e.message)
    except FetchError as e:
        raise APIError(ErrorCode.VIDEO_NOT_FOUND, e.message)

    return FetchInfoResponse(**info.to_dict())


@router.post(
    "/download",
    response_model=FetchSubmitResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(require_api_key)],
    responses={
        400: {"description": "Invalid URL, format or quality", "model": ErrorResponse},
    },
)
async def submit_fetch(
    request: FetchDownloadRequest,
    dispatcher: Dispatcher = Depends(get_dispatcher),  # noqa: B008
) -> FetchSubmitResponse:
    """
    Start downloading a video.

    Returns immediately with a pending job. The title is filled in once
    the metadata lookup inside the job completes.
    """
    try:
        job = dispatcher.submit_fetch(request.url or "", request.format or "", request.quality)
    except InvalidURLError as e:
        raise APIError(ErrorCode.INVALID_URL, str(e))
    except UnsupportedKindError:
        raise APIError(ErrorCode.UNSUPPORTED_KIND, FORMAT_REQUIRED_MESSAGE)
    except InvalidOptionError as e:
        raise APIError(ErrorCode.VALIDATION_ERROR, str(e))
    except DispatcherClosedError as e:
        raise APIError(ErrorCode.SERVICE_UNAVAILABLE, str(e))

    logger.info("fetch_submitted", job_id=job.job_id, format=job.kind)

    return FetchSubmitResponse(
        id=job.job_id,
        status=job.status.value,
        progress=job.progress,
        title=job.title,
        format=job.kind,
    )


@router.get(
    "/{job_id}",
    response_model=FetchStatusResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
    dependencies=[Depends(require_api_key)],
    responses={404: {"description": "Job not found", "model": ErrorResponse}},
)
async def get_fetch_status(
    job_id: str,
    registry: JobRegistry = Depends(get_job_registry),  # noqa: B008
) -> FetchStatusResponse:
    """Return the status of a fetch job."""
    job = registry.get(job_id)
    if job is None or job.family != JobFamily.FETCH:
        raise APIError(ErrorCode.JOB_NOT_FOUND, "Job not found")
    return FetchStatusResponse.from_job(job)


@router.get(
    "/file/{filename}",
    response_class=FileResponse,
    dependencies=[Depends(require_api_key)],
    responses={
        200: {"description": "Downloaded file"},
        404: {"description": "File not found or expired", "model": ErrorResponse},
    },
)
async def download_fetched_file(
    filename: str,
    store: ArtifactStore = Depends(get_artifact_store),  # noqa: B008
) -> FileResponse:
    """Stream a fetched artifact. Expired or unknown names return 404."""
    path = store.resolve(filename)
    if path is None:
        raise APIError(ErrorCode.FILE_NOT_FOUND, "File not found")

    logger.info("artifact_served", filename=filename, family="fetch")
    return FileResponse(path=path, filename=filename)
