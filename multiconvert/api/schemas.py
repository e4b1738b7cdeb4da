"""Request and response schemas for API endpoints.

Wire names are camelCase to match the existing web client; Python field
names stay snake_case and are mapped through aliases.
"""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from multiconvert.models.job import Job


class APIModel(BaseModel):
    """Base model serializing by alias and accepting either name on input."""

    model_config = ConfigDict(populate_by_name=True)


class ErrorResponse(BaseModel):
    """Standard error body."""

    error: str = Field(..., examples=["VALIDATION_ERROR"])
    message: str = Field(..., examples=["Content/URL is required"])


# Conversion jobs


class ConvertSubmitResponse(APIModel):
    """Response for an accepted conversion."""

    id: str = Field(..., examples=["5f0c6b9e-3f47-4c39-9d8e-2b1e1f0a7c11"])
    status: str = Field(..., examples=["processing"])
    progress: int = Field(..., ge=0, le=100, examples=[50])
    original_file_name: Optional[str] = Field(
        None, alias="originalFileName", examples=["holiday.png"]
    )


class ConvertStatusResponse(APIModel):
    """Status projection of a conversion job."""

    id: str
    status: str = Field(..., examples=["completed"])
    progress: int = Field(..., ge=0, le=100)
    original_file_name: Optional[str] = Field(None, alias="originalFileName")
    converted_file_name: Optional[str] = Field(
        None, alias="convertedFileName", examples=["3b9f0e0c2d6a4e0f9b1c8a7d6e5f4a3b.jpg"]
    )
    download_url: Optional[str] = Field(None, alias="downloadUrl")
    error: Optional[str] = Field(None, examples=["PNG to JPG failed: cannot identify image file"])

    @classmethod
    def from_job(cls, job: Job) -> "ConvertStatusResponse":
        return cls(
            id=job.job_id,
            status=job.status.value,
            progress=job.progress,
            original_file_name=job.title,
            converted_file_name=job.output_filename,
            download_url=job.download_url,
            error=job.error,
        )


# Fetch jobs


class FetchInfoRequest(APIModel):
    """Request body for video metadata lookup."""

    url: Optional[str] = Field(
        None, description="Video URL", examples=["https://www.youtube.com/watch?v=dQw4w9WgXcQ"]
    )


class FetchInfoResponse(APIModel):
    """Video metadata."""

    title: str = Field(..., examples=["Rick Astley - Never Gonna Give You Up"])
    duration: str = Field(..., description="Human readable duration", examples=["3:33"])
    thumbnail: str = Field(..., examples=["https://i.ytimg.com/vi/dQw4w9WgXcQ/maxresdefault.jpg"])


class FetchDownloadRequest(APIModel):
    """Request body for starting a fetch job."""

    url: Optional[str] = Field(None, examples=["https://www.youtube.com/watch?v=dQw4w9WgXcQ"])
    format: Optional[str] = Field(
        None,
        description="Output format",
        examples=["audio", "video-only", "video-audio", "separate"],
    )
    quality: Optional[str] = Field(
        None,
        description="Maximum video height for video formats",
        examples=["best", "1080p", "720p"],
    )


class FetchSubmitResponse(APIModel):
    """Response for an accepted fetch."""

    id: str
    status: str = Field(..., examples=["pending"])
    progress: int = Field(..., ge=0, le=100, examples=[10])
    title: Optional[str] = None
    format: str = Field(..., examples=["audio"])


class FetchStatusResponse(APIModel):
    """Status projection of a fetch job."""

    id: str
    status: str
    progress: int = Field(..., ge=0, le=100)
    title: Optional[str] = None
    format: str
    download_url: Optional[str] = Field(None, alias="downloadUrl")
    audio_download_url: Optional[str] = Field(None, alias="audioDownloadUrl")
    error: Optional[str] = Field(None, examples=["Video is unavailable or private"])

    @classmethod
    def from_job(cls, job: Job) -> "FetchStatusResponse":
        return cls(
            id=job.job_id,
            status=job.status.value,
            progress=job.progress,
            title=job.title,
            format=job.kind,
            download_url=job.download_url,
            audio_download_url=job.secondary_download_url,
            error=job.error,
        )


# QR codes


class QRCodeRequest(APIModel):
    """Request body for QR code generation. ``url`` is a legacy alias of ``content``."""

    content: Optional[str] = Field(None, examples=["https://example.com"])
    url: Optional[str] = Field(None, description="Deprecated alias of content")
    size: Optional[int] = Field(None, description="Edge length in pixels (64-2048)", examples=[512])
    dark_color: Optional[str] = Field(None, alias="darkColor", examples=["#000000"])
    light_color: Optional[str] = Field(None, alias="lightColor", examples=["#FFFFFF"])

    @property
    def resolved_content(self) -> Optional[str]:
        return self.content if self.content is not None else self.url


class QRCodeResponse(APIModel):
    """Rendered QR code as a data URL."""

    data_url: str = Field(..., alias="dataUrl", examples=["data:image/png;base64,iVBORw0KGgo..."])


# Health


class HealthResponse(BaseModel):
    """Liveness response."""

    status: Literal["ok"] = "ok"
    timestamp: str = Field(..., description="ISO 8601 timestamp")
    version: str = Field(..., examples=["2.0.0"])
    uptime: float = Field(..., description="Seconds since start")


class ComponentHealth(BaseModel):
    """Health status of an individual component."""

    status: Literal["healthy", "unhealthy"]
    version: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class ReadinessResponse(BaseModel):
    """Readiness probe response."""

    status: Literal["ready", "degraded", "not_ready"]
    ready: bool
    message: Optional[str] = None
    components: Dict[str, ComponentHealth] = Field(default_factory=dict)
