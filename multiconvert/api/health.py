"""Health check endpoints.

- GET /health: liveness with uptime, never touches dependencies
- GET /readiness: storage writability and external tool availability
"""

import time
from datetime import datetime, timezone
from typing import Dict, Literal

import structlog
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from multiconvert import __version__
from multiconvert.api.schemas import ComponentHealth, HealthResponse, ReadinessResponse
from multiconvert.core.checks import CheckResult, check_tools
from multiconvert.core.config import ToolsConfig
from multiconvert.services.artifact_store import ArtifactStore

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["health"])

# Track application start time for uptime calculation
_start_time: float = time.time()


def reset_start_time() -> None:
    """Reset the start time (for testing)."""
    global _start_time
    _start_time = time.time()


# Dependency placeholders (to be configured in main app)
async def get_artifact_store() -> ArtifactStore:
    """Get artifact store instance."""
    raise NotImplementedError("Artifact store dependency not configured")


async def get_tools_config() -> ToolsConfig:
    """Get external tools configuration."""
    raise NotImplementedError("Tools config dependency not configured")


def _tool_health(result: CheckResult) -> ComponentHealth:
    if result.available:
        return ComponentHealth(status="healthy", version=result.version)
    return ComponentHealth(
        status="unhealthy",
        version=result.version,
        details={"error": result.error or f"{result.name} not available"},
    )


def _check_storage(store: ArtifactStore) -> ComponentHealth:
    if not store.is_writable():
        return ComponentHealth(
            status="unhealthy",
            details={"error": "Temp directory is not writable"},
        )
    return ComponentHealth(status="healthy", details=store.usage().to_dict())


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Liveness probe. Returns 200 while the process is serving requests."""
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=__version__,
        uptime=round(time.time() - _start_time, 2),
    )


@router.get(
    "/readiness",
    response_model=ReadinessResponse,
    responses={
        200: {"description": "Ready, possibly with some conversion kinds unavailable"},
        503: {"description": "Temp directory is not writable"},
    },
)
async def readiness_check(
    store: ArtifactStore = Depends(get_artifact_store),  # noqa: B008
    tools: ToolsConfig = Depends(get_tools_config),  # noqa: B008
) -> JSONResponse:
    """
    Readiness probe endpoint.

    A missing external tool only disables the kinds that need it, so the
    service reports ``degraded`` with HTTP 200. An unwritable temp
    directory makes every job fail and returns HTTP 503.
    """
    components: Dict[str, ComponentHealth] = {"storage": _check_storage(store)}
    for name, result in (await check_tools(tools)).items():
        components[name] = _tool_health(result)

    storage_ok = components["storage"].status == "healthy"
    missing = sorted(
        name for name, c in components.items() if name != "storage" and c.status != "healthy"
    )

    overall: Literal["ready", "degraded", "not_ready"]
    if not storage_ok:
        overall = "not_ready"
        message = "Storage not ready"
    elif missing:
        overall = "degraded"
        message = "Unavailable tools: " + ", ".join(missing)
    else:
        overall = "ready"
        message = None

    response = ReadinessResponse(
        status=overall,
        ready=storage_ok,
        message=message,
        components=components,
    )

    logger.info(
        "readiness_check_completed",
        status=overall,
        components={k: v.status for k, v in components.items()},
    )

    status_code = status.HTTP_200_OK if storage_ok else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(content=response.model_dump(exclude_none=True), status_code=status_code)
