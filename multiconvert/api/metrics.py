"""Prometheus metrics endpoint.

Exposes job, storage and HTTP metrics for scraping. Unauthenticated so
Prometheus needs no API key; disabled with ``monitoring.metrics_enabled``.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from multiconvert.core.config import MonitoringConfig
from multiconvert.core.errors import APIError, ErrorCode

router = APIRouter(tags=["monitoring"])


# Dependency placeholder (to be configured in main app)
async def get_monitoring_config() -> MonitoringConfig:
    """Get monitoring configuration."""
    raise NotImplementedError("Monitoring config dependency not configured")


@router.get(
    "/metrics",
    response_class=Response,
    summary="Prometheus metrics endpoint",
    description="Returns metrics in Prometheus text format for scraping.",
)
async def metrics(
    monitoring: MonitoringConfig = Depends(get_monitoring_config),  # noqa: B008
) -> Response:
    """Return all registered metrics in text exposition format."""
    if not monitoring.metrics_enabled:
        raise APIError(ErrorCode.NOT_FOUND, "Metrics are disabled")

    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
