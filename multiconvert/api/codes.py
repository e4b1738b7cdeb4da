"""QR code endpoints.

Rendering is synchronous from the client's point of view: no job is
created and the result is returned in the response.
"""

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import Response

from multiconvert.api.schemas import ErrorResponse, QRCodeRequest, QRCodeResponse
from multiconvert.core.errors import APIError, ErrorCode
from multiconvert.middleware.auth import require_api_key
from multiconvert.services.qrcode_service import (
    InvalidQRContentError,
    QRCodeError,
    QRCodeOptions,
    QRCodeService,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/codes", tags=["codes"])

DOWNLOAD_FILENAME = "qrcode.png"


# Dependency placeholder (to be configured in main app)
async def get_qrcode_service() -> QRCodeService:
    """Get QR code service instance."""
    raise NotImplementedError("QR code service dependency not configured")


async def _render(request: QRCodeRequest, service: QRCodeService, as_data_url: bool):
    options = QRCodeOptions.normalize(request.size, request.dark_color, request.light_color)
    try:
        if as_data_url:
            return await service.generate_data_url(request.resolved_content, options)
        return await service.generate_png(request.resolved_content, options)
    except InvalidQRContentError as e:
        raise APIError(ErrorCode.VALIDATION_ERROR, str(e))
    except QRCodeError as e:
        raise APIError(ErrorCode.GENERATION_FAILED, str(e))


@router.post(
    "/generate",
    response_model=QRCodeResponse,
    response_model_by_alias=True,
    dependencies=[Depends(require_api_key)],
    responses={400: {"description": "Missing or oversized content", "model": ErrorResponse}},
)
async def generate_qrcode(
    request: QRCodeRequest,
    service: QRCodeService = Depends(get_qrcode_service),  # noqa: B008
) -> QRCodeResponse:
    """Render a QR code and return it as a PNG data URL."""
    data_url = await _render(request, service, as_data_url=True)
    return QRCodeResponse(data_url=data_url)


@router.post(
    "/download",
    response_class=Response,
    dependencies=[Depends(require_api_key)],
    responses={
        200: {"content": {"image/png": {}}, "description": "QR code PNG"},
        400: {"description": "Missing or oversized content", "model": ErrorResponse},
    },
)
async def download_qrcode(
    request: QRCodeRequest,
    service: QRCodeService = Depends(get_qrcode_service),  # noqa: B008
) -> Response:
    """Render a QR code and return it as a PNG attachment."""
    png = await _render(request, service, as_data_url=False)
    return Response(
        content=png,
        media_type="image/png",
        headers={"Content-Disposition": f'attachment; filename="{DOWNLOAD_FILENAME}"'},
    )
