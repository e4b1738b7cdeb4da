"""Tests for error handling and metrics.

- Error codes and status mappings
- Global exception handler
- Prometheus metrics
"""

import json
from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError

from multiconvert.core.errors import (
    ERROR_CODE_TO_STATUS,
    APIError,
    ErrorCode,
    error_body,
    global_exception_handler,
)
from multiconvert.core.logging import clear_request_id, set_request_id
from multiconvert.core.metrics import (
    MetricsCollector,
    artifact_bytes,
    artifact_files,
    errors_total,
    http_request_duration_seconds,
    http_requests_total,
    initialize_metrics,
    jobs_in_flight,
    jobs_total,
    reaper_deleted_total,
)


class TestErrorCodes:
    """Tests for error code definitions."""

    def test_all_error_codes_have_status_mapping(self) -> None:
        codes = [v for k, v in vars(ErrorCode).items() if k.isupper()]
        for code in codes:
            assert code in ERROR_CODE_TO_STATUS, f"{code} has no status"

    @pytest.mark.parametrize(
        "code,status",
        [
            (ErrorCode.VALIDATION_ERROR, 400),
            (ErrorCode.UNSUPPORTED_KIND, 400),
            (ErrorCode.INVALID_URL, 400),
            (ErrorCode.UNAUTHORIZED, 401),
            (ErrorCode.FORBIDDEN, 403),
            (ErrorCode.JOB_NOT_FOUND, 404),
            (ErrorCode.FILE_NOT_FOUND, 404),
            (ErrorCode.FILE_TOO_LARGE, 413),
            (ErrorCode.UNSUPPORTED_FILE_TYPE, 415),
            (ErrorCode.RATE_LIMIT_EXCEEDED, 429),
            (ErrorCode.INTERNAL_ERROR, 500),
            (ErrorCode.SERVICE_UNAVAILABLE, 503),
        ],
    )
    def test_status_mapping(self, code: str, status: int) -> None:
        assert APIError(code, "x").status_code == status

    def test_error_body_shape(self) -> None:
        assert error_body("NOT_FOUND", "gone") == {"error": "NOT_FOUND", "message": "gone"}


class TestGlobalExceptionHandler:
    """Tests for global exception handler."""

    @pytest.fixture
    def mock_request(self) -> MagicMock:
        """Create a mock FastAPI request."""
        request = MagicMock(spec=Request)
        request.url.path = "/jobs/convert"
        request.scope = {}
        return request

    async def test_handles_api_error(self, mock_request: MagicMock) -> None:
        error = APIError(ErrorCode.INVALID_URL, "Bad URL format")

        response = await global_exception_handler(mock_request, error)

        assert response.status_code == 400
        assert json.loads(response.body) == {"error": "INVALID_URL", "message": "Bad URL format"}

    async def test_api_error_headers_forwarded(self, mock_request: MagicMock) -> None:
        error = APIError(ErrorCode.UNAUTHORIZED, "API key is required", {"WWW-Authenticate": "ApiKey"})

        response = await global_exception_handler(mock_request, error)

        assert response.headers["WWW-Authenticate"] == "ApiKey"

    async def test_handles_http_exception(self, mock_request: MagicMock) -> None:
        response = await global_exception_handler(
            mock_request, HTTPException(status_code=404, detail="Not Found")
        )

        assert response.status_code == 404
        assert json.loads(response.body) == {"error": "NOT_FOUND", "message": "Not Found"}

    async def test_handles_method_not_allowed(self, mock_request: MagicMock) -> None:
        response = await global_exception_handler(
            mock_request, HTTPException(status_code=405, detail="Method Not Allowed")
        )

        assert json.loads(response.body)["error"] == "METHOD_NOT_ALLOWED"

    async def test_handles_validation_error(self, mock_request: MagicMock) -> None:
        error = RequestValidationError(
            [{"loc": ("body", "size"), "msg": "Input should be a valid integer", "type": "int"}]
        )

        response = await global_exception_handler(mock_request, error)

        assert response.status_code == 400
        body = json.loads(response.body)
        assert body["error"] == "VALIDATION_ERROR"
        assert body["message"] == "size: Input should be a valid integer"

    async def test_handles_unexpected_error(self, mock_request: MagicMock) -> None:
        response = await global_exception_handler(mock_request, RuntimeError("boom"))

        assert response.status_code == 500
        body = json.loads(response.body)
        assert body["error"] == "INTERNAL_ERROR"
        assert "boom" not in body["message"]

    async def test_includes_request_id_header(self, mock_request: MagicMock) -> None:
        set_request_id("req_test123456")
        try:
            response = await global_exception_handler(
                mock_request, APIError(ErrorCode.JOB_NOT_FOUND, "Job not found")
            )
        finally:
            clear_request_id()

        assert response.headers["X-Request-ID"] == "req_test123456"


class TestMetricsCollection:
    """Tests for Prometheus metrics collection."""

    def test_record_request_increments_counter(self) -> None:
        labels = {"method": "GET", "endpoint": "/jobs/convert/{job_id}", "status": "200"}
        initial = http_requests_total.labels(**labels)._value.get()

        MetricsCollector.record_request(
            method="GET", endpoint="/jobs/convert/{job_id}", status=200, duration=0.1
        )

        assert http_requests_total.labels(**labels)._value.get() == initial + 1

    def test_record_request_observes_duration(self) -> None:
        MetricsCollector.record_request(
            method="POST", endpoint="/jobs/convert", status=200, duration=0.5
        )

        histogram = http_request_duration_seconds.labels(method="POST", endpoint="/jobs/convert")
        assert histogram._sum.get() > 0

    def test_record_job(self) -> None:
        labels = {"family": "convert", "kind": "png-to-jpg", "status": "completed"}
        initial = jobs_total.labels(**labels)._value.get()

        MetricsCollector.record_job(duration=1.5, **labels)

        assert jobs_total.labels(**labels)._value.get() == initial + 1

    def test_update_in_flight(self) -> None:
        MetricsCollector.update_in_flight(4)
        assert jobs_in_flight._value.get() == 4
        MetricsCollector.update_in_flight(0)

    def test_update_storage_metrics(self) -> None:
        MetricsCollector.update_storage_metrics(file_count=3, total_bytes=4096)

        assert artifact_files._value.get() == 3
        assert artifact_bytes._value.get() == 4096

    def test_record_reaped(self) -> None:
        initial = reaper_deleted_total._value.get()
        MetricsCollector.record_reaped(5)
        assert reaper_deleted_total._value.get() == initial + 5

    def test_record_error_by_code(self) -> None:
        labels = {"error_code": "INVALID_URL", "endpoint": "/jobs/fetch/info"}
        initial = errors_total.labels(**labels)._value.get()

        MetricsCollector.record_error(**labels)

        assert errors_total.labels(**labels)._value.get() == initial + 1

    def test_initialize_metrics(self) -> None:
        initialize_metrics("2.0.0-test")
