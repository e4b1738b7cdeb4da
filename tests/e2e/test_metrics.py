"""E2E tests for Prometheus metrics collection.

Tests that metrics are properly recorded for:
- HTTP requests
- Error counts
- Jobs
"""

import pytest
from fastapi.testclient import TestClient
from prometheus_client.parser import text_string_to_metric_families


def get_counter_sum(
    content: str, metric_name: str, label_filter: dict[str, str] | None = None
) -> float:
    """Sum all counter values for a metric, optionally filtering by labels."""
    total = 0.0

    for family in text_string_to_metric_families(content):
        for sample in family.samples:
            if sample.name != metric_name:
                continue
            if not label_filter or all(
                sample.labels.get(k) == v for k, v in label_filter.items()
            ):
                total += sample.value

    return total


@pytest.mark.e2e
class TestMetricsEndpoint:
    """E2E tests for /metrics endpoint."""

    def test_metrics_endpoint_accessible(self, e2e_client: TestClient) -> None:
        response = e2e_client.get("/metrics")

        assert response.status_code == 200
        assert response.headers.get("content-type", "").startswith("text/plain")
        assert "multiconvert_api_info" in response.text
        assert "jobs_in_flight" in response.text

    def test_http_requests_counted_by_route_template(self, e2e_client: TestClient) -> None:
        e2e_client.get("/health")

        content = e2e_client.get("/metrics").text

        assert get_counter_sum(content, "http_requests_total", {"endpoint": "/health"}) >= 1

    def test_errors_counted(self, e2e_client: TestClient) -> None:
        before = get_counter_sum(
            e2e_client.get("/metrics").text, "errors_total", {"error_code": "UNAUTHORIZED"}
        )

        e2e_client.get("/jobs/convert/some-id")

        after = get_counter_sum(
            e2e_client.get("/metrics").text, "errors_total", {"error_code": "UNAUTHORIZED"}
        )
        assert after == before + 1

    def test_completed_jobs_counted(
        self, e2e_client: TestClient, auth_headers: dict, png_bytes: bytes, wait_for_job
    ) -> None:
        response = e2e_client.post(
            "/jobs/convert",
            files={"file": ("p.png", png_bytes, "image/png")},
            data={"kind": "png-to-jpg"},
            headers=auth_headers,
        )
        wait_for_job(f"/jobs/convert/{response.json()['id']}")

        content = e2e_client.get("/metrics").text

        assert (
            get_counter_sum(
                content, "jobs_total", {"family": "convert", "kind": "png-to-jpg", "status": "completed"}
            )
            >= 1
        )
