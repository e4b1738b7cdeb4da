"""E2E test configuration and fixtures.

These fixtures run the full application, lifespan included, with:
- A temporary artifact directory
- API key authentication configured
- Quiet logging
"""

import io
import os
import tempfile
import time
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from PIL import Image


@pytest.fixture(scope="module")
def temp_artifacts_dir() -> Generator[str, None, None]:
    """Create a temporary directory for artifacts."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture(scope="module")
def e2e_env(temp_artifacts_dir: str) -> Generator[None, None, None]:
    """Set up environment variables for E2E testing."""
    original_env: dict[str, str | None] = {}
    env_vars = {
        "APP_SECURITY_API_KEYS": '["e2e-test-api-key"]',
        "APP_LOGGING_LEVEL": "WARNING",
        "APP_STORAGE_TEMP_DIR": temp_artifacts_dir,
        "APP_CONFIG_PATH": os.path.join(temp_artifacts_dir, "missing-config.yaml"),
        # Status polling must not trip the limiter
        "APP_RATE_LIMITING_QUERY_RPM": "60000",
        "APP_RATE_LIMITING_BURST_CAPACITY": "500",
    }

    for key, value in env_vars.items():
        original_env[key] = os.environ.get(key)
        os.environ[key] = value

    yield

    # Restore original values
    for key in original_env:
        original_value = original_env[key]
        if original_value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = original_value


@pytest.fixture(scope="module")
def e2e_client(e2e_env: None) -> Generator[TestClient, None, None]:
    """Create a test client running the application lifespan.

    Jobs run on the client's event loop thread, so they progress while
    the test polls.
    """
    # Import after environment is set
    from multiconvert.main import create_app

    app = create_app()

    with TestClient(app) as client:
        yield client


@pytest.fixture
def auth_headers() -> dict:
    """Authentication headers for API requests."""
    return {"X-API-Key": "e2e-test-api-key"}


@pytest.fixture
def png_bytes() -> bytes:
    """A small PNG with transparency."""
    buffer = io.BytesIO()
    Image.new("RGBA", (20, 20), (0, 200, 0, 128)).save(buffer, "PNG")
    return buffer.getvalue()


@pytest.fixture
def wait_for_job(e2e_client: TestClient, auth_headers: dict) -> Callable[[str], dict]:
    """Poll a status URL until the job leaves pending/processing."""

    def wait(status_url: str, timeout: float = 10.0) -> dict:
        deadline = time.monotonic() + timeout
        while True:
            data = e2e_client.get(status_url, headers=auth_headers).json()
            if data["status"] in ("completed", "error") or time.monotonic() > deadline:
                return data
            time.sleep(0.1)

    return wait
