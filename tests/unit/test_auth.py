"""Tests for API key authentication."""

from unittest.mock import MagicMock

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

import multiconvert.middleware.auth as auth_module
from multiconvert.core.errors import APIError, ErrorCode, global_exception_handler
from multiconvert.middleware.auth import (
    APIKeyAuth,
    configure_auth,
    extract_api_key,
    get_auth,
    require_api_key,
)


@pytest.fixture(autouse=True)
def reset_auth():
    """Restore the permissive default after each test."""
    yield
    auth_module._auth_instance = None


class TestAPIKeyAuth:
    """Tests for APIKeyAuth class."""

    @pytest.fixture
    def auth_with_keys(self) -> APIKeyAuth:
        """Create auth with configured keys."""
        return APIKeyAuth(api_keys=["key1", "key2"])

    @pytest.fixture
    def auth_no_keys(self) -> APIKeyAuth:
        """Create auth with no keys (allows all)."""
        return APIKeyAuth(api_keys=[])

    @pytest.fixture
    def mock_request(self) -> MagicMock:
        """Create a mock request."""
        request = MagicMock()
        request.url.path = "/jobs/convert"
        request.client.host = "127.0.0.1"
        return request


class TestAPIKeyValidation(TestAPIKeyAuth):
    """Tests for API key validation."""

    def test_valid_key_accepted(self, auth_with_keys: APIKeyAuth):
        assert auth_with_keys.validate_api_key("key1") is True
        assert auth_with_keys.validate_api_key("key2") is True

    def test_invalid_key_rejected(self, auth_with_keys: APIKeyAuth):
        assert auth_with_keys.validate_api_key("invalid") is False
        assert auth_with_keys.validate_api_key("") is False
        assert auth_with_keys.validate_api_key(None) is False

    def test_no_keys_allows_all(self, auth_no_keys: APIKeyAuth):
        assert auth_no_keys.allow_all is True
        assert auth_no_keys.validate_api_key(None) is True

    def test_blank_keys_ignored(self):
        assert APIKeyAuth(api_keys=["", ""]).allow_all is True


class TestPathExclusion(TestAPIKeyAuth):
    """Tests for path exclusion."""

    @pytest.mark.parametrize(
        "path", ["/", "/health", "/readiness", "/docs", "/redoc", "/openapi.json", "/metrics"]
    )
    def test_default_excluded_paths(self, auth_with_keys: APIKeyAuth, path: str):
        assert auth_with_keys.is_path_excluded(path) is True

    @pytest.mark.parametrize(
        "path",
        ["/jobs/convert", "/jobs/fetch/download", "/codes/generate", "/jobs/convert/download/a.jpg"],
    )
    def test_api_paths_not_excluded(self, auth_with_keys: APIKeyAuth, path: str):
        assert auth_with_keys.is_path_excluded(path) is False

    def test_docs_subpath_excluded(self, auth_with_keys: APIKeyAuth):
        assert auth_with_keys.is_path_excluded("/docs/oauth2-redirect") is True

    def test_trailing_slash_normalized(self, auth_with_keys: APIKeyAuth):
        assert auth_with_keys.is_path_excluded("/health/") is True


class TestAuthenticate(TestAPIKeyAuth):
    """Tests for the authenticate method."""

    def test_valid_key(self, auth_with_keys: APIKeyAuth, mock_request: MagicMock):
        auth_with_keys.authenticate(mock_request, "key1")

    def test_missing_key_is_unauthorized(
        self, auth_with_keys: APIKeyAuth, mock_request: MagicMock
    ):
        with pytest.raises(APIError) as exc_info:
            auth_with_keys.authenticate(mock_request, None)

        assert exc_info.value.error_code == ErrorCode.UNAUTHORIZED
        assert exc_info.value.status_code == 401
        assert exc_info.value.headers == {"WWW-Authenticate": "ApiKey"}

    def test_wrong_key_is_forbidden(self, auth_with_keys: APIKeyAuth, mock_request: MagicMock):
        with pytest.raises(APIError) as exc_info:
            auth_with_keys.authenticate(mock_request, "invalid")

        assert exc_info.value.error_code == ErrorCode.FORBIDDEN
        assert exc_info.value.status_code == 403

    def test_excluded_path_needs_no_key(
        self, auth_with_keys: APIKeyAuth, mock_request: MagicMock
    ):
        mock_request.url.path = "/health"
        auth_with_keys.authenticate(mock_request, None)

    def test_no_keys_allows_all(self, auth_no_keys: APIKeyAuth, mock_request: MagicMock):
        auth_no_keys.authenticate(mock_request, None)


class TestExtractApiKey:
    """Tests for reading the key from a request."""

    def test_header_preferred(self):
        request = MagicMock()
        request.headers = {"X-API-Key": "from-header"}
        request.query_params = {"apiKey": "from-query"}
        assert extract_api_key(request) == "from-header"

    def test_query_fallback(self):
        request = MagicMock()
        request.headers = {}
        request.query_params = {"apiKey": "from-query"}
        assert extract_api_key(request) == "from-query"


class TestConfigureAuth:
    """Tests for global auth configuration."""

    def test_configure_auth_creates_instance(self):
        auth = configure_auth(api_keys=["test-key"])
        assert get_auth() is auth
        assert auth.validate_api_key("test-key") is True

    def test_get_auth_default_allows_all(self):
        assert get_auth().allow_all is True


class TestRequireApiKeyDependency:
    """Tests for the route dependency through a real app."""

    @pytest.fixture
    def client(self) -> TestClient:
        app = FastAPI()
        app.add_exception_handler(APIError, global_exception_handler)

        @app.get("/jobs/ping", dependencies=[Depends(require_api_key)])
        async def ping() -> dict:
            return {"ok": True}

        configure_auth(api_keys=["secret"])
        return TestClient(app)

    def test_missing_key(self, client: TestClient):
        response = client.get("/jobs/ping")
        assert response.status_code == 401
        assert response.json() == {"error": "UNAUTHORIZED", "message": "API key is required"}

    def test_wrong_key(self, client: TestClient):
        response = client.get("/jobs/ping", headers={"X-API-Key": "nope"})
        assert response.status_code == 403
        assert response.json()["error"] == "FORBIDDEN"

    def test_header_key(self, client: TestClient):
        assert client.get("/jobs/ping", headers={"X-API-Key": "secret"}).status_code == 200

    def test_query_key(self, client: TestClient):
        assert client.get("/jobs/ping", params={"apiKey": "secret"}).status_code == 200
