import pytest
from fastapi.testclient import TestClient

from ridehail.api.app import create_app

API_KEY = "test-api-key"


@pytest.fixture
def app(lifecycle, geo_index, session_factory, settings):
    return create_app(
        lifecycle=lifecycle,
        geo_index=geo_index,
        session_factory=session_factory,
        settings=settings,
    )


@pytest.fixture
def test_client(app):
    """Client without lifespan, so the unmatched ride sweeper stays off."""
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def auth_headers():
    def _headers(account_id: str | None = None) -> dict[str, str]:
        headers = {"X-API-Key": API_KEY}
        if account_id is not None:
            headers["X-Account-Id"] = account_id
        return headers

    return _headers
