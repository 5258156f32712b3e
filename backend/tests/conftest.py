"""Pytest configuration and fixtures for the API."""

import os
import secrets
import tempfile

import pytest

# Generate a unique test secret for this test run to prevent token forgery
_TEST_JWT_SECRET = f"test-only-{secrets.token_urlsafe(32)}"

os.environ.setdefault("JWT_SECRET_KEY", _TEST_JWT_SECRET)
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ENABLE_AI_MATCHING"] = "false"
os.environ.pop("DATABASE_PATH", None)
os.environ.setdefault("GIGMARKET_DATA_DIR", tempfile.mkdtemp(prefix="gigmarket-api-"))

from app.main import app  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402


@pytest.fixture
def client():
    """Test client; the lifespan builds a fresh in-memory marketplace each time."""
    with TestClient(app) as c:
        yield c


def _headers(user_id: str, role: str) -> dict:
    from app.auth import create_access_token
    from app.config import get_settings

    token = create_access_token(user_id, role, get_settings())
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client_headers():
    return _headers("usr_client_TEST", "client")


@pytest.fixture
def other_client_headers():
    return _headers("usr_client_OTHER", "client")


@pytest.fixture
def freelancer_headers():
    return _headers("usr_freelancer_TEST", "freelancer")


@pytest.fixture
def other_freelancer_headers():
    return _headers("usr_freelancer_OTHER", "freelancer")


@pytest.fixture
def admin_headers():
    return _headers("usr_admin_TEST", "admin")
