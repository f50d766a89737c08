"""API-specific test fixtures.

Routes are exercised through FastAPI's TestClient with service providers
overridden, so no database, Redis or Stripe is touched. The client is not
entered as a context manager, so the app lifespan does not run.
"""

import time

import jwt as pyjwt
import pytest
from fastapi.testclient import TestClient

from coursehub.core.config import get_settings


def make_token(user_id: str = "user-1", role: str = "USER", **overrides) -> str:
    settings = get_settings()
    claims = {"sub": user_id, "role": role, "exp": int(time.time()) + 600, **overrides}
    return pyjwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


@pytest.fixture
def app():
    from coursehub.main import create_app

    return create_app()


@pytest.fixture
def api_client(app):
    client = TestClient(app, raise_server_exceptions=False)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def user_headers():
    return {"Authorization": f"Bearer {make_token('user-1')}"}


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {make_token('admin-1', role='ADMIN')}"}


@pytest.fixture(name="make_token")
def make_token_fixture():
    return make_token
