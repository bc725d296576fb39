"""
Fixtures for route-level tests.

The app comes from create_app(); the lifespan does not run under
ASGITransport, so state is wired with init_app_state() over the in-memory
database, the recording email provider and the fake clock.
"""

from __future__ import annotations

import httpx
import pytest

from app import create_app, init_app_state
from repositories.indexes import ensure_indexes


@pytest.fixture
async def app(settings, db, email_provider, clock):
    application = create_app(settings)
    init_app_state(application, settings, db, email_provider=email_provider, clock=clock)
    await ensure_indexes(db)
    return application


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


@pytest.fixture
def login(client):
    """Log in and return (access_token, refresh_token)."""

    async def _login(email: str, password: str, remember_me: bool = False):
        resp = await client.post(
            "/api/auth/login",
            json={"email": email, "password": password, "rememberMe": remember_me},
        )
        assert resp.status_code == 200, resp.text
        return resp.json()["accessToken"], resp.cookies["refreshToken"]

    return _login

