"""
FastAPI dependency providers.

Services are built once in the lifespan (see app.init_app_state) and stored
on app.state; the providers here just hand them out. Authentication reads
the bearer access token and resolves it to a UserDoc.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config import AppSettings
from errors import ForbiddenError
from schemas.models.user import Role, UserDoc
from services.abuse_guard import AbuseGuard
from services.auth_service import AuthService
from services.user_service import UserService
from shared.ip_utils import get_client_ip

_bearer = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> AppSettings:
    """Return the AppSettings instance stored on app.state."""
    return request.app.state.settings


def get_request_ip(
    request: Request, settings: AppSettings = Depends(get_settings)
) -> str:
    return get_client_ip(request, settings.rate_limit.trusted_proxies)


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service


def get_abuse_guard(request: Request) -> AbuseGuard:
    return request.app.state.abuse_guard


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    auth_service: AuthService = Depends(get_auth_service),
) -> UserDoc:
    token = credentials.credentials if credentials else None
    return await auth_service.authenticate(token)


def require_roles(*roles: Role):
    """Dependency factory: the current user must hold one of *roles*."""
    allowed = {Role(r).value for r in roles}

    async def _check(user: UserDoc = Depends(get_current_user)) -> UserDoc:
        if user.role not in allowed:
            raise ForbiddenError("Access denied, insufficient role")
        return user

    return _check
