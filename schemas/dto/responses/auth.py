"""
Response DTOs for authentication endpoints.

UserPublic          - public user view (never includes the password hash)
RegisterResponse    - POST /api/auth/register  (201)
VerifyOtpResponse   - POST /api/auth/verify-otp  (200)
LoginResponse       - POST /api/auth/login  (200)
RefreshResponse     - POST /api/auth/refresh-token  (200)
ResetTokenResponse  - POST /api/auth/verify-reset-token  (200)
MeResponse          - GET /api/auth/me  (200)
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from schemas.models.user import UserDoc


class UserPublic(BaseModel):
    """Public user view returned by login, verify-otp and the users API."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    email: str
    role: str
    bio: Optional[str] = None
    is_email_verified: bool = Field(alias="isEmailVerified")

    @classmethod
    def from_doc(cls, user: UserDoc) -> "UserPublic":
        return cls(
            id=str(user.id),
            name=user.name,
            email=user.email,
            role=user.role,
            bio=user.bio,
            is_email_verified=user.is_email_verified,
        )


class RegisterResponse(BaseModel):
    """Response body for POST /api/auth/register (201)."""

    msg: str
    email: str


class VerifyOtpResponse(BaseModel):
    """Response body for POST /api/auth/verify-otp (200)."""

    model_config = ConfigDict(populate_by_name=True)

    msg: str
    access_token: str = Field(alias="accessToken")
    user: UserPublic


class LoginResponse(BaseModel):
    """Response body for POST /api/auth/login (200)."""

    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(alias="accessToken")
    user: UserPublic


class RefreshResponse(BaseModel):
    """Response body for POST /api/auth/refresh-token (200)."""

    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(alias="accessToken")


class ResetTokenResponse(BaseModel):
    valid: bool


class MeResponse(BaseModel):
    user: UserPublic
