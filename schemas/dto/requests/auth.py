"""
Request DTOs for authentication endpoints.

RegisterRequest        - POST /api/auth/register
ResendOtpRequest       - POST /api/auth/resend-otp
VerifyOtpRequest       - POST /api/auth/verify-otp
LoginRequest           - POST /api/auth/login
ForgotPasswordRequest  - POST /api/auth/forgot-password
ResetTokenRequest      - POST /api/auth/verify-reset-token
ResetPasswordRequest   - POST /api/auth/reset-password
UpdatePasswordRequest  - POST /api/auth/update-password

Field names follow the frontend's camelCase JSON; snake_case is accepted too.
Format checks (email syntax, password policy) happen in the service layer so
every violation is reported in one itemized list.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class RegisterRequest(BaseModel):
    """Request body for POST /api/auth/register."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    email: str
    password: str


class ResendOtpRequest(BaseModel):
    """Request body for POST /api/auth/resend-otp."""

    model_config = ConfigDict(populate_by_name=True)

    email: str


class VerifyOtpRequest(BaseModel):
    """Request body for POST /api/auth/verify-otp.

    ``otp`` is the 6-digit code sent to the user's email address.
    """

    model_config = ConfigDict(populate_by_name=True)

    email: str
    otp: str


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login."""

    model_config = ConfigDict(populate_by_name=True)

    email: str
    password: str
    remember_me: bool = Field(default=False, alias="rememberMe")


class ForgotPasswordRequest(BaseModel):
    """Request body for POST /api/auth/forgot-password."""

    model_config = ConfigDict(populate_by_name=True)

    email: str


class ResetTokenRequest(BaseModel):
    """Request body for POST /api/auth/verify-reset-token."""

    model_config = ConfigDict(populate_by_name=True)

    token: str


class ResetPasswordRequest(BaseModel):
    """Request body for POST /api/auth/reset-password."""

    model_config = ConfigDict(populate_by_name=True)

    token: str
    new_password: str = Field(alias="newPassword")


class UpdatePasswordRequest(BaseModel):
    """Request body for POST /api/auth/update-password."""

    model_config = ConfigDict(populate_by_name=True)

    current_password: str = Field(alias="currentPassword")
    new_password: str = Field(alias="newPassword")
