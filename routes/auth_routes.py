"""
Authentication endpoints under /api/auth.

POST /register            start an OTP-gated registration (201)
POST /resend-otp          re-send the registration code
POST /verify-otp          confirm the code, create the account, open a session
POST /login               open a session
POST /refresh-token       rotate the session held in the refreshToken cookie
POST /logout              end the current session
POST /forgot-password     mail a password-reset link
POST /verify-reset-token  check a reset link before showing the form
POST /reset-password      set a new password from a reset link
POST /update-password     change password while signed in
GET  /me                  current account

Throttling runs before the handler touches credentials; successful
authentication clears the caller's login ledger entry explicitly.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Cookie, Depends, Response

from config import AppSettings
from dependencies import (
    get_abuse_guard,
    get_auth_service,
    get_current_user,
    get_request_ip,
    get_settings,
)
from schemas.dto.requests.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResendOtpRequest,
    ResetPasswordRequest,
    ResetTokenRequest,
    UpdatePasswordRequest,
    VerifyOtpRequest,
)
from schemas.dto.responses.auth import (
    LoginResponse,
    MeResponse,
    RefreshResponse,
    RegisterResponse,
    ResetTokenResponse,
    UserPublic,
    VerifyOtpResponse,
)
from schemas.dto.responses.common import MessageResponse
from schemas.models.user import UserDoc
from services.abuse_guard import AbuseGuard
from services.auth_service import AuthService, Session

router = APIRouter(prefix="/api/auth", tags=["auth"])

REFRESH_COOKIE = "refreshToken"


def set_refresh_cookie(response: Response, session: Session, settings: AppSettings) -> None:
    response.set_cookie(
        key=REFRESH_COOKIE,
        value=session.refresh_token,
        max_age=settings.jwt.refresh_token_ttl_seconds if session.remember_me else None,
        httponly=True,
        secure=settings.jwt.cookie_secure,
        samesite="strict",
        path="/",
    )


def clear_refresh_cookie(response: Response, settings: AppSettings) -> None:
    response.delete_cookie(
        key=REFRESH_COOKIE,
        httponly=True,
        secure=settings.jwt.cookie_secure,
        samesite="strict",
        path="/",
    )


@router.post("/register", status_code=201, response_model=RegisterResponse)
async def register(
    body: RegisterRequest,
    ip: str = Depends(get_request_ip),
    auth_service: AuthService = Depends(get_auth_service),
    guard: AbuseGuard = Depends(get_abuse_guard),
) -> RegisterResponse:
    """
    Start a registration.

    Stores a pending registration and mails a 6-digit code valid for
    15 minutes. Limited to 3 requests per hour per (IP, email).
    """
    await guard.guard_registration(ip, body.email)
    pending = await auth_service.register(body.name, body.email, body.password)
    return RegisterResponse(
        msg="Registration initiated! Please check your email for OTP verification.",
        email=pending.email,
    )


@router.post("/resend-otp", response_model=RegisterResponse)
async def resend_otp(
    body: ResendOtpRequest,
    ip: str = Depends(get_request_ip),
    auth_service: AuthService = Depends(get_auth_service),
    guard: AbuseGuard = Depends(get_abuse_guard),
) -> RegisterResponse:
    await guard.guard_email_action(ip, body.email)
    pending = await auth_service.resend_otp(body.email)
    return RegisterResponse(msg="A new OTP has been sent to your email.", email=pending.email)


@router.post("/verify-otp", response_model=VerifyOtpResponse)
async def verify_otp(
    body: VerifyOtpRequest,
    response: Response,
    ip: str = Depends(get_request_ip),
    auth_service: AuthService = Depends(get_auth_service),
    guard: AbuseGuard = Depends(get_abuse_guard),
    settings: AppSettings = Depends(get_settings),
) -> VerifyOtpResponse:
    """
    Check the emailed code and create the account.

    Limited to 5 checks per 15 minutes per email, from any address.
    """
    await guard.guard_otp(ip, body.email)
    session = await auth_service.verify_otp(body.email, body.otp)
    await guard.record_success(ip, body.email, session.user)
    set_refresh_cookie(response, session, settings)
    return VerifyOtpResponse(
        msg="Email verified successfully. You are now logged in.",
        access_token=session.access_token,
        user=UserPublic.from_doc(session.user),
    )


@router.post("/login", response_model=LoginResponse)
async def login(
    body: LoginRequest,
    response: Response,
    ip: str = Depends(get_request_ip),
    auth_service: AuthService = Depends(get_auth_service),
    guard: AbuseGuard = Depends(get_abuse_guard),
    settings: AppSettings = Depends(get_settings),
) -> LoginResponse:
    """
    Sign in with email and password.

    - 400 for an unknown email or a wrong password (same message)
    - 403 with ``isEmailVerified: false`` for an unverified account
    - 429 after 5 attempts in 15 minutes for the same (IP, email); the body
      carries ``remainingTime`` (ms) and ``attemptsRemaining``

    ``rememberMe`` makes the refresh cookie outlive the browser session.
    """
    await guard.guard_login(ip, body.email)
    session = await auth_service.login(body.email, body.password, body.remember_me)
    await guard.record_success(ip, body.email, session.user)
    set_refresh_cookie(response, session, settings)
    return LoginResponse(
        access_token=session.access_token,
        user=UserPublic.from_doc(session.user),
    )


@router.post("/refresh-token", response_model=RefreshResponse)
async def refresh_token(
    response: Response,
    refresh_cookie: Optional[str] = Cookie(default=None, alias=REFRESH_COOKIE),
    auth_service: AuthService = Depends(get_auth_service),
    settings: AppSettings = Depends(get_settings),
) -> RefreshResponse:
    session = await auth_service.refresh(refresh_cookie)
    set_refresh_cookie(response, session, settings)
    return RefreshResponse(access_token=session.access_token)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    response: Response,
    user: UserDoc = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
    settings: AppSettings = Depends(get_settings),
) -> MessageResponse:
    await auth_service.logout(user)
    clear_refresh_cookie(response, settings)
    return MessageResponse(msg="Logged out successfully!")


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    body: ForgotPasswordRequest,
    ip: str = Depends(get_request_ip),
    auth_service: AuthService = Depends(get_auth_service),
    guard: AbuseGuard = Depends(get_abuse_guard),
) -> MessageResponse:
    """
    Mail a password-reset link valid for one hour.

    Each request counts toward the account's reset throttle even when the
    mail cannot be sent; the third request locks further ones for 24 hours
    (429 with ``lockUntil``).
    """
    await guard.guard_email_action(ip, body.email)
    await auth_service.forgot_password(body.email)
    return MessageResponse(msg="Password reset email sent")


@router.post("/verify-reset-token", response_model=ResetTokenResponse)
async def verify_reset_token(
    body: ResetTokenRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> ResetTokenResponse:
    return ResetTokenResponse(valid=await auth_service.verify_reset_token(body.token))


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    body: ResetPasswordRequest,
    response: Response,
    ip: str = Depends(get_request_ip),
    auth_service: AuthService = Depends(get_auth_service),
    guard: AbuseGuard = Depends(get_abuse_guard),
    settings: AppSettings = Depends(get_settings),
) -> MessageResponse:
    user = await auth_service.reset_password(body.token, body.new_password)
    await guard.record_success(ip, user.email, user)
    clear_refresh_cookie(response, settings)
    return MessageResponse(msg="Password reset successfully")


@router.post("/update-password", response_model=MessageResponse)
async def update_password(
    body: UpdatePasswordRequest,
    user: UserDoc = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    await auth_service.update_password(user, body.current_password, body.new_password)
    return MessageResponse(msg="Password updated successfully")


@router.get("/me", response_model=MeResponse)
async def me(user: UserDoc = Depends(get_current_user)) -> MeResponse:
    return MeResponse(user=UserPublic.from_doc(user))
