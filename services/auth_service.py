"""
AuthService - credential and session lifecycle.

Registration is OTP-gated: register() parks the account in `pending_users`
and mails a 6-digit code; verify_otp() promotes it to `users` and opens the
first session. A session is one access JWT plus one refresh JWT whose SHA-256
is the only refresh credential stored on the account, so issuing a new pair
always invalidates the previous refresh token.

Every time-dependent decision reads the injected clock.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional
from urllib.parse import urlencode

import jwt
from pymongo.errors import DuplicateKeyError

from config import AppSettings
from errors import (
    AuthenticationError,
    DuplicateAccount,
    EmailNotVerified,
    InvalidCredentials,
    InvalidOrExpiredToken,
    InvalidOtp,
    InvalidSession,
    NoPendingRegistration,
    NoSession,
    NotFoundError,
    OtpExpired,
    TooManyAttempts,
    ValidationError,
    WeakPassword,
)
from infrastructure.email.notifier import Notifier
from repositories.pending_user_repository import PendingUserRepository
from repositories.user_repository import UserRepository
from schemas.models.pending_user import PendingUserDoc
from schemas.models.user import Role, UserDoc
from services.token_service import TokenService
from shared.crypto import codes_match, hash_password, hash_token, verify_password
from shared.datetime_utils import Clock, as_utc, utcnow
from shared.generators import generate_otp_code
from shared.logging import get_logger
from shared.validators import is_valid_email, validate_name, validate_password

log = get_logger(__name__)

OTP_TTL = timedelta(minutes=15)


@dataclass
class Session:
    user: UserDoc
    access_token: str
    refresh_token: str
    # persistent refresh cookie instead of a browser-session one
    remember_me: bool = False


class AuthService:
    def __init__(
        self,
        user_repo: UserRepository,
        pending_repo: PendingUserRepository,
        tokens: TokenService,
        notifier: Notifier,
        settings: AppSettings,
        clock: Clock = utcnow,
    ) -> None:
        self._users = user_repo
        self._pending = pending_repo
        self._tokens = tokens
        self._notifier = notifier
        self._settings = settings
        self._clock = clock

    # ── Registration ─────────────────────────────────────────────────────────

    async def register(self, name: str, email: str, password: str) -> PendingUserDoc:
        """Validate input, park the registration and mail the OTP.

        Raises:
            ValidationError: malformed email or name.
            WeakPassword: password policy violations (all of them).
            DuplicateAccount: an account already uses this email.
            EmailDispatchFailed: sync dispatch mode and the mail was not sent;
                the pending registration is kept so resend-otp can retry.
        """
        if not is_valid_email(email):
            raise ValidationError("Invalid email format", field="email")
        name_errors = validate_name(name)
        if name_errors:
            raise ValidationError(name_errors[0], errors=name_errors, field="name")
        password_errors = validate_password(password)
        if password_errors:
            raise WeakPassword(password_errors)

        if await self._users.find_by_email(email) is not None:
            raise DuplicateAccount()

        now = self._clock()
        pending = await self._pending.replace(
            PendingUserDoc(
                name=name.strip(),
                email=email,
                password_hash=hash_password(password),
                role=Role.STUDENT,
                otp=generate_otp_code(),
                otp_expires=now + OTP_TTL,
                created_at=now,
            )
        )
        log.info("registration_pending", pending_id=str(pending.id))

        await self._notifier.send_verification_otp(pending.email, pending.name, pending.otp)
        return pending

    async def resend_otp(self, email: str) -> PendingUserDoc:
        pending = await self._pending.find_by_email(email)
        if pending is None:
            raise NoPendingRegistration()

        pending.otp = generate_otp_code()
        pending.otp_expires = self._clock() + OTP_TTL
        await self._pending.update_otp(pending.id, pending.otp, pending.otp_expires)
        log.info("registration_otp_resent", pending_id=str(pending.id))

        await self._notifier.send_verification_otp(pending.email, pending.name, pending.otp)
        return pending

    async def verify_otp(self, email: str, otp: str) -> Session:
        """Promote a pending registration to an account and open a session.

        An expired code deletes the pending registration; a wrong code leaves
        it in place so the user can retry.
        """
        pending = await self._pending.find_by_email(email)
        if pending is None:
            raise NoPendingRegistration()

        if self._clock() >= as_utc(pending.otp_expires):
            await self._pending.delete(pending.id)
            log.info("registration_otp_expired", pending_id=str(pending.id))
            raise OtpExpired()

        if not codes_match(otp, pending.otp):
            log.warning("registration_otp_invalid", pending_id=str(pending.id))
            raise InvalidOtp()

        user = UserDoc(
            name=pending.name,
            email=pending.email,
            password_hash=pending.password_hash,
            role=pending.role,
            is_email_verified=True,
        )
        try:
            user = await self._users.insert(user)
        except DuplicateKeyError:
            await self._pending.delete(pending.id)
            raise DuplicateAccount()
        await self._pending.delete(pending.id)

        log.info("registration_completed", user_id=str(user.id))
        return await self._open_session(user)

    # ── Sessions ─────────────────────────────────────────────────────────────

    async def _open_session(self, user: UserDoc, remember_me: bool = False) -> Session:
        access_token = self._tokens.issue_access_token(user)
        refresh_token = self._tokens.issue_refresh_token(user, remember_me)
        user.refresh_token_hash = hash_token(refresh_token)
        await self._users.set_refresh_token_hash(user.id, user.refresh_token_hash)
        return Session(
            user=user,
            access_token=access_token,
            refresh_token=refresh_token,
            remember_me=remember_me,
        )

    async def login(self, email: str, password: str, remember_me: bool = False) -> Session:
        user = await self._users.find_by_email(email)
        if user is None:
            log.warning("login_failed", reason="invalid_credentials", email_exists=False)
            raise InvalidCredentials()
        if not verify_password(password, user.password_hash):
            log.warning("login_failed", reason="invalid_password", user_id=str(user.id))
            raise InvalidCredentials()
        if not user.is_email_verified:
            log.warning("login_failed", reason="email_not_verified", user_id=str(user.id))
            raise EmailNotVerified()

        session = await self._open_session(user, remember_me)
        log.info("login_success", user_id=str(user.id), role=user.role)
        return session

    async def refresh(self, refresh_token: Optional[str]) -> Session:
        """Rotate the session presented by *refresh_token*.

        The stored hash is swapped with a conditional update keyed on the
        presented hash, so when two requests race with the same token only
        one of them gets a refresh token that stays valid.
        """
        if not refresh_token:
            raise NoSession()

        try:
            claims = self._tokens.verify_refresh_token(refresh_token)
        except jwt.InvalidTokenError as e:
            log.warning("token_refresh_failed", reason="invalid_token", error=str(e))
            raise InvalidSession()

        presented_hash = hash_token(refresh_token)
        user = await self._users.find_by_refresh_token_hash(presented_hash)
        if user is None or str(user.id) != claims["sub"]:
            log.warning("token_refresh_failed", reason="not_current_session")
            raise InvalidSession()

        remember_me = bool(claims.get("rememberMe", False))
        access_token = self._tokens.issue_access_token(user)
        new_refresh_token = self._tokens.issue_refresh_token(user, remember_me)
        new_hash = hash_token(new_refresh_token)
        if not await self._users.swap_refresh_token_hash(user.id, presented_hash, new_hash):
            log.warning("token_refresh_failed", reason="lost_rotation_race", user_id=str(user.id))
            raise InvalidSession()

        user.refresh_token_hash = new_hash
        log.info("token_refreshed", user_id=str(user.id))
        return Session(
            user=user,
            access_token=access_token,
            refresh_token=new_refresh_token,
            remember_me=remember_me,
        )

    async def logout(self, user: UserDoc) -> None:
        await self._users.set_refresh_token_hash(user.id, None)
        log.info("logout", user_id=str(user.id))

    async def authenticate(self, access_token: Optional[str]) -> UserDoc:
        """Resolve a bearer access token to its account.

        Raises:
            AuthenticationError: missing, invalid or expired token, or the
                account no longer exists.
            EmailNotVerified: the token was issued to an unverified account.
        """
        if not access_token:
            raise AuthenticationError("Access denied")
        try:
            claims = self._tokens.verify_access_token(access_token)
        except jwt.InvalidTokenError:
            raise AuthenticationError("Invalid token")
        if not claims.get("isEmailVerified"):
            raise EmailNotVerified()

        user = await self._users.find_by_id(claims["sub"])
        if user is None:
            raise AuthenticationError("Invalid token")
        return user

    # ── Password reset ───────────────────────────────────────────────────────

    async def forgot_password(self, email: str) -> None:
        """Count the request, lock after too many, then mail the reset link.

        The attempt is counted before the mail goes out, so a failed dispatch
        still uses up one of the allowed requests.
        """
        user = await self._users.find_by_email(email)
        if user is None:
            raise NotFoundError("User not found")

        now = self._clock()
        lock_until = as_utc(user.password_reset_lock_until)
        if lock_until is not None and lock_until > now:
            log.warning("password_reset_locked", user_id=str(user.id))
            raise TooManyAttempts(lock_until)

        limits = self._settings.rate_limit
        attempts = await self._users.increment_reset_attempts(user.id)
        if attempts >= limits.password_reset_max_attempts:
            lock_until = now + timedelta(seconds=limits.password_reset_lock_seconds)
            await self._users.set_reset_lock(user.id, lock_until)
            log.info("password_reset_lock_set", user_id=str(user.id), attempts=attempts)

        token = self._tokens.issue_reset_token(user)
        reset_url = (
            f"{self._settings.frontend_url.rstrip('/')}/reset-password?"
            f"{urlencode({'token': token})}"
        )
        log.info("password_reset_requested", user_id=str(user.id), attempts=attempts)
        await self._notifier.send_password_reset_link(user.email, user.name, reset_url)

    async def _user_for_reset_token(self, token: str) -> UserDoc:
        try:
            claims = self._tokens.verify_reset_token(token)
        except jwt.InvalidTokenError:
            raise InvalidOrExpiredToken()
        user = await self._users.find_by_id(claims["sub"])
        if user is None:
            raise InvalidOrExpiredToken()
        return user

    async def verify_reset_token(self, token: str) -> bool:
        await self._user_for_reset_token(token)
        return True

    async def reset_password(self, token: str, new_password: str) -> UserDoc:
        """Set a new password from a reset link.

        Zeroes the reset throttle and revokes the stored refresh token, so a
        session opened before the reset cannot be refreshed afterwards.
        """
        user = await self._user_for_reset_token(token)
        errors = validate_password(new_password)
        if errors:
            raise WeakPassword(errors)

        await self._users.update_password(
            user.id, hash_password(new_password), revoke_session=True
        )
        await self._users.clear_reset_lock(user.id)
        log.info("password_reset_completed", user_id=str(user.id))
        return user

    async def update_password(
        self, user: UserDoc, current_password: str, new_password: str
    ) -> None:
        if not verify_password(current_password, user.password_hash):
            log.warning("password_update_failed", reason="invalid_password", user_id=str(user.id))
            raise InvalidCredentials("Current password is incorrect")
        errors = validate_password(new_password)
        if errors:
            raise WeakPassword(errors)

        await self._users.update_password(user.id, hash_password(new_password))
        log.info("password_updated", user_id=str(user.id))
