"""
AbuseGuard - throttles login, registration and email actions.

Every limiter except the OTP one is keyed on "{ip}-{email or 'anonymous'}".
Accounts with a privileged role (admin, super) bypass all of them and never
touch the ledger.

- login:        AttemptTracker (custom fixed window, 5 / 15 min)
- registration: limits FixedWindowRateLimiter (3 per hour)
- email action: limits FixedWindowRateLimiter (3 per 30 minutes)
- OTP check:    limits FixedWindowRateLimiter (5 per 15 minutes), keyed on
                the email only

Routes call record_success() explicitly after a successful login,
OTP verification or password reset.
"""

from __future__ import annotations

import asyncio
import time
from typing import Optional

from limits import RateLimitItem, parse
from limits.aio.strategies import FixedWindowRateLimiter
from limits.storage import storage_from_string

from config import RateLimitSettings
from errors import RateLimited
from infrastructure.ratelimit.attempt_tracker import AttemptTracker
from repositories.user_repository import UserRepository
from schemas.models.user import UserDoc
from shared.datetime_utils import format_wait
from shared.logging import get_logger, hash_ip

log = get_logger(__name__)

_REGISTRATION_SCOPE = "register"
_EMAIL_SCOPE = "email"
_OTP_SCOPE = "otp"


def make_key(ip: Optional[str], email: Optional[str]) -> str:
    return f"{ip or 'unknown'}-{email or 'anonymous'}"


class AbuseGuard:
    def __init__(
        self,
        user_repo: UserRepository,
        tracker: AttemptTracker,
        settings: RateLimitSettings,
        limiter: Optional[FixedWindowRateLimiter] = None,
    ) -> None:
        self._users = user_repo
        self.tracker = tracker
        self._settings = settings
        self._limiter = limiter or FixedWindowRateLimiter(
            storage_from_string(settings.limits_storage_uri)
        )
        self._registration_limit = parse(settings.registration_limit)
        self._email_limit = parse(settings.email_limit)
        self._otp_limit = parse(settings.otp_limit)

    async def _privileged_account(self, email: Optional[str]) -> Optional[UserDoc]:
        if not email:
            return None
        user = await self._users.find_by_email(email)
        if user is not None and user.is_privileged:
            return user
        return None

    async def is_exempt(self, email: Optional[str]) -> bool:
        return await self._privileged_account(email) is not None

    async def guard_login(self, ip: Optional[str], email: Optional[str]) -> None:
        """Reject the attempt when the window is used up, otherwise count it.

        The throttle key carries the email, so logs only get the hashed IP.
        """
        if await self.is_exempt(email):
            log.debug("rate_limit_exempt", limiter="login")
            return
        try:
            await self.tracker.attempt(make_key(ip, email))
        except RateLimited as e:
            log.warning("login_rate_limited", ip=hash_ip(ip), remaining_ms=e.remaining_ms)
            raise

    async def guard_registration(self, ip: Optional[str], email: Optional[str]) -> None:
        await self._hit(
            self._registration_limit,
            _REGISTRATION_SCOPE,
            ip,
            email,
            "Too many registration attempts",
        )

    async def guard_email_action(self, ip: Optional[str], email: Optional[str]) -> None:
        await self._hit(
            self._email_limit, _EMAIL_SCOPE, ip, email, "Too many email requests"
        )

    async def guard_otp(self, ip: Optional[str], email: Optional[str]) -> None:
        """Cap verification guesses per pending email, whatever the address."""
        await self._hit(
            self._otp_limit,
            _OTP_SCOPE,
            ip,
            email,
            "Too many verification attempts",
            key=(email or "anonymous").lower(),
        )

    async def _hit(
        self,
        item: RateLimitItem,
        scope: str,
        ip: Optional[str],
        email: Optional[str],
        message: str,
        key: Optional[str] = None,
    ) -> None:
        if await self.is_exempt(email):
            log.debug("rate_limit_exempt", limiter=scope)
            return

        key = make_key(ip, email) if key is None else key
        if await self._limiter.hit(item, scope, key):
            return

        stats = await self._limiter.get_window_stats(item, scope, key)
        remaining_ms = max(0, int((stats.reset_time - time.time()) * 1000))
        log.warning("rate_limited", limiter=scope, ip=hash_ip(ip), remaining_ms=remaining_ms)
        raise RateLimited(
            f"{message}. Please try again in {format_wait(remaining_ms)}",
            remaining_ms=remaining_ms,
            attempts_remaining=stats.remaining,
        )

    async def record_success(
        self, ip: Optional[str], email: Optional[str], user: Optional[UserDoc] = None
    ) -> None:
        """Clear the login ledger for the key and the account's reset throttle."""
        await self.tracker.reset(make_key(ip, email))
        if user is None and email:
            user = await self._users.find_by_email(email)
        if user is not None and not user.is_privileged:
            await self._users.clear_reset_lock(user.id)

    async def run_sweeper(self) -> None:
        """Sweep stale ledger entries forever; cancelled on shutdown."""
        interval = self._settings.ledger_sweep_interval_seconds
        while True:
            await asyncio.sleep(interval)
            try:
                await self.tracker.sweep(self._settings.ledger_max_age_seconds)
            except Exception as e:
                log.error(
                    "attempt_ledger_sweep_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )
