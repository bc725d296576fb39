"""
Unit tests for AuthService.

Time is driven by the FakeClock fixture; no test sleeps.
"""

from __future__ import annotations

import asyncio
import re
from urllib.parse import parse_qs, urlparse

import pytest

from errors import (
    AuthenticationError,
    DuplicateAccount,
    EmailDispatchFailed,
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
from schemas.models.user import Role
from services.auth_service import AuthService
from shared.crypto import hash_token, verify_password
from shared.datetime_utils import as_utc

from tests.conftest import STRONG_PASSWORD

EMAIL = "jane@example.com"


async def _register(auth_service, email_provider, email=EMAIL, name="Jane Doe"):
    await auth_service.register(name, email, STRONG_PASSWORD)
    return email_provider.last("verification")["otp"]


def _reset_token(email_provider) -> str:
    url = email_provider.last("password_reset")["url"]
    return parse_qs(urlparse(url).query)["token"][0]


# ── Registration ─────────────────────────────────────────────────────────────


class TestRegister:
    async def test_creates_pending_with_six_digit_otp(self, auth_service, pending_repo, clock):
        pending = await auth_service.register("Jane Doe", EMAIL, STRONG_PASSWORD)
        assert re.fullmatch(r"\d{6}", pending.otp)

        stored = await pending_repo.find_by_email(EMAIL)
        assert stored is not None
        assert stored.role == "student"
        assert (as_utc(stored.otp_expires) - clock.now).total_seconds() == pytest.approx(900, abs=1)

    async def test_password_is_hashed(self, auth_service, pending_repo):
        await auth_service.register("Jane Doe", EMAIL, STRONG_PASSWORD)
        stored = await pending_repo.find_by_email(EMAIL)
        assert stored.password_hash != STRONG_PASSWORD
        assert verify_password(STRONG_PASSWORD, stored.password_hash)

    async def test_mails_the_code(self, auth_service, email_provider):
        pending = await auth_service.register("Jane Doe", EMAIL, STRONG_PASSWORD)
        assert email_provider.last("verification") == {
            "kind": "verification",
            "email": EMAIL,
            "otp": pending.otp,
        }

    async def test_invalid_email(self, auth_service):
        with pytest.raises(ValidationError, match="Invalid email format"):
            await auth_service.register("Jane Doe", "not-an-email", STRONG_PASSWORD)

    async def test_weak_password_lists_all_reasons(self, auth_service):
        with pytest.raises(WeakPassword) as exc:
            await auth_service.register("Jane Doe", EMAIL, "short")
        assert len(exc.value.errors) >= 3

    async def test_bad_name_rejected(self, auth_service):
        with pytest.raises(ValidationError) as exc:
            await auth_service.register("jANE", EMAIL, STRONG_PASSWORD)
        assert exc.value.field == "name"

    async def test_duplicate_account(self, auth_service, make_user):
        await make_user(email=EMAIL)
        with pytest.raises(DuplicateAccount):
            await auth_service.register("Jane Doe", EMAIL, STRONG_PASSWORD)

    async def test_new_registration_replaces_stale_one(self, auth_service, db):
        await auth_service.register("Jane Doe", EMAIL, STRONG_PASSWORD)
        await auth_service.register("Jane Doe", EMAIL, STRONG_PASSWORD)
        assert await db["pending_users"].count_documents({"email": EMAIL}) == 1

    async def test_dispatch_failure_keeps_pending(self, auth_service, email_provider, pending_repo):
        email_provider.fail = True
        with pytest.raises(EmailDispatchFailed):
            await auth_service.register("Jane Doe", EMAIL, STRONG_PASSWORD)
        assert await pending_repo.find_by_email(EMAIL) is not None

    async def test_background_dispatch_swallows_failure(
        self, user_repo, pending_repo, tokens, settings, clock, email_provider
    ):
        email_provider.fail = True
        notifier = Notifier(email_provider, mode="background")
        service = AuthService(user_repo, pending_repo, tokens, notifier, settings, clock=clock)

        await service.register("Jane Doe", EMAIL, STRONG_PASSWORD)
        await notifier.drain()
        assert email_provider.sent


class TestResendOtp:
    async def test_issues_fresh_code_and_expiry(self, auth_service, email_provider, clock, pending_repo):
        await _register(auth_service, email_provider)
        clock.advance(minutes=10)
        pending = await auth_service.resend_otp(EMAIL)

        stored = await pending_repo.find_by_email(EMAIL)
        assert stored.otp == pending.otp
        assert (as_utc(stored.otp_expires) - clock.now).total_seconds() == pytest.approx(900, abs=1)
        assert email_provider.last("verification")["otp"] == pending.otp

    async def test_without_pending_registration(self, auth_service):
        with pytest.raises(NoPendingRegistration):
            await auth_service.resend_otp(EMAIL)


# ── OTP verification ─────────────────────────────────────────────────────────


class TestVerifyOtp:
    async def test_promotes_pending_and_opens_session(
        self, auth_service, email_provider, user_repo, pending_repo, tokens
    ):
        otp = await _register(auth_service, email_provider)
        session = await auth_service.verify_otp(EMAIL, otp)

        assert session.user.is_email_verified is True
        assert session.user.role == "student"
        assert await pending_repo.find_by_email(EMAIL) is None

        stored = await user_repo.find_by_email(EMAIL)
        assert stored.refresh_token_hash == hash_token(session.refresh_token)
        assert tokens.verify_access_token(session.access_token)["sub"] == str(stored.id)

    async def test_expired_otp_deletes_pending(self, auth_service, email_provider, clock, pending_repo):
        otp = await _register(auth_service, email_provider)
        clock.advance(minutes=15)
        with pytest.raises(OtpExpired):
            await auth_service.verify_otp(EMAIL, otp)
        assert await pending_repo.find_by_email(EMAIL) is None

    async def test_code_still_valid_just_before_expiry(self, auth_service, email_provider, clock):
        otp = await _register(auth_service, email_provider)
        clock.advance(minutes=14, seconds=59)
        session = await auth_service.verify_otp(EMAIL, otp)
        assert session.user.email == EMAIL

    async def test_wrong_otp_keeps_pending(self, auth_service, email_provider, pending_repo):
        otp = await _register(auth_service, email_provider)
        wrong = "000000" if otp != "000000" else "111111"
        with pytest.raises(InvalidOtp):
            await auth_service.verify_otp(EMAIL, wrong)
        assert await pending_repo.find_by_email(EMAIL) is not None

        session = await auth_service.verify_otp(EMAIL, otp)
        assert session.user.email == EMAIL

    async def test_no_pending_registration(self, auth_service):
        with pytest.raises(NoPendingRegistration):
            await auth_service.verify_otp(EMAIL, "123456")

    async def test_pending_user_cannot_log_in(self, auth_service, email_provider):
        await _register(auth_service, email_provider)
        with pytest.raises(InvalidCredentials):
            await auth_service.login(EMAIL, STRONG_PASSWORD)

    async def test_duplicate_insert_race(self, auth_service, email_provider, db, make_user, pending_repo):
        await db["users"].create_index("email", unique=True)
        otp = await _register(auth_service, email_provider)
        await make_user(email=EMAIL)

        with pytest.raises(DuplicateAccount):
            await auth_service.verify_otp(EMAIL, otp)
        assert await pending_repo.find_by_email(EMAIL) is None


# ── Login ────────────────────────────────────────────────────────────────────


class TestLogin:
    async def test_success_persists_refresh_hash(self, auth_service, make_user, user_repo):
        user = await make_user(email=EMAIL)
        session = await auth_service.login(EMAIL, STRONG_PASSWORD)
        assert session.user.id == user.id
        assert (await user_repo.find_by_id(user.id)).refresh_token_hash == hash_token(
            session.refresh_token
        )

    async def test_unknown_email_and_wrong_password_look_the_same(self, auth_service, make_user):
        await make_user(email=EMAIL)
        with pytest.raises(InvalidCredentials) as unknown:
            await auth_service.login("nobody@example.com", STRONG_PASSWORD)
        with pytest.raises(InvalidCredentials) as wrong:
            await auth_service.login(EMAIL, "Wr0ng$password")
        assert unknown.value.to_dict() == wrong.value.to_dict()

    async def test_unverified_account(self, auth_service, make_user):
        await make_user(email=EMAIL, verified=False)
        with pytest.raises(EmailNotVerified) as exc:
            await auth_service.login(EMAIL, STRONG_PASSWORD)
        assert exc.value.to_dict()["isEmailVerified"] is False

    async def test_wrong_password_on_unverified_account_is_invalid_credentials(
        self, auth_service, make_user
    ):
        await make_user(email=EMAIL, verified=False)
        with pytest.raises(InvalidCredentials):
            await auth_service.login(EMAIL, "Wr0ng$password")

    async def test_new_login_overwrites_previous_session(self, auth_service, make_user):
        await make_user(email=EMAIL)
        first = await auth_service.login(EMAIL, STRONG_PASSWORD)
        await auth_service.login(EMAIL, STRONG_PASSWORD)
        with pytest.raises(InvalidSession):
            await auth_service.refresh(first.refresh_token)

    async def test_remember_me_survives_rotation(self, auth_service, make_user):
        await make_user(email=EMAIL)
        session = await auth_service.login(EMAIL, STRONG_PASSWORD, remember_me=True)
        assert session.remember_me is True
        rotated = await auth_service.refresh(session.refresh_token)
        assert rotated.remember_me is True


# ── Refresh / logout ─────────────────────────────────────────────────────────


class TestRefresh:
    async def test_rotates_both_tokens(self, auth_service, make_user, user_repo):
        user = await make_user(email=EMAIL)
        session = await auth_service.login(EMAIL, STRONG_PASSWORD)
        rotated = await auth_service.refresh(session.refresh_token)

        assert rotated.refresh_token != session.refresh_token
        assert (await user_repo.find_by_id(user.id)).refresh_token_hash == hash_token(
            rotated.refresh_token
        )
        with pytest.raises(InvalidSession):
            await auth_service.refresh(session.refresh_token)

    async def test_missing_token(self, auth_service):
        with pytest.raises(NoSession):
            await auth_service.refresh(None)
        with pytest.raises(NoSession):
            await auth_service.refresh("")

    async def test_garbage_token(self, auth_service):
        with pytest.raises(InvalidSession):
            await auth_service.refresh("not.a.jwt")

    async def test_expired_token(self, auth_service, make_user, clock):
        await make_user(email=EMAIL)
        session = await auth_service.login(EMAIL, STRONG_PASSWORD)
        clock.advance(days=7)
        with pytest.raises(InvalidSession):
            await auth_service.refresh(session.refresh_token)

    async def test_access_token_is_not_a_refresh_token(self, auth_service, make_user):
        await make_user(email=EMAIL)
        session = await auth_service.login(EMAIL, STRONG_PASSWORD)
        with pytest.raises(InvalidSession):
            await auth_service.refresh(session.access_token)

    async def test_concurrent_refresh_leaves_one_valid_token(self, auth_service, make_user):
        await make_user(email=EMAIL)
        session = await auth_service.login(EMAIL, STRONG_PASSWORD)

        results = await asyncio.gather(
            auth_service.refresh(session.refresh_token),
            auth_service.refresh(session.refresh_token),
            return_exceptions=True,
        )
        winners = [r for r in results if not isinstance(r, Exception)]
        assert len(winners) >= 1

        still_valid = []
        for winner in winners:
            try:
                still_valid.append(await auth_service.refresh(winner.refresh_token))
            except InvalidSession:
                pass
        assert len(still_valid) == 1

    async def test_logout_invalidates_refresh(self, auth_service, make_user, user_repo):
        user = await make_user(email=EMAIL)
        session = await auth_service.login(EMAIL, STRONG_PASSWORD)
        await auth_service.logout(session.user)

        assert (await user_repo.find_by_id(user.id)).refresh_token_hash is None
        with pytest.raises(InvalidSession):
            await auth_service.refresh(session.refresh_token)


class TestAuthenticate:
    async def test_resolves_user(self, auth_service, make_user):
        user = await make_user(email=EMAIL)
        session = await auth_service.login(EMAIL, STRONG_PASSWORD)
        assert (await auth_service.authenticate(session.access_token)).id == user.id

    async def test_missing_token(self, auth_service):
        with pytest.raises(AuthenticationError):
            await auth_service.authenticate(None)

    async def test_expired_token(self, auth_service, make_user, clock):
        await make_user(email=EMAIL)
        session = await auth_service.login(EMAIL, STRONG_PASSWORD)
        clock.advance(minutes=15)
        with pytest.raises(AuthenticationError):
            await auth_service.authenticate(session.access_token)

    async def test_unverified_token_forbidden(self, auth_service, tokens, make_user):
        user = await make_user(email=EMAIL, verified=False)
        with pytest.raises(EmailNotVerified):
            await auth_service.authenticate(tokens.issue_access_token(user))

    async def test_deleted_account(self, auth_service, make_user, user_repo):
        user = await make_user(email=EMAIL)
        session = await auth_service.login(EMAIL, STRONG_PASSWORD)
        await user_repo.delete(user.id)
        with pytest.raises(AuthenticationError):
            await auth_service.authenticate(session.access_token)


# ── Password reset ───────────────────────────────────────────────────────────


class TestForgotPassword:
    async def test_mails_reset_link(self, auth_service, make_user, email_provider, tokens):
        user = await make_user(email=EMAIL)
        await auth_service.forgot_password(EMAIL)

        url = email_provider.last("password_reset")["url"]
        assert url.startswith("http://localhost:5173/reset-password?token=")
        assert tokens.verify_reset_token(_reset_token(email_provider))["sub"] == str(user.id)

    async def test_unknown_email(self, auth_service):
        with pytest.raises(NotFoundError):
            await auth_service.forgot_password("nobody@example.com")

    async def test_fourth_request_locked_then_resumes_from_three(
        self, auth_service, make_user, user_repo, clock
    ):
        user = await make_user(email=EMAIL)
        for _ in range(3):
            await auth_service.forgot_password(EMAIL)

        stored = await user_repo.find_by_id(user.id)
        assert stored.password_reset_attempts == 3
        lock_until = as_utc(stored.password_reset_lock_until)
        assert (lock_until - clock.now).total_seconds() == pytest.approx(86400, abs=1)

        clock.advance(hours=23)
        with pytest.raises(TooManyAttempts) as exc:
            await auth_service.forgot_password(EMAIL)
        assert exc.value.to_dict()["lockUntil"] == lock_until.isoformat()
        assert (await user_repo.find_by_id(user.id)).password_reset_attempts == 3

        clock.advance(hours=1, seconds=1)
        await auth_service.forgot_password(EMAIL)
        assert (await user_repo.find_by_id(user.id)).password_reset_attempts == 4

    async def test_counter_increments_when_dispatch_fails(
        self, auth_service, make_user, user_repo, email_provider
    ):
        user = await make_user(email=EMAIL)
        email_provider.fail = True
        with pytest.raises(EmailDispatchFailed):
            await auth_service.forgot_password(EMAIL)
        assert (await user_repo.find_by_id(user.id)).password_reset_attempts == 1


class TestResetPassword:
    async def test_resets_counters_and_new_password_works(
        self, auth_service, make_user, user_repo, email_provider
    ):
        user = await make_user(email=EMAIL)
        for _ in range(3):
            await auth_service.forgot_password(EMAIL)
        old_hash = (await user_repo.find_by_id(user.id)).password_hash

        await auth_service.reset_password(_reset_token(email_provider), "N3w$ecret!")

        stored = await user_repo.find_by_id(user.id)
        assert stored.password_reset_attempts == 0
        assert stored.password_reset_lock_until is None
        assert stored.password_hash != old_hash
        session = await auth_service.login(EMAIL, "N3w$ecret!")
        assert session.user.id == user.id
        with pytest.raises(InvalidCredentials):
            await auth_service.login(EMAIL, STRONG_PASSWORD)

    async def test_revokes_existing_session(self, auth_service, make_user, email_provider):
        await make_user(email=EMAIL)
        session = await auth_service.login(EMAIL, STRONG_PASSWORD)
        await auth_service.forgot_password(EMAIL)
        await auth_service.reset_password(_reset_token(email_provider), "N3w$ecret!")
        with pytest.raises(InvalidSession):
            await auth_service.refresh(session.refresh_token)

    async def test_expired_token(self, auth_service, make_user, email_provider, clock):
        await make_user(email=EMAIL)
        await auth_service.forgot_password(EMAIL)
        clock.advance(hours=1)
        with pytest.raises(InvalidOrExpiredToken):
            await auth_service.reset_password(_reset_token(email_provider), "N3w$ecret!")

    async def test_access_token_rejected(self, auth_service, make_user):
        await make_user(email=EMAIL)
        session = await auth_service.login(EMAIL, STRONG_PASSWORD)
        with pytest.raises(InvalidOrExpiredToken):
            await auth_service.reset_password(session.access_token, "N3w$ecret!")

    async def test_unknown_account(self, auth_service, make_user, email_provider, user_repo):
        user = await make_user(email=EMAIL)
        await auth_service.forgot_password(EMAIL)
        await user_repo.delete(user.id)
        with pytest.raises(InvalidOrExpiredToken):
            await auth_service.reset_password(_reset_token(email_provider), "N3w$ecret!")

    async def test_weak_new_password(self, auth_service, make_user, email_provider):
        await make_user(email=EMAIL)
        await auth_service.forgot_password(EMAIL)
        with pytest.raises(WeakPassword):
            await auth_service.reset_password(_reset_token(email_provider), "weak")

    async def test_verify_reset_token(self, auth_service, make_user, email_provider):
        await make_user(email=EMAIL)
        await auth_service.forgot_password(EMAIL)
        assert await auth_service.verify_reset_token(_reset_token(email_provider)) is True
        with pytest.raises(InvalidOrExpiredToken):
            await auth_service.verify_reset_token("garbage")


class TestUpdatePassword:
    async def test_changes_password(self, auth_service, make_user):
        user = await make_user(email=EMAIL)
        await auth_service.update_password(user, STRONG_PASSWORD, "N3w$ecret!")
        assert (await auth_service.login(EMAIL, "N3w$ecret!")).user.id == user.id

    async def test_wrong_current_password(self, auth_service, make_user):
        user = await make_user(email=EMAIL)
        with pytest.raises(InvalidCredentials, match="Current password is incorrect"):
            await auth_service.update_password(user, "Wr0ng$password", "N3w$ecret!")

    async def test_weak_new_password(self, auth_service, make_user):
        user = await make_user(email=EMAIL)
        with pytest.raises(WeakPassword):
            await auth_service.update_password(user, STRONG_PASSWORD, "weak")


class TestPrivilegedRoles:
    async def test_admin_login_role_claim(self, auth_service, make_user, tokens):
        await make_user(email="admin@example.com", role=Role.ADMIN)
        session = await auth_service.login("admin@example.com", STRONG_PASSWORD)
        assert tokens.verify_access_token(session.access_token)["role"] == "admin"
