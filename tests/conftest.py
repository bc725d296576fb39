"""
Shared test fixtures.

- dotenv is disabled so pydantic-settings never reads a real .env file
- MongoDB is mongomock-motor (in-memory, async)
- time comes from FakeClock, so expiry is tested by advancing it
- email goes to RecordingEmailProvider, which can be told to fail
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from mongomock_motor import AsyncMongoMockClient

from config import (
    AppSettings,
    DatabaseSettings,
    EmailSettings,
    JWTSettings,
    RateLimitSettings,
    RedisSettings,
)
from infrastructure.email.notifier import Notifier
from infrastructure.ratelimit.attempt_store import InMemoryAttemptStore
from infrastructure.ratelimit.attempt_tracker import AttemptTracker
from repositories.indexes import PENDING_USERS_COLLECTION, USERS_COLLECTION
from repositories.pending_user_repository import PendingUserRepository
from repositories.user_repository import UserRepository
from schemas.models.user import Role, UserDoc
from services.abuse_guard import AbuseGuard
from services.auth_service import AuthService
from services.token_service import TokenService
from services.user_service import UserService
from shared.crypto import hash_password

STRONG_PASSWORD = "Sup3r$ecret"


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingEmailProvider:
    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.fail = False

    async def send_verification_otp(self, email: str, user_name: str, otp_code: str) -> bool:
        self.sent.append({"kind": "verification", "email": email, "otp": otp_code})
        return not self.fail

    async def send_password_reset_link(
        self, email: str, user_name: str, reset_url: str
    ) -> bool:
        self.sent.append({"kind": "password_reset", "email": email, "url": reset_url})
        return not self.fail

    def last(self, kind: str) -> dict:
        return [m for m in self.sent if m["kind"] == kind][-1]


@pytest.fixture(autouse=True)
def disable_dotenv_loading(monkeypatch):
    """Prevent pydantic-settings from loading .env files in all tests."""
    import pydantic_settings.sources.providers.dotenv as ps_dotenv

    monkeypatch.setattr(ps_dotenv, "dotenv_values", lambda *a, **kw: {})


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        env="test",
        frontend_url="http://localhost:5173",
        db=DatabaseSettings(mongodb_uri="mongodb://localhost:27017/"),
        redis=RedisSettings(redis_uri=None),
        jwt=JWTSettings(
            jwt_secret="access-secret-for-tests",
            jwt_refresh_secret="refresh-secret-for-tests",
            password_reset_secret="reset-secret-for-tests",
            cookie_secure=False,
        ),
        email=EmailSettings(email_provider="log", email_dispatch_mode="sync"),
        rate_limit=RateLimitSettings(),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db():
    return AsyncMongoMockClient()["br3achbl0ckers_test"]


@pytest.fixture
def user_repo(db) -> UserRepository:
    return UserRepository(db[USERS_COLLECTION])


@pytest.fixture
def pending_repo(db) -> PendingUserRepository:
    return PendingUserRepository(db[PENDING_USERS_COLLECTION])


@pytest.fixture
def email_provider() -> RecordingEmailProvider:
    return RecordingEmailProvider()


@pytest.fixture
def notifier(email_provider) -> Notifier:
    return Notifier(email_provider, mode="sync")


@pytest.fixture
def tokens(settings, clock) -> TokenService:
    return TokenService(settings.jwt, clock=clock)


@pytest.fixture
def auth_service(user_repo, pending_repo, tokens, notifier, settings, clock) -> AuthService:
    return AuthService(user_repo, pending_repo, tokens, notifier, settings, clock=clock)


@pytest.fixture
def attempt_store() -> InMemoryAttemptStore:
    return InMemoryAttemptStore()


@pytest.fixture
def tracker(attempt_store, clock) -> AttemptTracker:
    return AttemptTracker(attempt_store, max_attempts=5, window_seconds=900, clock=clock)


@pytest.fixture
def guard(user_repo, tracker, settings) -> AbuseGuard:
    return AbuseGuard(user_repo, tracker, settings.rate_limit)


@pytest.fixture
def user_service(user_repo) -> UserService:
    return UserService(user_repo)


@pytest.fixture
def make_user(user_repo):
    """Factory: insert an account directly and return it."""

    async def _make(
        name: str = "Jane Doe",
        email: str = "jane@example.com",
        password: str = STRONG_PASSWORD,
        role: Role = Role.STUDENT,
        verified: bool = True,
    ) -> UserDoc:
        return await user_repo.insert(
            UserDoc(
                name=name,
                email=email,
                password_hash=hash_password(password),
                role=role,
                is_email_verified=verified,
            )
        )

    return _make
