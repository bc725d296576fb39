"""
FastAPI application factory.
create_app() is the single entry point for building the app.

init_app_state() wires repositories and services onto app.state; the
lifespan calls it with live connections and tests call it with an
in-memory database.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress
from typing import AsyncIterator, Optional

import redis.asyncio as aioredis
import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.asynchronous.mongo_client import AsyncMongoClient

from config import AppSettings
from errors import register_error_handlers
from infrastructure.email.log_provider import LogEmailProvider
from infrastructure.email.notifier import Notifier
from infrastructure.email.protocol import EmailProvider
from infrastructure.email.zeptomail import ZeptoMailProvider
from infrastructure.http_client import HttpClient
from infrastructure.ratelimit.attempt_store import (
    AttemptStore,
    InMemoryAttemptStore,
    RedisAttemptStore,
)
from infrastructure.ratelimit.attempt_tracker import AttemptTracker
from infrastructure.redis_client import create_redis_client
from repositories.indexes import PENDING_USERS_COLLECTION, USERS_COLLECTION, ensure_indexes
from repositories.pending_user_repository import PendingUserRepository
from repositories.user_repository import UserRepository
from routes.auth_routes import router as auth_router
from routes.health_routes import router as health_router
from routes.user_routes import router as user_router
from services.abuse_guard import AbuseGuard
from services.auth_service import AuthService
from services.token_service import TokenService
from services.user_service import UserService
from shared.datetime_utils import Clock, utcnow
from shared.logging import get_logger, setup_logging

log = get_logger(__name__)


def build_email_provider(
    settings: AppSettings, http_client: Optional[HttpClient]
) -> EmailProvider:
    if settings.email.email_provider == "log" or http_client is None:
        return LogEmailProvider()
    return ZeptoMailProvider(settings.email, http_client, app_name=settings.app_name)


def init_app_state(
    app: FastAPI,
    settings: AppSettings,
    db,
    redis_client: Optional[aioredis.Redis] = None,
    *,
    email_provider: Optional[EmailProvider] = None,
    clock: Clock = utcnow,
) -> None:
    """Build repositories and services and attach them to app.state."""
    app.state.settings = settings
    app.state.db = db
    app.state.redis = redis_client

    user_repo = UserRepository(db[USERS_COLLECTION])
    pending_repo = PendingUserRepository(db[PENDING_USERS_COLLECTION])

    limits = settings.rate_limit
    store: AttemptStore
    if redis_client is not None:
        store = RedisAttemptStore(redis_client, ttl_seconds=limits.ledger_max_age_seconds)
    else:
        store = InMemoryAttemptStore()
    tracker = AttemptTracker(
        store,
        max_attempts=limits.login_max_attempts,
        window_seconds=limits.login_window_seconds,
        clock=clock,
    )

    if email_provider is None:
        email_provider = build_email_provider(settings, getattr(app.state, "http_client", None))
    notifier = Notifier(email_provider, mode=settings.email.email_dispatch_mode)

    app.state.notifier = notifier
    app.state.abuse_guard = AbuseGuard(user_repo, tracker, limits)
    app.state.auth_service = AuthService(
        user_repo,
        pending_repo,
        TokenService(settings.jwt, clock=clock),
        notifier,
        settings,
        clock=clock,
    )
    app.state.user_service = UserService(user_repo)


def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """Create and return a fully configured FastAPI application."""
    if settings is None:
        settings = AppSettings()

    setup_logging(
        log_level=settings.logging.log_level,
        log_format=settings.logging.log_format,
        env=settings.env,
    )

    # Initialise Sentry before anything else so it captures startup errors
    if settings.sentry.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry.sentry_dsn,
            send_default_pii=settings.sentry.sentry_send_pii,
            traces_sample_rate=settings.sentry.sentry_traces_sample_rate,
            profiles_sample_rate=settings.sentry.sentry_profile_sample_rate,
            environment=settings.env,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # ── Startup ──────────────────────────────────────────────────────────
        mongo_client: AsyncMongoClient = AsyncMongoClient(settings.db.mongodb_uri)
        app.state.mongo_client = mongo_client
        db = mongo_client[settings.db.db_name]

        # Redis is optional; without it the login ledger stays in memory
        redis_client = None
        if settings.redis.redis_uri:
            redis_client = await create_redis_client(settings.redis.redis_uri)

        http_client = HttpClient.for_email(settings.email)
        app.state.http_client = http_client

        init_app_state(app, settings, db, redis_client)
        await ensure_indexes(db)

        sweeper = asyncio.create_task(app.state.abuse_guard.run_sweeper())
        log.info("app_started", env=settings.env, redis=redis_client is not None)

        yield

        # ── Shutdown ─────────────────────────────────────────────────────────
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper
        await app.state.notifier.drain()
        await http_client.aclose()
        await mongo_client.close()
        if redis_client is not None:
            await redis_client.aclose()

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        docs_url=settings.docs_url,
        redoc_url=None,
        lifespan=lifespan,
    )

    # Refresh cookie requires credentials; origins must be listed explicitly
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(user_router)

    return app
