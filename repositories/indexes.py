"""Collection names and index setup, run once at startup."""

from __future__ import annotations

from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from shared.logging import get_logger

log = get_logger(__name__)

USERS_COLLECTION = "users"
PENDING_USERS_COLLECTION = "pending_users"

PENDING_USER_TTL_SECONDS = 24 * 60 * 60


async def ensure_indexes(db) -> None:
    try:
        users = db[USERS_COLLECTION]
        await users.create_index([("email", ASCENDING)], unique=True)
        await users.create_index([("name", ASCENDING)])
        await users.create_index([("refresh_token_hash", ASCENDING)], sparse=True)

        pending = db[PENDING_USERS_COLLECTION]
        await pending.create_index([("email", ASCENDING)])
        await pending.create_index(
            [("created_at", ASCENDING)], expireAfterSeconds=PENDING_USER_TTL_SECONDS
        )
        log.info("mongodb_indexes_ensured")
    except PyMongoError as e:
        log.error("mongodb_index_creation_failed", error=str(e), error_type=type(e).__name__)
        raise
