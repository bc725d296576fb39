"""Async repository for the `pending_users` collection."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from schemas.models.pending_user import PendingUserDoc
from shared.datetime_utils import utcnow


class PendingUserRepository:
    def __init__(self, collection) -> None:
        self._col = collection

    async def find_by_email(self, email: str) -> Optional[PendingUserDoc]:
        return PendingUserDoc.from_mongo(await self._col.find_one({"email": email}))

    async def replace(self, pending: PendingUserDoc) -> PendingUserDoc:
        """Drop any stale registration for the email and store *pending*."""
        await self._col.delete_many({"email": pending.email})
        pending.created_at = pending.created_at or utcnow()
        result = await self._col.insert_one(pending.to_mongo())
        pending.id = result.inserted_id
        return pending

    async def update_otp(self, pending_id: Any, otp: str, otp_expires: datetime) -> None:
        await self._col.update_one(
            {"_id": pending_id},
            {"$set": {"otp": otp, "otp_expires": otp_expires}},
        )

    async def delete(self, pending_id: Any) -> None:
        await self._col.delete_one({"_id": pending_id})
