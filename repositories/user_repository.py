"""
Async repository for the `users` collection.

All reads return UserDoc models; writes use targeted $set/$inc updates so
concurrent requests touching different fields do not overwrite each other.
DuplicateKeyError from the unique email index propagates to the caller.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from bson import ObjectId
from pymongo import DESCENDING, ReturnDocument

from schemas.models.user import UserDoc
from shared.datetime_utils import utcnow


def _oid(user_id: Any) -> Optional[ObjectId]:
    if isinstance(user_id, ObjectId):
        return user_id
    if isinstance(user_id, str) and ObjectId.is_valid(user_id):
        return ObjectId(user_id)
    return None


class UserRepository:
    def __init__(self, collection) -> None:
        self._col = collection

    async def find_by_id(self, user_id: Any) -> Optional[UserDoc]:
        oid = _oid(user_id)
        if oid is None:
            return None
        return UserDoc.from_mongo(await self._col.find_one({"_id": oid}))

    async def find_by_email(self, email: str) -> Optional[UserDoc]:
        return UserDoc.from_mongo(await self._col.find_one({"email": email}))

    async def find_by_name(self, name: str) -> Optional[UserDoc]:
        return UserDoc.from_mongo(await self._col.find_one({"name": name}))

    async def find_by_refresh_token_hash(self, token_hash: str) -> Optional[UserDoc]:
        return UserDoc.from_mongo(
            await self._col.find_one({"refresh_token_hash": token_hash})
        )

    async def list_all(self) -> list[UserDoc]:
        cursor = self._col.find({}).sort("created_at", DESCENDING)
        docs = await cursor.to_list(length=None)
        return [UserDoc.from_mongo(doc) for doc in docs]

    async def insert(self, user: UserDoc) -> UserDoc:
        now = utcnow()
        user.created_at = user.created_at or now
        user.updated_at = now
        result = await self._col.insert_one(user.to_mongo())
        user.id = result.inserted_id
        return user

    async def set_refresh_token_hash(self, user_id: Any, token_hash: Optional[str]) -> None:
        await self._col.update_one(
            {"_id": _oid(user_id)},
            {"$set": {"refresh_token_hash": token_hash, "updated_at": utcnow()}},
        )

    async def swap_refresh_token_hash(
        self, user_id: Any, old_hash: str, new_hash: str
    ) -> bool:
        """Replace the stored hash only if it still equals *old_hash*."""
        result = await self._col.update_one(
            {"_id": _oid(user_id), "refresh_token_hash": old_hash},
            {"$set": {"refresh_token_hash": new_hash, "updated_at": utcnow()}},
        )
        return result.modified_count == 1

    async def increment_reset_attempts(self, user_id: Any) -> int:
        doc = await self._col.find_one_and_update(
            {"_id": _oid(user_id)},
            {"$inc": {"password_reset_attempts": 1}},
            return_document=ReturnDocument.AFTER,
        )
        return doc["password_reset_attempts"] if doc else 0

    async def set_reset_lock(self, user_id: Any, lock_until: datetime) -> None:
        await self._col.update_one(
            {"_id": _oid(user_id)},
            {"$set": {"password_reset_lock_until": lock_until}},
        )

    async def clear_reset_lock(self, user_id: Any) -> None:
        await self._col.update_one(
            {"_id": _oid(user_id)},
            {"$set": {"password_reset_attempts": 0, "password_reset_lock_until": None}},
        )

    async def update_password(
        self, user_id: Any, password_hash: str, *, revoke_session: bool = False
    ) -> None:
        fields: dict = {"password_hash": password_hash, "updated_at": utcnow()}
        if revoke_session:
            fields["refresh_token_hash"] = None
        await self._col.update_one({"_id": _oid(user_id)}, {"$set": fields})

    async def update_fields(self, user_id: Any, fields: dict) -> Optional[UserDoc]:
        doc = await self._col.find_one_and_update(
            {"_id": _oid(user_id)},
            {"$set": {**fields, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        return UserDoc.from_mongo(doc)

    async def delete(self, user_id: Any) -> bool:
        oid = _oid(user_id)
        if oid is None:
            return False
        result = await self._col.delete_one({"_id": oid})
        return result.deleted_count == 1
