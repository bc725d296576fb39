"""
UserService - account administration.

Permission rules:
- list:          super
- view by name:  the account itself, admin or super
- update:        the account itself or super (name and bio only)
- change role:   super, never on their own account
- delete:        super, never their own account
"""

from __future__ import annotations

from typing import Optional

from errors import ForbiddenError, NotFoundError, ValidationError
from repositories.user_repository import UserRepository
from schemas.models.user import PRIVILEGED_ROLES, Role, UserDoc
from shared.logging import get_logger
from shared.validators import validate_bio, validate_name

log = get_logger(__name__)

_INSUFFICIENT = "Access denied, insufficient permissions"


def _is_self(actor: UserDoc, user_id: str) -> bool:
    return str(actor.id) == str(user_id)


class UserService:
    def __init__(self, user_repo: UserRepository) -> None:
        self._users = user_repo

    async def list_users(self) -> list[UserDoc]:
        return await self._users.list_all()

    async def get_by_name(self, actor: UserDoc, name: str) -> UserDoc:
        user = await self._users.find_by_name(name)
        if user is None:
            raise NotFoundError("User not found")
        if not _is_self(actor, str(user.id)) and actor.role not in PRIVILEGED_ROLES:
            raise ForbiddenError(_INSUFFICIENT)
        return user

    async def update_profile(
        self,
        actor: UserDoc,
        user_id: str,
        name: Optional[str] = None,
        bio: Optional[str] = None,
    ) -> UserDoc:
        user = await self._users.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        if not _is_self(actor, user_id) and actor.role != Role.SUPER:
            raise ForbiddenError(_INSUFFICIENT)

        fields: dict = {}
        if name is not None:
            errors = validate_name(name)
            if errors:
                raise ValidationError(errors[0], errors=errors, field="name")
            fields["name"] = name.strip()
        if bio is not None:
            errors = validate_bio(bio)
            if errors:
                raise ValidationError(errors[0], field="bio")
            fields["bio"] = bio

        if not fields:
            return user
        updated = await self._users.update_fields(user.id, fields)
        if updated is None:
            raise NotFoundError("User not found")
        log.info(
            "profile_updated",
            user_id=str(user.id),
            actor_id=str(actor.id),
            fields=sorted(fields),
        )
        return updated

    async def update_role(self, actor: UserDoc, user_id: str, role: Role) -> UserDoc:
        user = await self._users.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        if _is_self(actor, user_id):
            raise ValidationError("Cannot modify your own role")

        updated = await self._users.update_fields(user.id, {"role": Role(role).value})
        if updated is None:
            raise NotFoundError("User not found")
        log.info(
            "role_updated",
            user_id=str(user.id),
            actor_id=str(actor.id),
            old_role=user.role,
            new_role=updated.role,
        )
        return updated

    async def delete_user(self, actor: UserDoc, user_id: str) -> None:
        user = await self._users.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        if _is_self(actor, user_id):
            raise ValidationError("Cannot delete your own account")

        await self._users.delete(user.id)
        log.info("user_deleted", user_id=str(user.id), actor_id=str(actor.id))
