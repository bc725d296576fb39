"""
Account administration endpoints under /api/users.

GET    /                 list accounts, newest first (super)
GET    /{name}           one account by display name (self, admin, super)
PUT    /{user_id}        update name and bio (self, super)
PATCH  /{user_id}/role   change role (super, not on self)
DELETE /{user_id}        delete account (super, not self)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from dependencies import get_current_user, get_user_service, require_roles
from schemas.dto.requests.users import UpdateProfileRequest, UpdateRoleRequest
from schemas.dto.responses.auth import UserPublic
from schemas.dto.responses.common import MessageResponse
from schemas.dto.responses.users import UserUpdatedResponse
from schemas.models.user import Role, UserDoc
from services.user_service import UserService

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("", response_model=list[UserPublic])
async def list_users(
    actor: UserDoc = Depends(require_roles(Role.SUPER)),
    user_service: UserService = Depends(get_user_service),
) -> list[UserPublic]:
    return [UserPublic.from_doc(u) for u in await user_service.list_users()]


@router.get("/{name}", response_model=UserPublic)
async def get_user(
    name: str,
    actor: UserDoc = Depends(get_current_user),
    user_service: UserService = Depends(get_user_service),
) -> UserPublic:
    return UserPublic.from_doc(await user_service.get_by_name(actor, name))


@router.put("/{user_id}", response_model=UserUpdatedResponse)
async def update_profile(
    user_id: str,
    body: UpdateProfileRequest,
    actor: UserDoc = Depends(get_current_user),
    user_service: UserService = Depends(get_user_service),
) -> UserUpdatedResponse:
    user = await user_service.update_profile(actor, user_id, name=body.name, bio=body.bio)
    return UserUpdatedResponse(msg="Profile updated successfully", user=UserPublic.from_doc(user))


@router.patch("/{user_id}/role", response_model=UserUpdatedResponse)
async def update_role(
    user_id: str,
    body: UpdateRoleRequest,
    actor: UserDoc = Depends(require_roles(Role.SUPER)),
    user_service: UserService = Depends(get_user_service),
) -> UserUpdatedResponse:
    user = await user_service.update_role(actor, user_id, body.role)
    return UserUpdatedResponse(msg="Role updated successfully", user=UserPublic.from_doc(user))


@router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: str,
    actor: UserDoc = Depends(require_roles(Role.SUPER)),
    user_service: UserService = Depends(get_user_service),
) -> MessageResponse:
    await user_service.delete_user(actor, user_id)
    return MessageResponse(msg="User deleted successfully")
