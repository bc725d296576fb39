"""Response DTOs for account administration endpoints."""

from __future__ import annotations

from pydantic import BaseModel

from schemas.dto.responses.auth import UserPublic


class UserUpdatedResponse(BaseModel):
    """PUT /api/users/{user_id} and PATCH /api/users/{user_id}/role."""

    msg: str
    user: UserPublic
