"""
Request DTOs for account administration endpoints.

UpdateProfileRequest - PUT /api/users/{user_id}
UpdateRoleRequest    - PATCH /api/users/{user_id}/role
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict

from schemas.models.user import Role


class UpdateProfileRequest(BaseModel):
    """Only ``name`` and ``bio`` are editable; unknown keys are ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[str] = None
    bio: Optional[str] = None


class UpdateRoleRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    role: Role
