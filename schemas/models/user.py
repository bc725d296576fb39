"""
User (account) document model.

Maps to the `users` MongoDB collection.

Accounts are only created by OTP verification, so every stored account
starts out with is_email_verified=True; the flag stays on the model because
access tokens carry it and the login path still checks it.

refresh_token_hash stores SHA-256(refresh JWT) of the single active session.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import ConfigDict, Field

from schemas.models.base import MongoBaseModel

DEFAULT_BIO = "Learning to help you be cybersecure <3"


class Role(str, Enum):
    STUDENT = "student"
    ADMIN = "admin"
    SUPER = "super"


PRIVILEGED_ROLES = frozenset({Role.ADMIN, Role.SUPER})


class UserDoc(MongoBaseModel):
    """Document model for the `users` collection."""

    model_config = ConfigDict(use_enum_values=True)

    name: str
    email: str
    password_hash: str
    role: Role = Field(default=Role.STUDENT, validate_default=True)
    bio: str = Field(default=DEFAULT_BIO, max_length=100)
    is_email_verified: bool = False
    refresh_token_hash: Optional[str] = None
    password_reset_attempts: int = Field(default=0, ge=0)
    password_reset_lock_until: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES
