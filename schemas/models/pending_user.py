"""
Pending registration document model.

Maps to the `pending_users` MongoDB collection.

A pending user holds everything needed to create the account once the
emailed OTP is confirmed. A TTL index on created_at removes stale documents
after 24 hours; otp_expires (15 minutes) is checked by the service.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import ConfigDict, Field

from schemas.models.base import MongoBaseModel
from schemas.models.user import Role


class PendingUserDoc(MongoBaseModel):
    """Document model for the `pending_users` collection."""

    model_config = ConfigDict(use_enum_values=True)

    name: str
    email: str
    password_hash: str
    role: Role = Field(default=Role.STUDENT, validate_default=True)
    otp: str
    otp_expires: datetime
    created_at: Optional[datetime] = None
