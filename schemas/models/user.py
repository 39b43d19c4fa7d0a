"""
User document model.

Maps to the `users` MongoDB collection.

Accounts are created by registration (role USER) or seeded (role ADMIN).
A deactivated account is never reactivated by this service.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from schemas.models.base import MongoBaseModel


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    USER = "USER"


class UserDoc(MongoBaseModel):
    """Document model for the `users` collection."""

    username: str
    email: str
    password_hash: str
    role: UserRole = UserRole.USER
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.username
