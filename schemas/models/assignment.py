"""
User-key assignment document model.

Maps to the `user_key_assignments` MongoDB collection.

A key has at most one assignment, ever: `key_id` carries a unique index.
Revocation is a soft delete by default (status REVOKED, revoked_at/revoked_by
stamped) so the record survives for audit; admins may hard-delete explicitly.
EXPIRED is detected lazily from expires_at; the stored status is not swept.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from schemas.models.base import MongoBaseModel, PyObjectId, UtcModel


class AssignmentStatus(str, Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    REVOKED = "REVOKED"


class AssignmentPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class AssignmentMetadata(UtcModel):
    department: Optional[str] = None
    project: Optional[str] = None
    purpose: Optional[str] = None
    priority: Optional[AssignmentPriority] = None


class AssignmentDoc(MongoBaseModel):
    """Document model for the `user_key_assignments` collection."""

    user_id: PyObjectId
    key_id: PyObjectId
    assigned_at: datetime
    assigned_by: str
    status: AssignmentStatus = AssignmentStatus.ACTIVE
    expires_at: Optional[datetime] = None
    notes: Optional[str] = None
    metadata: AssignmentMetadata = AssignmentMetadata()
    device_count: int = Field(default=0, ge=0)
    last_used_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    revoked_by: Optional[str] = None
