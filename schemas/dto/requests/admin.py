"""
Request DTOs for admin endpoints.

CreateKeyRequest         — POST /admin/keys
UpdateKeyRequest         — PATCH /admin/keys/{key_id}
RevokeDeviceRequest      — POST /admin/keys/{key_id}/revoke-device
CreateAssignmentRequest  — POST /admin/assignments
UpdateAssignmentRequest  — PATCH /admin/assignments/{assignment_id}

Expiry fields accept ISO 8601 strings or a bare ``YYYY-MM-DD`` date, which
means end of that day (UTC).
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from schemas.models.activation_key import KeyMetadata
from schemas.models.assignment import AssignmentMetadata, AssignmentStatus


class CreateKeyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    device_limit: int = Field(ge=1, le=100)
    description: Optional[str] = None
    expires_at: Optional[str] = None
    metadata: Optional[KeyMetadata] = None


class UpdateKeyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_active: bool


class RevokeDeviceRequest(BaseModel):
    """Request body for POST /admin/keys/{key_id}/revoke-device.

    Without ``assignment_id`` the first device with ``device_id`` is revoked.
    """

    model_config = ConfigDict(populate_by_name=True)

    device_id: str = Field(min_length=1)
    assignment_id: Optional[str] = None


class CreateAssignmentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(min_length=1)
    key_id: str = Field(min_length=1)
    expires_at: Optional[str] = None
    notes: Optional[str] = None
    metadata: Optional[AssignmentMetadata] = None


class UpdateAssignmentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: Optional[AssignmentStatus] = None
    expires_at: Optional[str] = None
    notes: Optional[str] = None
    metadata: Optional[AssignmentMetadata] = None
