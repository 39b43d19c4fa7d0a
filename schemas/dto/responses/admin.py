"""
Response DTOs for admin endpoints.

DeviceResponse          — device entry inside KeyResponse
KeyResponse             — activation key  (GET/POST/PATCH /admin/keys)
KeyListResponse         — GET /admin/keys
AssignmentResponse      — assignment  (GET/POST/PATCH /admin/assignments)
AssignmentListResponse  — GET /admin/assignments
UserSummaryResponse     — account entry inside UserListResponse
UserListResponse        — GET /admin/users
StatisticsResponse      — GET /admin/statistics
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from schemas.models.activation_key import ActivationKeyDoc, DeviceDoc, DeviceInfo, KeyMetadata
from schemas.models.assignment import AssignmentDoc, AssignmentMetadata
from schemas.models.user import UserDoc


class DeviceResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    device_id: str
    user_id: str
    assignment_id: str
    registered_at: datetime
    last_active_at: Optional[datetime] = None
    is_active: bool
    revoked_at: Optional[datetime] = None
    device_info: DeviceInfo

    @classmethod
    def from_doc(cls, device: DeviceDoc) -> "DeviceResponse":
        return cls(
            device_id=device.device_id,
            user_id=str(device.user_id),
            assignment_id=str(device.assignment_id),
            registered_at=device.registered_at,
            last_active_at=device.last_active_at,
            is_active=device.active,
            revoked_at=device.revoked_at,
            device_info=device.device_info,
        )


class KeyResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    key: str
    device_limit: int
    used_devices: int
    active_devices: int
    is_active: bool
    expires_at: Optional[datetime] = None
    description: Optional[str] = None
    created_by: Optional[str] = None
    metadata: KeyMetadata
    devices: list[DeviceResponse]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_doc(cls, key: ActivationKeyDoc) -> "KeyResponse":
        return cls(
            id=str(key.id),
            key=key.key,
            device_limit=key.device_limit,
            used_devices=key.used_devices,
            active_devices=sum(1 for d in key.devices if d.active),
            is_active=key.is_active,
            expires_at=key.expires_at,
            description=key.description,
            created_by=key.created_by,
            metadata=key.metadata,
            devices=[DeviceResponse.from_doc(d) for d in key.devices],
            created_at=key.created_at,
            updated_at=key.updated_at,
        )


class KeyListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    keys: list[KeyResponse]


class AssignmentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    user_id: str
    key_id: str
    assigned_at: datetime
    assigned_by: str
    status: str
    expires_at: Optional[datetime] = None
    notes: Optional[str] = None
    metadata: AssignmentMetadata
    device_count: int
    last_used_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    revoked_by: Optional[str] = None

    @classmethod
    def from_doc(cls, assignment: AssignmentDoc) -> "AssignmentResponse":
        return cls(
            id=str(assignment.id),
            user_id=str(assignment.user_id),
            key_id=str(assignment.key_id),
            assigned_at=assignment.assigned_at,
            assigned_by=assignment.assigned_by,
            status=str(getattr(assignment.status, "value", assignment.status)),
            expires_at=assignment.expires_at,
            notes=assignment.notes,
            metadata=assignment.metadata,
            device_count=assignment.device_count,
            last_used_at=assignment.last_used_at,
            revoked_at=assignment.revoked_at,
            revoked_by=assignment.revoked_by,
        )


class AssignmentListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    assignments: list[AssignmentResponse]


class UserSummaryResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    username: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None

    @classmethod
    def from_doc(cls, user: UserDoc) -> "UserSummaryResponse":
        return cls(
            id=str(user.id),
            username=user.username,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            is_active=user.is_active,
            created_at=user.created_at,
            last_login_at=user.last_login_at,
        )


class UserListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    users: list[UserSummaryResponse]
    total: int


class StatisticsOverview(BaseModel):
    total_users: int
    active_users: int
    total_keys: int
    active_keys: int
    assigned_keys: int
    unassigned_keys: int
    total_assignments: int
    active_assignments: int
    expired_assignments: int
    revoked_assignments: int


class DepartmentCount(BaseModel):
    department: str
    count: int


class StatisticsResponse(BaseModel):
    """Dashboard counts. Rates are whole percentages."""

    model_config = ConfigDict(populate_by_name=True)

    overview: StatisticsOverview
    departments: list[DepartmentCount]
    utilization_rate: int
    user_engagement: int
