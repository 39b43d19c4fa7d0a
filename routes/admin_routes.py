"""
Admin endpoints. Every route requires an identity token with role ADMIN.

GET    /admin/keys
POST   /admin/keys
PATCH  /admin/keys/{key_id}                  — activate / deactivate
DELETE /admin/keys/{key_id}                  — refused while assigned
POST   /admin/keys/{key_id}/revoke-device
GET    /admin/assignments?status=
POST   /admin/assignments                    — 409 if the key is already assigned
PATCH  /admin/assignments/{assignment_id}
DELETE /admin/assignments/{assignment_id}?hard=false
GET    /admin/users?search=
GET    /admin/statistics
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query

from dependencies import get_admin_service, require_admin
from errors import ValidationError
from schemas.dto.requests.admin import (
    CreateAssignmentRequest,
    CreateKeyRequest,
    RevokeDeviceRequest,
    UpdateAssignmentRequest,
    UpdateKeyRequest,
)
from schemas.dto.responses.admin import (
    AssignmentListResponse,
    AssignmentResponse,
    DeviceResponse,
    KeyListResponse,
    KeyResponse,
    StatisticsResponse,
    UserListResponse,
    UserSummaryResponse,
)
from schemas.dto.responses.common import MessageResponse
from schemas.models.assignment import AssignmentStatus
from schemas.models.user import UserDoc
from services.admin import AdminService
from shared.datetime_utils import parse_expiry

router = APIRouter(prefix="/admin", tags=["admin"])


def _expiry(value: Optional[str], field: str):
    if value is None or value == "":
        return None
    parsed = parse_expiry(value)
    if parsed is None:
        raise ValidationError("Invalid date", field=field)
    return parsed


# ── Keys ─────────────────────────────────────────────────────────────────────


@router.get("/keys", response_model=KeyListResponse)
async def list_keys(
    admin: UserDoc = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
) -> KeyListResponse:
    keys = await service.list_keys()
    return KeyListResponse(keys=[KeyResponse.from_doc(key) for key in keys])


@router.post("/keys", response_model=KeyResponse, status_code=201)
async def create_key(
    body: CreateKeyRequest,
    admin: UserDoc = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
) -> KeyResponse:
    key = await service.create_key(
        body.device_limit,
        created_by=str(admin.id),
        description=body.description,
        expires_at=_expiry(body.expires_at, "expires_at"),
        metadata=body.metadata,
    )
    return KeyResponse.from_doc(key)


@router.patch("/keys/{key_id}", response_model=KeyResponse)
async def update_key(
    key_id: str,
    body: UpdateKeyRequest,
    admin: UserDoc = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
) -> KeyResponse:
    key = await service.set_key_active(key_id, body.is_active)
    return KeyResponse.from_doc(key)


@router.delete("/keys/{key_id}", response_model=MessageResponse)
async def delete_key(
    key_id: str,
    admin: UserDoc = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
) -> MessageResponse:
    await service.delete_key(key_id)
    return MessageResponse(success=True, message="Activation key deleted")


@router.post("/keys/{key_id}/revoke-device", response_model=DeviceResponse)
async def revoke_device(
    key_id: str,
    body: RevokeDeviceRequest,
    admin: UserDoc = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
) -> DeviceResponse:
    device = await service.revoke_device(
        key_id, body.device_id, body.assignment_id, admin_id=str(admin.id)
    )
    return DeviceResponse.from_doc(device)


# ── Assignments ──────────────────────────────────────────────────────────────


@router.get("/assignments", response_model=AssignmentListResponse)
async def list_assignments(
    status: Optional[AssignmentStatus] = Query(default=None),
    admin: UserDoc = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
) -> AssignmentListResponse:
    assignments = await service.list_assignments(status)
    return AssignmentListResponse(
        assignments=[AssignmentResponse.from_doc(a) for a in assignments]
    )


@router.post("/assignments", response_model=AssignmentResponse, status_code=201)
async def create_assignment(
    body: CreateAssignmentRequest,
    admin: UserDoc = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
) -> AssignmentResponse:
    assignment = await service.assign_key(
        body.user_id,
        body.key_id,
        assigned_by=str(admin.id),
        expires_at=_expiry(body.expires_at, "expires_at"),
        notes=body.notes,
        metadata=body.metadata,
    )
    return AssignmentResponse.from_doc(assignment)


@router.patch("/assignments/{assignment_id}", response_model=AssignmentResponse)
async def update_assignment(
    assignment_id: str,
    body: UpdateAssignmentRequest,
    admin: UserDoc = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
) -> AssignmentResponse:
    fields: dict[str, Any] = {}
    provided = body.model_fields_set
    if "status" in provided and body.status is not None:
        fields["status"] = AssignmentStatus(body.status).value
    if "expires_at" in provided:
        fields["expires_at"] = _expiry(body.expires_at, "expires_at")
    if "notes" in provided:
        fields["notes"] = body.notes
    if "metadata" in provided and body.metadata is not None:
        fields["metadata"] = body.metadata.model_dump()

    assignment = await service.update_assignment(
        assignment_id, fields, admin_id=str(admin.id)
    )
    return AssignmentResponse.from_doc(assignment)


@router.delete("/assignments/{assignment_id}", response_model=MessageResponse)
async def revoke_assignment(
    assignment_id: str,
    hard: bool = Query(default=False),
    admin: UserDoc = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
) -> MessageResponse:
    await service.revoke_assignment(assignment_id, admin_id=str(admin.id), hard=hard)
    message = "Assignment deleted" if hard else "Assignment revoked"
    return MessageResponse(success=True, message=message)


# ── Users and statistics ─────────────────────────────────────────────────────


@router.get("/users", response_model=UserListResponse)
async def list_users(
    search: Optional[str] = Query(default=None, max_length=100),
    admin: UserDoc = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
) -> UserListResponse:
    users = await service.list_users(search)
    return UserListResponse(
        users=[UserSummaryResponse.from_doc(u) for u in users], total=len(users)
    )


@router.get("/statistics", response_model=StatisticsResponse)
async def statistics(
    admin: UserDoc = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
) -> StatisticsResponse:
    return StatisticsResponse.model_validate(await service.statistics())
