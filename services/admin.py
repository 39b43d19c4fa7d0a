"""
Admin operations over keys, assignments and devices.

Invariants enforced here rather than in the store:
- a key is deleted only when it has no assignment in any status;
- an assignment names an existing user and an existing key;
- device revocation goes through DeviceBindingManager so the assignment's
  device_count and the audit trail stay consistent.
"""

from __future__ import annotations

from typing import Any, Optional

from errors import ConflictError, NotFoundError, ValidationError
from repositories.audit_repository import AuditLog
from repositories.key_store import KeyStore
from repositories.user_repository import UserRepository
from schemas.models.activation_key import ActivationKeyDoc, DeviceDoc, KeyMetadata
from schemas.models.assignment import (
    AssignmentDoc,
    AssignmentMetadata,
    AssignmentStatus,
)
from schemas.models.audit import (
    ACTION_ASSIGN_KEY,
    ACTION_DELETE_ASSIGNMENT,
    ACTION_REVOKE_ASSIGNMENT,
    ACTION_UPDATE_ASSIGNMENT,
)
from schemas.models.user import UserDoc
from services.device_binding import DeviceBindingManager
from shared.datetime_utils import utcnow
from shared.generators import generate_activation_key
from shared.logging import get_logger

log = get_logger(__name__)

MIN_DEVICE_LIMIT = 1
MAX_DEVICE_LIMIT = 100
UNASSIGNED_DEPARTMENT = "Unassigned"


class AdminService:
    def __init__(
        self,
        store: KeyStore,
        users: UserRepository,
        bindings: DeviceBindingManager,
        audit: AuditLog,
    ) -> None:
        self._store = store
        self._users = users
        self._bindings = bindings
        self._audit = audit

    # ── Keys ─────────────────────────────────────────────────────────────────

    async def create_key(
        self,
        device_limit: int,
        *,
        created_by: str,
        description: Optional[str] = None,
        expires_at=None,
        metadata: Optional[KeyMetadata] = None,
    ) -> ActivationKeyDoc:
        if not MIN_DEVICE_LIMIT <= device_limit <= MAX_DEVICE_LIMIT:
            raise ValidationError(
                f"Device limit must be between {MIN_DEVICE_LIMIT} and {MAX_DEVICE_LIMIT}",
                field="device_limit",
            )
        now = utcnow()
        key = ActivationKeyDoc(
            key=generate_activation_key(),
            device_limit=device_limit,
            used_devices=0,
            is_active=True,
            expires_at=expires_at,
            description=description,
            created_by=created_by,
            metadata=metadata or KeyMetadata(),
            devices=[],
            revision=0,
            created_at=now,
            updated_at=now,
        )
        created = await self._store.create_key(key)
        log.info(
            "key_created",
            key_id=str(created.id),
            device_limit=device_limit,
            created_by=created_by,
        )
        return created

    async def list_keys(self) -> list[ActivationKeyDoc]:
        return await self._store.list_keys()

    async def set_key_active(self, key_id: Any, active: bool) -> ActivationKeyDoc:
        key = await self._store.update_key(key_id, {"is_active": active})
        if key is None:
            raise NotFoundError("Activation key not found")
        log.info("key_status_changed", key_id=str(key.id), is_active=active)
        return key

    async def delete_key(self, key_id: Any) -> None:
        key = await self._store.get_key_by_id(key_id)
        if key is None:
            raise NotFoundError("Activation key not found")
        if await self._store.get_assignment_for_key(key.id) is not None:
            raise ConflictError(
                "Cannot delete a key that has an assignment. Delete the assignment first."
            )
        await self._store.delete_key(key.id)
        log.info("key_deleted", key_id=str(key.id))

    # ── Assignments ──────────────────────────────────────────────────────────

    async def assign_key(
        self,
        user_id: Any,
        key_id: Any,
        *,
        assigned_by: str,
        expires_at=None,
        notes: Optional[str] = None,
        metadata: Optional[AssignmentMetadata] = None,
    ) -> AssignmentDoc:
        user = await self._users.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found", field="user_id")
        key = await self._store.get_key_by_id(key_id)
        if key is None:
            raise NotFoundError("Activation key not found", field="key_id")

        assignment = await self._store.create_assignment(
            AssignmentDoc(
                user_id=user.id,
                key_id=key.id,
                assigned_at=utcnow(),
                assigned_by=assigned_by,
                status=AssignmentStatus.ACTIVE,
                expires_at=expires_at,
                notes=notes,
                metadata=metadata or AssignmentMetadata(),
                device_count=0,
            )
        )
        await self._audit.record(
            ACTION_ASSIGN_KEY,
            actor_id=assigned_by,
            resource_type="user_key_assignment",
            resource_id=assignment.id,
            details={"user_id": str(user.id), "key_id": str(key.id), "key": key.key},
        )
        log.info(
            "key_assigned",
            assignment_id=str(assignment.id),
            user_id=str(user.id),
            key_id=str(key.id),
        )
        return assignment

    async def list_assignments(
        self, status: Optional[AssignmentStatus] = None
    ) -> list[AssignmentDoc]:
        return await self._store.list_assignments(status)

    async def update_assignment(
        self, assignment_id: Any, fields: dict[str, Any], *, admin_id: str
    ) -> AssignmentDoc:
        if not fields:
            raise ValidationError("No fields to update")
        assignment = await self._store.update_assignment(assignment_id, fields)
        if assignment is None:
            raise NotFoundError("Assignment not found")
        await self._audit.record(
            ACTION_UPDATE_ASSIGNMENT,
            actor_id=admin_id,
            resource_type="user_key_assignment",
            resource_id=assignment.id,
            details={"fields": sorted(fields)},
        )
        return assignment

    async def revoke_assignment(
        self, assignment_id: Any, *, admin_id: str, hard: bool = False
    ) -> Optional[AssignmentDoc]:
        """Revoke an assignment.

        By default the record is kept with status REVOKED. ``hard=True`` removes
        it, which also frees the key for a new assignment.
        """
        assignment = await self._store.get_assignment_by_id(assignment_id)
        if assignment is None:
            raise NotFoundError("Assignment not found")

        details = {"user_id": str(assignment.user_id), "key_id": str(assignment.key_id)}
        if hard:
            await self._store.delete_assignment(assignment.id)
            await self._audit.record(
                ACTION_DELETE_ASSIGNMENT,
                actor_id=admin_id,
                resource_type="user_key_assignment",
                resource_id=assignment.id,
                details=details,
            )
            log.info("assignment_deleted", assignment_id=str(assignment.id))
            return None

        revoked = await self._store.revoke_assignment(assignment.id, admin_id)
        await self._audit.record(
            ACTION_REVOKE_ASSIGNMENT,
            actor_id=admin_id,
            resource_type="user_key_assignment",
            resource_id=assignment.id,
            details=details,
        )
        log.info("assignment_revoked", assignment_id=str(assignment.id))
        return revoked

    # ── Devices ──────────────────────────────────────────────────────────────

    async def revoke_device(
        self,
        key_id: Any,
        device_id: str,
        assignment_id: Optional[Any] = None,
        *,
        admin_id: str,
    ) -> DeviceDoc:
        key = await self._store.get_key_by_id(key_id)
        if key is None:
            raise NotFoundError("Activation key not found")
        if assignment_id is None:
            device = key.find_device_any(device_id)
            if device is None:
                raise NotFoundError("Device not found")
            assignment_id = device.assignment_id
        return await self._bindings.revoke(key, device_id, assignment_id, actor_id=admin_id)

    # ── Users and statistics ─────────────────────────────────────────────────

    async def list_users(self, search: Optional[str] = None) -> list[UserDoc]:
        return await self._users.list_users(search.strip() if search else None)

    async def statistics(self) -> dict[str, Any]:
        counts = await self._store.usage_counts()
        total_users = await self._users.count_users()
        active_users = await self._users.count_users(active_only=True)
        total_keys = counts["total_keys"]
        assigned_keys = counts["assigned_keys"]

        overview = {
            "total_users": total_users,
            "active_users": active_users,
            "total_keys": total_keys,
            "active_keys": counts["active_keys"],
            "assigned_keys": assigned_keys,
            "unassigned_keys": max(0, total_keys - assigned_keys),
            "total_assignments": counts["total_assignments"],
            "active_assignments": counts["active_assignments"],
            "expired_assignments": counts["expired_assignments"],
            "revoked_assignments": counts["revoked_assignments"],
        }
        return {
            "overview": overview,
            "departments": [
                {"department": name or UNASSIGNED_DEPARTMENT, "count": count}
                for name, count in counts["departments"]
            ],
            "utilization_rate": _percent(assigned_keys, total_keys),
            "user_engagement": _percent(active_users, total_users),
        }


def _percent(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    # Half rounds up
    return (part * 200 + whole) // (2 * whole)
