"""
Device binding manager.

Per (device_id, assignment_id) pair: UNREGISTERED → ACTIVE → REVOKED, with
ACTIVE → ACTIVE (reactivation / heartbeat) and REVOKED → ACTIVE (a later bind)
both legal.

bind() never trusts the caller's copy of the key: every write, including the
refresh of an already active pair, is conditional on the key revision it was
checked against. A lost race is retried once against a fresh read, then
surfaced as DEVICE_LIMIT_REACHED.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from errors import AccessDenied, ConflictError, NotFoundError
from repositories.audit_repository import AuditLog
from repositories.key_store import KeyStore
from schemas.models.activation_key import ActivationKeyDoc, DeviceDoc, DeviceInfo
from schemas.models.assignment import AssignmentDoc
from schemas.models.audit import ACTION_DEVICE_ACTIVATION, ACTION_REVOKE_DEVICE
from services.access_validator import DenyReason
from shared.datetime_utils import utcnow
from shared.logging import get_logger, should_sample

log = get_logger(__name__)

MAX_WRITE_ATTEMPTS = 2


class DeviceBindingManager:
    def __init__(
        self,
        store: KeyStore,
        audit: Optional[AuditLog] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._audit = audit
        self._clock = clock

    async def bind(
        self,
        key: ActivationKeyDoc,
        assignment: AssignmentDoc,
        device_id: str,
        user_id: str,
        device_info: Optional[DeviceInfo] = None,
    ) -> DeviceDoc:
        """Register *device_id* under *assignment*, or reactivate it if known.

        Raises AccessDenied(DEVICE_LIMIT_REACHED) when a new or revoked device
        would push the assignment over the key's device limit.
        """
        current: Optional[ActivationKeyDoc] = key
        for attempt in range(MAX_WRITE_ATTEMPTS):
            if attempt:
                current = await self._store.get_key_by_id(key.id)
                if current is None:
                    raise AccessDenied(DenyReason.KEY_NOT_FOUND)

            existing = current.find_device(device_id, assignment.id)
            if existing is not None and existing.active:
                device = await self._refresh(current, existing, device_info)
            elif len(current.active_devices_for(assignment.id)) >= current.device_limit:
                break
            elif existing is not None:
                device = await self._reactivate(current, assignment, existing, device_info)
            else:
                device = await self._append(current, assignment, device_id, user_id, device_info)
            if device is not None:
                return device

            log.info(
                "device_bind_conflict",
                key_id=str(key.id),
                assignment_id=str(assignment.id),
                device_id=device_id,
                attempt=attempt + 1,
            )

        log.warning(
            "device_limit_reached",
            key_id=str(key.id),
            assignment_id=str(assignment.id),
            device_id=device_id,
            device_limit=current.device_limit,
        )
        raise AccessDenied(
            DenyReason.DEVICE_LIMIT_REACHED, requires_reactivation=False
        )

    async def revoke(
        self, key: ActivationKeyDoc, device_id: str, assignment_id, actor_id: str = "admin"
    ) -> DeviceDoc:
        """Mark the pair revoked. The device record itself is kept for audit."""
        current: Optional[ActivationKeyDoc] = key
        for attempt in range(MAX_WRITE_ATTEMPTS):
            if attempt:
                current = await self._store.get_key_by_id(key.id)
                if current is None:
                    raise NotFoundError("Activation key not found")

            device = current.find_device(device_id, assignment_id)
            if device is None:
                raise NotFoundError("Device not found")
            if not device.active:
                return device

            revoked = await self._store.set_device_active(
                current.id,
                device_id,
                assignment_id,
                False,
                expected_revision=current.revision,
            )
            if revoked:
                await self._store.adjust_device_count(assignment_id, -1)
                if self._audit is not None:
                    await self._audit.record(
                        ACTION_REVOKE_DEVICE,
                        actor_id=actor_id,
                        resource_type="device_revocation",
                        resource_id=device_id,
                        details={"key_id": str(current.id), "assignment_id": str(assignment_id)},
                    )
                log.info(
                    "device_revoked",
                    key_id=str(current.id),
                    assignment_id=str(assignment_id),
                    device_id=device_id,
                )
                return device.model_copy(update={"is_active": False, "revoked_at": self._clock()})

        raise ConflictError("Device was modified concurrently, try again")

    async def touch_last_active(
        self, key: ActivationKeyDoc, device_id: str, assignment_id
    ) -> None:
        """Best-effort heartbeat; never raises."""
        try:
            touched = await self._store.touch_device(key.id, device_id, assignment_id)
        except Exception as e:
            log.warning(
                "device_touch_failed",
                key_id=str(key.id),
                device_id=device_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return
        if should_sample("device_touch"):
            log.debug("device_touched", key_id=str(key.id), device_id=device_id, touched=touched)

    # ── Internals ────────────────────────────────────────────────────────────

    async def _refresh(
        self,
        key: ActivationKeyDoc,
        device: DeviceDoc,
        device_info: Optional[DeviceInfo],
    ) -> Optional[DeviceDoc]:
        updated = await self._store.set_device_active(
            key.id,
            device.device_id,
            device.assignment_id,
            True,
            expected_revision=key.revision,
            device_info=device_info,
        )
        if not updated:
            return None
        return device.model_copy(
            update={
                "is_active": True,
                "last_active_at": self._clock(),
                "device_info": device_info or device.device_info,
            }
        )

    async def _reactivate(
        self,
        key: ActivationKeyDoc,
        assignment: AssignmentDoc,
        device: DeviceDoc,
        device_info: Optional[DeviceInfo],
    ) -> Optional[DeviceDoc]:
        updated = await self._store.set_device_active(
            key.id,
            device.device_id,
            assignment.id,
            True,
            expected_revision=key.revision,
            device_info=device_info,
        )
        if not updated:
            return None
        await self._store.adjust_device_count(assignment.id, 1)
        await self._record_activation(key, assignment, device.device_id, device.user_id, reactivated=True)
        log.info(
            "device_reactivated",
            key_id=str(key.id),
            assignment_id=str(assignment.id),
            device_id=device.device_id,
        )
        return device.model_copy(
            update={
                "is_active": True,
                "revoked_at": None,
                "last_active_at": self._clock(),
                "device_info": device_info or device.device_info,
            }
        )

    async def _append(
        self,
        key: ActivationKeyDoc,
        assignment: AssignmentDoc,
        device_id: str,
        user_id: str,
        device_info: Optional[DeviceInfo],
    ) -> Optional[DeviceDoc]:
        now = self._clock()
        device = DeviceDoc(
            device_id=device_id,
            user_id=user_id,
            assignment_id=assignment.id,
            registered_at=now,
            last_active_at=now,
            is_active=True,
            device_info=device_info or DeviceInfo(),
        )
        if not await self._store.append_device(key.id, device, key.revision):
            return None
        await self._store.adjust_device_count(assignment.id, 1)
        await self._record_activation(key, assignment, device_id, user_id, reactivated=False)
        log.info(
            "device_bound",
            key_id=str(key.id),
            assignment_id=str(assignment.id),
            device_id=device_id,
            user_id=str(user_id),
        )
        return device

    async def _record_activation(
        self, key, assignment, device_id: str, user_id, *, reactivated: bool
    ) -> None:
        if self._audit is None:
            return
        await self._audit.record(
            ACTION_DEVICE_ACTIVATION,
            actor_id=str(user_id),
            resource_type="device_activation",
            resource_id=device_id,
            details={
                "key_id": str(key.id),
                "assignment_id": str(assignment.id),
                "reactivated": reactivated,
            },
        )
