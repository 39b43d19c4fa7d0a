"""
Session refresh flow, run after a successful username/password login, plus the
explicit activation step that creates a device binding.

resume() never binds a new device. A user whose assignment has no active
device of theirs gets ``activated=False`` and must call activate().
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from errors import AccessDenied
from repositories.key_store import KeyStore
from schemas.models.activation_key import ActivationKeyDoc, DeviceDoc, DeviceInfo
from schemas.models.assignment import AssignmentDoc
from schemas.models.user import UserDoc, UserRole
from services.access_validator import (
    AccessValidator,
    DenyReason,
    check_assignment,
    check_key,
)
from services.device_binding import DeviceBindingManager
from services.token_codec import SessionClaims, TokenCodec
from shared.datetime_utils import utcnow
from shared.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class SessionResume:
    activated: bool
    token: Optional[str] = None
    reason: Optional[DenyReason] = None
    assignment_id: Optional[str] = None
    device_id: Optional[str] = None


@dataclass(frozen=True)
class ActivationResult:
    token: str
    device: DeviceDoc
    key: ActivationKeyDoc
    assignment: AssignmentDoc


def _latest_device(devices: list[DeviceDoc]) -> Optional[DeviceDoc]:
    if not devices:
        return None
    return max(devices, key=lambda d: d.last_active_at or d.registered_at)


class SessionRefreshFlow:
    def __init__(
        self,
        store: KeyStore,
        codec: TokenCodec,
        validator: AccessValidator,
        bindings: DeviceBindingManager,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._codec = codec
        self._validator = validator
        self._bindings = bindings
        self._clock = clock

    async def resume(self, user: UserDoc) -> SessionResume:
        """Reissue a session token for an already-activated USER account."""
        if UserRole(user.role) != UserRole.USER:
            return SessionResume(activated=False)

        now = self._clock()
        user_id = str(user.id)

        assignment = await self._store.find_active_assignment_for_user(user.id)
        reason = check_assignment(assignment, now)
        if reason is not None:
            return self._not_activated(user_id, reason, assignment)

        key = await self._store.get_key_by_id(assignment.key_id)
        reason = check_key(key, now)
        if reason is not None:
            return self._not_activated(user_id, reason, assignment)

        mine = [
            device
            for device in key.active_devices_for(assignment.id)
            if str(device.user_id) == user_id
        ]
        device = _latest_device(mine)
        if device is None:
            return self._not_activated(user_id, DenyReason.DEVICE_NOT_REGISTERED, assignment)

        await self._bindings.touch_last_active(key, device.device_id, assignment.id)
        token = self._codec.issue(
            SessionClaims(
                device_id=device.device_id,
                activation_key=key.key,
                user_id=user_id,
                assignment_id=str(assignment.id),
            )
        )
        log.info(
            "session_resumed",
            user_id=user_id,
            assignment_id=str(assignment.id),
            device_id=device.device_id,
        )
        return SessionResume(
            activated=True,
            token=token,
            assignment_id=str(assignment.id),
            device_id=device.device_id,
        )

    async def activate(
        self,
        user_id: str,
        activation_key: str,
        device_id: str,
        device_info: Optional[DeviceInfo] = None,
    ) -> ActivationResult:
        """Validate the key for this user, bind the device and issue a session token.

        Raises AccessDenied on any policy denial.
        """
        decision = await self._validator.validate(activation_key, device_id, user_id)
        if not decision.allowed:
            raise AccessDenied(decision.reason, requires_reactivation=False)

        key, assignment = decision.key, decision.assignment
        device = await self._bindings.bind(key, assignment, device_id, user_id, device_info)
        token = self._codec.issue(
            SessionClaims(
                device_id=device_id,
                activation_key=key.key,
                user_id=user_id,
                assignment_id=str(assignment.id),
            )
        )
        return ActivationResult(token=token, device=device, key=key, assignment=assignment)

    def _not_activated(
        self,
        user_id: str,
        reason: DenyReason,
        assignment: Optional[AssignmentDoc],
    ) -> SessionResume:
        assignment_id = str(assignment.id) if assignment is not None else None
        log.info("session_not_activated", user_id=user_id, reason=reason.value)
        return SessionResume(activated=False, reason=reason, assignment_id=assignment_id)
