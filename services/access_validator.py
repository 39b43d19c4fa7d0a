"""
Access validator — decides ALLOW / DENY for an (activation key, device, user)
tuple.

Evaluation is an ordered short-circuit so the reported reason is
deterministic:

    1. key exists                      KEY_NOT_FOUND
    2. key is active                   KEY_INACTIVE
    3. key not expired (+ grace)       KEY_EXPIRED
    4. ACTIVE assignment for the user  NO_ASSIGNMENT
    5. assignment not expired (+grace) ASSIGNMENT_EXPIRED
    6. device capacity                 DEVICE_LIMIT_REACHED
    7. ALLOW

Without a user the legacy variant checks only membership in the key's device
list (DEVICE_NOT_REGISTERED / DEVICE_REVOKED) after steps 1–3.

The check_* functions are pure over already-fetched documents. AccessValidator
only adds the fetches, through the injected KeyStore, and the clock.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from repositories.key_store import KeyStore
from schemas.models.activation_key import ActivationKeyDoc
from schemas.models.assignment import AssignmentDoc, AssignmentStatus
from services.token_codec import SessionClaims
from shared.datetime_utils import is_expired, utcnow
from shared.logging import get_logger, should_sample

log = get_logger(__name__)


class DenyReason(str, Enum):
    KEY_NOT_FOUND = "KEY_NOT_FOUND"
    KEY_INACTIVE = "KEY_INACTIVE"
    KEY_EXPIRED = "KEY_EXPIRED"
    NO_ASSIGNMENT = "NO_ASSIGNMENT"
    ASSIGNMENT_EXPIRED = "ASSIGNMENT_EXPIRED"
    DEVICE_LIMIT_REACHED = "DEVICE_LIMIT_REACHED"
    DEVICE_NOT_REGISTERED = "DEVICE_NOT_REGISTERED"
    DEVICE_REVOKED = "DEVICE_REVOKED"

    @property
    def message(self) -> str:
        return _MESSAGES[self]


_MESSAGES = {
    DenyReason.KEY_NOT_FOUND: "Activation key not found",
    DenyReason.KEY_INACTIVE: "Activation key is deactivated",
    DenyReason.KEY_EXPIRED: "Activation key has expired",
    DenyReason.NO_ASSIGNMENT: "This key is not assigned to you or the assignment is inactive",
    DenyReason.ASSIGNMENT_EXPIRED: "Your key assignment has expired",
    DenyReason.DEVICE_LIMIT_REACHED: "Device limit reached for your key assignment",
    DenyReason.DEVICE_NOT_REGISTERED: "Device not registered with this key",
    DenyReason.DEVICE_REVOKED: "Device access has been revoked",
}


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: Optional[DenyReason] = None
    key: Optional[ActivationKeyDoc] = None
    assignment: Optional[AssignmentDoc] = None

    @classmethod
    def allow(
        cls, key: ActivationKeyDoc, assignment: Optional[AssignmentDoc] = None
    ) -> "AccessDecision":
        return cls(allowed=True, key=key, assignment=assignment)

    @classmethod
    def deny(
        cls,
        reason: DenyReason,
        key: Optional[ActivationKeyDoc] = None,
        assignment: Optional[AssignmentDoc] = None,
    ) -> "AccessDecision":
        return cls(allowed=False, reason=reason, key=key, assignment=assignment)

    def __bool__(self) -> bool:
        return self.allowed


# ── Pure checks ──────────────────────────────────────────────────────────────


def check_key(key: Optional[ActivationKeyDoc], now: datetime) -> Optional[DenyReason]:
    if key is None:
        return DenyReason.KEY_NOT_FOUND
    if not key.is_active:
        return DenyReason.KEY_INACTIVE
    if is_expired(key.expires_at, now):
        return DenyReason.KEY_EXPIRED
    return None


def check_assignment(
    assignment: Optional[AssignmentDoc], now: datetime
) -> Optional[DenyReason]:
    if assignment is None or assignment.status != AssignmentStatus.ACTIVE:
        return DenyReason.NO_ASSIGNMENT
    if is_expired(assignment.expires_at, now):
        return DenyReason.ASSIGNMENT_EXPIRED
    return None


def check_device_capacity(
    key: ActivationKeyDoc, assignment: AssignmentDoc, device_id: Optional[str]
) -> Optional[DenyReason]:
    """Deny only a *new* device once the assignment is at its limit.

    A device already bound and active under the assignment always passes.
    """
    bound = {device.device_id for device in key.active_devices_for(assignment.id)}
    if len(bound) >= key.device_limit and device_id not in bound:
        return DenyReason.DEVICE_LIMIT_REACHED
    return None


def check_device_membership(
    key: ActivationKeyDoc, device_id: Optional[str], assignment_id=None
) -> Optional[DenyReason]:
    """Require *device_id* to be bound (under *assignment_id*, if given) and active."""
    if not device_id:
        return DenyReason.DEVICE_NOT_REGISTERED
    if assignment_id is None:
        device = key.find_device_any(device_id)
    else:
        device = key.find_device(device_id, assignment_id)
    if device is None:
        return DenyReason.DEVICE_NOT_REGISTERED
    if not device.active:
        return DenyReason.DEVICE_REVOKED
    return None


# ── Validator ────────────────────────────────────────────────────────────────


class AccessValidator:
    def __init__(self, store: KeyStore, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._clock = clock

    async def validate(
        self,
        activation_key: str,
        device_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> AccessDecision:
        now = self._clock()
        key = await self._store.get_key_by_value(activation_key)
        reason = check_key(key, now)
        if reason is not None:
            return self._denied(reason, key=key, user_id=user_id, device_id=device_id)

        if user_id is None:
            reason = check_device_membership(key, device_id)
            if reason is not None:
                return self._denied(reason, key=key, device_id=device_id)
            return AccessDecision.allow(key)

        assignment = await self._store.get_assignment(key.id, user_id, AssignmentStatus.ACTIVE)
        reason = check_assignment(assignment, now)
        if reason is None and device_id is not None:
            reason = check_device_capacity(key, assignment, device_id)
        if reason is not None:
            return self._denied(
                reason, key=key, assignment=assignment, user_id=user_id, device_id=device_id
            )
        return AccessDecision.allow(key, assignment)

    async def validate_session(self, claims: SessionClaims) -> AccessDecision:
        """Re-validate a verified session token on a protected request.

        On top of validate(), the assignment must be the one the token was
        issued under and the device must be bound and active beneath it.
        """
        decision = await self.validate(
            claims.activation_key, claims.device_id, claims.user_id
        )
        if not decision.allowed:
            return decision

        if str(decision.assignment.id) != claims.assignment_id:
            return self._denied(
                DenyReason.NO_ASSIGNMENT,
                key=decision.key,
                user_id=claims.user_id,
                device_id=claims.device_id,
            )

        reason = check_device_membership(
            decision.key, claims.device_id, decision.assignment.id
        )
        if reason is not None:
            return self._denied(
                reason,
                key=decision.key,
                assignment=decision.assignment,
                user_id=claims.user_id,
                device_id=claims.device_id,
            )

        if should_sample("session_validation"):
            log.info(
                "session_validated",
                user_id=claims.user_id,
                device_id=claims.device_id,
                assignment_id=claims.assignment_id,
            )
        return decision

    def _denied(
        self,
        reason: DenyReason,
        *,
        key: Optional[ActivationKeyDoc] = None,
        assignment: Optional[AssignmentDoc] = None,
        user_id: Optional[str] = None,
        device_id: Optional[str] = None,
    ) -> AccessDecision:
        log.warning(
            "access_denied",
            reason=reason.value,
            key_id=str(key.id) if key is not None else None,
            assignment_id=str(assignment.id) if assignment is not None else None,
            user_id=user_id,
            device_id=device_id,
        )
        return AccessDecision.deny(reason, key=key, assignment=assignment)
