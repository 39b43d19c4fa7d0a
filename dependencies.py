"""
FastAPI dependency providers.

All injectable dependencies are defined here as plain async functions
used with FastAPI's Depends() system. Stores and services are built per
request over the database handle the app lifespan put on app.state; none of
them hold a connection of their own.

Guards:
- require_session: verified session token + ALLOW from the access validator
- get_current_user: verified identity token for an active account
- require_admin: get_current_user with role ADMIN
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import BackgroundTasks, Depends, Request

from config import AppSettings
from errors import AccessDenied, AuthenticationError, ForbiddenError
from repositories.audit_repository import AuditRepository
from repositories.credential_repository import CredentialRepository
from repositories.key_store import MongoKeyStore
from repositories.user_repository import UserRepository
from schemas.models.activation_key import ActivationKeyDoc
from schemas.models.assignment import AssignmentDoc
from schemas.models.user import UserDoc, UserRole
from services.access_validator import AccessValidator
from services.admin import AdminService
from services.device_binding import DeviceBindingManager
from services.identity import IdentityService
from services.session_flow import SessionRefreshFlow
from services.token_codec import DecodedIdentity, DecodeFailure, SessionClaims, TokenCodec
from shared.logging import get_logger
from shared.token_transport import get_identity_token, get_session_token

log = get_logger(__name__)


def get_settings(request: Request) -> AppSettings:
    """Return the AppSettings instance stored on app.state."""
    return request.app.state.settings


async def get_db(request: Request):
    """Return the async MongoDB database from app.state."""
    return request.app.state.db


def get_token_codec(request: Request) -> TokenCodec:
    return request.app.state.token_codec


# ── Repositories ─────────────────────────────────────────────────────────────


async def get_key_store(db=Depends(get_db)) -> MongoKeyStore:
    return MongoKeyStore(db)


async def get_user_repository(db=Depends(get_db)) -> UserRepository:
    return UserRepository(db)


async def get_credential_repository(db=Depends(get_db)) -> CredentialRepository:
    return CredentialRepository(db)


async def get_audit_log(db=Depends(get_db)) -> AuditRepository:
    return AuditRepository(db)


# ── Services ─────────────────────────────────────────────────────────────────


async def get_access_validator(store=Depends(get_key_store)) -> AccessValidator:
    return AccessValidator(store)


async def get_binding_manager(
    store=Depends(get_key_store), audit=Depends(get_audit_log)
) -> DeviceBindingManager:
    return DeviceBindingManager(store, audit)


async def get_session_flow(
    store=Depends(get_key_store),
    codec: TokenCodec = Depends(get_token_codec),
    validator: AccessValidator = Depends(get_access_validator),
    bindings: DeviceBindingManager = Depends(get_binding_manager),
) -> SessionRefreshFlow:
    return SessionRefreshFlow(store, codec, validator, bindings)


async def get_identity_service(users=Depends(get_user_repository)) -> IdentityService:
    return IdentityService(users)


async def get_admin_service(
    store=Depends(get_key_store),
    users=Depends(get_user_repository),
    bindings: DeviceBindingManager = Depends(get_binding_manager),
    audit=Depends(get_audit_log),
) -> AdminService:
    return AdminService(store, users, bindings, audit)


# ── Guards ───────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SessionContext:
    """What a protected handler knows after the session guard ALLOWs."""

    claims: SessionClaims
    key: ActivationKeyDoc
    assignment: AssignmentDoc

    @property
    def user_id(self) -> str:
        return self.claims.user_id


async def require_session(
    request: Request,
    background_tasks: BackgroundTasks,
    codec: TokenCodec = Depends(get_token_codec),
    validator: AccessValidator = Depends(get_access_validator),
    bindings: DeviceBindingManager = Depends(get_binding_manager),
) -> SessionContext:
    """Verify the session token, then re-validate it against the store.

    401 when the token is missing or does not decode; 403 with a reason code
    when the store says no. On ALLOW the device's last_active_at is refreshed
    after the response is sent.
    """
    decoded = codec.verify(get_session_token(request))
    if isinstance(decoded, DecodeFailure):
        raise AuthenticationError(
            "Invalid or expired session token", details={"reason": decoded.reason.value}
        )

    decision = await validator.validate_session(decoded.claims)
    if not decision.allowed:
        raise AccessDenied(decision.reason)

    background_tasks.add_task(
        bindings.touch_last_active,
        decision.key,
        decoded.claims.device_id,
        decision.assignment.id,
    )
    return SessionContext(
        claims=decoded.claims, key=decision.key, assignment=decision.assignment
    )


async def require_identity(
    request: Request, codec: TokenCodec = Depends(get_token_codec)
) -> DecodedIdentity:
    decoded = codec.verify_identity(get_identity_token(request))
    if isinstance(decoded, DecodeFailure):
        raise AuthenticationError(
            "Authentication required", details={"reason": decoded.reason.value}
        )
    return decoded


async def get_current_user(
    identity: DecodedIdentity = Depends(require_identity),
    users: UserRepository = Depends(get_user_repository),
) -> UserDoc:
    user = await users.find_by_id(identity.user_id)
    if user is None or not user.is_active:
        raise AuthenticationError("Authentication required")
    return user


async def require_admin(user: UserDoc = Depends(get_current_user)) -> UserDoc:
    if UserRole(user.role) != UserRole.ADMIN:
        log.warning("admin_access_denied", user_id=str(user.id))
        raise ForbiddenError("Admin access required")
    return user
