"""
User-facing vault endpoints.

POST   /user/activate                      — bind this device, issue user_token
PUT    /user/profile                       — update first/last name
GET    /user/validate-session              — polled by clients; 401/403 on failure
GET    /user/credentials                   — list own credentials
POST   /user/credentials                   — create one
POST   /user/credentials/bulk              — import up to 100
PATCH  /user/credentials/{credential_id}   — partial update
DELETE /user/credentials/{credential_id}

/activate and /profile need only an identity token. Everything else sits behind
require_session; credential queries are scoped by the user_id of the validated
session, never by the request body.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from config import AppSettings
from dependencies import (
    SessionContext,
    get_credential_repository,
    get_current_user,
    get_identity_service,
    get_session_flow,
    get_settings,
    require_session,
)
from errors import NotFoundError, ValidationError
from repositories.credential_repository import CredentialRepository
from schemas.dto.requests.user import (
    ActivateRequest,
    BulkCredentialRequest,
    CredentialCreateRequest,
    CredentialUpdateRequest,
    ProfileUpdateRequest,
)
from schemas.dto.responses.auth import UserProfileResponse
from schemas.dto.responses.common import MessageResponse
from schemas.dto.responses.user import (
    ActivateResponse,
    BulkImportResponse,
    CredentialListResponse,
    CredentialResponse,
    SessionStatusResponse,
)
from schemas.models.credential import CredentialDoc
from schemas.models.user import UserDoc
from services.identity import IdentityService
from services.session_flow import SessionRefreshFlow
from shared.datetime_utils import utcnow
from shared.ip_utils import device_info_from_request
from shared.logging import get_logger
from shared.token_transport import set_session_cookie

log = get_logger(__name__)

router = APIRouter(prefix="/user", tags=["user"])


def _new_credential(user_id: str, body: CredentialCreateRequest) -> CredentialDoc:
    now = utcnow()
    return CredentialDoc(
        user_id=user_id,
        title=body.title,
        username=body.username,
        password=body.password,
        url=body.url,
        notes=body.notes,
        created_at=now,
        updated_at=now,
    )


@router.post("/activate", response_model=ActivateResponse)
async def activate(
    body: ActivateRequest,
    request: Request,
    response: Response,
    user: UserDoc = Depends(get_current_user),
    flow: SessionRefreshFlow = Depends(get_session_flow),
    settings: AppSettings = Depends(get_settings),
) -> ActivateResponse:
    result = await flow.activate(
        str(user.id),
        body.activation_key.strip(),
        body.device_id,
        device_info_from_request(request, body.platform),
    )
    set_session_cookie(response, result.token, settings.jwt)
    return ActivateResponse(
        device_id=result.device.device_id,
        assignment_id=str(result.assignment.id),
        token=result.token,
    )


@router.put("/profile", response_model=UserProfileResponse)
async def update_profile(
    body: ProfileUpdateRequest,
    user: UserDoc = Depends(get_current_user),
    identity: IdentityService = Depends(get_identity_service),
) -> UserProfileResponse:
    updated = await identity.update_profile(user.id, body.first_name, body.last_name)
    return UserProfileResponse.from_doc(updated)


@router.get("/validate-session", response_model=SessionStatusResponse)
async def validate_session(
    session: SessionContext = Depends(require_session),
) -> SessionStatusResponse:
    return SessionStatusResponse(
        user_id=session.user_id,
        device_id=session.claims.device_id,
        assignment_id=session.claims.assignment_id,
        key_expires_at=session.key.expires_at,
        assignment_expires_at=session.assignment.expires_at,
    )


@router.get("/credentials", response_model=CredentialListResponse)
async def list_credentials(
    session: SessionContext = Depends(require_session),
    credentials: CredentialRepository = Depends(get_credential_repository),
) -> CredentialListResponse:
    docs = await credentials.list_for_user(session.user_id)
    return CredentialListResponse(
        credentials=[CredentialResponse.from_doc(doc) for doc in docs],
        total=len(docs),
    )


@router.post("/credentials", response_model=CredentialResponse, status_code=201)
async def create_credential(
    body: CredentialCreateRequest,
    session: SessionContext = Depends(require_session),
    credentials: CredentialRepository = Depends(get_credential_repository),
) -> CredentialResponse:
    created = await credentials.create(_new_credential(session.user_id, body))
    log.info("credential_created", user_id=session.user_id, credential_id=str(created.id))
    return CredentialResponse.from_doc(created)


@router.post("/credentials/bulk", response_model=BulkImportResponse, status_code=201)
async def bulk_import_credentials(
    body: BulkCredentialRequest,
    session: SessionContext = Depends(require_session),
    credentials: CredentialRepository = Depends(get_credential_repository),
) -> BulkImportResponse:
    imported = await credentials.create_many(
        [_new_credential(session.user_id, item) for item in body.credentials]
    )
    log.info("credentials_imported", user_id=session.user_id, count=imported)
    return BulkImportResponse(imported=imported)


@router.patch("/credentials/{credential_id}", response_model=CredentialResponse)
async def update_credential(
    credential_id: str,
    body: CredentialUpdateRequest,
    session: SessionContext = Depends(require_session),
    credentials: CredentialRepository = Depends(get_credential_repository),
) -> CredentialResponse:
    fields = body.model_dump(exclude_unset=True, exclude_none=True)
    if not fields:
        raise ValidationError("No fields to update")
    updated = await credentials.update(session.user_id, credential_id, fields)
    if updated is None:
        raise NotFoundError("Credential not found")
    return CredentialResponse.from_doc(updated)


@router.delete("/credentials/{credential_id}", response_model=MessageResponse)
async def delete_credential(
    credential_id: str,
    session: SessionContext = Depends(require_session),
    credentials: CredentialRepository = Depends(get_credential_repository),
) -> MessageResponse:
    if not await credentials.delete(session.user_id, credential_id):
        raise NotFoundError("Credential not found")
    log.info("credential_deleted", user_id=session.user_id, credential_id=credential_id)
    return MessageResponse(success=True, message="Credential deleted")
