"""
Authentication endpoints.

POST /auth/register  — create a USER account
POST /auth/login     — password login; sets auth_token, and user_token when
                       an already-bound device can be resumed
POST /auth/logout    — clears both cookies
GET  /auth/me        — current account (identity token required)

Login never binds a new device: a USER without an active device gets
``activated: false`` and must go through POST /user/activate.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from config import AppSettings
from dependencies import (
    get_current_user,
    get_identity_service,
    get_session_flow,
    get_settings,
    get_token_codec,
)
from schemas.dto.requests.auth import LoginRequest, RegisterRequest
from schemas.dto.responses.auth import LoginResponse, RegisterResponse, UserProfileResponse
from schemas.dto.responses.common import MessageResponse
from schemas.models.user import UserDoc
from services.identity import IdentityService
from services.session_flow import SessionRefreshFlow
from services.token_codec import TokenCodec
from shared.token_transport import clear_auth_cookies, set_identity_cookie, set_session_cookie

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(
    body: RegisterRequest,
    identity: IdentityService = Depends(get_identity_service),
) -> RegisterResponse:
    user = await identity.register(
        username=body.username,
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    return RegisterResponse(user=UserProfileResponse.from_doc(user))


@router.post("/login", response_model=LoginResponse)
async def login(
    body: LoginRequest,
    response: Response,
    identity: IdentityService = Depends(get_identity_service),
    flow: SessionRefreshFlow = Depends(get_session_flow),
    codec: TokenCodec = Depends(get_token_codec),
    settings: AppSettings = Depends(get_settings),
) -> LoginResponse:
    user = await identity.authenticate(body.username, body.password)
    set_identity_cookie(response, codec.issue_identity(user), settings.jwt)
    response.headers["Cache-Control"] = "no-store"

    resumed = await flow.resume(user)
    if resumed.activated:
        set_session_cookie(response, resumed.token, settings.jwt)

    return LoginResponse(
        user=UserProfileResponse.from_doc(user),
        activated=resumed.activated,
        reason=resumed.reason.value if resumed.reason is not None else None,
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(
    response: Response, settings: AppSettings = Depends(get_settings)
) -> MessageResponse:
    clear_auth_cookies(response, settings.jwt)
    return MessageResponse(success=True, message="Logged out")


@router.get("/me", response_model=UserProfileResponse)
async def me(user: UserDoc = Depends(get_current_user)) -> UserProfileResponse:
    return UserProfileResponse.from_doc(user)
