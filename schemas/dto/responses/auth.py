"""
Response DTOs for authentication endpoints.

UserProfileResponse — user shape used in login/register/me
LoginResponse       — POST /auth/login  (200)
RegisterResponse    — POST /auth/register  (201)
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from schemas.models.user import UserDoc


class UserProfileResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    username: str
    email: str
    role: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    display_name: str
    last_login_at: Optional[datetime] = None

    @classmethod
    def from_doc(cls, user: UserDoc) -> "UserProfileResponse":
        return cls(
            id=str(user.id),
            username=user.username,
            email=user.email,
            role=str(getattr(user.role, "value", user.role)),
            first_name=user.first_name,
            last_name=user.last_name,
            display_name=user.display_name,
            last_login_at=user.last_login_at,
        )


class LoginResponse(BaseModel):
    """Response body for POST /auth/login (200).

    ``activated`` tells a USER whether a session token was reissued for an
    already-bound device; when False, ``reason`` says why and the client
    should go through POST /user/activate.
    """

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    user: UserProfileResponse
    activated: bool = False
    reason: Optional[str] = None


class RegisterResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    user: UserProfileResponse
