"""
Response DTOs for the user-facing vault endpoints.

ActivateResponse        — POST /user/activate  (200)
SessionStatusResponse   — GET /user/validate-session  (200)
CredentialResponse      — credential entry
CredentialListResponse  — GET /user/credentials  (200)
BulkImportResponse      — POST /user/credentials/bulk  (201)
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from schemas.models.credential import CredentialDoc


class ActivateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    device_id: str
    assignment_id: str
    token: str


class SessionStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    valid: bool = True
    user_id: str
    device_id: str
    assignment_id: str
    key_expires_at: Optional[datetime] = None
    assignment_expires_at: Optional[datetime] = None


class CredentialResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    username: str
    password: str
    url: str = ""
    notes: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_doc(cls, credential: CredentialDoc) -> "CredentialResponse":
        return cls(
            id=str(credential.id),
            title=credential.title,
            username=credential.username,
            password=credential.password,
            url=credential.url,
            notes=credential.notes,
            created_at=credential.created_at,
            updated_at=credential.updated_at,
        )


class CredentialListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    credentials: list[CredentialResponse]
    total: int


class BulkImportResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    imported: int
