"""
Request DTOs for the user-facing vault endpoints.

ActivateRequest           — POST /user/activate
CredentialCreateRequest   — POST /user/credentials
CredentialUpdateRequest   — PATCH /user/credentials/{credential_id}
BulkCredentialRequest     — POST /user/credentials/bulk
ProfileUpdateRequest      — PUT /user/profile
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

MAX_BULK_CREDENTIALS = 100


class ActivateRequest(BaseModel):
    """Request body for POST /user/activate.

    ``device_id`` is generated and persisted by the client (one per browser).
    """

    model_config = ConfigDict(populate_by_name=True)

    activation_key: str = Field(min_length=1, max_length=128)
    device_id: str = Field(min_length=1, max_length=128)
    platform: Optional[str] = None


class CredentialCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(min_length=1, max_length=200)
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    url: str = ""
    notes: str = ""


class CredentialUpdateRequest(BaseModel):
    """Request body for PATCH /user/credentials/{credential_id}.

    Only fields present in the body are changed.
    """

    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    username: Optional[str] = Field(default=None, min_length=1)
    password: Optional[str] = Field(default=None, min_length=1)
    url: Optional[str] = None
    notes: Optional[str] = None


class BulkCredentialRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    credentials: list[CredentialCreateRequest] = Field(
        min_length=1, max_length=MAX_BULK_CREDENTIALS
    )


class ProfileUpdateRequest(BaseModel):
    """Request body for PUT /user/profile. Omitted names are left unchanged."""

    model_config = ConfigDict(populate_by_name=True)

    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
