"""
Credential document model.

Maps to the `credentials` MongoDB collection. Values are opaque strings owned
by exactly one user; every query is scoped by user_id.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from schemas.models.base import MongoBaseModel, PyObjectId


class CredentialDoc(MongoBaseModel):
    """Document model for the `credentials` collection."""

    user_id: PyObjectId
    title: str
    username: str
    password: str
    url: str = ""
    notes: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
