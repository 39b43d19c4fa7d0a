"""
Audit log document model.

Maps to the `audit_logs` MongoDB collection. Written for key assignment,
assignment revocation, device activation and device revocation.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from schemas.models.base import MongoBaseModel

ACTION_ASSIGN_KEY = "assign_key"
ACTION_UPDATE_ASSIGNMENT = "update_assignment"
ACTION_REVOKE_ASSIGNMENT = "revoke_key"
ACTION_DELETE_ASSIGNMENT = "delete_assignment"
ACTION_DEVICE_ACTIVATION = "device_activation"
ACTION_REVOKE_DEVICE = "revoke_device_access"


class AuditLogDoc(MongoBaseModel):
    """Document model for the `audit_logs` collection."""

    action: str
    actor_id: str
    resource_type: str
    resource_id: str
    details: dict[str, Any] = {}
    timestamp: Optional[datetime] = None
