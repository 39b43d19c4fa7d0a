"""Append-only audit trail over the `audit_logs` collection."""

from __future__ import annotations

from typing import Any, Optional, Protocol

from schemas.models.audit import AuditLogDoc
from shared.datetime_utils import utcnow

AUDIT_COLLECTION = "audit_logs"


class AuditLog(Protocol):
    async def record(
        self,
        action: str,
        *,
        actor_id: str,
        resource_type: str,
        resource_id: Any,
        details: Optional[dict[str, Any]] = None,
    ) -> None: ...


class AuditRepository:
    def __init__(self, db) -> None:
        self._audit = db[AUDIT_COLLECTION]

    async def record(
        self,
        action: str,
        *,
        actor_id: str,
        resource_type: str,
        resource_id: Any,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        entry = AuditLogDoc(
            action=action,
            actor_id=str(actor_id),
            resource_type=resource_type,
            resource_id=str(resource_id),
            details=details or {},
            timestamp=utcnow(),
        )
        await self._audit.insert_one(entry.to_mongo())
