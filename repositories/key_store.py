"""
Key/assignment store.

KeyStore is the protocol the access validator, the device binding manager and
the session refresh flow depend on. MongoKeyStore implements it over an
injected async database handle; the connection lifecycle belongs to the app
lifespan, not to this module.

Device mutations are single-document updates on `activation_keys`:
- append_device() is conditional on the key's `revision`, so a limit check
  made against a stale read can never be committed.
- set_device_active() / touch_device() address one (device_id, assignment_id)
  entry through array_filters rather than positional operators.

PyMongoError propagates to the caller unchanged.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from errors import ConflictError, DuplicateKeyAssignment
from schemas.models.activation_key import ActivationKeyDoc, DeviceDoc, DeviceInfo
from schemas.models.assignment import AssignmentDoc, AssignmentStatus
from schemas.models.base import to_object_id
from shared.datetime_utils import utcnow


KEYS_COLLECTION = "activation_keys"
ASSIGNMENTS_COLLECTION = "user_key_assignments"

DEPARTMENT_LIMIT = 10


class KeyStore(Protocol):
    async def get_key_by_value(self, key: str) -> Optional[ActivationKeyDoc]: ...

    async def get_key_by_id(self, key_id: Any) -> Optional[ActivationKeyDoc]: ...

    async def get_assignment(
        self, key_id: Any, user_id: Any, status: AssignmentStatus = AssignmentStatus.ACTIVE
    ) -> Optional[AssignmentDoc]: ...

    async def get_assignment_by_id(self, assignment_id: Any) -> Optional[AssignmentDoc]: ...

    async def get_assignment_for_key(self, key_id: Any) -> Optional[AssignmentDoc]: ...

    async def find_active_assignment_for_user(self, user_id: Any) -> Optional[AssignmentDoc]: ...

    async def append_device(
        self, key_id: Any, device: DeviceDoc, expected_revision: int
    ) -> bool: ...

    async def set_device_active(
        self,
        key_id: Any,
        device_id: str,
        assignment_id: Any,
        active: bool,
        *,
        expected_revision: Optional[int] = None,
        device_info: Optional[DeviceInfo] = None,
    ) -> bool: ...

    async def touch_device(self, key_id: Any, device_id: str, assignment_id: Any) -> bool: ...

    async def adjust_device_count(self, assignment_id: Any, delta: int) -> None: ...

    async def create_assignment(self, assignment: AssignmentDoc) -> AssignmentDoc: ...

    async def update_assignment(
        self, assignment_id: Any, fields: dict[str, Any]
    ) -> Optional[AssignmentDoc]: ...

    async def revoke_assignment(
        self, assignment_id: Any, revoked_by: str
    ) -> Optional[AssignmentDoc]: ...

    async def delete_assignment(self, assignment_id: Any) -> bool: ...

    async def list_assignments(
        self, status: Optional[AssignmentStatus] = None
    ) -> list[AssignmentDoc]: ...

    async def create_key(self, key: ActivationKeyDoc) -> ActivationKeyDoc: ...

    async def list_keys(self) -> list[ActivationKeyDoc]: ...

    async def update_key(self, key_id: Any, fields: dict[str, Any]) -> Optional[ActivationKeyDoc]: ...

    async def delete_key(self, key_id: Any) -> bool: ...

    async def usage_counts(self, department_limit: int = DEPARTMENT_LIMIT) -> dict[str, Any]: ...


def _device_filter(device_id: str, assignment_oid) -> dict:
    return {"device_id": device_id, "assignment_id": assignment_oid}


def _revision_filter(expected_revision: int):
    # Keys created before revisions existed have no field; they read back as 0
    if expected_revision == 0:
        return {"$in": [0, None]}
    return expected_revision


class MongoKeyStore:
    """KeyStore over the `activation_keys` and `user_key_assignments` collections."""

    def __init__(self, db) -> None:
        self._keys = db[KEYS_COLLECTION]
        self._assignments = db[ASSIGNMENTS_COLLECTION]

    # ── Keys ─────────────────────────────────────────────────────────────────

    async def get_key_by_value(self, key: str) -> Optional[ActivationKeyDoc]:
        return ActivationKeyDoc.from_mongo(await self._keys.find_one({"key": key}))

    async def get_key_by_id(self, key_id: Any) -> Optional[ActivationKeyDoc]:
        oid = to_object_id(key_id)
        if oid is None:
            return None
        return ActivationKeyDoc.from_mongo(await self._keys.find_one({"_id": oid}))

    async def create_key(self, key: ActivationKeyDoc) -> ActivationKeyDoc:
        try:
            result = await self._keys.insert_one(key.to_mongo())
        except DuplicateKeyError as e:
            raise ConflictError("Activation key already exists", field="key") from e
        return key.model_copy(update={"id": result.inserted_id})

    async def list_keys(self) -> list[ActivationKeyDoc]:
        cursor = self._keys.find({}).sort("created_at", -1)
        return [ActivationKeyDoc.from_mongo(doc) for doc in await cursor.to_list(length=None)]

    async def update_key(self, key_id: Any, fields: dict[str, Any]) -> Optional[ActivationKeyDoc]:
        oid = to_object_id(key_id)
        if oid is None:
            return None
        doc = await self._keys.find_one_and_update(
            {"_id": oid},
            {"$set": {**fields, "updated_at": utcnow()}, "$inc": {"revision": 1}},
            return_document=ReturnDocument.AFTER,
        )
        return ActivationKeyDoc.from_mongo(doc)

    async def delete_key(self, key_id: Any) -> bool:
        oid = to_object_id(key_id)
        if oid is None:
            return False
        result = await self._keys.delete_one({"_id": oid})
        return result.deleted_count == 1

    # ── Devices ──────────────────────────────────────────────────────────────

    async def append_device(
        self, key_id: Any, device: DeviceDoc, expected_revision: int
    ) -> bool:
        oid = to_object_id(key_id)
        if oid is None:
            return False
        result = await self._keys.update_one(
            {
                "_id": oid,
                "revision": _revision_filter(expected_revision),
                "devices": {
                    "$not": {
                        "$elemMatch": _device_filter(device.device_id, device.assignment_id)
                    }
                },
            },
            {
                "$push": {"devices": device.model_dump()},
                "$inc": {"used_devices": 1, "revision": 1},
                "$set": {"updated_at": utcnow()},
            },
        )
        return result.matched_count == 1

    async def set_device_active(
        self,
        key_id: Any,
        device_id: str,
        assignment_id: Any,
        active: bool,
        *,
        expected_revision: Optional[int] = None,
        device_info: Optional[DeviceInfo] = None,
    ) -> bool:
        oid = to_object_id(key_id)
        aid = to_object_id(assignment_id)
        if oid is None or aid is None:
            return False

        now = utcnow()
        query: dict[str, Any] = {
            "_id": oid,
            "devices": {"$elemMatch": _device_filter(device_id, aid)},
        }
        if expected_revision is not None:
            query["revision"] = _revision_filter(expected_revision)

        changes: dict[str, Any] = {"devices.$[d].is_active": active, "updated_at": now}
        if active:
            changes["devices.$[d].last_active_at"] = now
            changes["devices.$[d].revoked_at"] = None
        else:
            changes["devices.$[d].revoked_at"] = now
        if device_info is not None:
            changes["devices.$[d].device_info"] = device_info.model_dump()

        result = await self._keys.update_one(
            query,
            {"$set": changes, "$inc": {"revision": 1}},
            array_filters=[{"d.device_id": device_id, "d.assignment_id": aid}],
        )
        return result.matched_count == 1

    async def touch_device(self, key_id: Any, device_id: str, assignment_id: Any) -> bool:
        oid = to_object_id(key_id)
        aid = to_object_id(assignment_id)
        if oid is None or aid is None:
            return False
        now = utcnow()
        # No revision bump: a heartbeat must not invalidate a concurrent bind
        result = await self._keys.update_one(
            {"_id": oid, "devices": {"$elemMatch": _device_filter(device_id, aid)}},
            {"$set": {"devices.$[d].last_active_at": now}},
            array_filters=[{"d.device_id": device_id, "d.assignment_id": aid}],
        )
        return result.matched_count == 1

    # ── Assignments ──────────────────────────────────────────────────────────

    async def get_assignment(
        self, key_id: Any, user_id: Any, status: AssignmentStatus = AssignmentStatus.ACTIVE
    ) -> Optional[AssignmentDoc]:
        kid = to_object_id(key_id)
        uid = to_object_id(user_id)
        if kid is None or uid is None:
            return None
        doc = await self._assignments.find_one(
            {"key_id": kid, "user_id": uid, "status": AssignmentStatus(status).value}
        )
        return AssignmentDoc.from_mongo(doc)

    async def get_assignment_by_id(self, assignment_id: Any) -> Optional[AssignmentDoc]:
        aid = to_object_id(assignment_id)
        if aid is None:
            return None
        return AssignmentDoc.from_mongo(await self._assignments.find_one({"_id": aid}))

    async def get_assignment_for_key(self, key_id: Any) -> Optional[AssignmentDoc]:
        kid = to_object_id(key_id)
        if kid is None:
            return None
        return AssignmentDoc.from_mongo(await self._assignments.find_one({"key_id": kid}))

    async def find_active_assignment_for_user(self, user_id: Any) -> Optional[AssignmentDoc]:
        uid = to_object_id(user_id)
        if uid is None:
            return None
        doc = await self._assignments.find_one(
            {"user_id": uid, "status": AssignmentStatus.ACTIVE.value},
            sort=[("assigned_at", -1)],
        )
        return AssignmentDoc.from_mongo(doc)

    async def adjust_device_count(self, assignment_id: Any, delta: int) -> None:
        aid = to_object_id(assignment_id)
        if aid is None:
            return
        now = utcnow()
        changes: dict[str, Any] = {
            "device_count": {
                "$max": [0, {"$add": [{"$ifNull": ["$device_count", 0]}, delta]}]
            },
            "updated_at": now,
        }
        if delta > 0:
            changes["last_used_at"] = now
        await self._assignments.update_one({"_id": aid}, [{"$set": changes}])

    async def create_assignment(self, assignment: AssignmentDoc) -> AssignmentDoc:
        if await self._assignments.find_one({"key_id": assignment.key_id}, {"_id": 1}):
            raise DuplicateKeyAssignment(
                "This key is already assigned. Each key can only be assigned to one user.",
                field="key_id",
            )
        try:
            result = await self._assignments.insert_one(assignment.to_mongo())
        except DuplicateKeyError as e:
            # Lost the race against a concurrent assignment of the same key
            raise DuplicateKeyAssignment(
                "This key is already assigned. Each key can only be assigned to one user.",
                field="key_id",
            ) from e
        return assignment.model_copy(update={"id": result.inserted_id})

    async def update_assignment(
        self, assignment_id: Any, fields: dict[str, Any]
    ) -> Optional[AssignmentDoc]:
        aid = to_object_id(assignment_id)
        if aid is None:
            return None
        doc = await self._assignments.find_one_and_update(
            {"_id": aid},
            {"$set": {**fields, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        return AssignmentDoc.from_mongo(doc)

    async def revoke_assignment(
        self, assignment_id: Any, revoked_by: str
    ) -> Optional[AssignmentDoc]:
        now = utcnow()
        return await self.update_assignment(
            assignment_id,
            {
                "status": AssignmentStatus.REVOKED.value,
                "revoked_at": now,
                "revoked_by": revoked_by,
            },
        )

    async def delete_assignment(self, assignment_id: Any) -> bool:
        aid = to_object_id(assignment_id)
        if aid is None:
            return False
        result = await self._assignments.delete_one({"_id": aid})
        return result.deleted_count == 1

    async def list_assignments(
        self, status: Optional[AssignmentStatus] = None
    ) -> list[AssignmentDoc]:
        query: dict[str, Any] = {}
        if status is not None:
            query["status"] = AssignmentStatus(status).value
        cursor = self._assignments.find(query).sort("assigned_at", -1)
        return [AssignmentDoc.from_mongo(doc) for doc in await cursor.to_list(length=None)]

    # ── Statistics ───────────────────────────────────────────────────────────

    async def usage_counts(self, department_limit: int = DEPARTMENT_LIMIT) -> dict[str, Any]:
        """Key and assignment counts for the admin dashboard.

        `departments` holds the active assignments grouped by
        metadata.department, largest first; a missing department groups
        under None.
        """
        counts: dict[str, Any] = {
            "total_keys": await self._keys.count_documents({}),
            "active_keys": await self._keys.count_documents({"is_active": True}),
            "assigned_keys": len(await self._assignments.distinct("key_id")),
            "total_assignments": await self._assignments.count_documents({}),
        }
        for status in AssignmentStatus:
            counts[f"{status.value.lower()}_assignments"] = (
                await self._assignments.count_documents({"status": status.value})
            )

        cursor = await self._assignments.aggregate(
            [
                {"$match": {"status": AssignmentStatus.ACTIVE.value}},
                {"$group": {"_id": "$metadata.department", "count": {"$sum": 1}}},
                {"$sort": {"count": -1}},
                {"$limit": department_limit},
            ]
        )
        counts["departments"] = [
            (row["_id"], row["count"]) for row in await cursor.to_list(length=None)
        ]
        return counts
