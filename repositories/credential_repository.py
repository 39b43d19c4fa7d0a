"""
Credential store over the `credentials` collection.

Every method takes the owning user_id and scopes its query by it, so a
credential id belonging to someone else behaves exactly like a missing one.
"""

from __future__ import annotations

from typing import Any, Optional

from pymongo import ReturnDocument

from schemas.models.base import to_object_id
from schemas.models.credential import CredentialDoc
from shared.datetime_utils import utcnow

CREDENTIALS_COLLECTION = "credentials"


class CredentialRepository:
    def __init__(self, db) -> None:
        self._credentials = db[CREDENTIALS_COLLECTION]

    async def list_for_user(self, user_id: Any) -> list[CredentialDoc]:
        cursor = self._credentials.find({"user_id": to_object_id(user_id)}).sort(
            "created_at", -1
        )
        return [CredentialDoc.from_mongo(doc) for doc in await cursor.to_list(length=None)]

    async def count_for_user(self, user_id: Any) -> int:
        return await self._credentials.count_documents({"user_id": to_object_id(user_id)})

    async def create(self, credential: CredentialDoc) -> CredentialDoc:
        result = await self._credentials.insert_one(credential.to_mongo())
        return credential.model_copy(update={"id": result.inserted_id})

    async def create_many(self, credentials: list[CredentialDoc]) -> int:
        if not credentials:
            return 0
        result = await self._credentials.insert_many([c.to_mongo() for c in credentials])
        return len(result.inserted_ids)

    async def update(
        self, user_id: Any, credential_id: Any, fields: dict[str, Any]
    ) -> Optional[CredentialDoc]:
        cid = to_object_id(credential_id)
        if cid is None:
            return None
        doc = await self._credentials.find_one_and_update(
            {"_id": cid, "user_id": to_object_id(user_id)},
            {"$set": {**fields, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        return CredentialDoc.from_mongo(doc)

    async def delete(self, user_id: Any, credential_id: Any) -> bool:
        cid = to_object_id(credential_id)
        if cid is None:
            return False
        result = await self._credentials.delete_one(
            {"_id": cid, "user_id": to_object_id(user_id)}
        )
        return result.deleted_count == 1
