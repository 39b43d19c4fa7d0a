"""Identity store over the `users` collection."""

from __future__ import annotations

import re
from typing import Any, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from errors import ConflictError
from schemas.models.base import to_object_id
from schemas.models.user import UserDoc, UserRole
from shared.datetime_utils import utcnow

USERS_COLLECTION = "users"

SEARCH_FIELDS = ("username", "email", "first_name", "last_name")


class UserRepository:
    def __init__(self, db) -> None:
        self._users = db[USERS_COLLECTION]

    async def find_by_id(self, user_id: Any) -> Optional[UserDoc]:
        oid = to_object_id(user_id)
        if oid is None:
            return None
        return UserDoc.from_mongo(await self._users.find_one({"_id": oid}))

    async def find_by_username_or_email(self, identifier: str) -> Optional[UserDoc]:
        doc = await self._users.find_one(
            {"$or": [{"username": identifier}, {"email": identifier}]}
        )
        return UserDoc.from_mongo(doc)

    async def create(self, user: UserDoc) -> UserDoc:
        try:
            result = await self._users.insert_one(user.to_mongo())
        except DuplicateKeyError as e:
            raise ConflictError("Username or email already exists") from e
        return user.model_copy(update={"id": result.inserted_id})

    async def record_login(self, user_id: Any) -> None:
        now = utcnow()
        await self._users.update_one(
            {"_id": to_object_id(user_id)},
            {"$set": {"last_login_at": now, "updated_at": now}},
        )

    async def update_profile(self, user_id: Any, fields: dict[str, Any]) -> Optional[UserDoc]:
        oid = to_object_id(user_id)
        if oid is None:
            return None
        doc = await self._users.find_one_and_update(
            {"_id": oid},
            {"$set": {**fields, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        return UserDoc.from_mongo(doc)

    async def list_users(self, search: Optional[str] = None) -> list[UserDoc]:
        """Role USER accounts, newest first.

        *search* is matched literally and case-insensitively against the
        username, email and name fields.
        """
        query: dict[str, Any] = {"role": UserRole.USER.value}
        if search:
            pattern = {"$regex": re.escape(search), "$options": "i"}
            query["$or"] = [{field: pattern} for field in SEARCH_FIELDS]
        cursor = self._users.find(query).sort("created_at", -1)
        return [UserDoc.from_mongo(doc) for doc in await cursor.to_list(length=None)]

    async def count_users(self, *, active_only: bool = False) -> int:
        query: dict[str, Any] = {"role": UserRole.USER.value}
        if active_only:
            query["is_active"] = True
        return await self._users.count_documents(query)
