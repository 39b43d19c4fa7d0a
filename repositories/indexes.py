"""
MongoDB index bootstrap, run once from the app lifespan.

The unique index on user_key_assignments.key_id is what enforces
"one assignment per key" under concurrent admin actions.
"""

from __future__ import annotations

from pymongo import ASCENDING, DESCENDING

from repositories.audit_repository import AUDIT_COLLECTION
from repositories.credential_repository import CREDENTIALS_COLLECTION
from repositories.key_store import ASSIGNMENTS_COLLECTION, KEYS_COLLECTION
from repositories.user_repository import USERS_COLLECTION
from shared.logging import get_logger

log = get_logger(__name__)


async def ensure_indexes(db) -> None:
    await db[KEYS_COLLECTION].create_index([("key", ASCENDING)], unique=True)
    await db[ASSIGNMENTS_COLLECTION].create_index([("key_id", ASCENDING)], unique=True)
    await db[ASSIGNMENTS_COLLECTION].create_index(
        [("user_id", ASCENDING), ("status", ASCENDING)]
    )
    await db[USERS_COLLECTION].create_index([("username", ASCENDING)], unique=True)
    await db[USERS_COLLECTION].create_index([("email", ASCENDING)], unique=True)
    await db[CREDENTIALS_COLLECTION].create_index(
        [("user_id", ASCENDING), ("created_at", DESCENDING)]
    )
    await db[AUDIT_COLLECTION].create_index([("timestamp", DESCENDING)])
    log.info("indexes_ensured", database=db.name)
