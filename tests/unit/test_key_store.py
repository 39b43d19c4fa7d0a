"""Unit tests for repositories.key_store.MongoKeyStore with mocked collections."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from errors import ConflictError, DuplicateKeyAssignment
from repositories.key_store import (
    ASSIGNMENTS_COLLECTION,
    KEYS_COLLECTION,
    MongoKeyStore,
    _revision_filter,
)
from schemas.models.activation_key import ActivationKeyDoc, DeviceDoc
from schemas.models.assignment import AssignmentDoc, AssignmentStatus
from tests.conftest import NOW


def _collection():
    col = MagicMock()
    col.find_one = AsyncMock(return_value=None)
    col.update_one = AsyncMock(return_value=MagicMock(matched_count=1))
    col.insert_one = AsyncMock(return_value=MagicMock(inserted_id=ObjectId()))
    col.delete_one = AsyncMock(return_value=MagicMock(deleted_count=1))
    col.find_one_and_update = AsyncMock(return_value=None)
    return col


@pytest.fixture
def collections():
    return {KEYS_COLLECTION: _collection(), ASSIGNMENTS_COLLECTION: _collection()}


@pytest.fixture
def keys(collections):
    return collections[KEYS_COLLECTION]


@pytest.fixture
def assignments(collections):
    return collections[ASSIGNMENTS_COLLECTION]


@pytest.fixture
def mongo_store(collections):
    return MongoKeyStore(collections)


def _device(assignment_id) -> DeviceDoc:
    return DeviceDoc(
        device_id="devA", user_id=ObjectId(), assignment_id=assignment_id, registered_at=NOW
    )


def _assignment(key_id) -> AssignmentDoc:
    return AssignmentDoc(
        user_id=ObjectId(), key_id=key_id, assigned_at=NOW, assigned_by="admin"
    )


# ---------------------------------------------------------------------------
# Conditional device writes
# ---------------------------------------------------------------------------


class TestAppendDevice:
    async def test_filter_is_conditional_on_revision_and_absence(self, mongo_store, keys):
        key_id, assignment_id = ObjectId(), ObjectId()
        assert await mongo_store.append_device(key_id, _device(assignment_id), 3)

        query, update = keys.update_one.await_args.args
        assert query["_id"] == key_id
        assert query["revision"] == 3
        assert query["devices"] == {
            "$not": {"$elemMatch": {"device_id": "devA", "assignment_id": assignment_id}}
        }
        assert update["$inc"] == {"used_devices": 1, "revision": 1}
        assert update["$push"]["devices"]["assignment_id"] == assignment_id

    async def test_lost_race_reports_false(self, mongo_store, keys):
        keys.update_one.return_value = MagicMock(matched_count=0)
        assert not await mongo_store.append_device(ObjectId(), _device(ObjectId()), 1)

    async def test_invalid_key_id_skips_write(self, mongo_store, keys):
        assert not await mongo_store.append_device("nope", _device(ObjectId()), 0)
        keys.update_one.assert_not_awaited()


def test_revision_zero_matches_legacy_documents():
    assert _revision_filter(0) == {"$in": [0, None]}
    assert _revision_filter(7) == 7


class TestSetDeviceActive:
    async def test_revoke_uses_array_filters(self, mongo_store, keys):
        key_id, assignment_id = ObjectId(), ObjectId()
        assert await mongo_store.set_device_active(
            key_id, "devA", assignment_id, False, expected_revision=2
        )

        query, update = keys.update_one.await_args.args
        assert query["revision"] == 2
        assert update["$set"]["devices.$[d].is_active"] is False
        assert "devices.$[d].revoked_at" in update["$set"]
        assert update["$inc"] == {"revision": 1}
        assert keys.update_one.await_args.kwargs["array_filters"] == [
            {"d.device_id": "devA", "d.assignment_id": assignment_id}
        ]

    async def test_reactivate_clears_revoked_at(self, mongo_store, keys):
        await mongo_store.set_device_active(ObjectId(), "devA", ObjectId(), True)
        query, update = keys.update_one.await_args.args
        assert "revision" not in query
        assert update["$set"]["devices.$[d].revoked_at"] is None


async def test_touch_device_does_not_bump_revision(mongo_store, keys):
    await mongo_store.touch_device(ObjectId(), "devA", ObjectId())
    _, update = keys.update_one.await_args.args
    assert "$inc" not in update
    assert list(update["$set"]) == ["devices.$[d].last_active_at"]


# ---------------------------------------------------------------------------
# Assignments
# ---------------------------------------------------------------------------


class TestCreateAssignment:
    async def test_inserts_when_key_unassigned(self, mongo_store, assignments):
        key_id = ObjectId()
        created = await mongo_store.create_assignment(_assignment(key_id))
        assert created.id == assignments.insert_one.return_value.inserted_id
        assert assignments.find_one.await_args.args[0] == {"key_id": key_id}

    async def test_existing_assignment_in_any_status(self, mongo_store, assignments):
        assignments.find_one.return_value = {"_id": ObjectId()}
        with pytest.raises(DuplicateKeyAssignment):
            await mongo_store.create_assignment(_assignment(ObjectId()))
        assignments.insert_one.assert_not_awaited()

    async def test_unique_index_race(self, mongo_store, assignments):
        assignments.insert_one.side_effect = DuplicateKeyError("E11000")
        with pytest.raises(DuplicateKeyAssignment):
            await mongo_store.create_assignment(_assignment(ObjectId()))


async def test_create_key_duplicate(mongo_store, keys):
    keys.insert_one.side_effect = DuplicateKeyError("E11000")
    with pytest.raises(ConflictError):
        await mongo_store.create_key(ActivationKeyDoc(key="KEY_1_A", device_limit=1))


async def test_adjust_device_count_uses_pipeline_floor(mongo_store, assignments):
    assignment_id = ObjectId()
    await mongo_store.adjust_device_count(assignment_id, -1)

    query, pipeline = assignments.update_one.await_args.args
    assert query == {"_id": assignment_id}
    stage = pipeline[0]["$set"]
    assert stage["device_count"] == {
        "$max": [0, {"$add": [{"$ifNull": ["$device_count", 0]}, -1]}]
    }
    assert "last_used_at" not in stage


async def test_revoke_assignment_is_soft(mongo_store, assignments):
    assignment = _assignment(ObjectId()).model_copy(update={"id": ObjectId()})
    assignments.find_one_and_update.return_value = {
        **assignment.to_mongo(),
        "status": "REVOKED",
        "revoked_by": "admin-1",
    }
    revoked = await mongo_store.revoke_assignment(assignment.id, "admin-1")

    _, update = assignments.find_one_and_update.await_args.args
    assert update["$set"]["status"] == "REVOKED"
    assert update["$set"]["revoked_by"] == "admin-1"
    assert revoked.status == AssignmentStatus.REVOKED
    assignments.delete_one.assert_not_awaited()


async def test_get_key_by_id_invalid(mongo_store, keys):
    assert await mongo_store.get_key_by_id("not-an-id") is None
    keys.find_one.assert_not_awaited()


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


async def test_usage_counts(mongo_store, keys, assignments):
    keys.count_documents = AsyncMock(side_effect=lambda query: 5 if not query else 4)
    assignments.count_documents = AsyncMock(
        side_effect=lambda query: {None: 3, "ACTIVE": 2, "EXPIRED": 0, "REVOKED": 1}[
            query.get("status")
        ]
    )
    assignments.distinct = AsyncMock(return_value=[ObjectId(), ObjectId(), ObjectId()])
    cursor = MagicMock()
    cursor.to_list = AsyncMock(
        return_value=[{"_id": "Ops", "count": 1}, {"_id": None, "count": 1}]
    )
    assignments.aggregate = AsyncMock(return_value=cursor)

    counts = await mongo_store.usage_counts()

    assert counts["total_keys"] == 5
    assert counts["active_keys"] == 4
    assert counts["assigned_keys"] == 3
    assert counts["total_assignments"] == 3
    assert counts["active_assignments"] == 2
    assert counts["revoked_assignments"] == 1
    assert counts["departments"] == [("Ops", 1), (None, 1)]
    assignments.distinct.assert_awaited_once_with("key_id")
    pipeline = assignments.aggregate.await_args.args[0]
    assert pipeline[0] == {"$match": {"status": "ACTIVE"}}
    assert pipeline[-1] == {"$limit": 10}
