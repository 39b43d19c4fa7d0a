"""Unit tests for the MongoDB document models."""

from datetime import datetime, timezone

import pytest
from bson import ObjectId
from pydantic import ValidationError as PydanticValidationError

from schemas.models.activation_key import ActivationKeyDoc, DeviceDoc
from schemas.models.assignment import AssignmentDoc, AssignmentStatus
from schemas.models.base import PyObjectId, to_object_id
from schemas.models.user import UserDoc, UserRole

NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def _device(device_id: str, assignment_id, **overrides) -> DeviceDoc:
    base = dict(
        device_id=device_id,
        user_id=ObjectId(),
        assignment_id=assignment_id,
        registered_at=NOW,
    )
    base.update(overrides)
    return DeviceDoc(**base)


# ---------------------------------------------------------------------------
# PyObjectId / base
# ---------------------------------------------------------------------------


class TestObjectIds:
    def test_string_coerced(self):
        oid = ObjectId()
        assert to_object_id(str(oid)) == oid

    @pytest.mark.parametrize("value", ["nope", None, 42], ids=["garbage", "none", "int"])
    def test_invalid_returns_none(self, value):
        assert to_object_id(value) is None

    def test_json_dump_is_string(self):
        oid = ObjectId()
        doc = UserDoc(id=oid, username="a", email="a@example.com", password_hash="x")
        assert doc.model_dump(mode="json", by_alias=True)["_id"] == str(oid)

    def test_python_dump_keeps_object_id(self):
        oid = ObjectId()
        doc = UserDoc(id=oid, username="a", email="a@example.com", password_hash="x")
        assert isinstance(doc.to_mongo()["_id"], ObjectId)

    def test_to_mongo_drops_missing_id(self):
        doc = UserDoc(username="a", email="a@example.com", password_hash="x")
        assert "_id" not in doc.to_mongo()

    def test_from_mongo_none(self):
        assert UserDoc.from_mongo(None) is None

    def test_invalid_object_id_rejected(self):
        with pytest.raises(PydanticValidationError):
            AssignmentDoc(
                user_id="not-an-id",
                key_id=ObjectId(),
                assigned_at=NOW,
                assigned_by="admin",
            )

    def test_pyobjectid_is_objectid(self):
        assert issubclass(PyObjectId, ObjectId)


class TestUtcNormalisation:
    def test_naive_datetime_becomes_utc(self):
        naive = datetime(2025, 6, 1, 12, 0, 0)
        doc = UserDoc(username="a", email="a@e.com", password_hash="x", created_at=naive)
        assert doc.created_at.tzinfo is not None
        assert doc.created_at == NOW


class TestEnumsStoredByValue:
    def test_user_role(self):
        doc = UserDoc(username="a", email="a@e.com", password_hash="x", role=UserRole.ADMIN)
        assert doc.to_mongo()["role"] == "ADMIN"

    def test_assignment_status(self):
        doc = AssignmentDoc(
            user_id=ObjectId(), key_id=ObjectId(), assigned_at=NOW, assigned_by="admin"
        )
        assert doc.to_mongo()["status"] == "ACTIVE"
        assert doc.status == AssignmentStatus.ACTIVE


# ---------------------------------------------------------------------------
# ActivationKeyDoc
# ---------------------------------------------------------------------------


class TestActivationKeyDoc:
    def test_device_limit_must_be_positive(self):
        with pytest.raises(PydanticValidationError):
            ActivationKeyDoc(key="KEY_1_A", device_limit=0)

    def test_device_map_keyed_by_device_and_assignment(self):
        a1, a2 = ObjectId(), ObjectId()
        key = ActivationKeyDoc(
            key="KEY_1_A",
            device_limit=3,
            devices=[_device("devA", a1), _device("devA", a2)],
        )
        mapping = key.device_map()
        assert set(mapping) == {("devA", str(a1)), ("devA", str(a2))}

    def test_find_device_scoped_to_assignment(self):
        a1, a2 = ObjectId(), ObjectId()
        key = ActivationKeyDoc(key="KEY_1_A", device_limit=1, devices=[_device("devA", a1)])
        assert key.find_device("devA", a1) is not None
        assert key.find_device("devA", a2) is None
        assert key.find_device_any("devA").assignment_id == a1

    def test_active_devices_excludes_revoked(self):
        a1 = ObjectId()
        key = ActivationKeyDoc(
            key="KEY_1_A",
            device_limit=2,
            devices=[_device("devA", a1), _device("devB", a1, is_active=False)],
        )
        assert [d.device_id for d in key.active_devices_for(a1)] == ["devA"]

    def test_legacy_device_without_flag_counts_as_active(self):
        a1 = ObjectId()
        device = _device("devA", a1, is_active=None)
        assert device.active is True

    def test_round_trip_from_mongo(self):
        a1 = ObjectId()
        key = ActivationKeyDoc(
            id=ObjectId(), key="KEY_1_A", device_limit=1, devices=[_device("devA", a1)]
        )
        restored = ActivationKeyDoc.from_mongo(key.to_mongo())
        assert restored.find_device("devA", a1) is not None
        assert restored.revision == 0

    def test_legacy_document_without_revision(self):
        raw = {"_id": ObjectId(), "key": "KEY_1_A", "device_limit": 2}
        key = ActivationKeyDoc.from_mongo(raw)
        assert key.revision == 0
        assert key.devices == []


class TestUserDoc:
    @pytest.mark.parametrize(
        "first, last, expected",
        [("Ada", "Lovelace", "Ada Lovelace"), (None, None, "ada"), ("Ada", None, "ada")],
        ids=["full_name", "no_name", "partial_name"],
    )
    def test_display_name(self, first, last, expected):
        user = UserDoc(
            username="ada", email="ada@e.com", password_hash="x", first_name=first, last_name=last
        )
        assert user.display_name == expected
