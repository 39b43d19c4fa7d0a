"""Fixtures shared by unit and integration tests."""

from datetime import datetime, timezone

import pytest
from bson import ObjectId

from config import JWTSettings
from services.access_validator import AccessValidator
from services.device_binding import DeviceBindingManager
from services.token_codec import TokenCodec
from tests.fakes import InMemoryKeyStore, RecordingAuditLog

NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)
TEST_SECRET = "test-secret-key-with-enough-length-for-hs256"


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def jwt_settings():
    return JWTSettings(jwt_secret=TEST_SECRET, cookie_secure=False)


@pytest.fixture
def codec(jwt_settings, clock):
    return TokenCodec(jwt_settings, clock=clock)


@pytest.fixture
def store():
    return InMemoryKeyStore()


@pytest.fixture
def audit():
    return RecordingAuditLog()


@pytest.fixture
def validator(store, clock):
    return AccessValidator(store, clock=clock)


@pytest.fixture
def bindings(store, audit, clock):
    return DeviceBindingManager(store, audit, clock=clock)


@pytest.fixture
def user_id():
    return ObjectId()
