"""Unit tests for the AppError hierarchy and the global exception handlers."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pymongo.errors import ServerSelectionTimeoutError

from errors import (
    AccessDenied,
    AppError,
    AuthenticationError,
    ConflictError,
    DuplicateKeyAssignment,
    ForbiddenError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
    register_error_handlers,
)
from services.access_validator import DenyReason


class TestAppErrorSubclasses:
    def test_validation_error(self):
        e = ValidationError("bad input")
        assert e.status_code == 400
        assert e.error_code == "validation_error"
        assert e.message == "bad input"

    def test_authentication_error(self):
        e = AuthenticationError("not authenticated")
        assert e.status_code == 401
        assert e.error_code == "authentication_error"

    def test_forbidden_error(self):
        e = ForbiddenError("not allowed")
        assert e.status_code == 403
        assert e.error_code == "forbidden"

    def test_not_found_error(self):
        e = NotFoundError("resource missing")
        assert e.status_code == 404
        assert e.error_code == "not_found"

    def test_conflict_error(self):
        e = ConflictError("already exists")
        assert e.status_code == 409
        assert e.error_code == "conflict"

    def test_store_unavailable_error(self):
        e = StoreUnavailableError("down")
        assert e.status_code == 503
        assert e.error_code == "store_unavailable"

    def test_duplicate_key_assignment_is_conflict(self):
        e = DuplicateKeyAssignment("already assigned")
        assert isinstance(e, ConflictError)
        assert e.status_code == 409
        assert e.error_code == "duplicate_key_assignment"


class TestAppErrorToDict:
    def test_basic(self):
        e = NotFoundError("key not found")
        assert e.to_dict() == {"error": "key not found", "code": "not_found"}

    @pytest.mark.parametrize(
        "kwargs, key, value",
        [
            ({"field": "device_limit"}, "field", "device_limit"),
            ({"details": {"min": 1, "max": 100}}, "details", {"min": 1, "max": 100}),
        ],
        ids=["with_field", "with_details"],
    )
    def test_optional_key_present(self, kwargs, key, value):
        e = ValidationError("invalid", **kwargs)
        assert e.to_dict()[key] == value

    def test_no_optional_keys_when_absent(self):
        d = NotFoundError("missing").to_dict()
        assert "field" not in d
        assert "details" not in d


class TestAccessDenied:
    def test_is_forbidden(self):
        e = AccessDenied(DenyReason.KEY_INACTIVE)
        assert isinstance(e, ForbiddenError)
        assert e.status_code == 403

    def test_message_defaults_to_reason_message(self):
        e = AccessDenied(DenyReason.DEVICE_REVOKED)
        assert e.message == DenyReason.DEVICE_REVOKED.message

    def test_to_dict_carries_reason_and_reactivation_flag(self):
        d = AccessDenied(DenyReason.KEY_EXPIRED).to_dict()
        assert d["reason"] == "KEY_EXPIRED"
        assert d["requiresReactivation"] is True
        assert d["code"] == "access_denied"

    def test_reactivation_flag_omitted_when_false(self):
        d = AccessDenied(
            DenyReason.DEVICE_LIMIT_REACHED, requires_reactivation=False
        ).to_dict()
        assert d["reason"] == "DEVICE_LIMIT_REACHED"
        assert "requiresReactivation" not in d


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _app_raising(exc: Exception) -> FastAPI:
    app = FastAPI()
    register_error_handlers(app)

    @app.get("/boom")
    async def boom():
        raise exc

    return app


class TestErrorHandlers:
    def test_app_error_rendered_as_json(self):
        with TestClient(_app_raising(ConflictError("taken", field="key"))) as client:
            resp = client.get("/boom")
        assert resp.status_code == 409
        assert resp.json() == {"error": "taken", "code": "conflict", "field": "key"}

    def test_access_denied_is_403_not_5xx(self):
        with TestClient(_app_raising(AccessDenied(DenyReason.NO_ASSIGNMENT))) as client:
            resp = client.get("/boom")
        assert resp.status_code == 403
        assert resp.json()["reason"] == "NO_ASSIGNMENT"

    def test_store_failure_is_opaque_503(self):
        exc = ServerSelectionTimeoutError("mongo-0:27017: connection refused")
        with TestClient(_app_raising(exc)) as client:
            resp = client.get("/boom")
        assert resp.status_code == 503
        body = resp.json()
        assert body["code"] == "store_unavailable"
        assert "mongo-0" not in body["error"]

    def test_unhandled_exception_is_opaque_500(self):
        app = _app_raising(RuntimeError("secret internals"))
        with TestClient(app, raise_server_exceptions=False) as client:
            resp = client.get("/boom")
        assert resp.status_code == 500
        assert resp.json()["code"] == "internal_error"
        assert "secret internals" not in resp.json()["error"]

    def test_base_app_error_defaults(self):
        e = AppError("oops")
        assert e.status_code == 500
        assert e.error_code == "internal_error"
