"""Unit tests for services.token_codec."""

from datetime import timedelta

import jwt
import pytest
from bson import ObjectId

from config import JWTSettings
from schemas.models.user import UserDoc, UserRole
from services.token_codec import (
    DecodedIdentity,
    DecodedSession,
    DecodeFailure,
    DecodeFailureReason,
    SessionClaims,
    TokenCodec,
)
from tests.conftest import NOW, TEST_SECRET


def _claims(**overrides) -> SessionClaims:
    base = dict(
        device_id="device_1717243200000_abc123xyz",
        activation_key="KEY_1717243200000_ABCDEFGHI",
        user_id=str(ObjectId()),
        assignment_id=str(ObjectId()),
    )
    base.update(overrides)
    return SessionClaims(**base)


def _raw(payload: dict, secret: str = TEST_SECRET) -> str:
    return jwt.encode(payload, secret, algorithm="HS256")


def _reserved(typ: str = "session") -> dict:
    return {
        "iss": "keyvault",
        "aud": "keyvault.api",
        "iat": int(NOW.timestamp()),
        "exp": int((NOW + timedelta(days=7)).timestamp()),
        "typ": typ,
    }


class TestConstruction:
    def test_empty_secret_refused(self):
        with pytest.raises(RuntimeError):
            TokenCodec(JWTSettings(jwt_secret=""))


class TestSessionRoundTrip:
    def test_verify_returns_issued_claims(self, codec):
        claims = _claims()
        decoded = codec.verify(codec.issue(claims))
        assert isinstance(decoded, DecodedSession)
        assert decoded.claims == claims

    def test_expiry_is_seven_days_after_issue(self, codec):
        decoded = codec.verify(codec.issue(_claims()))
        assert decoded.issued_at == NOW
        assert decoded.expires_at - decoded.issued_at == timedelta(days=7)

    def test_issue_is_deterministic_for_fixed_clock(self, codec):
        claims = _claims()
        assert codec.issue(claims) == codec.issue(claims)


class TestSessionDecodeFailures:
    @pytest.mark.parametrize("token", [None, ""], ids=["none", "empty"])
    def test_missing(self, codec, token):
        assert codec.verify(token) == DecodeFailure(DecodeFailureReason.MISSING)

    def test_expired_against_injected_clock(self, jwt_settings):
        issuer = TokenCodec(jwt_settings, clock=lambda: NOW)
        later = TokenCodec(jwt_settings, clock=lambda: NOW + timedelta(days=7, seconds=1))
        result = later.verify(issuer.issue(_claims()))
        assert isinstance(result, DecodeFailure)
        assert result.reason == DecodeFailureReason.EXPIRED

    def test_still_valid_just_before_expiry(self, jwt_settings):
        issuer = TokenCodec(jwt_settings, clock=lambda: NOW)
        later = TokenCodec(jwt_settings, clock=lambda: NOW + timedelta(days=6, hours=23))
        assert isinstance(later.verify(issuer.issue(_claims())), DecodedSession)

    def test_wrong_secret(self, codec, clock):
        other = TokenCodec(JWTSettings(jwt_secret="another-secret-of-sufficient-length!"), clock=clock)
        result = codec.verify(other.issue(_claims()))
        assert result.reason == DecodeFailureReason.INVALID_SIGNATURE

    def test_tampered_payload(self, codec):
        header, payload, signature = codec.issue(_claims()).split(".")
        tampered = f"{header}.{payload[:-2]}AA.{signature}"
        result = codec.verify(tampered)
        assert isinstance(result, DecodeFailure)
        assert result.reason in (
            DecodeFailureReason.INVALID_SIGNATURE,
            DecodeFailureReason.MALFORMED,
        )

    def test_garbage(self, codec):
        assert codec.verify("not-a-jwt").reason == DecodeFailureReason.MALFORMED

    def test_unknown_claim_is_structural_error(self, codec):
        payload = {**_claims().model_dump(), "is_admin": True, **_reserved()}
        assert codec.verify(_raw(payload)).reason == DecodeFailureReason.MALFORMED

    def test_missing_claim_is_structural_error(self, codec):
        payload = {**_claims().model_dump(), **_reserved()}
        del payload["assignment_id"]
        assert codec.verify(_raw(payload)).reason == DecodeFailureReason.MALFORMED

    def test_missing_exp_is_structural_error(self, codec):
        payload = {**_claims().model_dump(), **_reserved()}
        del payload["exp"]
        assert codec.verify(_raw(payload)).reason == DecodeFailureReason.MALFORMED

    def test_wrong_audience(self, codec):
        payload = {**_claims().model_dump(), **_reserved(), "aud": "someone.else"}
        assert codec.verify(_raw(payload)).reason == DecodeFailureReason.MALFORMED

    def test_identity_token_not_accepted_as_session(self, codec):
        user = UserDoc(id=ObjectId(), username="u", email="u@example.com", password_hash="x")
        result = codec.verify(codec.issue_identity(user))
        assert result.reason == DecodeFailureReason.MALFORMED


class TestIdentityTokens:
    def test_round_trip(self, codec):
        user = UserDoc(
            id=ObjectId(),
            username="admin",
            email="admin@example.com",
            password_hash="x",
            role=UserRole.ADMIN,
        )
        decoded = codec.verify_identity(codec.issue_identity(user))
        assert isinstance(decoded, DecodedIdentity)
        assert decoded.user_id == str(user.id)
        assert decoded.role == UserRole.ADMIN

    def test_session_token_not_accepted_as_identity(self, codec):
        result = codec.verify_identity(codec.issue(_claims()))
        assert result.reason == DecodeFailureReason.MALFORMED

    def test_missing(self, codec):
        assert codec.verify_identity(None).reason == DecodeFailureReason.MISSING
