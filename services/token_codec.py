"""
Token codec — issues and verifies the two JWTs this service hands out.

Session token (``user_token`` cookie): binds a request to one device under one
assignment. Closed claim set ``{device_id, activation_key, user_id,
assignment_id}``; anything missing or extra is a structural decode error.

Identity token (``auth_token`` cookie): proves a username/password login and
carries the account role. Used for activation and the admin surface.

Both are HS256, carry iss/aud/iat/exp and a ``typ`` claim so neither can be
replayed as the other. verify()/verify_identity() never raise for
attacker-controlled input; they return a DecodeFailure instead. Expiry is
checked against the injected clock, not the wall clock.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Optional, Union

import jwt
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from config import JWTSettings
from schemas.models.user import UserDoc, UserRole
from shared.datetime_utils import utcnow


ALGORITHM = "HS256"
TOKEN_TYPE_SESSION = "session"
TOKEN_TYPE_IDENTITY = "identity"
_RESERVED_CLAIMS = ("iss", "aud", "iat", "exp", "typ")


class SessionClaims(BaseModel):
    """The device-bound claim set carried by a session token."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    device_id: str = Field(min_length=1)
    activation_key: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    assignment_id: str = Field(min_length=1)


class IdentityClaims(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    sub: str = Field(min_length=1)
    role: UserRole


@dataclass(frozen=True)
class DecodedSession:
    claims: SessionClaims
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class DecodedIdentity:
    claims: IdentityClaims
    issued_at: datetime
    expires_at: datetime

    @property
    def user_id(self) -> str:
        return self.claims.sub

    @property
    def role(self) -> UserRole:
        return self.claims.role


class DecodeFailureReason(str, Enum):
    MISSING = "missing"
    EXPIRED = "expired"
    INVALID_SIGNATURE = "invalid_signature"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class DecodeFailure:
    reason: DecodeFailureReason
    detail: str = ""


class TokenCodec:
    def __init__(
        self,
        settings: JWTSettings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if not settings.jwt_secret:
            raise RuntimeError("JWT_SECRET must be set")
        self._secret = settings.jwt_secret
        self._issuer = settings.jwt_issuer
        self._audience = settings.jwt_audience
        self._session_ttl = timedelta(seconds=settings.session_token_ttl_seconds)
        self._identity_ttl = timedelta(seconds=settings.identity_token_ttl_seconds)
        self._clock = clock

    # ── Session tokens ───────────────────────────────────────────────────────

    def issue(self, claims: SessionClaims) -> str:
        return self._encode(claims.model_dump(), TOKEN_TYPE_SESSION, self._session_ttl)

    def verify(self, token: Optional[str]) -> Union[DecodedSession, DecodeFailure]:
        decoded = self._decode(token, TOKEN_TYPE_SESSION)
        if isinstance(decoded, DecodeFailure):
            return decoded
        payload, issued_at, expires_at = decoded
        try:
            claims = SessionClaims.model_validate(payload)
        except PydanticValidationError as e:
            return DecodeFailure(DecodeFailureReason.MALFORMED, f"claims: {e.error_count()} error(s)")
        return DecodedSession(claims=claims, issued_at=issued_at, expires_at=expires_at)

    # ── Identity tokens ──────────────────────────────────────────────────────

    def issue_identity(self, user: UserDoc) -> str:
        role = UserRole(user.role)
        return self._encode(
            {"sub": str(user.id), "role": role.value},
            TOKEN_TYPE_IDENTITY,
            self._identity_ttl,
        )

    def verify_identity(self, token: Optional[str]) -> Union[DecodedIdentity, DecodeFailure]:
        decoded = self._decode(token, TOKEN_TYPE_IDENTITY)
        if isinstance(decoded, DecodeFailure):
            return decoded
        payload, issued_at, expires_at = decoded
        try:
            claims = IdentityClaims.model_validate(payload)
        except PydanticValidationError as e:
            return DecodeFailure(DecodeFailureReason.MALFORMED, f"claims: {e.error_count()} error(s)")
        return DecodedIdentity(claims=claims, issued_at=issued_at, expires_at=expires_at)

    # ── Internals ────────────────────────────────────────────────────────────

    def _encode(self, body: dict[str, Any], token_type: str, ttl: timedelta) -> str:
        now = self._clock()
        claims = {
            **body,
            "iss": self._issuer,
            "aud": self._audience,
            "iat": int(now.timestamp()),
            "exp": int((now + ttl).timestamp()),
            "typ": token_type,
        }
        return jwt.encode(claims, self._secret, algorithm=ALGORITHM)

    def _decode(self, token: Optional[str], token_type: str):
        if not token:
            return DecodeFailure(DecodeFailureReason.MISSING)
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                audience=self._audience,
                issuer=self._issuer,
                # exp/iat are checked below against the injected clock
                options={
                    "require": list(_RESERVED_CLAIMS),
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.InvalidSignatureError:
            return DecodeFailure(DecodeFailureReason.INVALID_SIGNATURE)
        except jwt.InvalidTokenError as e:
            return DecodeFailure(DecodeFailureReason.MALFORMED, type(e).__name__)

        if payload.get("typ") != token_type:
            return DecodeFailure(DecodeFailureReason.MALFORMED, "wrong token type")

        try:
            issued_at = datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc)
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError):
            return DecodeFailure(DecodeFailureReason.MALFORMED, "timestamps")

        if self._clock() >= expires_at:
            return DecodeFailure(DecodeFailureReason.EXPIRED)

        body = {k: v for k, v in payload.items() if k not in _RESERVED_CLAIMS}
        return body, issued_at, expires_at
