"""Account registration and username/password authentication."""

from __future__ import annotations

from typing import Any, Optional

from errors import AuthenticationError, NotFoundError, ValidationError
from repositories.user_repository import UserRepository
from schemas.models.user import UserDoc, UserRole
from shared.crypto import hash_password, verify_password
from shared.datetime_utils import utcnow
from shared.logging import get_logger

log = get_logger(__name__)

MIN_PASSWORD_LENGTH = 6

# Verified against when the account does not exist so both failure paths
# cost one argon2 verification.
_DUMMY_HASH = hash_password("keyvault-timing-equalizer")


class IdentityService:
    def __init__(self, users: UserRepository) -> None:
        self._users = users

    async def authenticate(self, identifier: str, password: str) -> UserDoc:
        """Return the user for *identifier* (username or email) and *password*.

        Raises AuthenticationError with the same message for an unknown
        account and a wrong password.
        """
        user = await self._users.find_by_username_or_email(identifier)
        if user is None:
            verify_password(password, _DUMMY_HASH)
            log.info("login_failed", reason="unknown_account")
            raise AuthenticationError("Invalid credentials")
        if not verify_password(password, user.password_hash):
            log.info("login_failed", reason="bad_password", user_id=str(user.id))
            raise AuthenticationError("Invalid credentials")
        if not user.is_active:
            log.info("login_failed", reason="deactivated", user_id=str(user.id))
            raise AuthenticationError("Account is deactivated")

        await self._users.record_login(user.id)
        log.info("login_succeeded", user_id=str(user.id), role=user.role)
        return user

    async def register(
        self,
        username: str,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> UserDoc:
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
                field="password",
            )
        now = utcnow()
        user = UserDoc(
            username=username.strip(),
            email=email.strip().lower(),
            password_hash=hash_password(password),
            role=UserRole.USER,
            first_name=first_name,
            last_name=last_name,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        created = await self._users.create(user)
        log.info("user_registered", user_id=str(created.id))
        return created

    async def get_user(self, user_id: Any) -> UserDoc:
        user = await self._users.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def update_profile(
        self,
        user_id: Any,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> UserDoc:
        """Set the name fields that are given; the others are left unchanged."""
        fields = {
            name: value.strip()
            for name, value in (("first_name", first_name), ("last_name", last_name))
            if value is not None
        }
        user = await self._users.update_profile(user_id, fields)
        if user is None:
            raise NotFoundError("User not found")
        log.info("profile_updated", user_id=str(user.id), fields=sorted(fields))
        return user
