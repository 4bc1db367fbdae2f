from __future__ import annotations

from typing import Optional, cast

import structlog

from .errors import DuplicateError
from .models import UserEntity, UserRecord
from .repositories import UniqueViolation, UserRepository
from .security import hash_password, verify_password

log = structlog.get_logger(__name__)


# PUBLIC_INTERFACE
class CredentialStore:
    """
    Account registration and credential checks on top of a UserRepository.

    Default lookups never carry the password hash or the refresh token;
    callers that need them ask for include_secret=True explicitly.
    """

    def __init__(self, users: UserRepository, bcrypt_rounds: int = 12) -> None:
        self._users = users
        self._rounds = bcrypt_rounds

    def _conflict(self, username: str, email: str) -> Optional[str]:
        # email collisions are reported before username collisions
        if self._users.exists("email", email):
            return "email"
        if self._users.exists("username", username):
            return "username"
        return None

    def register(self, username: str, email: str, password: str) -> UserEntity:
        """
        Create an account. Raises DuplicateError naming the colliding field.

        The password is hashed here, once; no later write re-hashes it.
        """
        email = email.lower()
        conflict = self._conflict(username, email)
        if conflict:
            raise DuplicateError(conflict)

        password_hash = hash_password(password, self._rounds)
        try:
            user = self._users.create(username, email, password_hash)
        except UniqueViolation:
            # lost a race with a concurrent registration
            raise DuplicateError(self._conflict(username, email) or "email")
        log.info("user_registered", user_id=user["id"], username=username)
        return user

    def find_by_email(self, email: str, include_secret: bool = False) -> Optional[UserEntity]:
        return self._users.get_by_email(email.lower(), include_secret=include_secret)

    def find_by_id(self, user_id: str, include_secret: bool = False) -> Optional[UserEntity]:
        return self._users.get_by_id(user_id, include_secret=include_secret)

    def verify_password(self, user: UserEntity, candidate: str) -> bool:
        """Check candidate against the user's stored hash, loading it if needed."""
        record = user if "password_hash" in user else self.find_by_id(user["id"], include_secret=True)
        if record is None:
            return False
        return verify_password(candidate, cast(UserRecord, record)["password_hash"])

    def set_refresh_token(self, user_id: str, token: Optional[str]) -> bool:
        return self._users.set_refresh_token(user_id, token)

    def swap_refresh_token(self, user_id: str, expected: str, new: str) -> bool:
        return self._users.swap_refresh_token(user_id, expected, new)
