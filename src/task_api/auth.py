from __future__ import annotations

from typing import Optional

import structlog
from fastapi import Depends, Header, Request

from .credentials import CredentialStore
from .errors import NoTokenError, TokenInvalidError
from .models import UserEntity
from .tokens import TokenService

log = structlog.get_logger(__name__)

_BEARER = "bearer"


# PUBLIC_INTERFACE
class AuthGuard:
    """
    Resolve the acting user from an Authorization header.

    Failures raise before any business logic runs:
    - NoTokenError when the header is missing or blank
    - TokenInvalidError when it is not 'Bearer <token>', the token does not
      verify, or the account no longer exists
    - TokenExpiredError when the token verified but is past its expiry
    """

    def __init__(self, tokens: TokenService, credentials: CredentialStore) -> None:
        self._tokens = tokens
        self._credentials = credentials

    def authenticate(self, raw_header: Optional[str]) -> UserEntity:
        if raw_header is None or not raw_header.strip():
            raise NoTokenError()

        scheme, _, token = raw_header.strip().partition(" ")
        token = token.strip()
        if scheme.lower() != _BEARER or not token:
            raise TokenInvalidError()

        claims = self._tokens.verify_access(token)
        # Re-read the account so a deleted user cannot keep using a live token
        user = self._credentials.find_by_id(claims.id)
        if user is None:
            log.info("auth_rejected", user_id=claims.id, reason="unknown_user")
            raise TokenInvalidError()
        return user


# PUBLIC_INTERFACE
def get_auth_guard(request: Request) -> AuthGuard:
    """Return the AuthGuard built for this application instance."""
    return request.app.state.auth_guard


# PUBLIC_INTERFACE
async def get_current_user(
    authorization: Optional[str] = Header(default=None, description="Bearer access token"),
    guard: AuthGuard = Depends(get_auth_guard),
) -> UserEntity:
    """
    FastAPI dependency that authenticates the request and returns the user.

    Usage:
        @router.get("/me")
        def me(user: UserEntity = Depends(get_current_user)) -> ...
    """
    user = guard.authenticate(authorization)
    structlog.contextvars.bind_contextvars(user_id=user["id"])
    return user
