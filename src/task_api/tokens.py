"""
Access/refresh token lifecycle.

Access tokens are short-lived JWTs carrying the user's id, email and
username. Refresh tokens are longer-lived JWTs carrying only the id, and are
additionally checked against the single refresh token stored on the account:
issuing a new one (login, rotation) or logging out makes every earlier one
useless immediately, not just at expiry.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, cast

import jwt
import structlog
from pydantic import BaseModel

from .credentials import CredentialStore
from .errors import TokenExpiredError, TokenInvalidError
from .models import UserEntity, UserRecord
from .schemas import TokenPair
from .settings import Settings

log = structlog.get_logger(__name__)

ACCESS = "access"
REFRESH = "refresh"


class AccessClaims(BaseModel):
    """Decoded access token payload."""

    id: str
    email: str
    username: str
    type: str
    iat: int
    exp: int


class RefreshClaims(BaseModel):
    """Decoded refresh token payload."""

    id: str
    type: str
    jti: str
    iat: int
    exp: int


# PUBLIC_INTERFACE
class TokenService:
    def __init__(
        self,
        credentials: CredentialStore,
        access_secret: str,
        refresh_secret: str,
        access_ttl: timedelta,
        refresh_ttl: timedelta,
        algorithm: str = "HS256",
    ) -> None:
        self._credentials = credentials
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self._access_ttl = access_ttl
        self._refresh_ttl = refresh_ttl
        self._algorithm = algorithm

    @classmethod
    def from_settings(cls, credentials: CredentialStore, settings: Settings) -> "TokenService":
        return cls(
            credentials,
            access_secret=settings.jwt_secret,
            refresh_secret=settings.jwt_refresh_secret,
            access_ttl=settings.access_token_ttl,
            refresh_ttl=settings.refresh_token_ttl,
            algorithm=settings.jwt_algorithm,
        )

    def _encode(self, claims: Dict[str, Any], secret: str, ttl: timedelta) -> str:
        now = datetime.now(timezone.utc)
        payload = {**claims, "iat": int(now.timestamp()), "exp": int((now + ttl).timestamp())}
        return jwt.encode(payload, secret, algorithm=self._algorithm)

    def _decode(self, token: str, secret: str, expected_type: str) -> Dict[str, Any]:
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self._algorithm],
                options={"require": ["exp", "iat"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError()
        except jwt.InvalidTokenError:
            raise TokenInvalidError()
        if payload.get("type") != expected_type:
            raise TokenInvalidError()
        return payload

    def issue_access_token(self, user: UserEntity) -> str:
        claims = {"id": user["id"], "email": user["email"], "username": user["username"], "type": ACCESS}
        return self._encode(claims, self._access_secret, self._access_ttl)

    def issue_refresh_token(self, user: UserEntity) -> str:
        # jti keeps two tokens minted in the same second distinct
        claims = {"id": user["id"], "type": REFRESH, "jti": uuid.uuid4().hex}
        return self._encode(claims, self._refresh_secret, self._refresh_ttl)

    def verify_access(self, token: str) -> AccessClaims:
        """Raise TokenInvalidError or TokenExpiredError unless token is a live access token."""
        payload = self._decode(token, self._access_secret, ACCESS)
        try:
            return AccessClaims(**payload)
        except ValueError:
            raise TokenInvalidError()

    def verify_refresh(self, token: str) -> RefreshClaims:
        """
        Verify signature and expiry, then require the token to be the one
        currently stored for its user.
        """
        payload = self._decode(token, self._refresh_secret, REFRESH)
        try:
            claims = RefreshClaims(**payload)
        except ValueError:
            raise TokenInvalidError()
        user = self._credentials.find_by_id(claims.id, include_secret=True)
        if user is None or cast(UserRecord, user)["refresh_token"] != token:
            raise TokenInvalidError()
        return claims

    def start_session(self, user: UserEntity) -> TokenPair:
        """Mint a fresh pair and make its refresh token the account's only valid one."""
        pair = TokenPair(access_token=self.issue_access_token(user), refresh_token=self.issue_refresh_token(user))
        self._credentials.set_refresh_token(user["id"], pair.refresh_token)
        log.info("session_started", user_id=user["id"])
        return pair

    def rotate(self, refresh_token: str) -> TokenPair:
        """
        Exchange a refresh token for a new pair. The consumed token is
        invalidated; if another rotation or a logout got there first, this
        one fails with TokenInvalidError.
        """
        claims = self.verify_refresh(refresh_token)
        user = self._credentials.find_by_id(claims.id)
        if user is None:
            raise TokenInvalidError()

        pair = TokenPair(access_token=self.issue_access_token(user), refresh_token=self.issue_refresh_token(user))
        if not self._credentials.swap_refresh_token(user["id"], refresh_token, pair.refresh_token):
            log.info("refresh_rejected", user_id=user["id"], reason="stale")
            raise TokenInvalidError()
        log.info("session_rotated", user_id=user["id"])
        return pair

    def end_session(self, user: UserEntity) -> None:
        self._credentials.set_refresh_token(user["id"], None)
        log.info("session_ended", user_id=user["id"])
