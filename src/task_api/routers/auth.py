from __future__ import annotations

from typing import Any, Dict

import structlog
from fastapi import APIRouter, Depends, Request, status

from ..auth import get_current_user
from ..credentials import CredentialStore
from ..errors import InvalidCredentialsError, TokenExpiredError, TokenInvalidError, internal_errors
from ..models import UserEntity
from ..schemas import LoginRequest, RegisterRequest, SessionOut, UserOut
from ..tokens import TokenService
from ..utils import envelope
from ..validation import LOGIN_RULES, REFRESH_RULES, REGISTER_RULES

log = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["auth"],
)

_register_body = REGISTER_RULES.dependency()
_login_body = LOGIN_RULES.dependency()
_refresh_body = REFRESH_RULES.dependency()


def _get_credentials(request: Request) -> CredentialStore:
    return request.app.state.credentials


def _get_tokens(request: Request) -> TokenService:
    return request.app.state.tokens


# PUBLIC_INTERFACE
@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    summary="Register",
    description="Create an account and start its session. Returns the user and a token pair.",
    responses={
        201: {"description": "User registered"},
        400: {"description": "Validation error, or email/username already in use"},
    },
)
def register(
    body: Dict[str, Any] = Depends(_register_body),
    credentials: CredentialStore = Depends(_get_credentials),
    tokens: TokenService = Depends(_get_tokens),
) -> Dict[str, Any]:
    payload = RegisterRequest(**body)
    with internal_errors("Registration failed"):
        user = credentials.register(payload.username, payload.email, payload.password)
        pair = tokens.start_session(user)
    session = SessionOut(user=UserOut.from_entity(user), **pair.model_dump())
    return envelope(message="User registered successfully", data=session)


# PUBLIC_INTERFACE
@router.post(
    "/login",
    summary="Login",
    description="Exchange email and password for a token pair. Any earlier session is invalidated.",
    responses={
        200: {"description": "Login successful"},
        400: {"description": "Validation error"},
        401: {"description": "Invalid email or password"},
    },
)
def login(
    body: Dict[str, Any] = Depends(_login_body),
    credentials: CredentialStore = Depends(_get_credentials),
    tokens: TokenService = Depends(_get_tokens),
) -> Dict[str, Any]:
    payload = LoginRequest(**body)
    with internal_errors("Login failed"):
        user = credentials.find_by_email(payload.email, include_secret=True)
        # same answer for unknown email and wrong password
        if user is None or not credentials.verify_password(user, payload.password):
            log.info("login_failed", email=payload.email)
            raise InvalidCredentialsError()
        pair = tokens.start_session(user)
    session = SessionOut(user=UserOut.from_entity(user), **pair.model_dump())
    return envelope(message="Login successful", data=session)


# PUBLIC_INTERFACE
@router.post(
    "/refresh",
    summary="Refresh tokens",
    description=(
        "Exchange a refresh token for a new access/refresh pair. "
        "The submitted refresh token is consumed and cannot be used again."
    ),
    responses={
        200: {"description": "Token refreshed"},
        400: {"description": "Refresh token missing"},
        401: {"description": "Refresh token invalid or expired"},
    },
)
def refresh(
    body: Dict[str, Any] = Depends(_refresh_body),
    tokens: TokenService = Depends(_get_tokens),
) -> Dict[str, Any]:
    with internal_errors("Token refresh failed"):
        try:
            pair = tokens.rotate(body["refreshToken"])
        except TokenExpiredError:
            raise TokenExpiredError("Refresh token expired")
        except TokenInvalidError:
            raise TokenInvalidError("Invalid refresh token")
    return envelope(message="Token refreshed successfully", data=pair)


# PUBLIC_INTERFACE
@router.post(
    "/logout",
    summary="Logout",
    description="End the current session; the stored refresh token is cleared.",
    responses={
        200: {"description": "Logout successful"},
        401: {"description": "Missing or invalid access token"},
    },
)
def logout(
    user: UserEntity = Depends(get_current_user),
    tokens: TokenService = Depends(_get_tokens),
) -> Dict[str, Any]:
    with internal_errors("Logout failed"):
        tokens.end_session(user)
    return envelope(message="Logout successful")


# PUBLIC_INTERFACE
@router.get(
    "/me",
    summary="Current user",
    description="Return the authenticated user's public profile.",
    responses={
        200: {"description": "Current user"},
        401: {"description": "Missing or invalid access token"},
    },
)
def me(user: UserEntity = Depends(get_current_user)) -> Dict[str, Any]:
    return envelope(data={"user": UserOut.from_entity(user)})
