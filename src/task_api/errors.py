from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import structlog

log = structlog.get_logger(__name__)


# PUBLIC_INTERFACE
class AppError(Exception):
    """
    Base class for failures that are rendered into the response envelope.

    Subclasses fix the HTTP status; the message is a short, stable string
    that is safe to show to clients.
    """

    status_code: int = 500
    message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return None

    def errors(self) -> Optional[List[Dict[str, Any]]]:
        return None


class ValidationError(AppError):
    """One or more field rules failed."""

    status_code = 400
    message = "Validation errors"

    def __init__(self, errors: List[Dict[str, Any]], message: Optional[str] = None) -> None:
        super().__init__(message)
        self._errors = errors

    def errors(self) -> List[Dict[str, Any]]:
        return list(self._errors)


class DuplicateError(AppError):
    """Registration conflict on a unique user field ('email' or 'username')."""

    status_code = 400
    _messages = {
        "email": "Email already registered",
        "username": "Username already taken",
    }

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(self._messages[field])


class AuthError(AppError):
    status_code = 401
    message = "Authentication failed"

    @property
    def headers(self) -> Dict[str, str]:
        return {"WWW-Authenticate": "Bearer"}


class NoTokenError(AuthError):
    message = "Access denied. No token provided."


class TokenInvalidError(AuthError):
    message = "Invalid token."


class TokenExpiredError(AuthError):
    message = "Token expired."


class InvalidCredentialsError(AuthError):
    message = "Invalid email or password"


class NotFoundError(AppError):
    """Record is absent or owned by somebody else; callers cannot tell which."""

    status_code = 404
    message = "Not found"


class InternalError(AppError):
    status_code = 500
    message = "Internal server error"


# PUBLIC_INTERFACE
@contextmanager
def internal_errors(message: str) -> Iterator[None]:
    """
    Surface unexpected failures inside the block as InternalError(message).

    AppError subclasses pass through untouched. Anything else is logged with
    its traceback and replaced, so no backend detail reaches the client.
    """
    try:
        yield
    except AppError:
        raise
    except Exception as exc:
        log.exception("operation_failed", failure=message)
        raise InternalError(message) from exc
