from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import AuthGuard
from .credentials import CredentialStore
from .errors import AppError
from .logging_config import setup_logging
from .middleware import LoggingMiddleware
from .repositories import create_repositories
from .routers import auth as auth_router
from .routers import todos as todos_router
from .settings import Settings, get_settings
from .tokens import TokenService
from .utils import envelope

log = structlog.get_logger(__name__)

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {"name": "auth", "description": "Registration, login and session token lifecycle."},
    {
        "name": "todos",
        "description": "Owner-scoped CRUD operations for Todo items with filtering, sorting and statistics.",
    },
]

_HTTP_MESSAGES = {
    404: "Route not found",
    405: "Method not allowed",
}


def _request_errors(exc: RequestValidationError) -> List[Dict[str, Any]]:
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        errors.append({"field": ".".join(loc) or "request", "message": err.get("msg", "Invalid value")})
    return errors


def _install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        """
        Render any AppError into the standard envelope.

        Response format:
            {
                "success": false,
                "message": "<stable message>",
                "errors": [{"field": ..., "message": ...}]   # validation only
            }
        """
        return JSONResponse(
            status_code=exc.status_code,
            content=envelope(success=False, message=exc.message, errors=exc.errors()),
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content=envelope(success=False, message="Validation errors", errors=_request_errors(exc)),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message = _HTTP_MESSAGES.get(exc.status_code, str(exc.detail))
        return JSONResponse(
            status_code=exc.status_code,
            content=envelope(success=False, message=message),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        log.exception("unhandled_error", path=request.url.path)
        return JSONResponse(status_code=500, content=envelope(success=False, message="Internal server error"))


# PUBLIC_INTERFACE
def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build a FastAPI application with its own repositories and services.

    Each call returns an independent app, so tests can run against fresh
    state by calling create_app() per test.
    """
    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="Task Tracker API",
        description="Personal task tracking with JWT sessions and owner-scoped todo storage.",
        version="1.0.0",
        openapi_tags=openapi_tags,
    )

    users, todos = create_repositories(settings)
    credentials = CredentialStore(users, bcrypt_rounds=settings.bcrypt_rounds)
    tokens = TokenService.from_settings(credentials, settings)

    app.state.settings = settings
    app.state.credentials = credentials
    app.state.tokens = tokens
    app.state.todos = todos
    app.state.auth_guard = AuthGuard(tokens, credentials)

    # Configure CORS based on settings (.env -> CORS_ALLOW_ORIGINS), with '*' fallback
    allow_all = (settings.cors_allow_origins == ["*"]) or (len(settings.cors_allow_origins) == 0)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)

    _install_exception_handlers(app)

    # PUBLIC_INTERFACE
    @app.get("/health", summary="Health Check", tags=["health"])
    def health_check():
        """
        Health check endpoint.

        Returns:
            A JSON object indicating service health.
        """
        return {"status": "OK", "message": "Server is running", "backend": settings.persistence_backend}

    app.include_router(auth_router.router)
    app.include_router(todos_router.router)

    log.info("app_created", backend=settings.persistence_backend)
    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    uvicorn.run(
        "task_api.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )
