import dataclasses
import os
from typing import Any, Dict, Optional

import pytest
from fastapi.testclient import TestClient

# Ensure we default to memory backend for tests to avoid filesystem dependencies
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")

from task_api.main import create_app  # noqa: E402
from task_api.settings import Settings, get_settings  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    return dataclasses.replace(
        get_settings(),
        persistence_backend="memory",
        bcrypt_rounds=4,
        log_level="WARNING",
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


def register_payload(
    username: str = "alice",
    email: str = "alice@example.com",
    password: str = "secret123",
) -> Dict[str, Any]:
    return {"username": username, "email": email, "password": password}


def bearer(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def register(client: TestClient, **overrides: Any) -> Dict[str, Any]:
    """Register an account and return its session data (user, accessToken, refreshToken)."""
    res = client.post("/auth/register", json=register_payload(**overrides))
    assert res.status_code == 201, res.text
    return res.json()["data"]


def create_todo(client: TestClient, token: str, title: str = "Test Task", **fields: Any) -> Dict[str, Any]:
    res = client.post("/todos", json={"title": title, **fields}, headers=bearer(token))
    assert res.status_code == 201, res.text
    return res.json()["data"]


@pytest.fixture
def session(client) -> Dict[str, Any]:
    return register(client)


@pytest.fixture
def auth_headers(session) -> Dict[str, str]:
    return bearer(session["accessToken"])


def error_fields(body: Dict[str, Any], field: Optional[str] = None):
    errors = body.get("errors") or []
    if field is None:
        return [e["field"] for e in errors]
    return [e["message"] for e in errors if e["field"] == field]
