from __future__ import annotations

import os
import re
from dataclasses import dataclass
from datetime import timedelta
from typing import List

_DURATION_RE = re.compile(r"^(\d+)\s*([smhd]?)$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    Env vars:
    - PERSISTENCE_BACKEND: 'memory' (default) or 'sqlite'
    - SQLITE_DB_PATH: path to sqlite db file. Default './data/tasks.db'
    - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins; '*' by default
    - JWT_SECRET: signing key for access tokens
    - JWT_REFRESH_SECRET: signing key for refresh tokens
    - JWT_ALGORITHM: HMAC algorithm used for both token kinds (default: HS256)
    - JWT_EXPIRES_IN: access token lifetime, seconds or '<n>s|m|h|d' (default: 15m)
    - JWT_REFRESH_EXPIRES_IN: refresh token lifetime (default: 7d)
    - BCRYPT_ROUNDS: bcrypt cost factor, 4..31 (default: 12)
    - MAX_PAGE_SIZE: upper bound on todos returned by one list call, 1..100 (default: 100)
    - LOG_LEVEL: stdlib level name (default: INFO)
    - LOG_FORMAT: 'dev' (default) or 'json'
    """

    persistence_backend: str
    sqlite_db_path: str
    cors_allow_origins: List[str]
    jwt_secret: str
    jwt_refresh_secret: str
    jwt_algorithm: str
    access_token_ttl: timedelta
    refresh_token_ttl: timedelta
    bcrypt_rounds: int
    max_page_size: int
    log_level: str
    log_format: str


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _parse_int(value: str, default: int, minimum: int, maximum: int) -> int:
    try:
        parsed = int(value.strip())
    except ValueError:
        return default
    if not (minimum <= parsed <= maximum):
        return default
    return parsed


def _parse_origins(origins_value: str) -> List[str]:
    """
    Parse CORS origins from env. Supports:
    - '*' to allow all origins
    - Comma-separated list of origins
    """
    value = origins_value.strip()
    if value == "*":
        return ["*"]
    return [o.strip() for o in value.split(",") if o.strip()]


# PUBLIC_INTERFACE
def parse_duration(value: str, default: timedelta) -> timedelta:
    """
    Parse a token lifetime such as '900', '15m', '12h' or '7d'.

    Unparseable values return the given default.
    """
    match = _DURATION_RE.match(value.strip().lower())
    if not match:
        return default
    amount, unit = match.groups()
    return timedelta(seconds=int(amount) * _DURATION_UNITS[unit])


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return application settings loaded from environment variables."""
    backend = _get_env("PERSISTENCE_BACKEND", "memory").strip().lower()
    if backend not in {"memory", "sqlite"}:
        backend = "memory"

    sqlite_path = _get_env("SQLITE_DB_PATH", "./data/tasks.db").strip()
    origins = _parse_origins(_get_env("CORS_ALLOW_ORIGINS", "*"))

    algorithm = _get_env("JWT_ALGORITHM", "HS256").strip().upper()
    if algorithm not in {"HS256", "HS384", "HS512"}:
        algorithm = "HS256"

    log_format = _get_env("LOG_FORMAT", "dev").strip().lower()
    if log_format not in {"dev", "json"}:
        log_format = "dev"

    return Settings(
        persistence_backend=backend,
        sqlite_db_path=sqlite_path,
        cors_allow_origins=origins,
        jwt_secret=_get_env("JWT_SECRET", "dev-access-secret"),
        jwt_refresh_secret=_get_env("JWT_REFRESH_SECRET", "dev-refresh-secret"),
        jwt_algorithm=algorithm,
        access_token_ttl=parse_duration(_get_env("JWT_EXPIRES_IN", "15m"), timedelta(minutes=15)),
        refresh_token_ttl=parse_duration(_get_env("JWT_REFRESH_EXPIRES_IN", "7d"), timedelta(days=7)),
        bcrypt_rounds=_parse_int(_get_env("BCRYPT_ROUNDS", "12"), 12, 4, 31),
        max_page_size=_parse_int(_get_env("MAX_PAGE_SIZE", "100"), 100, 1, 100),
        log_level=_get_env("LOG_LEVEL", "INFO").strip().upper(),
        log_format=log_format,
    )
