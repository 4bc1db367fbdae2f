from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional, TypedDict


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Rank used when sorting by priority: low < medium < high
PRIORITY_RANK = {Priority.LOW.value: 0, Priority.MEDIUM.value: 1, Priority.HIGH.value: 2}


# PUBLIC_INTERFACE
class UserEntity(TypedDict):
    """
    Public view of a user account, as returned by default reads.

    Fields:
    - id: Opaque unique identifier (uuid hex)
    - username: 3..30 chars of letters, digits and underscores; unique
    - email: Lowercased address; unique
    - created_at / updated_at: UTC timestamps
    """

    id: str
    username: str
    email: str
    created_at: datetime
    updated_at: datetime


# PUBLIC_INTERFACE
class UserRecord(UserEntity):
    """
    User account including stored secrets. Only returned by the
    include_secret read variants.

    - password_hash: bcrypt hash of the pre-hashed password
    - refresh_token: the single active refresh token, or None when logged out
    """

    password_hash: str
    refresh_token: Optional[str]


# PUBLIC_INTERFACE
class TodoEntity(TypedDict):
    """
    A lightweight domain model representing a Todo item for non-ORM storage
    backends.

    Fields:
    - id: Opaque unique identifier (uuid hex)
    - owner_id: id of the owning user; set on creation, never reassigned
    - title: Short title (1..200 chars, trimmed on input)
    - description: Optional detailed description (<= 1000 chars)
    - completed: Boolean completion flag
    - priority: 'low' | 'medium' | 'high'
    - due_date: Optional due datetime
    - created_at / updated_at: UTC timestamps
    """

    id: str
    owner_id: str
    title: str
    description: Optional[str]
    completed: bool
    priority: str
    due_date: Optional[datetime]
    created_at: datetime
    updated_at: datetime


# PUBLIC_INTERFACE
class TodoSummary(TypedDict):
    total: int
    completed: int
    pending: int
    high_priority: int
    medium_priority: int
    low_priority: int


def public_user(record: UserEntity) -> UserEntity:
    """Strip secret fields from a user record."""
    return {
        "id": record["id"],
        "username": record["username"],
        "email": record["email"],
        "created_at": record["created_at"],
        "updated_at": record["updated_at"],
    }
