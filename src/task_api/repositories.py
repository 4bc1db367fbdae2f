from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import RLock
from typing import Any, Callable, Dict, List, Optional, Tuple

from .models import PRIORITY_RANK, TodoEntity, TodoSummary, UserEntity, UserRecord, public_user
from .schemas import TodoCreate, TodoUpdate
from .settings import Settings

# Sortable columns, keyed by the camelCase names clients send
SORT_FIELDS = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "dueDate": "due_date",
    "priority": "priority",
    "title": "title",
    "completed": "completed",
}


@dataclass(frozen=True)
class ListQuery:
    """
    Query parameters for listing todos.
    """
    limit: int = 100
    completed: Optional[bool] = None
    priority: Optional[str] = None
    sort_by: str = "created_at"  # one of SORT_FIELDS.values()
    descending: bool = True


class UniqueViolation(Exception):
    """Raised by a user backend when an insert collides with a unique index."""


# PUBLIC_INTERFACE
class UserRepository(ABC):
    """Abstract storage contract for user accounts."""

    @abstractmethod
    def create(self, username: str, email: str, password_hash: str) -> UserEntity:
        """Insert a user. Raise UniqueViolation if username or email is taken."""

    @abstractmethod
    def get_by_id(self, user_id: str, include_secret: bool = False) -> Optional[UserEntity]:
        """Return a user by id. Secret fields are only loaded when include_secret is set."""

    @abstractmethod
    def get_by_email(self, email: str, include_secret: bool = False) -> Optional[UserEntity]:
        """Return a user by (lowercased) email."""

    @abstractmethod
    def exists(self, field: str, value: str) -> bool:
        """Return True if a user with field ('email' or 'username') == value exists."""

    @abstractmethod
    def set_refresh_token(self, user_id: str, token: Optional[str]) -> bool:
        """Overwrite the stored refresh token. Return False if the user is gone."""

    @abstractmethod
    def swap_refresh_token(self, user_id: str, expected: str, new: str) -> bool:
        """
        Atomically replace the stored refresh token with new, but only while it
        still equals expected. Return True if the swap happened.
        """


# PUBLIC_INTERFACE
class TodoRepository(ABC):
    """
    Abstract repository contract for todo storage backends.

    Every method takes the owning user's id. Records of other owners are
    treated exactly like records that do not exist.
    """

    @abstractmethod
    def create(self, owner_id: str, data: TodoCreate) -> TodoEntity:
        """Create and return a new TodoEntity owned by owner_id."""

    @abstractmethod
    def get(self, owner_id: str, todo_id: str) -> Optional[TodoEntity]:
        """Return a TodoEntity by id, or None if not found for this owner."""

    @abstractmethod
    def update(self, owner_id: str, todo_id: str, data: TodoUpdate) -> Optional[TodoEntity]:
        """Update the fields present in data. Return updated entity or None if not found."""

    @abstractmethod
    def delete(self, owner_id: str, todo_id: str) -> bool:
        """Delete a TodoEntity by id. Return True if deleted, False if not found."""

    @abstractmethod
    def toggle(self, owner_id: str, todo_id: str) -> Optional[TodoEntity]:
        """Flip the completed flag. Return the updated entity or None if not found."""

    @abstractmethod
    def list(self, owner_id: str, query: Optional[ListQuery] = None) -> List[TodoEntity]:
        """
        Return the owner's todos matching the query.
        - Filter by completed and priority when given
        - Sort by any SORT_FIELDS column, asc or desc
        - At most query.limit items
        """

    @abstractmethod
    def summarize(self, owner_id: str) -> TodoSummary:
        """Count the owner's todos by status and priority."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def _sort_key(field: str) -> Callable[[TodoEntity], Tuple[bool, Any]]:
    if field == "priority":
        return lambda t: (True, PRIORITY_RANK[t["priority"]])
    # Missing values (due_date) sort before present ones
    return lambda t: (t[field] is not None, t[field] if t[field] is not None else 0)  # type: ignore[literal-required]


def empty_summary() -> TodoSummary:
    return {
        "total": 0,
        "completed": 0,
        "pending": 0,
        "high_priority": 0,
        "medium_priority": 0,
        "low_priority": 0,
    }


class InMemoryUserRepository(UserRepository):
    """
    Thread-safe in-memory user store suitable for testing and default runtime.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._users: Dict[str, UserRecord] = {}

    def _find(self, field: str, value: str) -> Optional[UserRecord]:
        for user in self._users.values():
            if user[field] == value:  # type: ignore[literal-required]
                return user
        return None

    def _view(self, user: Optional[UserRecord], include_secret: bool) -> Optional[UserEntity]:
        if user is None:
            return None
        return user.copy() if include_secret else public_user(user)

    def create(self, username: str, email: str, password_hash: str) -> UserEntity:
        now = utcnow()
        with self._lock:
            if self._find("email", email) or self._find("username", username):
                raise UniqueViolation(username, email)
            record: UserRecord = {
                "id": new_id(),
                "username": username,
                "email": email,
                "password_hash": password_hash,
                "refresh_token": None,
                "created_at": now,
                "updated_at": now,
            }
            self._users[record["id"]] = record
            return public_user(record)

    def get_by_id(self, user_id: str, include_secret: bool = False) -> Optional[UserEntity]:
        with self._lock:
            return self._view(self._users.get(user_id), include_secret)

    def get_by_email(self, email: str, include_secret: bool = False) -> Optional[UserEntity]:
        with self._lock:
            return self._view(self._find("email", email), include_secret)

    def exists(self, field: str, value: str) -> bool:
        with self._lock:
            return self._find(field, value) is not None

    def set_refresh_token(self, user_id: str, token: Optional[str]) -> bool:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return False
            user["refresh_token"] = token
            user["updated_at"] = utcnow()
            return True

    def swap_refresh_token(self, user_id: str, expected: str, new: str) -> bool:
        with self._lock:
            user = self._users.get(user_id)
            if user is None or user["refresh_token"] != expected:
                return False
            user["refresh_token"] = new
            user["updated_at"] = utcnow()
            return True


class InMemoryTodoRepository(TodoRepository):
    """
    Thread-safe in-memory repository suitable for testing and default runtime.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: Dict[str, TodoEntity] = {}

    def _owned(self, owner_id: str, todo_id: str) -> Optional[TodoEntity]:
        item = self._items.get(todo_id)
        if item is None or item["owner_id"] != owner_id:
            return None
        return item

    def create(self, owner_id: str, data: TodoCreate) -> TodoEntity:
        now = utcnow()
        entity: TodoEntity = {
            "id": new_id(),
            "owner_id": owner_id,
            "title": data.title,
            "description": data.description,
            "completed": data.completed,
            "priority": data.priority.value,
            "due_date": data.due_date,
            "created_at": now,
            "updated_at": now,
        }
        with self._lock:
            self._items[entity["id"]] = entity
        return entity.copy()

    def get(self, owner_id: str, todo_id: str) -> Optional[TodoEntity]:
        with self._lock:
            item = self._owned(owner_id, todo_id)
            return None if item is None else item.copy()

    def update(self, owner_id: str, todo_id: str, data: TodoUpdate) -> Optional[TodoEntity]:
        with self._lock:
            existing = self._owned(owner_id, todo_id)
            if existing is None:
                return None

            # Update only provided fields
            updated = existing.copy()
            fields = data.model_fields_set
            if "title" in fields and data.title is not None:
                updated["title"] = data.title
            if "description" in fields:
                updated["description"] = data.description
            if "completed" in fields and data.completed is not None:
                updated["completed"] = data.completed
            if "priority" in fields and data.priority is not None:
                updated["priority"] = data.priority.value
            if "due_date" in fields:
                updated["due_date"] = data.due_date
            updated["updated_at"] = utcnow()

            self._items[todo_id] = updated
            return updated.copy()

    def delete(self, owner_id: str, todo_id: str) -> bool:
        with self._lock:
            if self._owned(owner_id, todo_id) is None:
                return False
            del self._items[todo_id]
            return True

    def toggle(self, owner_id: str, todo_id: str) -> Optional[TodoEntity]:
        with self._lock:
            item = self._owned(owner_id, todo_id)
            if item is None:
                return None
            item["completed"] = not item["completed"]
            item["updated_at"] = utcnow()
            return item.copy()

    def list(self, owner_id: str, query: Optional[ListQuery] = None) -> List[TodoEntity]:
        q = query or ListQuery()
        with self._lock:
            items = [t for t in self._items.values() if t["owner_id"] == owner_id]

            if q.completed is not None:
                items = [t for t in items if t["completed"] == q.completed]
            if q.priority is not None:
                items = [t for t in items if t["priority"] == q.priority]

            field = q.sort_by if q.sort_by in SORT_FIELDS.values() else "created_at"
            if q.descending:
                # ties keep newest-first order, matching the sqlite rowid tie-break
                items.reverse()
            items.sort(key=_sort_key(field), reverse=q.descending)

            return [t.copy() for t in items[: max(q.limit, 0)]]

    def summarize(self, owner_id: str) -> TodoSummary:
        summary = empty_summary()
        with self._lock:
            for t in self._items.values():
                if t["owner_id"] != owner_id:
                    continue
                summary["total"] += 1
                summary["completed" if t["completed"] else "pending"] += 1
                summary[f"{t['priority']}_priority"] += 1  # type: ignore[literal-required]
        return summary


# PUBLIC_INTERFACE
def create_repositories(settings: Settings) -> Tuple[UserRepository, TodoRepository]:
    """
    Build the user and todo repositories for the configured backend.
    - memory: InMemoryUserRepository / InMemoryTodoRepository
    - sqlite: SQLiteUserRepository / SQLiteTodoRepository sharing one db file
    """
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteTodoRepository, SQLiteUserRepository

        return SQLiteUserRepository(settings.sqlite_db_path), SQLiteTodoRepository(settings.sqlite_db_path)
    return InMemoryUserRepository(), InMemoryTodoRepository()

