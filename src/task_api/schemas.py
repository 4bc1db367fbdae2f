from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .models import Priority, TodoEntity, TodoSummary, UserEntity
from .validation import DateInput, parse_datetime

_camel = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# PUBLIC_INTERFACE
class RegisterRequest(BaseModel):
    """Credentials for a new account, after the register rule set has run."""

    username: str
    email: str
    password: str


# PUBLIC_INTERFACE
class LoginRequest(BaseModel):
    email: str
    password: str


# PUBLIC_INTERFACE
class TodoCreate(BaseModel):
    """
    Schema for creating a new Todo item.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "title": "Buy groceries",
                "description": "Milk, eggs, bread",
                "priority": "high",
                "dueDate": "2025-02-01",
            }
        },
    )

    title: str = Field(..., description="Short title for the todo item", min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, description="Optional detailed description", max_length=1000)
    completed: bool = Field(default=False, description="Completion status flag")
    priority: Priority = Field(default=Priority.MEDIUM, description="low, medium or high")
    due_date: Optional[datetime] = Field(
        default=None,
        description="Due date/time of the todo item. Accepts ISO8601 date or datetime; dates are set to 00:00",
    )

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        return v.strip()

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Optional[DateInput]) -> Optional[datetime]:
        return parse_datetime(v)


# PUBLIC_INTERFACE
class TodoUpdate(BaseModel):
    """
    Schema for updating an existing Todo item.
    All fields are optional; only provided fields will be updated. An
    explicit null clears description or dueDate.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "title": "Buy groceries and supplies",
                "completed": True,
                "dueDate": "2025-02-02T09:30:00",
            }
        },
    )

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    completed: Optional[bool] = None
    priority: Optional[Priority] = None
    due_date: Optional[datetime] = None

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Optional[DateInput]) -> Optional[datetime]:
        return parse_datetime(v)


# PUBLIC_INTERFACE
class TodoOut(BaseModel):
    """
    Schema returned by the API for a Todo item.
    """

    model_config = _camel

    id: str = Field(..., description="Unique identifier of the todo item")
    title: str
    description: Optional[str] = None
    completed: bool
    priority: Priority
    due_date: Optional[datetime] = None
    owner: str = Field(..., description="Id of the owning user")
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, entity: TodoEntity) -> "TodoOut":
        return cls(
            id=entity["id"],
            title=entity["title"],
            description=entity["description"],
            completed=entity["completed"],
            priority=Priority(entity["priority"]),
            due_date=entity["due_date"],
            owner=entity["owner_id"],
            created_at=entity["created_at"],
            updated_at=entity["updated_at"],
        )


# PUBLIC_INTERFACE
class UserOut(BaseModel):
    """Public user fields. Never carries password or token fields."""

    id: str
    username: str
    email: str

    @classmethod
    def from_entity(cls, entity: UserEntity) -> "UserOut":
        return cls(id=entity["id"], username=entity["username"], email=entity["email"])


# PUBLIC_INTERFACE
class TokenPair(BaseModel):
    model_config = _camel

    access_token: str
    refresh_token: str


# PUBLIC_INTERFACE
class SessionOut(TokenPair):
    """Returned by register and login: the user plus a fresh token pair."""

    user: UserOut


# PUBLIC_INTERFACE
class SummaryOut(BaseModel):
    model_config = _camel

    total: int = 0
    completed: int = 0
    pending: int = 0
    high_priority: int = 0
    medium_priority: int = 0
    low_priority: int = 0

    @classmethod
    def from_summary(cls, summary: TodoSummary) -> "SummaryOut":
        return cls(**summary)
