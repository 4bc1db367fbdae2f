"""
Declarative request validation.

A Rule is a callable returning an error message for a bad value, or None.
Rules are attached to fields with FieldRules and grouped into a RuleSet.
RuleSet.check runs every rule of every field before deciding, so a client
receives all problems with its payload in one response.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable, Collection, Dict, List, Mapping, Optional, Pattern, Tuple, Union

from fastapi import Request

from .errors import ValidationError
from .models import Priority

Rule = Callable[[Any], Optional[str]]

DateInput = Union[date, datetime, str]

_EMAIL_RE = re.compile(r"^[A-Za-z0-9_.+-]+@[A-Za-z0-9-]+(\.[A-Za-z0-9-]+)*\.[A-Za-z]{2,}$")
_USERNAME_RE = re.compile(r"^[a-zA-Z0-9_]+$")


def _as_utc(value: datetime) -> datetime:
    # naive values are taken to be UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# PUBLIC_INTERFACE
def parse_datetime(value: Optional[DateInput]) -> Optional[datetime]:
    """
    Normalize a due date into a UTC datetime.
    - If value is a string, parse it with datetime.fromisoformat; a bare date becomes 00:00.
    - If value is a date (not datetime), convert to datetime at 00:00.
    - If value is a datetime, it is converted to UTC.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return _as_utc(value)

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    if isinstance(value, str):
        s = value.strip()
        try:
            return _as_utc(datetime.fromisoformat(s))
        except ValueError:
            try:
                d = date.fromisoformat(s)
                return datetime(d.year, d.month, d.day, tzinfo=timezone.utc)
            except ValueError as e:
                raise ValueError(
                    "Invalid date format. Use ISO8601 date or datetime string (e.g., '2025-01-31' or '2025-01-31T13:45:00')."
                ) from e

    raise ValueError("Invalid type for date; expected date, datetime, or ISO8601 string.")


# PUBLIC_INTERFACE
def not_empty(message: str) -> Rule:
    def rule(value: Any) -> Optional[str]:
        if value is None or (isinstance(value, str) and value == ""):
            return message
        return None

    return rule


# PUBLIC_INTERFACE
def length(min_len: int = 0, max_len: Optional[int] = None, *, message: str) -> Rule:
    """String length within [min_len, max_len]; non-strings always fail."""

    def rule(value: Any) -> Optional[str]:
        if not isinstance(value, str):
            return message
        if len(value) < min_len or (max_len is not None and len(value) > max_len):
            return message
        return None

    return rule


# PUBLIC_INTERFACE
def matches(pattern: Pattern[str], message: str) -> Rule:
    def rule(value: Any) -> Optional[str]:
        if not isinstance(value, str) or not pattern.match(value):
            return message
        return None

    return rule


# PUBLIC_INTERFACE
def email(message: str) -> Rule:
    def rule(value: Any) -> Optional[str]:
        if not isinstance(value, str) or len(value) > 254 or not _EMAIL_RE.match(value):
            return message
        return None

    return rule


# PUBLIC_INTERFACE
def one_of(choices: Collection[Any], message: str) -> Rule:
    def rule(value: Any) -> Optional[str]:
        try:
            return None if value in choices else message
        except TypeError:
            # unhashable JSON values (lists, objects)
            return message

    return rule


# PUBLIC_INTERFACE
def iso_date(message: str) -> Rule:
    def rule(value: Any) -> Optional[str]:
        if not isinstance(value, str):
            return message
        try:
            parse_datetime(value)
        except ValueError:
            return message
        return None

    return rule


# PUBLIC_INTERFACE
def boolean(message: str) -> Rule:
    def rule(value: Any) -> Optional[str]:
        return None if isinstance(value, bool) else message

    return rule


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class FieldRules:
    """
    Rules and sanitizers for one payload key.

    - optional: an absent key is skipped entirely
    - nullable: an explicit null is accepted as-is without running rules
    - trim / lower: applied to string values before the rules run
    - parse: converts the sanitized value once every rule has passed
    """

    name: str
    rules: Tuple[Rule, ...] = ()
    optional: bool = False
    nullable: bool = False
    trim: bool = False
    lower: bool = False
    parse: Optional[Callable[[Any], Any]] = None


def field(name: str, *rules: Rule, **options: Any) -> FieldRules:
    return FieldRules(name=name, rules=tuple(rules), **options)


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class RuleSet:
    """An ordered collection of FieldRules evaluated as one unit."""

    fields: Tuple[FieldRules, ...]
    message: Optional[str] = None

    def check(self, payload: Any) -> Dict[str, Any]:
        """
        Validate and sanitize a decoded JSON payload.

        Returns only the declared keys that were present (or required).
        Raises ValidationError listing every failed rule.
        """
        if not isinstance(payload, Mapping):
            raise ValidationError(
                [{"field": "body", "message": "Request body must be a JSON object"}],
                self.message,
            )

        cleaned: Dict[str, Any] = {}
        errors: List[Dict[str, Any]] = []

        for entry in self.fields:
            present = entry.name in payload
            if not present and entry.optional:
                continue

            value = payload.get(entry.name)
            if value is None and present and entry.nullable:
                cleaned[entry.name] = None
                continue

            if isinstance(value, str):
                if entry.trim:
                    value = value.strip()
                if entry.lower:
                    value = value.lower()

            failed = False
            seen = set()
            for rule in entry.rules:
                msg = rule(value)
                if msg is not None and msg not in seen:
                    seen.add(msg)
                    errors.append({"field": entry.name, "message": msg})
                    failed = True

            if not failed:
                cleaned[entry.name] = entry.parse(value) if entry.parse else value

        if errors:
            raise ValidationError(errors, self.message)
        return cleaned

    def dependency(self) -> Callable[[Request], Awaitable[Dict[str, Any]]]:
        """Wrap the rule set as a FastAPI dependency over the JSON request body."""

        async def validated_body(request: Request) -> Dict[str, Any]:
            raw = await request.body()
            if not raw.strip():
                payload: Any = {}
            else:
                try:
                    payload = json.loads(raw)
                except ValueError:
                    raise ValidationError(
                        [{"field": "body", "message": "Request body must be valid JSON"}],
                        self.message,
                    )
            return self.check(payload)

        return validated_body


def rule_set(*fields: FieldRules, message: Optional[str] = None) -> RuleSet:
    return RuleSet(fields=tuple(fields), message=message)


_PRIORITIES = {p.value for p in Priority}

_TITLE = length(1, 200, message="Title must be between 1 and 200 characters")
_DESCRIPTION = length(0, 1000, message="Description cannot exceed 1000 characters")
_PRIORITY = one_of(_PRIORITIES, "Priority must be low, medium, or high")
_DUE_DATE = iso_date("Due date must be a valid date")
_COMPLETED = boolean("Completed must be a boolean")
_EMAIL = email("Please enter a valid email")

REGISTER_RULES = rule_set(
    field(
        "username",
        length(3, 30, message="Username must be between 3 and 30 characters"),
        matches(_USERNAME_RE, "Username can only contain letters, numbers, and underscores"),
        trim=True,
    ),
    field("email", _EMAIL, trim=True, lower=True),
    field("password", length(6, message="Password must be at least 6 characters long")),
)

LOGIN_RULES = rule_set(
    field("email", _EMAIL, trim=True, lower=True),
    field("password", not_empty("Password is required"), length(1, message="Password is required")),
)

REFRESH_RULES = rule_set(
    field("refreshToken", length(1, message="Refresh token is required")),
    message="Refresh token is required",
)

TODO_CREATE_RULES = rule_set(
    field("title", _TITLE, trim=True),
    field("description", _DESCRIPTION, optional=True, nullable=True, trim=True),
    field("priority", _PRIORITY, optional=True),
    field("dueDate", _DUE_DATE, optional=True, nullable=True, parse=parse_datetime),
    field("completed", _COMPLETED, optional=True),
)

TODO_UPDATE_RULES = rule_set(
    field("title", _TITLE, optional=True, trim=True),
    field("description", _DESCRIPTION, optional=True, nullable=True, trim=True),
    field("priority", _PRIORITY, optional=True),
    field("dueDate", _DUE_DATE, optional=True, nullable=True, parse=parse_datetime),
    field("completed", _COMPLETED, optional=True),
)

LIST_QUERY_RULES = rule_set(
    field("priority", _PRIORITY, optional=True, trim=True),
    field(
        "sortOrder",
        one_of({"asc", "desc"}, "sortOrder must be 'asc' or 'desc'"),
        optional=True,
        trim=True,
        lower=True,
    ),
)
