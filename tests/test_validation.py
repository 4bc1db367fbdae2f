from datetime import datetime, timezone

import pytest

from task_api.errors import ValidationError
from task_api.validation import (
    LIST_QUERY_RULES,
    LOGIN_RULES,
    REFRESH_RULES,
    REGISTER_RULES,
    TODO_CREATE_RULES,
    TODO_UPDATE_RULES,
    field,
    length,
    not_empty,
    one_of,
    parse_datetime,
    rule_set,
)


def _errors(rules, payload):
    with pytest.raises(ValidationError) as exc_info:
        rules.check(payload)
    return exc_info.value.errors()


class TestParseDatetime:
    def test_date_string_becomes_midnight_utc(self):
        assert parse_datetime("2099-12-25") == datetime(2099, 12, 25, tzinfo=timezone.utc)

    def test_offset_is_normalized_to_utc(self):
        parsed = parse_datetime("2025-01-31T13:45:00+02:00")
        assert parsed == datetime(2025, 1, 31, 11, 45, tzinfo=timezone.utc)

    def test_naive_datetime_is_taken_as_utc(self):
        assert parse_datetime("2025-01-31T13:45:00").tzinfo == timezone.utc

    def test_none_passes_through(self):
        assert parse_datetime(None) is None

    def test_garbage_raises(self):
        with pytest.raises(ValueError):
            parse_datetime("next tuesday")


class TestRuleSet:
    def test_collects_every_failure(self):
        errors = _errors(REGISTER_RULES, {"username": "a!", "email": "nope", "password": "123"})
        fields = [e["field"] for e in errors]
        assert fields.count("username") == 2
        assert "email" in fields
        assert "password" in fields

    def test_missing_required_keys_are_reported(self):
        errors = _errors(LOGIN_RULES, {})
        assert {e["field"] for e in errors} == {"email", "password"}

    def test_sanitizes_before_rules(self):
        cleaned = REGISTER_RULES.check(
            {"username": "  alice ", "email": "  Alice@Example.COM ", "password": "secret123"}
        )
        assert cleaned == {"username": "alice", "email": "alice@example.com", "password": "secret123"}

    def test_non_object_body_is_rejected(self):
        errors = _errors(TODO_CREATE_RULES, ["title"])
        assert errors == [{"field": "body", "message": "Request body must be a JSON object"}]

    def test_duplicate_messages_per_field_are_collapsed(self):
        rules = rule_set(field("x", not_empty("bad"), length(1, message="bad")))
        assert _errors(rules, {"x": ""}) == [{"field": "x", "message": "bad"}]

    def test_one_of_rejects_unhashable_values(self):
        rule = one_of({"a", "b"}, "pick one")
        assert rule(["a"]) == "pick one"
        assert rule("a") is None

    def test_rule_set_message_is_carried_on_the_error(self):
        with pytest.raises(ValidationError) as exc_info:
            REFRESH_RULES.check({})
        assert exc_info.value.message == "Refresh token is required"
        assert exc_info.value.status_code == 400

    def test_undeclared_keys_are_dropped(self):
        cleaned = TODO_CREATE_RULES.check({"title": "x", "owner": "someone-else", "id": "abc"})
        assert cleaned == {"title": "x"}


class TestTodoRules:
    def test_title_is_trimmed_and_required(self):
        assert TODO_CREATE_RULES.check({"title": "  Buy milk  "})["title"] == "Buy milk"
        errors = _errors(TODO_CREATE_RULES, {"title": "   "})
        assert errors == [{"field": "title", "message": "Title must be between 1 and 200 characters"}]

    def test_title_length_bounds(self):
        TODO_CREATE_RULES.check({"title": "x" * 200})
        _errors(TODO_CREATE_RULES, {"title": "x" * 201})

    def test_description_limit(self):
        TODO_CREATE_RULES.check({"title": "t", "description": "d" * 1000})
        errors = _errors(TODO_CREATE_RULES, {"title": "t", "description": "d" * 1001})
        assert errors[0]["message"] == "Description cannot exceed 1000 characters"

    def test_priority_and_due_date(self):
        errors = _errors(TODO_CREATE_RULES, {"title": "t", "priority": "urgent", "dueDate": "soon"})
        messages = {e["field"]: e["message"] for e in errors}
        assert messages == {
            "priority": "Priority must be low, medium, or high",
            "dueDate": "Due date must be a valid date",
        }

    def test_due_date_is_parsed(self):
        cleaned = TODO_CREATE_RULES.check({"title": "t", "dueDate": "2099-01-01"})
        assert cleaned["dueDate"] == datetime(2099, 1, 1, tzinfo=timezone.utc)

    def test_completed_must_be_boolean(self):
        errors = _errors(TODO_UPDATE_RULES, {"completed": "yes"})
        assert errors == [{"field": "completed", "message": "Completed must be a boolean"}]

    def test_update_allows_empty_and_nulls(self):
        assert TODO_UPDATE_RULES.check({}) == {}
        assert TODO_UPDATE_RULES.check({"description": None, "dueDate": None}) == {
            "description": None,
            "dueDate": None,
        }

    def test_update_title_cannot_be_null(self):
        errors = _errors(TODO_UPDATE_RULES, {"title": None})
        assert errors[0]["field"] == "title"


class TestQueryAndLoginRules:
    def test_login_password_must_be_a_string(self):
        errors = _errors(LOGIN_RULES, {"email": "alice@example.com", "password": 123456})
        assert errors == [{"field": "password", "message": "Password is required"}]

    def test_list_query_sanitizes_sort_order(self):
        assert LIST_QUERY_RULES.check({"sortOrder": " ASC "}) == {"sortOrder": "asc"}

    def test_list_query_priority_message(self):
        errors = _errors(LIST_QUERY_RULES, {"sortOrder": "desc", "priority": "urgent"})
        assert errors == [{"field": "priority", "message": "Priority must be low, medium, or high"}]
