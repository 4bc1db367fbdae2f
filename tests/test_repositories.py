import threading
from datetime import datetime, timezone

import pytest

from task_api.db import SQLiteTodoRepository, SQLiteUserRepository
from task_api.models import Priority
from task_api.repositories import (
    InMemoryTodoRepository,
    InMemoryUserRepository,
    ListQuery,
    UniqueViolation,
)
from task_api.schemas import TodoCreate, TodoUpdate

OWNER = "owner-a"
OTHER = "owner-b"


@pytest.fixture(params=["memory", "sqlite"])
def repos(request, tmp_path):
    if request.param == "sqlite":
        path = str(tmp_path / "tasks.db")
        return SQLiteUserRepository(path), SQLiteTodoRepository(path)
    return InMemoryUserRepository(), InMemoryTodoRepository()


@pytest.fixture
def users(repos):
    return repos[0]


@pytest.fixture
def todos(repos):
    return repos[1]


def _new(todos, owner=OWNER, title="Task", **fields):
    return todos.create(owner, TodoCreate(title=title, **fields))


class TestUserRepository:
    def test_create_hides_secrets(self, users):
        user = users.create("alice", "alice@example.com", "hash")
        assert set(user) == {"id", "username", "email", "created_at", "updated_at"}
        assert "password_hash" not in users.get_by_id(user["id"])

        record = users.get_by_email("alice@example.com", include_secret=True)
        assert record["password_hash"] == "hash"
        assert record["refresh_token"] is None

    def test_unique_username_and_email(self, users):
        users.create("alice", "alice@example.com", "hash")
        with pytest.raises(UniqueViolation):
            users.create("alice", "other@example.com", "hash")
        with pytest.raises(UniqueViolation):
            users.create("bob", "alice@example.com", "hash")
        assert users.exists("username", "alice")
        assert users.exists("email", "alice@example.com")
        assert not users.exists("username", "bob")

    def test_swap_refresh_token_is_conditional(self, users):
        user = users.create("alice", "alice@example.com", "hash")
        assert users.set_refresh_token(user["id"], "t1")

        assert not users.swap_refresh_token(user["id"], "stale", "t2")
        assert users.swap_refresh_token(user["id"], "t1", "t2")
        assert not users.swap_refresh_token(user["id"], "t1", "t3")
        assert users.get_by_id(user["id"], include_secret=True)["refresh_token"] == "t2"

    def test_unknown_user(self, users):
        assert users.get_by_id("missing") is None
        assert not users.set_refresh_token("missing", "t")
        assert not users.swap_refresh_token("missing", "a", "b")


class TestTodoRepository:
    def test_create_defaults(self, todos):
        item = _new(todos, title="Buy milk")
        assert item["owner_id"] == OWNER
        assert item["completed"] is False
        assert item["priority"] == "medium"
        assert item["description"] is None
        assert item["due_date"] is None
        assert item["created_at"] == item["updated_at"]

    def test_other_owner_sees_nothing(self, todos):
        item = _new(todos)
        assert todos.get(OTHER, item["id"]) is None
        assert todos.update(OTHER, item["id"], TodoUpdate(title="hijack")) is None
        assert todos.toggle(OTHER, item["id"]) is None
        assert todos.delete(OTHER, item["id"]) is False
        assert todos.list(OTHER) == []
        assert todos.get(OWNER, item["id"])["title"] == "Task"

    def test_partial_update(self, todos):
        item = _new(todos, description="keep me", priority=Priority.HIGH)
        updated = todos.update(OWNER, item["id"], TodoUpdate(title="Renamed"))
        assert updated["title"] == "Renamed"
        assert updated["description"] == "keep me"
        assert updated["priority"] == "high"
        assert updated["owner_id"] == OWNER
        assert updated["updated_at"] >= item["updated_at"]

    def test_explicit_null_clears(self, todos):
        item = _new(todos, description="d", due_date="2099-01-01")
        updated = todos.update(OWNER, item["id"], TodoUpdate(description=None, due_date=None))
        assert updated["description"] is None
        assert updated["due_date"] is None

    def test_toggle_twice_restores(self, todos):
        item = _new(todos)
        assert todos.toggle(OWNER, item["id"])["completed"] is True
        assert todos.toggle(OWNER, item["id"])["completed"] is False

    def test_delete(self, todos):
        item = _new(todos)
        assert todos.delete(OWNER, item["id"]) is True
        assert todos.delete(OWNER, item["id"]) is False
        assert todos.get(OWNER, item["id"]) is None

    def test_due_date_round_trips_as_utc(self, todos):
        item = _new(todos, due_date="2099-12-25")
        fetched = todos.get(OWNER, item["id"])
        assert fetched["due_date"] == datetime(2099, 12, 25, tzinfo=timezone.utc)

    def test_filters(self, todos):
        a = _new(todos, title="a", priority=Priority.HIGH)
        _new(todos, title="b", priority=Priority.LOW)
        todos.toggle(OWNER, a["id"])
        _new(todos, owner=OTHER, title="c", priority=Priority.HIGH)

        assert [t["title"] for t in todos.list(OWNER, ListQuery(completed=True))] == ["a"]
        assert [t["title"] for t in todos.list(OWNER, ListQuery(priority="low"))] == ["b"]
        assert todos.list(OWNER, ListQuery(completed=True, priority="low")) == []

    def test_default_order_is_newest_first(self, todos):
        for title in ("first", "second", "third"):
            _new(todos, title=title)
        assert [t["title"] for t in todos.list(OWNER)] == ["third", "second", "first"]

    def test_sort_by_priority_uses_rank(self, todos):
        _new(todos, title="m", priority=Priority.MEDIUM)
        _new(todos, title="h", priority=Priority.HIGH)
        _new(todos, title="l", priority=Priority.LOW)
        asc = todos.list(OWNER, ListQuery(sort_by="priority", descending=False))
        assert [t["title"] for t in asc] == ["l", "m", "h"]
        desc = todos.list(OWNER, ListQuery(sort_by="priority", descending=True))
        assert [t["title"] for t in desc] == ["h", "m", "l"]

    def test_sort_by_due_date_puts_missing_first_ascending(self, todos):
        _new(todos, title="later", due_date="2099-06-01")
        _new(todos, title="none")
        _new(todos, title="sooner", due_date="2099-01-01")
        asc = todos.list(OWNER, ListQuery(sort_by="due_date", descending=False))
        assert [t["title"] for t in asc] == ["none", "sooner", "later"]

    def test_sort_by_title(self, todos):
        for title in ("pear", "apple", "fig"):
            _new(todos, title=title)
        asc = todos.list(OWNER, ListQuery(sort_by="title", descending=False))
        assert [t["title"] for t in asc] == ["apple", "fig", "pear"]

    def test_limit(self, todos):
        for i in range(5):
            _new(todos, title=f"t{i}")
        assert len(todos.list(OWNER, ListQuery(limit=3))) == 3

    def test_summary_counts(self, todos):
        assert todos.summarize(OWNER)["total"] == 0

        a = _new(todos, priority=Priority.HIGH)
        _new(todos, priority=Priority.HIGH)
        _new(todos, priority=Priority.LOW)
        _new(todos, owner=OTHER)
        todos.toggle(OWNER, a["id"])

        summary = todos.summarize(OWNER)
        assert summary == {
            "total": 3,
            "completed": 1,
            "pending": 2,
            "high_priority": 2,
            "medium_priority": 0,
            "low_priority": 1,
        }
        assert summary["completed"] + summary["pending"] == summary["total"]

    def test_concurrent_toggles_are_not_lost(self, todos):
        item = _new(todos)
        threads = [threading.Thread(target=todos.toggle, args=(OWNER, item["id"])) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        # an even number of flips lands back where it started
        assert todos.get(OWNER, item["id"])["completed"] is False
