from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generator, List, Optional

from .models import TodoEntity, TodoSummary, UserEntity, UserRecord
from .repositories import (
    ListQuery,
    SORT_FIELDS,
    TodoRepository,
    UniqueViolation,
    UserRepository,
    empty_summary,
    new_id,
    utcnow,
)
from .schemas import TodoCreate, TodoUpdate


@dataclass(frozen=True)
class _UserCols:
    table: str = "users"
    id: str = "id"
    username: str = "username"
    email: str = "email"
    password_hash: str = "password_hash"
    refresh_token: str = "refresh_token"
    created_at: str = "created_at"
    updated_at: str = "updated_at"


@dataclass(frozen=True)
class _TodoCols:
    table: str = "todos"
    id: str = "id"
    owner_id: str = "owner_id"
    title: str = "title"
    description: str = "description"
    completed: str = "completed"
    priority: str = "priority"
    due_date: str = "due_date"
    created_at: str = "created_at"
    updated_at: str = "updated_at"


_U = _UserCols()
_T = _TodoCols()

_PUBLIC_USER_COLUMNS = f"{_U.id}, {_U.username}, {_U.email}, {_U.created_at}, {_U.updated_at}"

# priority sorts by rank, not alphabetically
_PRIORITY_ORDER = f"CASE {_T.priority} WHEN 'low' THEN 0 WHEN 'medium' THEN 1 ELSE 2 END"


def _parse_dt(s: Optional[str]) -> Optional[datetime]:
    if s is None:
        return None
    return datetime.fromisoformat(s)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class _SQLiteBase:
    def __init__(self, db_path: str) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._init_db()

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self._db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_U.table} (
                    {_U.id} TEXT PRIMARY KEY,
                    {_U.username} TEXT NOT NULL UNIQUE,
                    {_U.email} TEXT NOT NULL UNIQUE,
                    {_U.password_hash} TEXT NOT NULL,
                    {_U.refresh_token} TEXT NULL,
                    {_U.created_at} TEXT NOT NULL,
                    {_U.updated_at} TEXT NOT NULL
                )
                """
            )
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_T.table} (
                    {_T.id} TEXT PRIMARY KEY,
                    {_T.owner_id} TEXT NOT NULL REFERENCES {_U.table}({_U.id}),
                    {_T.title} TEXT NOT NULL,
                    {_T.description} TEXT NULL,
                    {_T.completed} INTEGER NOT NULL DEFAULT 0,
                    {_T.priority} TEXT NOT NULL DEFAULT 'medium',
                    {_T.due_date} TEXT NULL,
                    {_T.created_at} TEXT NOT NULL,
                    {_T.updated_at} TEXT NOT NULL
                )
                """
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_T.table}_owner_completed ON {_T.table}({_T.owner_id}, {_T.completed})"
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_T.table}_owner_due_date ON {_T.table}({_T.owner_id}, {_T.due_date})"
            )


class SQLiteUserRepository(_SQLiteBase, UserRepository):
    """
    Lightweight SQLite user store. Uniqueness is enforced by the table's
    UNIQUE indexes; refresh token swaps are single conditional UPDATEs.
    """

    def _row_to_user(self, row: sqlite3.Row, include_secret: bool) -> UserEntity:
        user: UserEntity = {
            "id": str(row[_U.id]),
            "username": str(row[_U.username]),
            "email": str(row[_U.email]),
            "created_at": _parse_dt(row[_U.created_at]),  # type: ignore[typeddict-item]
            "updated_at": _parse_dt(row[_U.updated_at]),  # type: ignore[typeddict-item]
        }
        if not include_secret:
            return user
        record: UserRecord = {
            **user,
            "password_hash": str(row[_U.password_hash]),
            "refresh_token": row[_U.refresh_token],
        }
        return record

    def _select_one(self, column: str, value: str, include_secret: bool) -> Optional[UserEntity]:
        columns = "*" if include_secret else _PUBLIC_USER_COLUMNS
        with self._conn() as conn:
            row = conn.execute(f"SELECT {columns} FROM {_U.table} WHERE {column} = ?", (value,)).fetchone()
            return self._row_to_user(row, include_secret) if row else None

    def create(self, username: str, email: str, password_hash: str) -> UserEntity:
        now = utcnow().isoformat()
        user_id = new_id()
        try:
            with self._conn() as conn:
                conn.execute(
                    f"""
                    INSERT INTO {_U.table} ({_U.id}, {_U.username}, {_U.email}, {_U.password_hash},
                        {_U.refresh_token}, {_U.created_at}, {_U.updated_at})
                    VALUES (?, ?, ?, ?, NULL, ?, ?)
                    """,
                    (user_id, username, email, password_hash, now, now),
                )
        except sqlite3.IntegrityError as exc:
            raise UniqueViolation(username, email) from exc
        created = self._select_one(_U.id, user_id, include_secret=False)
        assert created is not None
        return created

    def get_by_id(self, user_id: str, include_secret: bool = False) -> Optional[UserEntity]:
        return self._select_one(_U.id, user_id, include_secret)

    def get_by_email(self, email: str, include_secret: bool = False) -> Optional[UserEntity]:
        return self._select_one(_U.email, email, include_secret)

    def exists(self, field: str, value: str) -> bool:
        column = {"email": _U.email, "username": _U.username}[field]
        with self._conn() as conn:
            row = conn.execute(f"SELECT 1 FROM {_U.table} WHERE {column} = ?", (value,)).fetchone()
            return row is not None

    def set_refresh_token(self, user_id: str, token: Optional[str]) -> bool:
        with self._conn() as conn:
            cur = conn.execute(
                f"UPDATE {_U.table} SET {_U.refresh_token} = ?, {_U.updated_at} = ? WHERE {_U.id} = ?",
                (token, utcnow().isoformat(), user_id),
            )
            return cur.rowcount > 0

    def swap_refresh_token(self, user_id: str, expected: str, new: str) -> bool:
        with self._conn() as conn:
            cur = conn.execute(
                f"""
                UPDATE {_U.table} SET {_U.refresh_token} = ?, {_U.updated_at} = ?
                WHERE {_U.id} = ? AND {_U.refresh_token} = ?
                """,
                (new, utcnow().isoformat(), user_id, expected),
            )
            return cur.rowcount > 0


class SQLiteTodoRepository(_SQLiteBase, TodoRepository):
    """
    Lightweight SQLite repository implementing the TodoRepository interface.
    Every statement carries the owner_id predicate.
    """

    def _row_to_entity(self, row: sqlite3.Row) -> TodoEntity:
        return {
            "id": str(row[_T.id]),
            "owner_id": str(row[_T.owner_id]),
            "title": str(row[_T.title]),
            "description": row[_T.description],
            "completed": bool(row[_T.completed]),
            "priority": str(row[_T.priority]),
            "due_date": _parse_dt(row[_T.due_date]),
            "created_at": _parse_dt(row[_T.created_at]),  # type: ignore[typeddict-item]
            "updated_at": _parse_dt(row[_T.updated_at]),  # type: ignore[typeddict-item]
        }

    def _fetch(self, conn: sqlite3.Connection, owner_id: str, todo_id: str) -> Optional[TodoEntity]:
        row = conn.execute(
            f"SELECT * FROM {_T.table} WHERE {_T.id} = ? AND {_T.owner_id} = ?", (todo_id, owner_id)
        ).fetchone()
        return self._row_to_entity(row) if row else None

    def create(self, owner_id: str, data: TodoCreate) -> TodoEntity:
        now = utcnow().isoformat()
        todo_id = new_id()
        with self._conn() as conn:
            conn.execute(
                f"""
                INSERT INTO {_T.table} ({_T.id}, {_T.owner_id}, {_T.title}, {_T.description}, {_T.completed},
                    {_T.priority}, {_T.due_date}, {_T.created_at}, {_T.updated_at})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    todo_id,
                    owner_id,
                    data.title,
                    data.description,
                    1 if data.completed else 0,
                    data.priority.value,
                    _iso(data.due_date),
                    now,
                    now,
                ),
            )
            created = self._fetch(conn, owner_id, todo_id)
            assert created is not None
            return created

    def get(self, owner_id: str, todo_id: str) -> Optional[TodoEntity]:
        with self._conn() as conn:
            return self._fetch(conn, owner_id, todo_id)

    def update(self, owner_id: str, todo_id: str, data: TodoUpdate) -> Optional[TodoEntity]:
        fields = data.model_fields_set
        assignments: List[str] = []
        params: List[Any] = []

        if "title" in fields and data.title is not None:
            assignments.append(f"{_T.title} = ?")
            params.append(data.title)
        if "description" in fields:
            assignments.append(f"{_T.description} = ?")
            params.append(data.description)
        if "completed" in fields and data.completed is not None:
            assignments.append(f"{_T.completed} = ?")
            params.append(1 if data.completed else 0)
        if "priority" in fields and data.priority is not None:
            assignments.append(f"{_T.priority} = ?")
            params.append(data.priority.value)
        if "due_date" in fields:
            assignments.append(f"{_T.due_date} = ?")
            params.append(_iso(data.due_date))
        assignments.append(f"{_T.updated_at} = ?")
        params.append(utcnow().isoformat())

        with self._conn() as conn:
            cur = conn.execute(
                f"UPDATE {_T.table} SET {', '.join(assignments)} WHERE {_T.id} = ? AND {_T.owner_id} = ?",
                [*params, todo_id, owner_id],
            )
            if cur.rowcount == 0:
                return None
            return self._fetch(conn, owner_id, todo_id)

    def delete(self, owner_id: str, todo_id: str) -> bool:
        with self._conn() as conn:
            cur = conn.execute(
                f"DELETE FROM {_T.table} WHERE {_T.id} = ? AND {_T.owner_id} = ?", (todo_id, owner_id)
            )
            return cur.rowcount > 0

    def toggle(self, owner_id: str, todo_id: str) -> Optional[TodoEntity]:
        with self._conn() as conn:
            cur = conn.execute(
                f"""
                UPDATE {_T.table} SET {_T.completed} = 1 - {_T.completed}, {_T.updated_at} = ?
                WHERE {_T.id} = ? AND {_T.owner_id} = ?
                """,
                (utcnow().isoformat(), todo_id, owner_id),
            )
            if cur.rowcount == 0:
                return None
            return self._fetch(conn, owner_id, todo_id)

    def list(self, owner_id: str, query: Optional[ListQuery] = None) -> List[TodoEntity]:
        q = query or ListQuery()
        clauses = [f"{_T.owner_id} = ?"]
        params: List[Any] = [owner_id]

        if q.completed is not None:
            clauses.append(f"{_T.completed} = ?")
            params.append(1 if q.completed else 0)
        if q.priority is not None:
            clauses.append(f"{_T.priority} = ?")
            params.append(q.priority)

        field = q.sort_by if q.sort_by in SORT_FIELDS.values() else "created_at"
        sort_expr = _PRIORITY_ORDER if field == "priority" else field
        direction = "DESC" if q.descending else "ASC"

        with self._conn() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM {_T.table}
                WHERE {' AND '.join(clauses)}
                ORDER BY {sort_expr} {direction}, rowid {direction}
                LIMIT ?
                """,
                [*params, max(q.limit, 0)],
            ).fetchall()
            return [self._row_to_entity(r) for r in rows]

    def summarize(self, owner_id: str) -> TodoSummary:
        with self._conn() as conn:
            row = conn.execute(
                f"""
                SELECT
                    COUNT(*) AS total,
                    COALESCE(SUM(CASE WHEN {_T.completed} = 1 THEN 1 ELSE 0 END), 0) AS completed,
                    COALESCE(SUM(CASE WHEN {_T.completed} = 0 THEN 1 ELSE 0 END), 0) AS pending,
                    COALESCE(SUM(CASE WHEN {_T.priority} = 'high' THEN 1 ELSE 0 END), 0) AS high_priority,
                    COALESCE(SUM(CASE WHEN {_T.priority} = 'medium' THEN 1 ELSE 0 END), 0) AS medium_priority,
                    COALESCE(SUM(CASE WHEN {_T.priority} = 'low' THEN 1 ELSE 0 END), 0) AS low_priority
                FROM {_T.table}
                WHERE {_T.owner_id} = ?
                """,
                (owner_id,),
            ).fetchone()
        summary = empty_summary()
        if row is not None:
            for key in summary:
                summary[key] = int(row[key])  # type: ignore[literal-required]
        return summary
