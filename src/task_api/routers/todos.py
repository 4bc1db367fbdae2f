from __future__ import annotations

from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Query, Request, status

from ..auth import get_current_user
from ..errors import NotFoundError, internal_errors
from ..models import UserEntity
from ..repositories import SORT_FIELDS, ListQuery, TodoRepository
from ..schemas import SummaryOut, TodoCreate, TodoOut, TodoUpdate
from ..utils import envelope
from ..validation import LIST_QUERY_RULES, TODO_CREATE_RULES, TODO_UPDATE_RULES

log = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/todos",
    tags=["todos"],
)

TODO_NOT_FOUND = "Todo not found"

_create_body = TODO_CREATE_RULES.dependency()
_update_body = TODO_UPDATE_RULES.dependency()


def _get_repo(request: Request) -> TodoRepository:
    """
    Dependency wrapper for repository to keep signatures clean.
    """
    return request.app.state.todos


# PUBLIC_INTERFACE
@router.get(
    "",
    summary="List Todos",
    description=(
        "List the caller's todos with optional filters.\n\n"
        "Query parameters:\n"
        "- completed: filter by completion status\n"
        "- priority: filter by low, medium or high\n"
        "- sortBy: createdAt (default), updatedAt, dueDate, priority, title or completed\n"
        "- sortOrder: asc or desc (default desc)\n\n"
        "At most MAX_PAGE_SIZE items (default and ceiling 100) are returned."
    ),
    responses={
        200: {"description": "List retrieved successfully"},
        400: {"description": "Invalid query parameters"},
        401: {"description": "Missing or invalid access token"},
    },
)
def list_todos(
    request: Request,
    completed: Optional[bool] = Query(None, description="Filter by completion status"),
    priority: Optional[str] = Query(None, description="Filter by priority: low, medium or high"),
    sort_by: str = Query("createdAt", alias="sortBy", description="Field to sort by"),
    sort_order: str = Query("desc", alias="sortOrder", description="'asc' or 'desc'"),
    user: UserEntity = Depends(get_current_user),
    repo: TodoRepository = Depends(_get_repo),
) -> Dict[str, Any]:
    """
    List todos owned by the authenticated user. An empty priority filter is ignored.
    """
    params: Dict[str, Any] = {"sortOrder": sort_order}
    if priority and priority.strip():
        params["priority"] = priority
    cleaned = LIST_QUERY_RULES.check(params)

    query = ListQuery(
        limit=request.app.state.settings.max_page_size,
        completed=completed,
        priority=cleaned.get("priority"),
        sort_by=SORT_FIELDS.get(sort_by.strip(), "created_at"),
        descending=cleaned["sortOrder"] == "desc",
    )
    with internal_errors("Failed to fetch todos"):
        items = repo.list(user["id"], query)
    return envelope(data=[TodoOut.from_entity(it) for it in items])


# PUBLIC_INTERFACE
@router.get(
    "/stats/summary",
    summary="Todo statistics",
    description="Counts of the caller's todos by completion status and priority.",
    responses={
        200: {"description": "Summary computed"},
        401: {"description": "Missing or invalid access token"},
    },
)
def todo_summary(
    user: UserEntity = Depends(get_current_user),
    repo: TodoRepository = Depends(_get_repo),
) -> Dict[str, Any]:
    with internal_errors("Failed to fetch statistics"):
        summary = repo.summarize(user["id"])
    return envelope(data=SummaryOut.from_summary(summary))


# PUBLIC_INTERFACE
@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create Todo",
    description="Create a new Todo item owned by the caller and return the created resource.",
    responses={
        201: {"description": "Todo created successfully"},
        400: {"description": "Validation error"},
        401: {"description": "Missing or invalid access token"},
    },
)
def create_todo(
    body: Dict[str, Any] = Depends(_create_body),
    user: UserEntity = Depends(get_current_user),
    repo: TodoRepository = Depends(_get_repo),
) -> Dict[str, Any]:
    """
    Create a new Todo. The owner is always the authenticated user.
    """
    payload = TodoCreate.model_validate(body)
    with internal_errors("Failed to create todo"):
        created = repo.create(user["id"], payload)
    log.info("todo_created", todo_id=created["id"])
    return envelope(message="Todo created successfully", data=TodoOut.from_entity(created))


# PUBLIC_INTERFACE
@router.get(
    "/{todo_id}",
    summary="Get Todo",
    description="Get a single Todo item by ID.",
    responses={
        200: {"description": "Todo found"},
        401: {"description": "Missing or invalid access token"},
        404: {"description": "Todo not found"},
    },
)
def get_todo(
    todo_id: str,
    user: UserEntity = Depends(get_current_user),
    repo: TodoRepository = Depends(_get_repo),
) -> Dict[str, Any]:
    """
    Retrieve a single Todo item by its ID.
    """
    with internal_errors("Failed to fetch todo"):
        item = repo.get(user["id"], todo_id)
    if item is None:
        raise NotFoundError(TODO_NOT_FOUND)
    return envelope(data=TodoOut.from_entity(item))


# PUBLIC_INTERFACE
@router.put(
    "/{todo_id}",
    summary="Update Todo",
    description=(
        "Update an existing Todo item. Only the fields present in the body are changed; "
        "omitted fields keep their current values."
    ),
    responses={
        200: {"description": "Todo updated"},
        400: {"description": "Validation error"},
        401: {"description": "Missing or invalid access token"},
        404: {"description": "Todo not found"},
    },
)
def update_todo(
    todo_id: str,
    body: Dict[str, Any] = Depends(_update_body),
    user: UserEntity = Depends(get_current_user),
    repo: TodoRepository = Depends(_get_repo),
) -> Dict[str, Any]:
    payload = TodoUpdate.model_validate(body)
    with internal_errors("Failed to update todo"):
        updated = repo.update(user["id"], todo_id, payload)
    if updated is None:
        raise NotFoundError(TODO_NOT_FOUND)
    log.info("todo_updated", todo_id=todo_id, fields=sorted(payload.model_fields_set))
    return envelope(message="Todo updated successfully", data=TodoOut.from_entity(updated))


# PUBLIC_INTERFACE
@router.delete(
    "/{todo_id}",
    summary="Delete Todo",
    description="Delete a Todo item by ID.",
    responses={
        200: {"description": "Todo deleted"},
        401: {"description": "Missing or invalid access token"},
        404: {"description": "Todo not found"},
    },
)
def delete_todo(
    todo_id: str,
    user: UserEntity = Depends(get_current_user),
    repo: TodoRepository = Depends(_get_repo),
) -> Dict[str, Any]:
    with internal_errors("Failed to delete todo"):
        ok = repo.delete(user["id"], todo_id)
    if not ok:
        raise NotFoundError(TODO_NOT_FOUND)
    log.info("todo_deleted", todo_id=todo_id)
    return envelope(message="Todo deleted successfully")


# PUBLIC_INTERFACE
@router.patch(
    "/{todo_id}/toggle",
    summary="Toggle Todo",
    description="Flip the completion status of a Todo item.",
    responses={
        200: {"description": "Todo toggled"},
        401: {"description": "Missing or invalid access token"},
        404: {"description": "Todo not found"},
    },
)
def toggle_todo(
    todo_id: str,
    user: UserEntity = Depends(get_current_user),
    repo: TodoRepository = Depends(_get_repo),
) -> Dict[str, Any]:
    with internal_errors("Failed to toggle todo"):
        item = repo.toggle(user["id"], todo_id)
    if item is None:
        raise NotFoundError(TODO_NOT_FOUND)
    state = "completed" if item["completed"] else "incomplete"
    return envelope(message=f"Todo marked as {state}", data=TodoOut.from_entity(item))
