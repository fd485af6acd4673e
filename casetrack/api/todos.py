"""Endpoints de tareas (TODOs)."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from casetrack.api.deps import RequestSession, get_recorder, get_request_session, run, serialize_page
from casetrack.core.database import get_db
from casetrack.models.schemas import TodoCreate, TodoUpdate
from casetrack.repositories.todos import TodoRepository
from casetrack.services.audit_recorder import AuditRecorder, row_snapshot

router = APIRouter(
    prefix="/todos",
    tags=["todos"],
)


class StatusChange(BaseModel):
    status: str


def get_repository(
    db: Session = Depends(get_db),
    recorder: AuditRecorder = Depends(get_recorder),
) -> TodoRepository:
    return TodoRepository(db, recorder)


@router.get("")
def list_todos(
    status_filter: Optional[str] = Query(None, alias="status"),
    priority_id: Optional[str] = None,
    assigned_to: Optional[str] = None,
    case_id: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
    session: RequestSession = Depends(get_request_session),
    repo: TodoRepository = Depends(get_repository),
):
    filters = {
        "status": status_filter,
        "priority_id": priority_id,
        "assigned_to": assigned_to,
        "case_id": case_id,
        "search": search,
    }
    result = run(
        session,
        lambda: repo.get_all(session.scope(), filters, page=page, page_size=page_size),
        "todos.list",
    )
    return serialize_page(result)


@router.get("/{todo_id}")
def get_todo(
    todo_id: str,
    session: RequestSession = Depends(get_request_session),
    repo: TodoRepository = Depends(get_repository),
):
    return row_snapshot(run(session, lambda: repo.get_by_id(todo_id, session.scope()), "todos.get"))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_todo(
    payload: TodoCreate,
    session: RequestSession = Depends(get_request_session),
    repo: TodoRepository = Depends(get_repository),
):
    row = run(session, lambda: repo.create(payload, session.actor_id, session.scope()), "todos.create")
    return row_snapshot(row)


@router.patch("/{todo_id}")
def update_todo(
    todo_id: str,
    payload: TodoUpdate,
    session: RequestSession = Depends(get_request_session),
    repo: TodoRepository = Depends(get_repository),
):
    row = run(
        session,
        lambda: repo.update(todo_id, payload, session.scope(), session.actor_id),
        "todos.update",
    )
    return row_snapshot(row)


@router.put("/{todo_id}/status")
def change_todo_status(
    todo_id: str,
    payload: StatusChange,
    session: RequestSession = Depends(get_request_session),
    repo: TodoRepository = Depends(get_repository),
):
    row = run(
        session,
        lambda: repo.update_status(todo_id, payload.status, session.scope(), session.actor_id),
        "todos.update_status",
    )
    return row_snapshot(row)


@router.delete("/{todo_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_todo(
    todo_id: str,
    session: RequestSession = Depends(get_request_session),
    repo: TodoRepository = Depends(get_repository),
):
    run(session, lambda: repo.delete(todo_id, session.scope(), session.actor_id), "todos.delete")
