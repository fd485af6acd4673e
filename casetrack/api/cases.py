"""
Endpoints de casos.

Sin lógica de negocio: todo pasa por CaseRepository dentro de SafeExecutor.
Un actor sin rol de administrador solo ve sus propios casos.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from casetrack.api.deps import RequestSession, get_recorder, get_request_session, run, serialize_page
from casetrack.core.database import get_db
from casetrack.models.schemas import CaseCreate, CaseUpdate
from casetrack.repositories.cases import CaseRepository
from casetrack.services.audit_recorder import AuditRecorder, row_snapshot

router = APIRouter(
    prefix="/cases",
    tags=["cases"],
)


def get_repository(
    db: Session = Depends(get_db),
    recorder: AuditRecorder = Depends(get_recorder),
) -> CaseRepository:
    return CaseRepository(db, recorder)


@router.get("", summary="Listar casos visibles")
def list_cases(
    status_filter: Optional[str] = Query(None, alias="status"),
    complexity: Optional[str] = None,
    application_id: Optional[str] = None,
    origin_id: Optional[str] = None,
    priority_id: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
    session: RequestSession = Depends(get_request_session),
    repo: CaseRepository = Depends(get_repository),
):
    filters = {
        "status": status_filter,
        "complexity": complexity,
        "application_id": application_id,
        "origin_id": origin_id,
        "priority_id": priority_id,
        "search": search,
    }
    result = run(
        session,
        lambda: repo.get_all(session.scope(), filters, page=page, page_size=page_size),
        "cases.list",
    )
    return serialize_page(result)


@router.get("/{case_id}", summary="Consultar un caso")
def get_case(
    case_id: str,
    session: RequestSession = Depends(get_request_session),
    repo: CaseRepository = Depends(get_repository),
):
    row = run(session, lambda: repo.get_by_id(case_id, session.scope()), "cases.get")
    return row_snapshot(row)


@router.post("", status_code=status.HTTP_201_CREATED, summary="Crear un caso")
def create_case(
    payload: CaseCreate,
    session: RequestSession = Depends(get_request_session),
    repo: CaseRepository = Depends(get_repository),
):
    row = run(session, lambda: repo.create(payload, session.actor_id, session.scope()), "cases.create")
    return row_snapshot(row)


@router.patch("/{case_id}", summary="Modificar un caso")
def update_case(
    case_id: str,
    payload: CaseUpdate,
    session: RequestSession = Depends(get_request_session),
    repo: CaseRepository = Depends(get_repository),
):
    row = run(
        session,
        lambda: repo.update(case_id, payload, session.scope(), session.actor_id),
        "cases.update",
    )
    return row_snapshot(row)


@router.post("/{case_id}/classify", summary="Clasificar un caso por puntuación")
def classify_case(
    case_id: str,
    score: int = Query(..., ge=0),
    session: RequestSession = Depends(get_request_session),
    repo: CaseRepository = Depends(get_repository),
):
    row = run(
        session,
        lambda: repo.classify(case_id, score, session.scope(), session.actor_id),
        "cases.classify",
    )
    return row_snapshot(row)


@router.delete("/{case_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Eliminar un caso")
def delete_case(
    case_id: str,
    session: RequestSession = Depends(get_request_session),
    repo: CaseRepository = Depends(get_repository),
):
    run(session, lambda: repo.delete(case_id, session.scope(), session.actor_id), "cases.delete")
