"""
Endpoints de tablas de referencia: aplicaciones, orígenes y prioridades.

Lectura abierta a cualquier actor con sesión válida; las escrituras exigen
el permiso (módulo, acción) correspondiente.
"""
from typing import Optional, Type

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from casetrack.api.deps import RequestSession, get_recorder, get_request_session, run, serialize_page
from casetrack.core.database import get_db
from casetrack.models.schemas import PriorityCreate, PriorityUpdate, ReferenceCreate, ReferenceUpdate
from casetrack.repositories.base import BaseRepository
from casetrack.repositories.reference import (
    ApplicationRepository,
    OriginRepository,
    PriorityRepository,
)
from casetrack.services.audit_recorder import AuditRecorder, row_snapshot


def build_reference_router(
    module: str,
    repository_class: Type[BaseRepository],
    create_schema: Type[BaseModel],
    update_schema: Type[BaseModel],
) -> APIRouter:
    """Router CRUD para una tabla de referencia (prefijo = módulo de permisos)."""
    router = APIRouter(prefix=f"/{module}", tags=[module])

    def get_repository(
        db: Session = Depends(get_db),
        recorder: AuditRecorder = Depends(get_recorder),
    ) -> BaseRepository:
        return repository_class(db, recorder)

    @router.get("")
    def list_items(
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
        page: int = Query(1, ge=1),
        page_size: Optional[int] = Query(None, ge=1),
        session: RequestSession = Depends(get_request_session),
        repo: BaseRepository = Depends(get_repository),
    ):
        filters = {"is_active": is_active, "search": search}
        result = run(
            session,
            lambda: repo.get_all(session.scope(), filters, page=page, page_size=page_size),
            f"{module}.list",
        )
        return serialize_page(result)

    @router.get("/{item_id}")
    def get_item(
        item_id: str,
        session: RequestSession = Depends(get_request_session),
        repo: BaseRepository = Depends(get_repository),
    ):
        return row_snapshot(run(session, lambda: repo.get_by_id(item_id, session.scope()), f"{module}.get"))

    @router.post("", status_code=status.HTTP_201_CREATED)
    def create_item(
        payload: create_schema,
        session: RequestSession = Depends(get_request_session),
        repo: BaseRepository = Depends(get_repository),
    ):
        def operation():
            session.require_permission(module, "create")
            return repo.create(payload, session.actor_id, session.scope())

        return row_snapshot(run(session, operation, f"{module}.create"))

    @router.patch("/{item_id}")
    def update_item(
        item_id: str,
        payload: update_schema,
        session: RequestSession = Depends(get_request_session),
        repo: BaseRepository = Depends(get_repository),
    ):
        def operation():
            session.require_permission(module, "update")
            return repo.update(item_id, payload, session.scope(), session.actor_id)

        return row_snapshot(run(session, operation, f"{module}.update"))

    @router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_item(
        item_id: str,
        session: RequestSession = Depends(get_request_session),
        repo: BaseRepository = Depends(get_repository),
    ):
        def operation():
            session.require_permission(module, "delete")
            repo.delete(item_id, session.scope(), session.actor_id)

        run(session, operation, f"{module}.delete")

    return router


applications_router = build_reference_router(
    "applications", ApplicationRepository, ReferenceCreate, ReferenceUpdate
)
origins_router = build_reference_router("origins", OriginRepository, ReferenceCreate, ReferenceUpdate)
priorities_router = build_reference_router("priorities", PriorityRepository, PriorityCreate, PriorityUpdate)
