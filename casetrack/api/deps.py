"""
Dependencias comunes de la API.

Cada request identifica al actor por la cabecera X-Actor-ID, revalida la
sesión contra el store y ejecuta la operación dentro de SafeExecutor. Los
errores clasificados se traducen a HTTPException.
"""
from typing import Any, Callable, Dict, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from casetrack.core.auth import actor_snapshot, load_active_actor
from casetrack.core.database import get_db
from casetrack.core.exceptions import ErrorKind, NotAuthorizedException, SessionInvalidException
from casetrack.repositories.base import Page
from casetrack.services.audit_recorder import AuditRecorder, row_snapshot
from casetrack.services.error_classifier import ClassifiedError
from casetrack.services.permissions import has_permission
from casetrack.services.safe_execution import SafeExecutor
from casetrack.services.scope import Scope, resolve_scope_for_actor

STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.NOT_AUTHORIZED: status.HTTP_403_FORBIDDEN,
    ErrorKind.DUPLICATE_KEY: status.HTTP_409_CONFLICT,
    ErrorKind.DEPENDENCY_EXISTS: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_REFERENCE: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.SESSION_INVALID: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.UNKNOWN: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class RequestSession:
    """
    Sesión del actor limitada a un request.

    Mismo contrato que ActorSessionProvider (validate / clear / scope),
    sin caché local: el actor llega en cada request.
    """

    def __init__(self, db: Session, actor_id: Optional[str]):
        self.db = db
        self.actor_id = actor_id
        self.actor = None
        self.current: Optional[Dict[str, Any]] = None

    def validate(self) -> bool:
        if not self.actor_id:
            return False
        actor = load_active_actor(self.db, self.actor_id)
        if actor is None:
            return False
        self.actor = actor
        self.current = actor_snapshot(actor)
        return True

    def clear(self) -> None:
        self.actor = None
        self.current = None

    def scope(self) -> Scope:
        if self.current is None:
            raise SessionInvalidException("No hay actor en sesión")
        return resolve_scope_for_actor(self.current)

    def require_permission(self, module: str, action: str) -> None:
        if not has_permission(self.actor, module, action):
            raise NotAuthorizedException(module, None, actor_id=self.actor_id)


_recorder: Optional[AuditRecorder] = None


def get_recorder() -> AuditRecorder:
    """Recorder compartido por la aplicación."""
    global _recorder

    if _recorder is None:
        _recorder = AuditRecorder()

    return _recorder


def get_request_session(
    x_actor_id: Optional[str] = Header(None, alias="X-Actor-ID"),
    db: Session = Depends(get_db),
) -> RequestSession:
    return RequestSession(db, x_actor_id)


def http_status_for(error: ClassifiedError) -> int:
    # Validación de payload: UNKNOWN con campo identificado
    if error.kind == ErrorKind.UNKNOWN and error.field:
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    return STATUS_BY_KIND.get(error.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)


def run(session: RequestSession, operation: Callable[[], Any], context: str) -> Any:
    """Ejecuta la operación con SafeExecutor y convierte el fallo en HTTPException."""
    result = SafeExecutor(session).execute(operation, context=context)
    if not result.ok:
        raise HTTPException(status_code=http_status_for(result.error), detail=result.error.to_dict())
    return result.value


def serialize_page(page: Page) -> Dict[str, Any]:
    return {
        "items": [row_snapshot(row) for row in page.rows],
        "total_count": page.total_count,
        "page": page.page,
        "page_size": page.page_size,
        "total_pages": page.total_pages,
    }
