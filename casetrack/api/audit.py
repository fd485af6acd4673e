"""
Endpoints del registro de auditoría (solo lectura).

Una página o unas estadísticas degradadas se devuelven con su señal
(`degraded`, `degraded_reason`), nunca como "sin actividad".
"""
from dataclasses import asdict
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from casetrack.api.deps import RequestSession, get_recorder, get_request_session, run
from casetrack.services.audit_recorder import AuditFilters, AuditRecorder

router = APIRouter(
    prefix="/audit",
    tags=["audit"],
)


def _filters(
    table_name: Optional[str] = None,
    operation: Optional[str] = None,
    actor_id: Optional[str] = None,
    record_id: Optional[str] = None,
    search: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> AuditFilters:
    return AuditFilters.coerce(
        {
            "table_name": table_name,
            "operation": operation,
            "actor_id": actor_id,
            "record_id": record_id,
            "search": search,
            "date_from": date_from,
            "date_to": date_to,
        }
    )


@router.get("")
def list_audit_entries(
    filters: AuditFilters = Depends(_filters),
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
    placeholders: bool = False,
    session: RequestSession = Depends(get_request_session),
    recorder: AuditRecorder = Depends(get_recorder),
):
    def operation():
        session.require_permission("audit", "read")
        result = recorder.query(filters, page=page, page_size=page_size)
        return result.with_placeholders() if placeholders else result

    return asdict(run(session, operation, "audit.list"))


@router.get("/stats")
def audit_stats(
    window_days: Optional[int] = Query(None, ge=1),
    session: RequestSession = Depends(get_request_session),
    recorder: AuditRecorder = Depends(get_recorder),
):
    def operation():
        session.require_permission("audit", "read")
        return recorder.stats(window_days)

    return asdict(run(session, operation, "audit.stats"))


@router.get("/export")
def export_audit_csv(
    filters: AuditFilters = Depends(_filters),
    session: RequestSession = Depends(get_request_session),
    recorder: AuditRecorder = Depends(get_recorder),
):
    def operation():
        session.require_permission("audit", "export")
        return recorder.export_csv(filters)

    content = run(session, operation, "audit.export")
    filename = f"audit_logs_{datetime.utcnow().strftime('%Y-%m-%d')}.csv"
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
