"""
Pasarela hacia el módulo de archivo.

Los cambios de estado viven en procedimientos del servidor
(archive_case, restore_case, ...). Aquí solo se preparan los parámetros,
se invoca el procedimiento y, si tuvo éxito, se deja constancia en la
auditoría: archivar cuenta como DELETE y restaurar como INSERT.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from casetrack.core.config import get_settings
from casetrack.core.logger import StructuredLogger
from casetrack.core.store import ProcedureResult
from casetrack.models.audit_log import AuditOperation
from casetrack.models.case import CaseRecord, CaseStatus
from casetrack.models.todo import TodoRecord
from casetrack.services.audit_recorder import AuditRecorder, row_snapshot
from casetrack.services.base import BaseService

ARCHIVE_MODULE_MISSING = "Módulo de archivo no instalado"

# Procedimiento inexistente: PostgREST (PGRST202) o PostgreSQL (42883)
_MISSING_PROCEDURE_CODES = ("PGRST202", "42883")

EMPTY_ARCHIVE_STATS = {
    "total_archived_cases": 0,
    "total_archived_todos": 0,
    "archives_this_month": 0,
    "nearing_retention": 0,
    "reactivated_cases": 0,
}

NO_ARCHIVE_PERMISSIONS = {
    "can_archive": False,
    "can_restore": False,
    "can_delete": False,
    "can_view_stats": False,
    "can_manage_policies": False,
}


class ArchiveGateway(BaseService):
    def __init__(
        self,
        db: Session,
        recorder: Optional[AuditRecorder] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        super().__init__(db, logger)
        self.recorder = recorder

    # =========================================================
    # CASOS
    # =========================================================

    def archive_case(
        self,
        case_id: str,
        actor_id: str,
        reason: str = "MANUAL",
        reason_text: Optional[str] = None,
        retention_days: Optional[int] = None,
    ) -> ProcedureResult:
        return self._archive(
            CaseRecord, "archive_case", "p_case_id", case_id, actor_id,
            reason, reason_text, retention_days, label="Caso",
        )

    def restore_case(
        self,
        archived_case_id: str,
        actor_id: str,
        restore_reason: str = "Reactivación solicitada",
    ) -> ProcedureResult:
        return self._restore(
            CaseRecord, "restore_case", "p_archived_case_id", archived_case_id,
            actor_id, restore_reason, restored_status=CaseStatus.PENDIENTE.value, label="Caso",
        )

    def bulk_archive_cases(
        self,
        case_ids: List[str],
        actor_id: str,
        reason: str = "BULK_OPERATION",
        reason_text: Optional[str] = None,
        retention_days: Optional[int] = None,
    ) -> ProcedureResult:
        result = self.store.call_procedure(
            "bulk_archive_cases",
            {
                "p_case_ids": list(case_ids),
                "p_user_id": actor_id,
                "p_reason": reason,
                "p_reason_text": reason_text,
                "p_retention_days": self._retention(retention_days),
            },
        )
        self._log_result("bulk_archive_cases", result, actor_id, count=len(case_ids))
        return result

    # =========================================================
    # TODOS
    # =========================================================

    def archive_todo(
        self,
        todo_id: str,
        actor_id: str,
        reason: str = "MANUAL",
        reason_text: Optional[str] = None,
        retention_days: Optional[int] = None,
    ) -> ProcedureResult:
        return self._archive(
            TodoRecord, "archive_todo", "p_todo_id", todo_id, actor_id,
            reason, reason_text, retention_days, label="TODO",
        )

    def restore_todo(
        self,
        archived_todo_id: str,
        actor_id: str,
        restore_reason: str = "Reactivación solicitada",
    ) -> ProcedureResult:
        return self._restore(
            TodoRecord, "restore_todo", "p_archived_todo_id", archived_todo_id,
            actor_id, restore_reason, restored_status=None, label="TODO",
        )

    # =========================================================
    # CONSULTAS
    # =========================================================

    def check_archive_permissions(self, actor_id: Optional[str]) -> Dict[str, bool]:
        """Capacidades del actor sobre el archivo; todo a False si algo falla."""
        if not actor_id:
            return dict(NO_ARCHIVE_PERMISSIONS)

        result = self.store.call_procedure("check_archive_permissions", {"p_user_id": actor_id})
        if not result.success or not isinstance(result.data, dict):
            self._log_result("check_archive_permissions", result, actor_id)
            return dict(NO_ARCHIVE_PERMISSIONS)

        flags = dict(NO_ARCHIVE_PERMISSIONS)
        for key in flags:
            flags[key] = bool(result.data.get(key, False))
        return flags

    def search_archive(
        self, query: str, item_type: Optional[str] = None, limit: int = 20
    ) -> ProcedureResult:
        result = self.store.call_procedure(
            "search_archive",
            {"p_search_query": query, "p_item_type": item_type, "p_limit": limit},
        )
        if result.success and result.data is None:
            result.data = []
        return result

    def get_archive_stats(self) -> ProcedureResult:
        """
        Estadísticas del archivo.

        Si el módulo no está instalado devuelve éxito con contadores a cero
        y el aviso en `error`.
        """
        result = self.store.call_procedure("get_archive_stats")
        if result.success:
            if result.data is None:
                result.data = dict(EMPTY_ARCHIVE_STATS)
            return result

        if result.code in _MISSING_PROCEDURE_CODES:
            return ProcedureResult(
                success=True,
                data=dict(EMPTY_ARCHIVE_STATS),
                error=ARCHIVE_MODULE_MISSING,
                code=result.code,
            )

        self._log_result("get_archive_stats", result, None)
        return result

    # =========================================================
    # INTERNOS
    # =========================================================

    def _archive(
        self, model, procedure, id_param, record_id, actor_id,
        reason, reason_text, retention_days, label,
    ) -> ProcedureResult:
        row = self.store.get(model, record_id)
        if row is None:
            return ProcedureResult(
                success=False, error=f"Error obteniendo datos del {label}", code="PGRST116"
            )
        before = row_snapshot(row)

        result = self.store.call_procedure(
            procedure,
            {
                id_param: record_id,
                "p_user_id": actor_id,
                "p_reason": reason,
                "p_reason_text": reason_text,
                "p_retention_days": self._retention(retention_days),
            },
        )
        self._log_result(procedure, result, actor_id, record_id=record_id)
        if not result.success:
            return result

        suffix = f" - {reason_text}" if reason_text else ""
        self._audit(
            model.__tablename__,
            AuditOperation.DELETE,
            record_id,
            actor_id,
            before,
            {
                "status": "ARCHIVED",
                "archive_reason": reason,
                "archive_reason_text": reason_text,
                "archived_by": actor_id,
                "archived_at": datetime.utcnow().isoformat(),
            },
            f"{label} archivado: {reason}{suffix}",
        )
        return result

    def _restore(
        self, model, procedure, id_param, archived_id, actor_id,
        restore_reason, restored_status, label,
    ) -> ProcedureResult:
        result = self.store.call_procedure(
            procedure,
            {id_param: archived_id, "p_user_id": actor_id, "p_restore_reason": restore_reason},
        )
        self._log_result(procedure, result, actor_id, record_id=archived_id)
        if not result.success:
            return result

        data = result.data if isinstance(result.data, dict) else {}
        item_data = dict(data.get("item_data") or data.get("case_data") or data.get("todo_data") or {})
        original_id = data.get("original_id") or item_data.get("id") or archived_id

        after = dict(item_data)
        if restored_status:
            after["status"] = restored_status
        after.update(
            {
                "restored_by": actor_id,
                "restored_at": datetime.utcnow().isoformat(),
                "restore_reason": restore_reason,
            }
        )
        self._audit(
            model.__tablename__,
            AuditOperation.INSERT,
            original_id,
            actor_id,
            {"status": "ARCHIVED", "archived_id": archived_id},
            after,
            f"{label} restaurado desde archivo: {restore_reason}",
        )
        return result

    @staticmethod
    def _retention(retention_days: Optional[int]) -> int:
        return retention_days if retention_days is not None else get_settings().default_retention_days

    def _audit(self, table_name, operation, record_id, actor_id, before, after, description) -> None:
        if self.recorder is None:
            return
        try:
            self.recorder.record(
                table_name=table_name,
                operation=operation.value,
                record_id=record_id,
                actor_id=actor_id,
                before=before,
                after=after,
                description=description,
            )
        except Exception as e:
            self._log_error("Audit dispatch failed", error=e, actor_id=actor_id, action=f"archive.{table_name}")

    def _log_result(self, procedure: str, result: ProcedureResult, actor_id, **extra: Any) -> None:
        if result.success:
            self._log_info(f"Procedure {procedure} succeeded", actor_id=actor_id, action=f"archive.{procedure}", **extra)
        else:
            self._log_warning(
                f"Procedure {procedure} failed",
                actor_id=actor_id,
                action=f"archive.{procedure}",
                code=result.code,
                **extra,
            )
