"""
Repositorio de registros de tiempo.

Cada registro cuelga de un caso O de una tarea. Se comprueba aquí antes
de escribir y la tabla lo vuelve a exigir con un CHECK.
"""
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional

from casetrack.core.exceptions import ValidationException
from casetrack.models.actor import Actor
from casetrack.models.audit_log import AuditOperation
from casetrack.models.case import CaseRecord
from casetrack.models.schemas import ManualTimeEntry, TimeEntryCreate, TimeEntryUpdate
from casetrack.models.time_entry import TimeEntry
from casetrack.models.todo import TodoRecord
from casetrack.repositories.base import BaseRepository
from casetrack.repositories.cases import CaseRepository
from casetrack.repositories.todos import TodoRepository
from casetrack.services.audit_recorder import row_snapshot
from casetrack.services.integrity_guard import ReferenceRule
from casetrack.services.scope import Scope

# Hora de inicio asignada al tiempo añadido a mano (UTC)
MANUAL_ENTRY_START = time(9, 0)


def _duration_seconds(start: datetime, end: Optional[datetime]) -> Optional[int]:
    if end is None:
        return None
    return max(int((end - start).total_seconds()), 0)


class TimeEntryRepository(BaseRepository):
    model = TimeEntry
    entity_name = "Registro de tiempo"
    create_schema = TimeEntryCreate
    update_schema = TimeEntryUpdate

    ownership_columns = ("user_id",)
    filterable = ("user_id", "case_id", "todo_id")
    searchable = ("description",)
    ordering = (("start_time", "desc"),)

    reference_rules = (
        ReferenceRule("user_id", Actor),
        ReferenceRule("case_id", CaseRecord, ownership=CaseRepository.ownership_columns),
        ReferenceRule("todo_id", TodoRecord, ownership=TodoRepository.ownership_columns),
    )

    def _prepare_create(self, data: Dict[str, Any], actor_id: Optional[str]) -> Dict[str, Any]:
        if bool(data.get("case_id")) == bool(data.get("todo_id")):
            raise ValidationException(
                "Un registro de tiempo necesita exactamente un caso o una tarea", field="case_id"
            )
        data["user_id"] = actor_id
        data["duration_seconds"] = _duration_seconds(data["start_time"], data.get("end_time"))
        return data

    def _prepare_update(self, row, data: Dict[str, Any]) -> Dict[str, Any]:
        if data.get("end_time") is not None:
            if data["end_time"] < row.start_time:
                raise ValidationException("end_time no puede ser anterior a start_time", field="end_time")
            data["duration_seconds"] = _duration_seconds(row.start_time, data["end_time"])
        return data

    # =========================================================
    # CRONÓMETRO
    # =========================================================

    def start_timer(
        self,
        actor_id: str,
        case_id: Optional[str] = None,
        todo_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> TimeEntry:
        return self.create(
            {
                "case_id": case_id,
                "todo_id": todo_id,
                "start_time": datetime.utcnow(),
                "description": description,
            },
            actor_id,
        )

    def stop_timer(self, record_id: str, scope: Scope, actor_id: Optional[str]) -> TimeEntry:
        row = self.get_by_id(record_id, scope)
        if row.end_time is not None:
            raise ValidationException("El cronómetro ya está detenido", field="end_time")
        return self._stop(row, actor_id, datetime.utcnow())

    def get_active_timers(self, actor_id: str) -> List[TimeEntry]:
        return self.store.select(
            TimeEntry,
            criteria=[TimeEntry.user_id == actor_id, TimeEntry.end_time.is_(None)],
            order_by=self._order_clauses(),
        ).rows

    def stop_all_active(self, actor_id: str) -> int:
        """Detiene todos los cronómetros abiertos del actor. Devuelve cuántos."""
        end_time = datetime.utcnow()
        active = self.get_active_timers(actor_id)
        for row in active:
            self._stop(row, actor_id, end_time)
        return len(active)

    def _stop(self, row: TimeEntry, actor_id: Optional[str], end_time: datetime) -> TimeEntry:
        before = row_snapshot(row)
        row = self.store.update(
            row,
            {"end_time": end_time, "duration_seconds": _duration_seconds(row.start_time, end_time)},
        )
        self._audit(
            AuditOperation.UPDATE, row.id, actor_id, before, row_snapshot(row), "Cronómetro detenido"
        )
        return row

    # =========================================================
    # TIEMPO MANUAL Y CONSULTAS
    # =========================================================

    def add_manual_time(
        self,
        actor_id: str,
        hours: int,
        minutes: int,
        description: Optional[str] = None,
        work_date: Optional[date] = None,
        case_id: Optional[str] = None,
        todo_id: Optional[str] = None,
    ) -> TimeEntry:
        """
        Registra tiempo ya trabajado: empieza a las 09:00 UTC del día dado
        (hoy por defecto) y dura horas + minutos.
        """
        entry = self._validate_payload(
            {
                "case_id": case_id,
                "todo_id": todo_id,
                "hours": hours,
                "minutes": minutes,
                "description": description,
                "work_date": work_date,
            },
            ManualTimeEntry,
            partial=False,
        )
        start = datetime.combine(entry["work_date"] or datetime.utcnow().date(), MANUAL_ENTRY_START)
        end = start + timedelta(hours=entry["hours"], minutes=entry["minutes"])

        return self.create(
            {
                "case_id": entry["case_id"],
                "todo_id": entry["todo_id"],
                "start_time": start,
                "end_time": end,
                "description": entry["description"] or "Tiempo manual",
            },
            actor_id,
        )

    def get_by_parent(
        self,
        scope: Scope,
        case_id: Optional[str] = None,
        todo_id: Optional[str] = None,
    ) -> List[TimeEntry]:
        if bool(case_id) == bool(todo_id):
            raise ValidationException("Indica un caso o una tarea", field="case_id")

        criteria = self._scope_criteria(scope)
        if case_id:
            criteria.append(TimeEntry.case_id == case_id)
        else:
            criteria.append(TimeEntry.todo_id == todo_id)

        return self.store.select(TimeEntry, criteria=criteria, order_by=self._order_clauses()).rows
