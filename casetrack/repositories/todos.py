from datetime import datetime
from typing import Any, Dict, List, Optional

from casetrack.core.exceptions import ValidationException
from casetrack.models.actor import Actor
from casetrack.models.case import CaseRecord
from casetrack.models.reference import Priority
from casetrack.models.schemas import TodoCreate, TodoUpdate
from casetrack.models.time_entry import TimeEntry
from casetrack.models.todo import TodoRecord, TodoStatus
from casetrack.repositories.base import BaseRepository
from casetrack.repositories.cases import CaseRepository
from casetrack.services.integrity_guard import DependencyRule, ReferenceRule
from casetrack.services.scope import Scope


class TodoRepository(BaseRepository):
    """
    Tareas.

    Visibles para el creador y para el asignado. El creador es siempre el
    actor que llama a create(); un case_id vacío se trata como ausente y,
    si se indica, el caso tiene que ser visible para quien escribe.
    """

    model = TodoRecord
    entity_name = "TODO"
    create_schema = TodoCreate
    update_schema = TodoUpdate

    ownership_columns = ("assigned_to", "created_by")
    filterable = ("status", "priority_id", "assigned_to", "created_by", "case_id")
    searchable = ("title", "description")

    reference_rules = (
        ReferenceRule("created_by", Actor),
        ReferenceRule("assigned_to", Actor),
        ReferenceRule("priority_id", Priority),
        ReferenceRule("case_id", CaseRecord, ownership=CaseRepository.ownership_columns),
    )
    dependency_rules = (DependencyRule(TimeEntry, ("todo_id",)),)

    def _prepare_create(self, data: Dict[str, Any], actor_id: Optional[str]) -> Dict[str, Any]:
        data["created_by"] = actor_id
        if not data.get("case_id"):
            data.pop("case_id", None)
        if data.get("status") == TodoStatus.COMPLETED.value:
            data["completed_at"] = datetime.utcnow()
        return data

    def _prepare_update(self, row, data: Dict[str, Any]) -> Dict[str, Any]:
        if "case_id" in data and not data["case_id"]:
            data.pop("case_id")
        if data.get("status") == TodoStatus.COMPLETED.value and row.status != TodoStatus.COMPLETED.value:
            data["completed_at"] = datetime.utcnow()
        return data

    def _describe(self, operation, row) -> str:
        base = super()._describe(operation, row)
        return f"{base}: {row.title}"

    def update_status(self, record_id: str, status: str, scope: Scope, actor_id: Optional[str]) -> TodoRecord:
        """Cambia el estado; COMPLETED fija completed_at."""
        try:
            status = TodoStatus(status).value
        except ValueError:
            raise ValidationException(f"Estado de TODO no válido: {status}", field="status")
        return self.update(record_id, {"status": status}, scope, actor_id)

    def get_by_user(self, actor_id: str) -> List[TodoRecord]:
        """Tareas asignadas a o creadas por el actor."""
        scope = Scope.owned_by(actor_id)
        return self.store.select(
            TodoRecord,
            criteria=self._scope_criteria(scope),
            order_by=self._order_clauses(),
        ).rows
