"""
Repositorio de casos.

El propietario es siempre el actor que crea el caso; un actor sin alcance
de administrador solo ve y modifica sus propios casos.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from casetrack.core.exceptions import ValidationException
from casetrack.models.actor import Actor
from casetrack.models.case import CaseRecord, CaseStatus, classify_score
from casetrack.models.reference import Application, Origin, Priority
from casetrack.models.schemas import CaseCreate, CaseUpdate
from casetrack.models.time_entry import TimeEntry
from casetrack.models.todo import TodoRecord
from casetrack.repositories.base import BaseRepository
from casetrack.services.integrity_guard import DependencyRule, ReferenceRule, UniqueRule
from casetrack.services.scope import Scope


class CaseRepository(BaseRepository):
    model = CaseRecord
    entity_name = "Caso"
    create_schema = CaseCreate
    update_schema = CaseUpdate

    ownership_columns = ("user_id",)
    filterable = (
        "status", "complexity", "user_id", "application_id", "origin_id", "priority_id",
    )
    searchable = ("case_number", "description")

    # Orden de evaluación = orden de declaración
    reference_rules = (
        ReferenceRule("user_id", Actor),
        ReferenceRule("application_id", Application),
        ReferenceRule("origin_id", Origin),
        ReferenceRule("priority_id", Priority),
    )
    unique_rules = (UniqueRule("case_number", CaseRecord),)
    dependency_rules = (
        DependencyRule(TodoRecord, ("case_id",)),
        DependencyRule(TimeEntry, ("case_id",)),
    )

    def _prepare_create(self, data: Dict[str, Any], actor_id: Optional[str]) -> Dict[str, Any]:
        data["user_id"] = actor_id
        return self._apply_classification(data)

    def _prepare_update(self, row, data: Dict[str, Any]) -> Dict[str, Any]:
        data = self._apply_classification(data)
        if data.get("status") == CaseStatus.TERMINADA.value and row.status != CaseStatus.TERMINADA.value:
            data["completed_at"] = datetime.utcnow()
        return data

    @staticmethod
    def _apply_classification(data: Dict[str, Any]) -> Dict[str, Any]:
        score = data.get("classification_score")
        if score is not None:
            complexity, label = classify_score(score)
            data.setdefault("complexity", None)
            if data["complexity"] is None:
                data["complexity"] = complexity.value
            if not data.get("classification"):
                data["classification"] = label
        elif "complexity" in data and data["complexity"] is None:
            data.pop("complexity")
        return data

    def _describe(self, operation, row) -> str:
        base = super()._describe(operation, row)
        return f"{base}: {row.case_number}"

    def update_status(self, record_id: str, status: str, scope: Scope, actor_id: Optional[str]) -> CaseRecord:
        """Cambia el estado; TERMINADA fija completed_at."""
        try:
            status = CaseStatus(status).value
        except ValueError:
            raise ValidationException(f"Estado de caso no válido: {status}", field="status")
        return self.update(record_id, {"status": status}, scope, actor_id)

    def classify(
        self, record_id: str, score: int, scope: Scope, actor_id: Optional[str]
    ) -> CaseRecord:
        """Guarda la puntuación y recalcula complejidad y etiqueta."""
        complexity, label = classify_score(score)
        return self.update(
            record_id,
            {
                "classification_score": score,
                "complexity": complexity.value,
                "classification": label,
            },
            scope,
            actor_id,
        )
