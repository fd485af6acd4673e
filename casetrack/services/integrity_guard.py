"""
Guard de integridad referencial.

Las reglas se declaran por entidad (listas de ReferenceRule / UniqueRule /
DependencyRule) y una única rutina genérica las evalúa en el orden
declarado, siempre ANTES de escribir.

Carrera aceptada: dos creaciones concurrentes pueden pasar ambas la
comprobación de unicidad. La restricción UNIQUE del store es la única
barrera real; su violación llega como StoreError(UNIQUE).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

from sqlalchemy import func, or_, select

from casetrack.core.exceptions import (
    DependencyExistsException,
    DuplicateKeyException,
    InvalidReferenceException,
)
from casetrack.core.store import StoreClient
from casetrack.models.actor import Actor
from casetrack.models.case import CaseRecord
from casetrack.models.reference import Application, Origin, Priority
from casetrack.models.role import Role
from casetrack.models.time_entry import TimeEntry
from casetrack.models.todo import TodoRecord
from casetrack.services.scope import Scope


@dataclass(frozen=True)
class ReferenceRule:
    """
    El campo `field` debe apuntar a una fila existente de `model`.

    Con `ownership` la fila además tiene que ser visible para el alcance
    de quien escribe (no se cuelga nada de un caso ajeno).
    """
    field: str
    model: Any
    require_active: bool = True
    ownership: Tuple[str, ...] = ()


@dataclass(frozen=True)
class UniqueRule:
    field: str
    model: Any
    case_insensitive: bool = False


@dataclass(frozen=True)
class DependencyRule:
    """Filas de `model` que referencian al registro por alguna de `columns`."""
    model: Any
    columns: Tuple[str, ...]

    @property
    def label(self) -> str:
        return self.model.__tablename__


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class IntegrityGuard:
    def __init__(self, store: StoreClient):
        self.store = store

    def check_references(
        self,
        payload: Dict[str, Any],
        rules: Iterable[ReferenceRule],
        scope: Optional[Scope] = None,
    ) -> None:
        """
        Comprueba cada FK presente en el payload.

        Raises:
            InvalidReferenceException: con el PRIMER campo que falla
        """
        for rule in rules:
            value = payload.get(rule.field)
            if _is_blank(value):
                continue

            row = self.store.get(rule.model, value)
            if row is None:
                raise InvalidReferenceException(rule.field, value)

            if rule.require_active and getattr(row, "is_active", True) is False:
                raise InvalidReferenceException(
                    rule.field,
                    value,
                    message=f"La referencia '{rule.field}' apunta a un registro inactivo",
                )

            if rule.ownership and scope is not None and not scope.allows(row, rule.ownership):
                raise InvalidReferenceException(
                    rule.field,
                    value,
                    message=f"La referencia '{rule.field}' apunta a un registro fuera de tu alcance",
                )

    def check_unique(
        self,
        payload: Dict[str, Any],
        rules: Iterable[UniqueRule],
        exclude_id: Optional[str] = None,
    ) -> None:
        """
        Lectura previa de unicidad (no atómica con la inserción posterior).

        Raises:
            DuplicateKeyException
        """
        for rule in rules:
            value = payload.get(rule.field)
            if _is_blank(value):
                continue

            column = getattr(rule.model, rule.field)
            if rule.case_insensitive:
                criteria = [func.lower(column) == str(value).lower()]
            else:
                criteria = [column == value]
            if exclude_id is not None:
                criteria.append(rule.model.id != exclude_id)

            if self.store.exists(rule.model, criteria):
                raise DuplicateKeyException(rule.field, value)

    def validate_write(
        self,
        payload: Dict[str, Any],
        references: Sequence[ReferenceRule] = (),
        uniques: Sequence[UniqueRule] = (),
        exclude_id: Optional[str] = None,
        scope: Optional[Scope] = None,
    ) -> None:
        """Referencias primero, unicidad después."""
        self.check_references(payload, references, scope=scope)
        self.check_unique(payload, uniques, exclude_id=exclude_id)

    def check_dependencies(
        self, entity: str, record_id: str, rules: Iterable[DependencyRule]
    ) -> None:
        dependents = []
        for rule in rules:
            clauses = [getattr(rule.model, column) == record_id for column in rule.columns]
            if self.store.exists(rule.model, [or_(*clauses)]):
                dependents.append(rule.label)

        if dependents:
            raise DependencyExistsException(entity, record_id, dependents)


# =========================================================
# INFORME DE INTEGRIDAD
# =========================================================

@dataclass
class IntegrityReport:
    table_counts: Dict[str, int] = field(default_factory=dict)
    active_actors: int = 0
    orphans: Dict[str, int] = field(default_factory=dict)

    @property
    def healthy(self) -> bool:
        return not any(self.orphans.values())


# (etiqueta, modelo, columna FK, modelo referenciado)
_ORPHAN_CHECKS = [
    ("users.role_id", Actor, "role_id", Role),
    ("cases.user_id", CaseRecord, "user_id", Actor),
    ("cases.application_id", CaseRecord, "application_id", Application),
    ("cases.origin_id", CaseRecord, "origin_id", Origin),
    ("cases.priority_id", CaseRecord, "priority_id", Priority),
    ("todos.assigned_to", TodoRecord, "assigned_to", Actor),
    ("todos.created_by", TodoRecord, "created_by", Actor),
    ("todos.priority_id", TodoRecord, "priority_id", Priority),
    ("todos.case_id", TodoRecord, "case_id", CaseRecord),
    ("time_entries.case_id", TimeEntry, "case_id", CaseRecord),
    ("time_entries.todo_id", TimeEntry, "todo_id", TodoRecord),
]

_COUNTED_TABLES = [
    Actor, Role, Application, Origin, Priority, CaseRecord, TodoRecord, TimeEntry,
]


def integrity_report(store: StoreClient) -> IntegrityReport:
    """
    Cuenta filas por tabla y referencias huérfanas.

    Con FKs activas en el store los huérfanos deberían ser 0; el informe
    sirve para detectar datos cargados sin ellas.
    """
    report = IntegrityReport()

    for model in _COUNTED_TABLES:
        report.table_counts[model.__tablename__] = store.count(model)

    report.active_actors = store.count(Actor, [Actor.is_active.is_(True)])

    for label, model, column_name, target in _ORPHAN_CHECKS:
        column = getattr(model, column_name)
        stmt = (
            select(func.count())
            .select_from(model)
            .outerjoin(target, column == target.id)
            .where(column.isnot(None), target.id.is_(None))
        )
        report.orphans[label] = store.aggregate(stmt)[0][0]

    return report
