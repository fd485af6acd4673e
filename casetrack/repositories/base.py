"""
Repositorio genérico de entidades.

Contrato común:
- get_all(scope, filters, page, page_size) -> Page
- get_by_id(id, scope) -> fila
- create(payload, actor_id) -> fila
- update(id, payload, scope, actor_id) -> fila
- delete(id, scope, actor_id) -> None

Cada entidad declara tabla, columnas de propiedad, filtros, orden y
reglas de integridad. Las escrituras pasan por el guard ANTES de tocar el
store; la auditoría se despacha después del commit y su fallo no revierte
nada.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Sequence, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError
from sqlalchemy import or_
from sqlalchemy.orm import Session

from casetrack.core.config import get_settings
from casetrack.core.exceptions import (
    NotAuthorizedException,
    NotFoundException,
    ValidationException,
)
from casetrack.core.logger import StructuredLogger
from casetrack.models.actor import Actor
from casetrack.models.audit_log import AuditOperation
from casetrack.services.audit_recorder import AuditRecorder, row_snapshot
from casetrack.services.base import BaseService
from casetrack.services.integrity_guard import (
    DependencyRule,
    IntegrityGuard,
    ReferenceRule,
    UniqueRule,
)
from casetrack.services.scope import Scope, resolve_scope_for_actor

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    rows: List[T] = field(default_factory=list)
    total_count: int = 0
    page: int = 1
    page_size: int = 0

    @property
    def total_pages(self) -> int:
        if not self.page_size:
            return 0
        return (self.total_count + self.page_size - 1) // self.page_size


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class BaseRepository(BaseService):
    model: Any = None
    entity_name: str = "Registro"

    create_schema: Optional[Type[BaseModel]] = None
    update_schema: Optional[Type[BaseModel]] = None

    # Columnas que determinan la visibilidad (vacío = visible para todos)
    ownership_columns: Tuple[str, ...] = ()
    filterable: Tuple[str, ...] = ()
    searchable: Tuple[str, ...] = ()
    # (columna, "asc" | "desc")
    ordering: Tuple[Tuple[str, str], ...] = (("created_at", "desc"),)

    reference_rules: Sequence[ReferenceRule] = ()
    unique_rules: Sequence[UniqueRule] = ()
    dependency_rules: Sequence[DependencyRule] = ()

    audited: bool = True

    # Tablas de administración: solo un alcance sin restricciones escribe
    admin_only_create: bool = False
    admin_only_writes: bool = False

    def __init__(
        self,
        db: Session,
        recorder: Optional[AuditRecorder] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        super().__init__(db, logger)
        self.recorder = recorder
        self.guard = IntegrityGuard(self.store)

    @property
    def table_name(self) -> str:
        return self.model.__tablename__

    # =========================================================
    # LECTURA
    # =========================================================

    def get_all(
        self,
        scope: Scope,
        filters: Optional[Dict[str, Any]] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> Page:
        page = max(page or 1, 1)
        page_size = get_settings().clamp_page_size(page_size)

        criteria = self._scope_criteria(scope) + self._filter_criteria(filters or {})
        result = self.store.select(
            self.model,
            criteria=criteria,
            order_by=self._order_clauses(),
            offset=(page - 1) * page_size,
            limit=page_size,
        )
        return Page(rows=result.rows, total_count=result.total_count, page=page, page_size=page_size)

    def get_by_id(self, record_id: str, scope: Scope):
        """
        Raises:
            NotFoundException: no existe
            NotAuthorizedException: existe pero queda fuera del alcance
        """
        row = self.store.get(self.model, record_id)
        if row is None:
            raise NotFoundException(self.entity_name, record_id)
        if not scope.allows(row, self.ownership_columns):
            raise NotAuthorizedException(self.entity_name, record_id, actor_id=scope.actor_id)
        return row

    # =========================================================
    # ESCRITURA
    # =========================================================

    def create(self, payload, actor_id: Optional[str], scope: Optional[Scope] = None):
        """
        Sin `scope` explícito se resuelve a partir de `actor_id` cuando hace
        falta (tablas de administración, referencias con propietario).
        """
        if scope is None and self._needs_writer_scope():
            scope = self._scope_for_actor(actor_id)
        if self.admin_only_create:
            self._require_unrestricted(scope, actor_id)

        data = self._validate_payload(payload, self.create_schema, partial=False)
        data = self._prepare_create(data, actor_id)

        self.guard.validate_write(data, self.reference_rules, self.unique_rules, scope=scope)

        row = self.store.insert(self.model(**self._column_values(data)))
        self._log_info(
            f"{self.entity_name} created", actor_id=actor_id, action=f"{self.table_name}.create", record_id=row.id
        )
        self._audit(
            AuditOperation.INSERT, row.id, actor_id, None, row_snapshot(row),
            self._describe(AuditOperation.INSERT, row),
        )
        return row

    def update(self, record_id: str, payload, scope: Scope, actor_id: Optional[str]):
        row = self.get_by_id(record_id, scope)
        data = self._validate_payload(payload, self.update_schema, partial=True)
        self._authorize_write(row, data, scope, actor_id)
        data = self._prepare_update(row, data)
        if not data:
            return row

        changed_uniques = [
            rule for rule in self.unique_rules
            if rule.field in data and data[rule.field] != getattr(row, rule.field)
        ]
        self.guard.validate_write(
            data, self.reference_rules, changed_uniques, exclude_id=row.id, scope=scope
        )

        before = row_snapshot(row)
        row = self.store.update(row, self._column_values(data))
        self._log_info(
            f"{self.entity_name} updated", actor_id=actor_id, action=f"{self.table_name}.update", record_id=row.id
        )
        self._audit(
            AuditOperation.UPDATE, row.id, actor_id, before, row_snapshot(row),
            self._describe(AuditOperation.UPDATE, row),
        )
        return row

    def delete(self, record_id: str, scope: Scope, actor_id: Optional[str]) -> None:
        row = self.get_by_id(record_id, scope)
        self._authorize_write(row, None, scope, actor_id)
        self.guard.check_dependencies(self.entity_name, row.id, self.dependency_rules)

        before = row_snapshot(row)
        description = self._describe(AuditOperation.DELETE, row)
        self.store.delete(row)
        self._log_info(
            f"{self.entity_name} deleted", actor_id=actor_id, action=f"{self.table_name}.delete", record_id=record_id
        )
        self._audit(AuditOperation.DELETE, record_id, actor_id, before, None, description)

    # =========================================================
    # HOOKS POR ENTIDAD
    # =========================================================

    def _authorize_write(self, row, data: Optional[Dict[str, Any]], scope: Scope, actor_id: Optional[str]) -> None:
        """Se llama en update (con los cambios) y en delete (data=None)."""
        if self.admin_only_writes:
            self._require_unrestricted(scope, actor_id, row.id)

    def _prepare_create(self, data: Dict[str, Any], actor_id: Optional[str]) -> Dict[str, Any]:
        return data

    def _prepare_update(self, row, data: Dict[str, Any]) -> Dict[str, Any]:
        return data

    def _describe(self, operation: AuditOperation, row) -> str:
        verbs = {
            AuditOperation.INSERT: "creado",
            AuditOperation.UPDATE: "actualizado",
            AuditOperation.DELETE: "eliminado",
        }
        return f"{self.entity_name} {verbs.get(operation, operation.value)}"

    # =========================================================
    # INTERNOS
    # =========================================================

    def _needs_writer_scope(self) -> bool:
        return self.admin_only_create or any(rule.ownership for rule in self.reference_rules)

    def _scope_for_actor(self, actor_id: Optional[str]) -> Scope:
        """Alcance del actor que escribe; sin actor activo no ve nada."""
        actor = self.store.get(Actor, actor_id) if actor_id else None
        if actor is None or not actor.is_active:
            return Scope()
        return resolve_scope_for_actor(actor)

    def _require_unrestricted(self, scope: Optional[Scope], actor_id: Optional[str], record_id=None) -> None:
        if scope is None or not scope.is_unrestricted:
            raise NotAuthorizedException(self.entity_name, record_id, actor_id=actor_id)

    def _validate_payload(self, payload, schema, partial: bool) -> Dict[str, Any]:
        if payload is None:
            payload = {}

        if isinstance(payload, BaseModel):
            model = payload
        elif schema is not None:
            try:
                model = schema.model_validate(dict(payload))
            except ValidationError as e:
                first = e.errors()[0]
                loc = first.get("loc") or ()
                field_name = str(loc[0]) if loc else None
                raise ValidationException(
                    f"Datos no válidos: {first.get('msg')}", field=field_name, original_error=e
                )
        else:
            return {k: _plain(v) for k, v in dict(payload).items()}

        data = model.model_dump(exclude_unset=partial)
        return {k: _plain(v) for k, v in data.items()}

    def _column_values(self, data: Dict[str, Any]) -> Dict[str, Any]:
        columns = set(self.model.__table__.columns.keys())
        return {k: v for k, v in data.items() if k in columns}

    def _scope_criteria(self, scope: Scope) -> list:
        predicate = scope.predicate(self.model, self.ownership_columns)
        return [] if predicate is None else [predicate]

    def _filter_criteria(self, filters: Dict[str, Any]) -> list:
        criteria = []
        for key, value in filters.items():
            if value is None or value == "":
                continue
            if key == "search":
                if self.searchable:
                    pattern = f"%{value}%"
                    criteria.append(
                        or_(*[getattr(self.model, column).ilike(pattern) for column in self.searchable])
                    )
                continue
            if key not in self.filterable:
                raise ValidationException(f"Filtro no soportado: {key}", field=key)
            criteria.append(getattr(self.model, key) == _plain(value))
        return criteria

    def _order_clauses(self) -> list:
        clauses = []
        for column_name, direction in self.ordering:
            column = getattr(self.model, column_name)
            clauses.append(column.desc() if direction == "desc" else column.asc())
        clauses.append(self.model.id.asc())
        return clauses

    def _audit(self, operation, record_id, actor_id, before, after, description) -> None:
        if not self.audited or self.recorder is None:
            return
        try:
            self.recorder.record(
                table_name=self.table_name,
                operation=operation.value,
                record_id=record_id,
                actor_id=actor_id,
                before=before,
                after=after,
                description=description,
            )
        except Exception as e:
            # La escritura principal ya está confirmada
            self._log_error(
                "Audit dispatch failed", error=e, actor_id=actor_id, action=f"{self.table_name}.audit"
            )
