"""
Repositorios de tablas de referencia.

Sin columnas de propiedad: visibles para cualquier alcance, pero solo un
alcance de administrador las crea, modifica o borra. Desactivar
(is_active=False) impide referenciarlas en escrituras nuevas; borrar solo
es posible si nada las referencia.
"""
from casetrack.models.case import CaseRecord
from casetrack.models.reference import Application, Origin, Priority
from casetrack.models.schemas import (
    PriorityCreate,
    PriorityUpdate,
    ReferenceCreate,
    ReferenceUpdate,
)
from casetrack.models.todo import TodoRecord
from casetrack.repositories.base import BaseRepository
from casetrack.services.integrity_guard import DependencyRule


class ApplicationRepository(BaseRepository):
    model = Application
    entity_name = "Aplicación"
    create_schema = ReferenceCreate
    update_schema = ReferenceUpdate

    filterable = ("is_active",)
    searchable = ("name", "description")
    ordering = (("name", "asc"),)

    admin_only_create = True
    admin_only_writes = True

    dependency_rules = (DependencyRule(CaseRecord, ("application_id",)),)


class OriginRepository(BaseRepository):
    model = Origin
    entity_name = "Origen"
    create_schema = ReferenceCreate
    update_schema = ReferenceUpdate

    filterable = ("is_active",)
    searchable = ("name", "description")
    ordering = (("name", "asc"),)

    admin_only_create = True
    admin_only_writes = True

    dependency_rules = (DependencyRule(CaseRecord, ("origin_id",)),)


class PriorityRepository(BaseRepository):
    model = Priority
    entity_name = "Prioridad"
    create_schema = PriorityCreate
    update_schema = PriorityUpdate

    filterable = ("is_active", "level")
    searchable = ("name", "description")
    ordering = (("level", "asc"),)

    admin_only_create = True
    admin_only_writes = True

    dependency_rules = (
        DependencyRule(CaseRecord, ("priority_id",)),
        DependencyRule(TodoRecord, ("priority_id",)),
    )
