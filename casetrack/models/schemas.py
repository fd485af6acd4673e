"""
Payloads de escritura (Pydantic).

Validan forma y tipos antes de llegar al guard de integridad. Las FKs
solo se comprueban aquí como cadenas; su existencia la verifica el guard.
"""
from __future__ import annotations

import re
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from casetrack.models.case import CaseComplexity, CaseStatus
from casetrack.models.todo import TodoStatus

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


class _Payload(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


# =========================================================
# ACTORES, ROLES Y PERMISOS
# =========================================================

class ActorCreate(_Payload):
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=1)
    role_id: Optional[str] = None
    is_active: bool = True

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        if not _EMAIL_RE.match(v):
            raise ValueError("Email no válido")
        return v.lower()

    @field_validator("role_id", mode="before")
    @classmethod
    def blank_role(cls, v):
        return _blank_to_none(v)


class ActorUpdate(_Payload):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[str] = Field(None, max_length=255)
    password: Optional[str] = Field(None, min_length=1)
    role_id: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not _EMAIL_RE.match(v):
            raise ValueError("Email no válido")
        return v.lower() if v else v

    @field_validator("password", mode="before")
    @classmethod
    def blank_password(cls, v):
        # Contraseña vacía en edición = no cambiarla
        return _blank_to_none(v)


class RoleCreate(_Payload):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None


class RoleUpdate(_Payload):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None


class PermissionCreate(_Payload):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    module: Optional[str] = Field(None, max_length=50)
    action: Optional[str] = Field(None, max_length=50)


class PermissionUpdate(_Payload):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    module: Optional[str] = Field(None, max_length=50)
    action: Optional[str] = Field(None, max_length=50)


# =========================================================
# TABLAS DE REFERENCIA
# =========================================================

class ReferenceCreate(_Payload):
    """Aplicaciones y orígenes."""
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    is_active: bool = True


class ReferenceUpdate(_Payload):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    is_active: Optional[bool] = None


class PriorityCreate(ReferenceCreate):
    level: int = Field(default=1, ge=1)
    color: str = Field(default="#1976d2", max_length=20)


class PriorityUpdate(ReferenceUpdate):
    level: Optional[int] = Field(None, ge=1)
    color: Optional[str] = Field(None, max_length=20)


# =========================================================
# CASOS
# =========================================================

class CaseCreate(_Payload):
    case_number: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1)
    application_id: str = Field(..., min_length=1)
    origin_id: str = Field(..., min_length=1)
    priority_id: Optional[str] = None
    status: CaseStatus = CaseStatus.PENDIENTE
    complexity: Optional[CaseComplexity] = None
    classification_score: Optional[int] = Field(None, ge=0)
    classification: Optional[str] = None

    @field_validator("priority_id", mode="before")
    @classmethod
    def blank_priority(cls, v):
        return _blank_to_none(v)


class CaseUpdate(_Payload):
    case_number: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, min_length=1)
    application_id: Optional[str] = None
    origin_id: Optional[str] = None
    priority_id: Optional[str] = None
    status: Optional[CaseStatus] = None
    complexity: Optional[CaseComplexity] = None
    classification_score: Optional[int] = Field(None, ge=0)
    classification: Optional[str] = None


# =========================================================
# TAREAS
# =========================================================

class TodoCreate(_Payload):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    priority_id: str = Field(..., min_length=1)
    assigned_to: Optional[str] = None
    case_id: Optional[str] = None
    status: TodoStatus = TodoStatus.PENDING
    due_date: Optional[datetime] = None

    @field_validator("case_id", "assigned_to", mode="before")
    @classmethod
    def blank_refs(cls, v):
        return _blank_to_none(v)


class TodoUpdate(_Payload):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    priority_id: Optional[str] = None
    assigned_to: Optional[str] = None
    case_id: Optional[str] = None
    status: Optional[TodoStatus] = None
    due_date: Optional[datetime] = None

    @field_validator("case_id", "assigned_to", mode="before")
    @classmethod
    def blank_refs(cls, v):
        return _blank_to_none(v)


# =========================================================
# TIEMPO
# =========================================================

class TimeEntryCreate(_Payload):
    case_id: Optional[str] = None
    todo_id: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    description: Optional[str] = None

    @field_validator("case_id", "todo_id", mode="before")
    @classmethod
    def blank_parent(cls, v):
        return _blank_to_none(v)

    @model_validator(mode="after")
    def validate_single_parent(self) -> "TimeEntryCreate":
        if (self.case_id is None) == (self.todo_id is None):
            raise ValueError("Un registro de tiempo necesita exactamente un caso o una tarea")
        if self.end_time is not None and self.end_time < self.start_time:
            raise ValueError("end_time no puede ser anterior a start_time")
        return self


class TimeEntryUpdate(_Payload):
    end_time: Optional[datetime] = None
    description: Optional[str] = None


class ManualTimeEntry(_Payload):
    """Tiempo añadido a mano: horas + minutos en un día dado."""
    case_id: Optional[str] = None
    todo_id: Optional[str] = None
    hours: int = Field(default=0, ge=0, le=24)
    minutes: int = Field(default=0, ge=0, le=59)
    description: Optional[str] = None
    work_date: Optional[date] = None

    @field_validator("case_id", "todo_id", mode="before")
    @classmethod
    def blank_parent(cls, v):
        return _blank_to_none(v)

    @model_validator(mode="after")
    def validate_manual(self) -> "ManualTimeEntry":
        if (self.case_id is None) == (self.todo_id is None):
            raise ValueError("Un registro de tiempo necesita exactamente un caso o una tarea")
        if self.hours == 0 and self.minutes == 0:
            raise ValueError("La duración debe ser mayor que cero")
        return self
