"""
Resolución del alcance de visibilidad.

Un Scope es sin restricciones (admin) o limitado a las filas que el actor
posee o tiene asignadas. Cada entidad declara sus columnas de propiedad;
las tablas sin columnas de propiedad son visibles para cualquier alcance.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence

from sqlalchemy import false, or_

from casetrack.core.config import get_settings


@dataclass(frozen=True)
class Scope:
    actor_id: Optional[str] = None
    unrestricted_access: bool = False

    @classmethod
    def unrestricted(cls, actor_id: Optional[str] = None) -> "Scope":
        return cls(actor_id=actor_id, unrestricted_access=True)

    @classmethod
    def owned_by(cls, actor_id: str) -> "Scope":
        if not actor_id:
            raise ValueError("owned_by requiere un actor_id")
        return cls(actor_id=actor_id, unrestricted_access=False)

    @property
    def is_unrestricted(self) -> bool:
        return self.unrestricted_access

    def predicate(self, model, ownership_columns: Sequence[str]) -> Optional[Any]:
        """
        Predicado SQL que limita `model` a este alcance.

        None significa que no hay que filtrar.
        """
        if self.unrestricted_access or not ownership_columns:
            return None
        if not self.actor_id:
            return false()
        clauses = [getattr(model, column) == self.actor_id for column in ownership_columns]
        return clauses[0] if len(clauses) == 1 else or_(*clauses)

    def allows(self, row: Any, ownership_columns: Sequence[str]) -> bool:
        """Misma regla que predicate() evaluada sobre una fila ya cargada."""
        if self.unrestricted_access or not ownership_columns:
            return True
        return any(getattr(row, column, None) == self.actor_id for column in ownership_columns)


def resolve_scope(actor_id: Optional[str], is_admin: bool) -> Scope:
    if is_admin:
        return Scope.unrestricted(actor_id)
    return Scope.owned_by(actor_id)


def is_admin_actor(actor) -> bool:
    role_name = getattr(actor, "role_name", None)
    if role_name is None and isinstance(actor, dict):
        role_name = actor.get("role_name")
    return role_name in get_settings().admin_role_names


def resolve_scope_for_actor(actor) -> Scope:
    """Scope a partir de un Actor (o su snapshot en caché)."""
    actor_id = actor["id"] if isinstance(actor, dict) else actor.id
    return resolve_scope(actor_id, is_admin_actor(actor))
