"""
Repositorio de actores (usuarios).

La contraseña se guarda siempre hasheada y nunca aparece en los snapshots
de auditoría. Un actor con casos, tareas o registros de tiempo no se puede
borrar (se desactiva con toggle_active).
"""
from typing import Any, Dict, Optional

from casetrack.core.auth import get_password_hash, verify_password
from casetrack.core.config import get_settings
from casetrack.core.exceptions import AuthenticationException, NotAuthorizedException, ValidationException
from casetrack.models.actor import Actor
from casetrack.models.audit_log import AuditOperation
from casetrack.models.case import CaseRecord
from casetrack.models.role import Role
from casetrack.models.schemas import ActorCreate, ActorUpdate
from casetrack.models.time_entry import TimeEntry
from casetrack.models.todo import TodoRecord
from casetrack.repositories.base import BaseRepository
from casetrack.services.audit_recorder import row_snapshot
from casetrack.services.integrity_guard import DependencyRule, ReferenceRule, UniqueRule
from casetrack.services.scope import Scope


class ActorRepository(BaseRepository):
    model = Actor
    entity_name = "Usuario"
    create_schema = ActorCreate
    update_schema = ActorUpdate

    filterable = ("role_id", "is_active", "email")
    searchable = ("name", "email")

    # Alta solo por administradores; cada actor puede editar su propia fila
    admin_only_create = True
    # Campos que solo un administrador puede cambiar, incluso en la fila propia
    admin_fields = ("role_id", "is_active")

    reference_rules = (ReferenceRule("role_id", Role, require_active=False),)
    unique_rules = (UniqueRule("email", Actor, case_insensitive=True),)
    dependency_rules = (
        DependencyRule(CaseRecord, ("user_id",)),
        DependencyRule(TodoRecord, ("assigned_to", "created_by")),
        DependencyRule(TimeEntry, ("user_id",)),
    )

    def _authorize_write(self, row, data, scope: Scope, actor_id: Optional[str]) -> None:
        if scope.is_unrestricted:
            return
        if row.id != scope.actor_id:
            raise NotAuthorizedException(self.entity_name, row.id, actor_id=actor_id)
        for field_name in self.admin_fields:
            if data and field_name in data and data[field_name] != getattr(row, field_name):
                raise NotAuthorizedException(self.entity_name, row.id, actor_id=actor_id)

    def _prepare_create(self, data: Dict[str, Any], actor_id: Optional[str]) -> Dict[str, Any]:
        password = data.pop("password")
        data["hashed_password"] = get_password_hash(password)
        return data

    def _prepare_update(self, row, data: Dict[str, Any]) -> Dict[str, Any]:
        password = data.pop("password", None)
        if password:
            data["hashed_password"] = get_password_hash(password)
        return data

    def _describe(self, operation, row) -> str:
        base = super()._describe(operation, row)
        return f"{base}: {row.email}"

    def toggle_active(self, record_id: str, is_active: bool, scope: Scope, actor_id: Optional[str]) -> Actor:
        return self.update(record_id, {"is_active": is_active}, scope, actor_id)

    def change_password(self, actor_id: str, current_password: str, new_password: str) -> None:
        """
        Cambia la contraseña del propio actor tras verificar la actual.

        Raises:
            AuthenticationException: la contraseña actual no coincide
            ValidationException: la nueva no cumple la longitud mínima
        """
        row = self.get_by_id(actor_id, Scope.owned_by(actor_id))

        if not verify_password(current_password, row.hashed_password):
            raise AuthenticationException("La contraseña actual no es correcta")

        min_length = get_settings().min_password_length
        if not new_password or len(new_password) < min_length:
            raise ValidationException(
                f"La nueva contraseña debe tener al menos {min_length} caracteres",
                field="password",
            )

        before = row_snapshot(row)
        row = self.store.update(row, {"hashed_password": get_password_hash(new_password)})
        self._log_info("Password changed", actor_id=actor_id, action="users.change_password")
        self._audit(
            AuditOperation.UPDATE, row.id, actor_id, before, row_snapshot(row),
            "Contraseña actualizada",
        )
