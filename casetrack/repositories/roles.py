from typing import List, Optional

from casetrack.models.actor import Actor
from casetrack.models.audit_log import AuditOperation
from casetrack.models.role import Permission, Role, RolePermission
from casetrack.models.schemas import PermissionCreate, PermissionUpdate, RoleCreate, RoleUpdate
from casetrack.repositories.base import BaseRepository
from casetrack.services.integrity_guard import DependencyRule, ReferenceRule, UniqueRule
from casetrack.services.scope import Scope


class RoleRepository(BaseRepository):
    model = Role
    entity_name = "Rol"
    create_schema = RoleCreate
    update_schema = RoleUpdate

    searchable = ("name", "description")
    ordering = (("name", "asc"),)

    admin_only_create = True
    admin_only_writes = True

    unique_rules = (UniqueRule("name", Role),)
    dependency_rules = (DependencyRule(Actor, ("role_id",)),)

    def assign_permissions(
        self, role_id: str, permission_ids: List[str], scope: Scope, actor_id: Optional[str]
    ) -> Role:
        """
        Sustituye el conjunto de permisos del rol.

        Raises:
            NotAuthorizedException: el alcance no es de administrador
            InvalidReferenceException: algún permission_id no existe
        """
        role = self.get_by_id(role_id, scope)
        self._require_unrestricted(scope, actor_id, role.id)
        unique_ids = list(dict.fromkeys(permission_ids))

        rule = ReferenceRule("permission_id", Permission, require_active=False)
        for permission_id in unique_ids:
            self.guard.check_references({"permission_id": permission_id}, [rule])

        before = sorted(p.id for p in role.permissions)
        self.store.replace_links(
            RolePermission,
            "role_id",
            role.id,
            [RolePermission(role_id=role.id, permission_id=pid) for pid in unique_ids],
        )
        self.db.refresh(role)

        self._log_info(
            "Role permissions replaced",
            actor_id=actor_id,
            action="roles.assign_permissions",
            record_id=role.id,
            count=len(unique_ids),
        )
        self._audit(
            AuditOperation.UPDATE,
            role.id,
            actor_id,
            {"permission_ids": before},
            {"permission_ids": sorted(unique_ids)},
            f"Permisos del rol {role.name} actualizados",
        )
        return role


class PermissionRepository(BaseRepository):
    model = Permission
    entity_name = "Permiso"
    create_schema = PermissionCreate
    update_schema = PermissionUpdate

    filterable = ("module", "action")
    searchable = ("name", "description")
    ordering = (("module", "asc"), ("action", "asc"))

    admin_only_create = True
    admin_only_writes = True

    unique_rules = (UniqueRule("name", Permission),)

    def get_by_module(self, module: str) -> List[Permission]:
        return self.store.select(
            Permission,
            criteria=[Permission.module == module],
            order_by=self._order_clauses(),
        ).rows
