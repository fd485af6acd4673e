"""
Capacidades efectivas de un actor.

Los permisos del rol del actor se resuelven a pares (module, action).
Los roles administradores tienen todas las capacidades.
"""
from typing import FrozenSet, Tuple

from casetrack.services.scope import is_admin_actor

Capability = Tuple[str, str]


def resolve_capabilities(actor) -> FrozenSet[Capability]:
    """Conjunto (module, action) concedido por el rol del actor."""
    role = getattr(actor, "role", None)
    if role is None:
        return frozenset()

    return frozenset(
        (permission.module, permission.action)
        for permission in role.permissions
        if permission.module and permission.action
    )


def has_permission(actor, module: str, action: str) -> bool:
    if actor is None:
        return False
    if is_admin_actor(actor):
        return True
    return (module, action) in resolve_capabilities(actor)


def can_view(actor, module: str) -> bool:
    return has_permission(actor, module, "read")
