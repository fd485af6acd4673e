"""
Autenticación de actores contra la tabla users.

Hashing con passlib (bcrypt). El login devuelve el actor sin contraseña;
la persistencia local de la sesión la gestiona ActorSessionProvider.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from passlib.context import CryptContext
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from casetrack.core.config import get_settings
from casetrack.core.exceptions import AuthenticationException, ConfigurationException
from casetrack.core.store import StoreError, StoreErrorKind, StoreClient
from casetrack.models.actor import Actor

# ==============================================================================
# HASHING
# ==============================================================================

_pwd_context: Optional[CryptContext] = None


def get_password_context() -> CryptContext:
    global _pwd_context

    if _pwd_context is None:
        _pwd_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=get_settings().password_hash_rounds,
        )

    return _pwd_context


def reset_password_context() -> None:
    global _pwd_context
    _pwd_context = None


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verifica que una contraseña coincida con su hash."""
    if not hashed_password:
        return False
    try:
        return get_password_context().verify(plain_password, hashed_password)
    except ValueError:
        # Hash con formato desconocido
        return False


def get_password_hash(password: str) -> str:
    """Genera hash de una contraseña."""
    return get_password_context().hash(password)


# ==============================================================================
# LOGIN
# ==============================================================================

INVALID_CREDENTIALS = "Email o contraseña incorrectos. Por favor verifica tus credenciales."


def validate_login_input(email: str, password: str) -> str:
    """
    Validación básica antes de tocar el store.

    Returns:
        Email normalizado (minúsculas, sin espacios)
    """
    if not email or not password:
        raise AuthenticationException("Email y contraseña son requeridos")

    if "@" not in email:
        raise AuthenticationException("Por favor ingresa un email válido")

    min_length = get_settings().min_password_length
    if len(password) < min_length:
        raise AuthenticationException(
            f"La contraseña debe tener al menos {min_length} caracteres"
        )

    return email.strip().lower()


def actor_snapshot(actor: Actor) -> Dict[str, Any]:
    """Registro del actor apto para la caché local (sin contraseña)."""
    return {
        "id": actor.id,
        "name": actor.name,
        "email": actor.email,
        "role_id": actor.role_id,
        "role_name": actor.role_name,
        "is_active": actor.is_active,
        "created_at": actor.created_at.isoformat() if actor.created_at else None,
        "updated_at": actor.updated_at.isoformat() if actor.updated_at else None,
    }


def authenticate_actor(db: Session, email: str, password: str) -> Actor:
    """
    Autentica un actor por email y contraseña.

    Raises:
        AuthenticationException: credenciales inválidas o cuenta desactivada
        ConfigurationException: el store rechaza la consulta por permisos
    """
    normalized = validate_login_input(email, password)
    store = StoreClient(db)

    try:
        rows = store.select(Actor, criteria=[func.lower(Actor.email) == normalized], limit=1).rows
    except StoreError as e:
        if e.kind in (StoreErrorKind.AUTH, StoreErrorKind.PERMISSION):
            raise ConfigurationException(
                "Error de configuración del sistema. Contacta al administrador.",
                original_error=e,
            )
        raise AuthenticationException(INVALID_CREDENTIALS, original_error=e)

    actor = rows[0] if rows else None
    if actor is None:
        raise AuthenticationException(INVALID_CREDENTIALS)

    if not actor.is_active:
        raise AuthenticationException(
            "Tu cuenta está desactivada. Contacta al administrador para más información."
        )

    if not verify_password(password, actor.hashed_password):
        raise AuthenticationException(INVALID_CREDENTIALS)

    store.update(actor, {"last_login": datetime.utcnow()})
    return actor


def load_active_actor(db: Session, actor_id: str) -> Optional[Actor]:
    """Actor activo con ese id, o None."""
    return db.execute(
        select(Actor).where(Actor.id == actor_id, Actor.is_active.is_(True))
    ).scalars().first()
