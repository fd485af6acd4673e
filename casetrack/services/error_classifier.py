"""
Clasificador de errores.

Traduce cualquier fallo (StoreError normalizado, excepción de dominio,
error de validación) a la taxonomía cerrada que ve la UI. Función pura y
determinista: el mismo error produce siempre el mismo resultado y nunca
se filtran detalles internos del store.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from casetrack.core.exceptions import (
    AuthenticationException,
    CaseTrackException,
    ErrorKind,
    ValidationException,
)
from casetrack.core.store import StoreError, StoreErrorKind, normalize_store_error


@dataclass(frozen=True)
class ClassifiedError:
    kind: ErrorKind
    message: str
    field: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "field": self.field, "message": self.message}


# =========================================================
# TABLAS DE MENSAJES
# =========================================================

# El orden importa: es el orden de búsqueda en el texto del error
REFERENCE_MESSAGES: Dict[str, str] = {
    "user_id": "Usuario no válido. Inicie sesión nuevamente.",
    "application_id": "La aplicación seleccionada no es válida.",
    "origin_id": "El origen seleccionado no es válido.",
    "priority_id": "La prioridad seleccionada no es válida.",
    "case_id": "El caso especificado no es válido.",
    "todo_id": "El TODO especificado no es válido.",
    "role_id": "El rol especificado no es válido.",
    "assigned_to": "El usuario asignado no es válido.",
    "created_by": "El usuario creador no es válido.",
}

DUPLICATE_MESSAGES: Dict[str, str] = {
    "case_number": "Ya existe un caso con este número.",
    "email": "Ya existe un usuario con este email.",
}

GENERIC_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.INVALID_REFERENCE: "Error de integridad: Verifique que todos los datos sean válidos.",
    ErrorKind.DUPLICATE_KEY: "Ya existe un registro con estos datos.",
    ErrorKind.NOT_AUTHORIZED: "No tienes permisos para realizar esta operación.",
    ErrorKind.NOT_FOUND: "El registro solicitado no existe.",
    ErrorKind.SESSION_INVALID: "Sesión inválida. Por favor, inicie sesión nuevamente.",
    ErrorKind.DEPENDENCY_EXISTS: "No se puede eliminar: existen registros dependientes.",
    ErrorKind.UNKNOWN: "Error inesperado. Inténtalo de nuevo o contacta al administrador.",
}

_STORE_KINDS: Dict[StoreErrorKind, ErrorKind] = {
    StoreErrorKind.FOREIGN_KEY: ErrorKind.INVALID_REFERENCE,
    StoreErrorKind.UNIQUE: ErrorKind.DUPLICATE_KEY,
    StoreErrorKind.PERMISSION: ErrorKind.NOT_AUTHORIZED,
    StoreErrorKind.NOT_FOUND: ErrorKind.NOT_FOUND,
    StoreErrorKind.AUTH: ErrorKind.SESSION_INVALID,
}


def _scan_field(text: str, table: Dict[str, str]) -> Optional[str]:
    for name in table:
        if name in text:
            return name
    return None


def _message_for(kind: ErrorKind, field: Optional[str]) -> str:
    if kind == ErrorKind.INVALID_REFERENCE and field in REFERENCE_MESSAGES:
        return REFERENCE_MESSAGES[field]
    if kind == ErrorKind.DUPLICATE_KEY and field in DUPLICATE_MESSAGES:
        return DUPLICATE_MESSAGES[field]
    return GENERIC_MESSAGES[kind]


def _classify_store_error(error: StoreError) -> ClassifiedError:
    kind = _STORE_KINDS.get(error.kind, ErrorKind.UNKNOWN)

    field = error.field
    if kind == ErrorKind.INVALID_REFERENCE and field not in REFERENCE_MESSAGES:
        field = _scan_field(error.message or "", REFERENCE_MESSAGES) or field
    elif kind == ErrorKind.DUPLICATE_KEY and field not in DUPLICATE_MESSAGES:
        field = _scan_field(error.message or "", DUPLICATE_MESSAGES) or field

    if kind not in (ErrorKind.INVALID_REFERENCE, ErrorKind.DUPLICATE_KEY):
        field = None

    return ClassifiedError(kind=kind, message=_message_for(kind, field), field=field)


def _classify_domain_error(error: CaseTrackException) -> ClassifiedError:
    kind = error.kind

    if isinstance(error, ValidationException):
        return ClassifiedError(kind=ErrorKind.UNKNOWN, message=error.message, field=error.field)

    if isinstance(error, AuthenticationException):
        return ClassifiedError(kind=kind, message=error.message)

    if kind == ErrorKind.DEPENDENCY_EXISTS:
        return ClassifiedError(kind=kind, message=error.message)

    field = error.field if kind in (ErrorKind.INVALID_REFERENCE, ErrorKind.DUPLICATE_KEY) else None
    return ClassifiedError(kind=kind, message=_message_for(kind, field), field=field)


def _validation_message(error: ValidationError) -> ClassifiedError:
    first = error.errors()[0] if error.errors() else {}
    loc = first.get("loc") or ()
    field = str(loc[0]) if loc else None
    detail = first.get("msg", "valor no válido")
    message = f"Datos no válidos en '{field}': {detail}" if field else f"Datos no válidos: {detail}"
    return ClassifiedError(kind=ErrorKind.UNKNOWN, message=message, field=field)


def classify(error: BaseException) -> ClassifiedError:
    """
    Clasifica un error en la taxonomía de la UI.

    Args:
        error: Cualquier excepción capturada en el borde de una operación

    Returns:
        ClassifiedError con kind, field (si aplica) y mensaje para el usuario
    """
    if isinstance(error, CaseTrackException):
        return _classify_domain_error(error)

    if isinstance(error, StoreError):
        return _classify_store_error(error)

    if isinstance(error, SQLAlchemyError):
        return _classify_store_error(normalize_store_error(error))

    if isinstance(error, ValidationError):
        return _validation_message(error)

    return ClassifiedError(kind=ErrorKind.UNKNOWN, message=GENERIC_MESSAGES[ErrorKind.UNKNOWN])
