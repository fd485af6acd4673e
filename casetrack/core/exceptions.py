"""
Sistema de excepciones estandarizado para CaseTrack.

Todas las excepciones del sistema heredan de CaseTrackException y siguen
un formato consistente con:
- Código de error único
- Tipo de error (ErrorKind) de la taxonomía cerrada
- Mensaje descriptivo para el usuario
- Detalles adicionales (dict)
- Severity level
"""
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorSeverity(str, Enum):
    """Niveles de severidad para errores."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorKind(str, Enum):
    """Taxonomía cerrada de errores visibles por la UI."""
    INVALID_REFERENCE = "invalid_reference"
    DUPLICATE_KEY = "duplicate_key"
    NOT_AUTHORIZED = "not_authorized"
    NOT_FOUND = "not_found"
    SESSION_INVALID = "session_invalid"
    DEPENDENCY_EXISTS = "dependency_exists"
    UNKNOWN = "unknown"


class CaseTrackException(Exception):
    """
    Excepción base del sistema CaseTrack.

    Todas las excepciones custom deben heredar de esta clase.
    """

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        original_error: Optional[Exception] = None,
    ):
        """
        Args:
            code: Código único del error (ej: "INVALID_REFERENCE")
            message: Mensaje descriptivo para humanos
            details: Detalles adicionales (dict)
            severity: Nivel de severidad
            original_error: Excepción original si es un wrap
        """
        self.code = code
        self.message = message
        self.details = details or {}
        self.severity = severity
        self.original_error = original_error

        super().__init__(self.message)

    @property
    def field(self) -> Optional[str]:
        return self.details.get("field")

    def to_dict(self) -> Dict[str, Any]:
        """Convierte la excepción a diccionario (para API/logging)."""
        result = {
            "error_code": self.code,
            "kind": self.kind.value,
            "message": self.message,
            "severity": self.severity.value,
            "details": self.details,
        }

        if self.original_error:
            result["original_error"] = {
                "type": type(self.original_error).__name__,
                "message": str(self.original_error),
            }

        return result

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base


# =========================================================
# INTEGRIDAD REFERENCIAL Y UNICIDAD
# =========================================================

class InvalidReferenceException(CaseTrackException):
    """Una FK del payload apunta a una fila inexistente o inactiva."""

    kind = ErrorKind.INVALID_REFERENCE

    def __init__(self, field: str, value: Any = None, message: Optional[str] = None, **kwargs):
        super().__init__(
            code="INVALID_REFERENCE",
            message=message or f"La referencia '{field}' no existe o no está activa",
            details={"field": field, "value": value},
            **kwargs,
        )


class DuplicateKeyException(CaseTrackException):
    """Ya existe una fila con el mismo valor en un campo único."""

    kind = ErrorKind.DUPLICATE_KEY

    def __init__(self, field: str, value: Any = None, message: Optional[str] = None, **kwargs):
        super().__init__(
            code="DUPLICATE_KEY",
            message=message or f"Ya existe un registro con este valor de '{field}'",
            details={"field": field, "value": value},
            **kwargs,
        )


class DependencyExistsException(CaseTrackException):
    """La fila tiene dependientes y no puede borrarse."""

    kind = ErrorKind.DEPENDENCY_EXISTS

    def __init__(self, entity: str, record_id: str, dependents: List[str], **kwargs):
        super().__init__(
            code="DEPENDENCY_EXISTS",
            message=(
                f"No se puede eliminar {entity} {record_id}: "
                f"tiene registros dependientes en {', '.join(dependents)}"
            ),
            details={"entity": entity, "record_id": record_id, "dependents": dependents},
            **kwargs,
        )


# =========================================================
# ACCESO Y SESIÓN
# =========================================================

class NotFoundException(CaseTrackException):
    """Fila no encontrada."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, entity: str, record_id: Any, **kwargs):
        super().__init__(
            code="NOT_FOUND",
            message=f"{entity} no encontrado: {record_id}",
            details={"entity": entity, "record_id": record_id},
            severity=ErrorSeverity.LOW,
            **kwargs,
        )


class NotAuthorizedException(CaseTrackException):
    """La fila existe pero queda fuera del alcance del actor."""

    kind = ErrorKind.NOT_AUTHORIZED

    def __init__(self, entity: str, record_id: Any, actor_id: Optional[str] = None, **kwargs):
        super().__init__(
            code="NOT_AUTHORIZED",
            message=f"No tienes permisos sobre {entity} {record_id}",
            details={"entity": entity, "record_id": record_id, "actor_id": actor_id},
            severity=ErrorSeverity.HIGH,
            **kwargs,
        )


class SessionInvalidException(CaseTrackException):
    """La sesión local ya no corresponde a un actor activo."""

    kind = ErrorKind.SESSION_INVALID

    def __init__(self, reason: str = "Sesión no válida", **kwargs):
        super().__init__(
            code="SESSION_INVALID",
            message=reason,
            severity=ErrorSeverity.HIGH,
            **kwargs,
        )


class AuthenticationException(CaseTrackException):
    """Credenciales rechazadas en login."""

    kind = ErrorKind.SESSION_INVALID

    def __init__(self, message: str, **kwargs):
        super().__init__(code="AUTHENTICATION_FAILED", message=message, **kwargs)


# =========================================================
# VALIDACIÓN Y CONFIGURACIÓN
# =========================================================

class ValidationException(CaseTrackException):
    """Payload inválido antes de tocar el store."""

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            details={"field": field} if field else {},
            severity=ErrorSeverity.LOW,
            **kwargs,
        )


class ConfigurationException(CaseTrackException):
    """Error de configuración del sistema."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            code="CONFIG_ERROR",
            message=message,
            severity=ErrorSeverity.CRITICAL,
            **kwargs,
        )
