"""
Envoltorio de ejecución segura.

Toda operación disparada desde la UI pasa por aquí:
1. Revalida la sesión del actor contra el store
2. Ejecuta la operación
3. Clasifica cualquier fallo en lugar de propagarlo
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

from casetrack.core.exceptions import ErrorKind
from casetrack.core.logger import StructuredLogger, get_logger
from casetrack.services.error_classifier import GENERIC_MESSAGES, ClassifiedError, classify

T = TypeVar("T")


@dataclass
class OperationResult(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[ClassifiedError] = None

    @classmethod
    def success(cls, value: T) -> "OperationResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: ClassifiedError) -> "OperationResult[T]":
        return cls(ok=False, error=error)


class SafeExecutor:
    """
    Args:
        session_provider: Objeto con validate() -> bool y clear()
        logger: Logger estructurado
    """

    def __init__(self, session_provider, logger: Optional[StructuredLogger] = None):
        self.session_provider = session_provider
        self.logger = logger or get_logger()

    def execute(self, operation: Callable[[], T], context: str = "operation") -> OperationResult[T]:
        actor_id = getattr(self.session_provider, "actor_id", None)

        try:
            session_valid = self.session_provider.validate()
        except Exception as e:
            self.logger.error(
                "Session validation raised", actor_id=actor_id, action=context, error=e
            )
            session_valid = False

        if not session_valid:
            self.session_provider.clear()
            self.logger.warning("Session invalid, operation skipped", actor_id=actor_id, action=context)
            return OperationResult.failure(
                ClassifiedError(
                    kind=ErrorKind.SESSION_INVALID,
                    message=GENERIC_MESSAGES[ErrorKind.SESSION_INVALID],
                )
            )

        try:
            value = operation()
        except Exception as e:
            classified = classify(e)
            self.logger.warning(
                f"{context} failed",
                actor_id=actor_id,
                action=context,
                kind=classified.kind.value,
                field=classified.field,
                error_type=type(e).__name__,
            )
            if classified.kind == ErrorKind.SESSION_INVALID:
                self.session_provider.clear()
            return OperationResult.failure(classified)

        return OperationResult.success(value)
