"""
Logging estructurado de CaseTrack.

Una línea JSON por evento. Los campos fijos son timestamp, level, logger y
message; el resto (actor_id, action, record_id, kind, ...) llega como
keyword arguments y se omite cuando vale None.
"""
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

DEFAULT_LOGGER_NAME = "casetrack.data"
LOG_FILE_NAME = "casetrack.log"


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(getattr(record, "fields", {}))

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def _attach(logger: logging.Logger, handler: logging.Handler) -> None:
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)


class StructuredLogger:
    """
    Envoltorio sobre logging con campos de contexto.

    Args:
        name: Nombre del logger (ej: "casetrack.data")
        log_file: Fichero adicional de salida; se crea su directorio
        level: Nivel mínimo ("DEBUG", "INFO", ...)
    """

    def __init__(self, name: str, log_file: Optional[Path] = None, level: str = "INFO"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))
        self.logger.propagate = False

        # Reconfigurar sin duplicar handlers
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

        _attach(self.logger, logging.StreamHandler(sys.stdout))
        if log_file is not None:
            log_file = Path(log_file)
            log_file.parent.mkdir(parents=True, exist_ok=True)
            _attach(self.logger, logging.FileHandler(log_file, encoding="utf-8"))

    def debug(self, message: str, actor_id: Optional[str] = None, action: Optional[str] = None, **fields):
        self._emit(logging.DEBUG, message, actor_id, action, fields)

    def info(self, message: str, actor_id: Optional[str] = None, action: Optional[str] = None, **fields):
        self._emit(logging.INFO, message, actor_id, action, fields)

    def warning(self, message: str, actor_id: Optional[str] = None, action: Optional[str] = None, **fields):
        self._emit(logging.WARNING, message, actor_id, action, fields)

    def error(
        self,
        message: str,
        actor_id: Optional[str] = None,
        action: Optional[str] = None,
        error: Optional[BaseException] = None,
        **fields,
    ):
        """ERROR; si llega `error` se añaden error_type y error_message."""
        if error is not None:
            fields["error_type"] = type(error).__name__
            fields["error_message"] = str(error)
        self._emit(logging.ERROR, message, actor_id, action, fields)

    def _emit(self, level: int, message: str, actor_id, action, fields: Dict[str, Any]) -> None:
        context = {"actor_id": actor_id, "action": action}
        context.update(fields)
        self.logger.log(
            level, message, extra={"fields": {k: v for k, v in context.items() if v is not None}}
        )


_default_logger: Optional[StructuredLogger] = None


def get_logger(name: str = DEFAULT_LOGGER_NAME, log_file: Optional[Path] = None) -> StructuredLogger:
    """
    Logger compartido de la capa de datos.

    La primera llamada fija nivel y fichero a partir de la configuración
    (LOG_LEVEL, LOGS_DIR); las siguientes devuelven la misma instancia.
    """
    global _default_logger

    if _default_logger is None:
        from casetrack.core.config import get_settings

        settings = get_settings()
        if log_file is None and settings.logs_dir is not None:
            log_file = Path(settings.logs_dir) / LOG_FILE_NAME

        _default_logger = StructuredLogger(name, log_file, level=settings.log_level)

    return _default_logger
