"""
Base común de servicios y repositorios.

Da acceso al store con errores normalizados y al logger estructurado.
"""
from typing import Optional

from sqlalchemy.orm import Session

from casetrack.core.logger import StructuredLogger, get_logger
from casetrack.core.store import StoreClient


class BaseService:
    """
    Args:
        db: Sesión SQLAlchemy; el StoreClient se construye sobre ella
        logger: Logger estructurado (por defecto el compartido)
    """

    def __init__(self, db: Session, logger: Optional[StructuredLogger] = None):
        self.db = db
        self.logger = logger or get_logger()
        self.store = StoreClient(db, logger=self.logger)

    def _log_info(self, message: str, **fields):
        self.logger.info(message, **fields)

    def _log_warning(self, message: str, **fields):
        self.logger.warning(message, **fields)

    def _log_error(self, message: str, error: Optional[Exception] = None, **fields):
        self.logger.error(message, error=error, **fields)
