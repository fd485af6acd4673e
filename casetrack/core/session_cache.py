"""
Caché local del actor actual.

Un fichero JSON con el registro del actor (nunca la contraseña). Se lee al
arrancar, se escribe en login y se borra en logout o al detectar que la
sesión ya no es válida.
"""
import json
from pathlib import Path
from typing import Any, Dict, Optional

from casetrack.core.logger import get_logger

_SENSITIVE_KEYS = ("password", "hashed_password")
_REQUIRED_KEYS = ("id", "name", "email", "is_active")


class LocalSessionCache:
    def __init__(self, path: Path):
        self.path = Path(path)
        self.logger = get_logger()

    def read(self) -> Optional[Dict[str, Any]]:
        """
        Devuelve el actor guardado si el fichero existe y es coherente.

        Un fichero corrupto o incompleto se borra y se trata como vacío.
        """
        if not self.path.exists():
            return None

        try:
            record = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            self.logger.warning("Session cache unreadable, clearing", action="session.read", error=str(e))
            self.clear()
            return None

        if not self._is_valid(record):
            self.logger.warning("Session cache incomplete, clearing", action="session.read")
            self.clear()
            return None

        return record

    def write(self, record: Dict[str, Any]) -> None:
        clean = {k: v for k, v in record.items() if k not in _SENSITIVE_KEYS}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(clean, ensure_ascii=False, default=str), encoding="utf-8")

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass

    @staticmethod
    def _is_valid(record: Any) -> bool:
        if not isinstance(record, dict):
            return False
        if any(key not in record for key in _REQUIRED_KEYS):
            return False
        return isinstance(record["id"], str) and record["is_active"] is True
