"""
Proveedor de sesión del actor actual.

Ciclo de vida explícito: load (arranque) -> login -> validate (antes de
cada operación) -> logout / clear. El estado vive en LocalSessionCache y
en memoria; nada global.
"""
from typing import Any, Dict, Optional

from casetrack.core.auth import actor_snapshot, authenticate_actor, load_active_actor
from casetrack.core.config import get_settings
from casetrack.core.database import get_session_factory
from casetrack.core.exceptions import SessionInvalidException
from casetrack.core.logger import get_logger
from casetrack.core.session_cache import LocalSessionCache
from casetrack.services.scope import Scope, resolve_scope_for_actor


class ActorSessionProvider:
    def __init__(self, cache: Optional[LocalSessionCache] = None, session_factory=None):
        self.cache = cache or LocalSessionCache(get_settings().session_cache_path)
        self.session_factory = session_factory or get_session_factory()
        self.logger = get_logger()
        self.current: Optional[Dict[str, Any]] = None

    @property
    def actor_id(self) -> Optional[str]:
        return self.current["id"] if self.current else None

    @property
    def is_authenticated(self) -> bool:
        return self.current is not None

    def load(self) -> Optional[Dict[str, Any]]:
        """Carga el actor de la caché local (sin validar contra el store)."""
        self.current = self.cache.read()
        return self.current

    def login(self, email: str, password: str) -> Dict[str, Any]:
        db = self.session_factory()
        try:
            actor = authenticate_actor(db, email, password)
            record = actor_snapshot(actor)
        except Exception:
            self.clear()
            raise
        finally:
            db.close()

        self.cache.write(record)
        self.current = record
        self.logger.info("Actor logged in", actor_id=record["id"], action="session.login")
        return record

    def logout(self) -> None:
        actor_id = self.actor_id
        self.clear()
        self.logger.info("Actor logged out", actor_id=actor_id, action="session.logout")

    def clear(self) -> None:
        self.cache.clear()
        self.current = None

    def validate(self) -> bool:
        """
        Comprueba que el actor en sesión sigue existiendo y está activo.

        Refresca los datos en caché si cambiaron; si no es válido, limpia.
        """
        if self.current is None:
            return False

        db = self.session_factory()
        try:
            actor = load_active_actor(db, self.current["id"])
            if actor is None:
                self.logger.warning(
                    "Session actor no longer active", actor_id=self.actor_id, action="session.validate"
                )
                self.clear()
                return False

            record = actor_snapshot(actor)
        finally:
            db.close()

        if record != self.current:
            self.cache.write(record)
            self.current = record
        return True

    def scope(self) -> Scope:
        if self.current is None:
            raise SessionInvalidException("No hay actor en sesión")
        return resolve_scope_for_actor(self.current)
