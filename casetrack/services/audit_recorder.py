"""
Registro del rastro de auditoría.

Escritura best-effort: cada entrada se despacha como tarea independiente
DESPUÉS de que la escritura principal se haya confirmado, en su propia
sesión del store. Un fallo se registra en el log estructurado y en la
lista interna `failures`, y nunca llega a quien llamó.

Lectura: consulta paginada, estadísticas y exportación CSV. Un resultado
vacío cuando se espera historial se marca como degradado en lugar de
presentarse como "no hay actividad".
"""
from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

import pandas as pd
from sqlalchemy import desc, func, inspect, or_, select

from casetrack.core.config import get_settings
from casetrack.core.database import get_session_factory
from casetrack.core.exceptions import CaseTrackException
from casetrack.core.logger import StructuredLogger, get_logger
from casetrack.core.store import StoreClient, StoreError
from casetrack.models.actor import Actor
from casetrack.models.audit_log import AuditEntry, AuditOperation
from casetrack.models.case import CaseRecord
from casetrack.models.todo import TodoRecord

EXPORT_COLUMNS = ["Timestamp", "Usuario", "Tabla", "Operación", "ID Registro", "Descripción", "IP"]

DEGRADED_EMPTY = "empty_result_unexpected"
DEGRADED_QUERY_FAILED = "query_failed"

_SNAPSHOT_EXCLUDED = ("hashed_password", "password")


def row_snapshot(row: Any) -> Optional[Dict[str, Any]]:
    """
    Snapshot JSON-serializable de una fila ORM.

    Nunca incluye contraseñas ni hashes.
    """
    if row is None:
        return None

    snapshot = {}
    for attr in inspect(row).mapper.column_attrs:
        if attr.key in _SNAPSHOT_EXCLUDED:
            continue
        value = getattr(row, attr.key)
        if isinstance(value, (datetime, date)):
            value = value.isoformat()
        snapshot[attr.key] = value
    return snapshot


# =========================================================
# DESPACHADORES
# =========================================================

class InlineAuditDispatcher:
    """Ejecuta la tarea en el acto (tests, scripts)."""

    def submit(self, task: Callable[[], None]) -> None:
        task()

    def wait(self) -> None:
        pass

    def shutdown(self) -> None:
        pass


class ThreadedAuditDispatcher:
    """Ejecuta las tareas en un pool de hilos en segundo plano."""

    def __init__(self, max_workers: int = 1):
        self.executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="audit")
        self._pending = []
        self._lock = threading.Lock()

    def submit(self, task: Callable[[], None]) -> None:
        future = self.executor.submit(task)
        with self._lock:
            self._pending = [f for f in self._pending if not f.done()]
            self._pending.append(future)

    def wait(self, timeout: Optional[float] = None) -> None:
        """Espera a que terminen las tareas pendientes."""
        with self._lock:
            pending = list(self._pending)
        wait(pending, timeout=timeout)

    def shutdown(self) -> None:
        self.executor.shutdown(wait=True)


def build_dispatcher():
    settings = get_settings()
    if settings.audit_async_enabled:
        return ThreadedAuditDispatcher(max_workers=settings.audit_max_workers)
    return InlineAuditDispatcher()


# =========================================================
# TIPOS DE LECTURA
# =========================================================

@dataclass
class AuditFailure:
    table_name: str
    operation: str
    record_id: Optional[str]
    error: str
    occurred_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class AuditFilters:
    table_name: Optional[str] = None
    operation: Optional[str] = None
    actor_id: Optional[str] = None
    record_id: Optional[str] = None
    search: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None

    @classmethod
    def coerce(cls, filters) -> "AuditFilters":
        if filters is None:
            return cls()
        if isinstance(filters, cls):
            return filters
        return cls(**{k: v for k, v in dict(filters).items() if v not in (None, "")})

    @property
    def is_empty(self) -> bool:
        return all(value in (None, "") for value in self.__dict__.values())


@dataclass
class AuditPage:
    rows: List[Dict[str, Any]]
    total_count: int
    page: int = 1
    page_size: int = 0
    degraded: bool = False
    degraded_reason: Optional[str] = None

    def with_placeholders(self, count: int = 1) -> "AuditPage":
        """
        Copia con filas de relleno claramente marcadas (is_placeholder=True).

        Solo aplica a páginas degradadas y vacías; conserva la señal.
        """
        if not self.degraded or self.rows:
            return self

        placeholders = [
            {
                "id": None,
                "timestamp": None,
                "table_name": "-",
                "operation": "-",
                "record_id": None,
                "user_id": None,
                "user_name": None,
                "description": f"Datos no disponibles ({self.degraded_reason})",
                "ip_address": None,
                "is_placeholder": True,
            }
            for _ in range(count)
        ]
        return replace(self, rows=placeholders)


@dataclass
class AuditStats:
    total_actions: int = 0
    total_actors: int = 0
    actions_today: int = 0
    actions_this_window: int = 0
    top_actions: List[Tuple[str, int]] = field(default_factory=list)
    top_actors: List[Tuple[str, int]] = field(default_factory=list)
    actions_by_table: Dict[str, int] = field(default_factory=dict)
    window_days: int = 7
    degraded: bool = False
    degraded_reason: Optional[str] = None


# =========================================================
# RECORDER
# =========================================================

class AuditRecorder:
    """
    Escritura y lectura del rastro de auditoría.

    Args:
        session_factory: Fábrica de sesiones; cada escritura abre la suya
        dispatcher: Inline o en hilos (por defecto según configuración)
        logger: Logger estructurado
    """

    # Tablas cuya existencia de filas implica que debería haber historial
    AUDITED_MODELS = (CaseRecord, TodoRecord, Actor)

    def __init__(
        self,
        session_factory=None,
        dispatcher=None,
        logger: Optional[StructuredLogger] = None,
    ):
        self.session_factory = session_factory or get_session_factory()
        self.dispatcher = dispatcher or build_dispatcher()
        self.logger = logger or get_logger()
        self.failures: List[AuditFailure] = []
        self._committed_writes = 0
        self._lock = threading.Lock()

    # ---------------------------------------------------------
    # Escritura
    # ---------------------------------------------------------

    def record(
        self,
        table_name: str,
        operation: str,
        record_id: Optional[str],
        actor_id: Optional[str],
        before: Optional[Dict[str, Any]] = None,
        after: Optional[Dict[str, Any]] = None,
        description: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        """Despacha la escritura de una entrada. No lanza nunca."""
        operation = operation.value if isinstance(operation, AuditOperation) else str(operation)

        def task() -> None:
            self._write(
                table_name, operation, record_id, actor_id,
                before, after, description, ip_address, user_agent,
            )

        try:
            self.dispatcher.submit(task)
        except Exception as e:
            self._register_failure(table_name, operation, record_id, e)

    def _write(
        self,
        table_name, operation, record_id, actor_id,
        before, after, description, ip_address, user_agent,
    ) -> None:
        session = None
        try:
            session = self.session_factory()
            entry = AuditEntry(
                table_name=table_name,
                operation=operation,
                record_id=str(record_id) if record_id is not None else None,
                user_id=actor_id,
                old_data=before,
                new_data=after,
                description=description,
                ip_address=ip_address,
                user_agent=user_agent,
                integrity_hash=AuditEntry.compute_hash(before, after),
            )
            session.add(entry)
            session.commit()
            with self._lock:
                self._committed_writes += 1
        except Exception as e:
            if session is not None:
                session.rollback()
            # No fallar por error de auditoría
            self._register_failure(table_name, operation, record_id, e)
        finally:
            if session is not None:
                session.close()

    def _register_failure(self, table_name, operation, record_id, error: Exception) -> None:
        self.logger.error(
            "Audit write failed",
            action="audit.record",
            error=error,
            table=table_name,
            operation=operation,
            record_id=record_id,
        )
        with self._lock:
            self.failures.append(
                AuditFailure(
                    table_name=table_name,
                    operation=operation,
                    record_id=str(record_id) if record_id is not None else None,
                    error=str(error),
                )
            )

    def flush(self) -> None:
        """Espera a las escrituras despachadas."""
        self.dispatcher.wait()

    # ---------------------------------------------------------
    # Lectura
    # ---------------------------------------------------------

    def query(self, filters=None, page: int = 1, page_size: Optional[int] = None) -> AuditPage:
        """
        Consulta paginada (timestamp DESC).

        Nunca lanza por fallos del store: devuelve una página degradada.
        """
        settings = get_settings()
        filters = AuditFilters.coerce(filters)
        page = max(page or 1, 1)
        page_size = settings.clamp_page_size(page_size)

        session = self.session_factory()
        try:
            store = StoreClient(session)
            criteria = self._criteria(filters)
            total = store.count(AuditEntry, criteria)
            rows = self._fetch(store, criteria, offset=(page - 1) * page_size, limit=page_size)

            result = AuditPage(rows=rows, total_count=total, page=page, page_size=page_size)
            if total == 0 and filters.is_empty and self._history_expected(store):
                self.logger.warning(
                    "Audit query returned no rows but history is expected",
                    action="audit.query",
                    reason=DEGRADED_EMPTY,
                )
                result.degraded = True
                result.degraded_reason = DEGRADED_EMPTY
            return result
        except StoreError as e:
            self.logger.error("Audit query failed", action="audit.query", error=e)
            return AuditPage(
                rows=[], total_count=0, page=page, page_size=page_size,
                degraded=True, degraded_reason=DEGRADED_QUERY_FAILED,
            )
        finally:
            session.close()

    def stats(self, window_days: Optional[int] = None) -> AuditStats:
        settings = get_settings()
        window_days = window_days or settings.audit_stats_window_days
        now = datetime.utcnow()
        today_start = datetime(now.year, now.month, now.day)
        window_start = now - timedelta(days=window_days)

        session = self.session_factory()
        try:
            store = StoreClient(session)
            stats = AuditStats(window_days=window_days)
            stats.total_actions = store.count(AuditEntry)
            stats.total_actors = store.aggregate(
                select(func.count(func.distinct(AuditEntry.user_id)))
            )[0][0]
            stats.actions_today = store.count(AuditEntry, [AuditEntry.timestamp >= today_start])
            stats.actions_this_window = store.count(
                AuditEntry, [AuditEntry.timestamp >= window_start]
            )

            action_count = func.count(AuditEntry.id).label("n")
            stats.top_actions = store.aggregate(
                select(AuditEntry.operation, action_count)
                .group_by(AuditEntry.operation)
                .order_by(desc("n"), AuditEntry.operation)
                .limit(5)
            )

            actor_label = func.coalesce(Actor.name, AuditEntry.user_id, "Desconocido")
            stats.top_actors = store.aggregate(
                select(actor_label.label("actor"), func.count(AuditEntry.id).label("n"))
                .select_from(AuditEntry)
                .outerjoin(Actor, Actor.id == AuditEntry.user_id)
                .group_by(actor_label)
                .order_by(desc("n"), actor_label)
                .limit(5)
            )

            stats.actions_by_table = dict(
                store.aggregate(
                    select(AuditEntry.table_name, func.count(AuditEntry.id))
                    .group_by(AuditEntry.table_name)
                )
            )

            if stats.total_actions == 0 and self._history_expected(store):
                stats.degraded = True
                stats.degraded_reason = DEGRADED_EMPTY
            return stats
        except StoreError as e:
            self.logger.error("Audit stats failed", action="audit.stats", error=e)
            return AuditStats(
                window_days=window_days, degraded=True, degraded_reason=DEGRADED_QUERY_FAILED
            )
        finally:
            session.close()

    def export_csv(self, filters=None) -> str:
        """
        CSV con columnas fijas, hasta AUDIT_EXPORT_MAX_ROWS filas.

        Raises:
            CaseTrackException: si el store no responde
        """
        filters = AuditFilters.coerce(filters)
        max_rows = get_settings().audit_export_max_rows

        session = self.session_factory()
        try:
            store = StoreClient(session)
            rows = self._fetch(store, self._criteria(filters), offset=0, limit=max_rows)
        except StoreError as e:
            raise CaseTrackException(
                code="AUDIT_EXPORT_FAILED",
                message="No se pudo exportar el registro de auditoría",
                original_error=e,
            )
        finally:
            session.close()

        data = [
            {
                "Timestamp": row["timestamp"].strftime("%Y-%m-%d %H:%M:%S") if row["timestamp"] else "",
                "Usuario": row["user_name"] or "Desconocido",
                "Tabla": row["table_name"],
                "Operación": row["operation"],
                "ID Registro": row["record_id"] or "",
                "Descripción": row["description"] or "",
                "IP": row["ip_address"] or "",
            }
            for row in rows
        ]
        df = pd.DataFrame(data, columns=EXPORT_COLUMNS)
        return df.to_csv(index=False)

    # ---------------------------------------------------------

    @staticmethod
    def _criteria(filters: AuditFilters) -> list:
        criteria = []
        if filters.table_name:
            criteria.append(AuditEntry.table_name == filters.table_name)
        if filters.operation:
            criteria.append(AuditEntry.operation == filters.operation)
        if filters.actor_id:
            criteria.append(AuditEntry.user_id == filters.actor_id)
        if filters.record_id:
            criteria.append(AuditEntry.record_id == filters.record_id)
        if filters.date_from:
            criteria.append(AuditEntry.timestamp >= filters.date_from)
        if filters.date_to:
            criteria.append(AuditEntry.timestamp <= filters.date_to)
        if filters.search:
            pattern = f"%{filters.search}%"
            criteria.append(
                or_(
                    AuditEntry.description.ilike(pattern),
                    AuditEntry.table_name.ilike(pattern),
                    AuditEntry.record_id.ilike(pattern),
                )
            )
        return criteria

    @staticmethod
    def _fetch(store: StoreClient, criteria: list, offset: int, limit: int) -> List[Dict[str, Any]]:
        stmt = (
            select(AuditEntry, Actor.name, Actor.email)
            .outerjoin(Actor, Actor.id == AuditEntry.user_id)
            .order_by(AuditEntry.timestamp.desc(), AuditEntry.id.desc())
            .offset(offset)
            .limit(limit)
        )
        for criterion in criteria:
            stmt = stmt.where(criterion)

        rows = []
        for entry, actor_name, actor_email in store.aggregate(stmt):
            rows.append(
                {
                    "id": entry.id,
                    "timestamp": entry.timestamp,
                    "table_name": entry.table_name,
                    "operation": entry.operation,
                    "record_id": entry.record_id,
                    "user_id": entry.user_id,
                    "user_name": actor_name or actor_email,
                    "old_data": entry.old_data,
                    "new_data": entry.new_data,
                    "description": entry.description,
                    "ip_address": entry.ip_address,
                    "user_agent": entry.user_agent,
                    "is_placeholder": False,
                }
            )
        return rows

    def _history_expected(self, store: StoreClient) -> bool:
        with self._lock:
            if self._committed_writes > 0:
                return True
        return any(store.count(model) > 0 for model in self.AUDITED_MODELS)
