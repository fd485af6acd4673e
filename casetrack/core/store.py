"""
Cliente del store relacional.

Único punto donde se hablan SQLAlchemy y los drivers. Todo error de bajo
nivel se normaliza aquí a StoreError, una sola vez, antes de llegar a los
repositorios o al clasificador.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, select, text
from sqlalchemy.exc import IntegrityError, NoResultFound, SQLAlchemyError
from sqlalchemy.orm import Session

from casetrack.core.logger import StructuredLogger, get_logger


# =========================================================
# ERROR ESTRUCTURADO DEL STORE
# =========================================================

class StoreErrorKind(str, Enum):
    FOREIGN_KEY = "foreign_key"
    UNIQUE = "unique"
    CHECK = "check"
    PERMISSION = "permission"
    NOT_FOUND = "not_found"
    AUTH = "auth"
    UNDEFINED_FUNCTION = "undefined_function"
    OTHER = "other"


# SQLSTATE y códigos PostgREST reconocidos
_CODE_KINDS: Dict[str, StoreErrorKind] = {
    "23503": StoreErrorKind.FOREIGN_KEY,
    "23505": StoreErrorKind.UNIQUE,
    "23514": StoreErrorKind.CHECK,
    "42501": StoreErrorKind.PERMISSION,
    "42883": StoreErrorKind.UNDEFINED_FUNCTION,
    "PGRST116": StoreErrorKind.NOT_FOUND,
    "PGRST202": StoreErrorKind.UNDEFINED_FUNCTION,
    "PGRST301": StoreErrorKind.AUTH,
}


class StoreError(Exception):
    """
    Error del store ya normalizado.

    Attributes:
        kind: Categoría del fallo
        message: Mensaje crudo del driver (nunca se muestra al usuario)
        field: Columna implicada, si se pudo extraer
        code: SQLSTATE o código PostgREST original
    """

    def __init__(
        self,
        kind: StoreErrorKind,
        message: str,
        field: Optional[str] = None,
        code: Optional[str] = None,
    ):
        self.kind = kind
        self.message = message
        self.field = field
        self.code = code
        super().__init__(message)

    @classmethod
    def from_code(cls, code: str, message: str, field: Optional[str] = None) -> "StoreError":
        return cls(_CODE_KINDS.get(code, StoreErrorKind.OTHER), message, field=field, code=code)

    def __repr__(self) -> str:
        return f"StoreError(kind={self.kind.value}, field={self.field}, code={self.code})"


_PG_KEY_RE = re.compile(r"Key \((?P<field>[a-zA-Z_]+)\)")
_PG_CONSTRAINT_RE = re.compile(r'constraint "(?P<name>[a-zA-Z0-9_]+)"')
_PG_TABLE_RE = re.compile(r'table "(?P<table>[a-zA-Z0-9_]+)"')
_SQLITE_UNIQUE_RE = re.compile(r"UNIQUE constraint failed: (?P<cols>[\w., ]+)")
_SQLITE_NOT_NULL_RE = re.compile(r"NOT NULL constraint failed: \w+\.(?P<field>\w+)")


def _field_from_constraint(
    name: str, kind: StoreErrorKind, table: Optional[str]
) -> Optional[str]:
    """cases_case_number_key -> case_number; cases_application_id_fkey -> application_id."""
    suffix = {StoreErrorKind.UNIQUE: "_key", StoreErrorKind.FOREIGN_KEY: "_fkey"}.get(kind)
    if not suffix or not name.endswith(suffix):
        return None
    body = name[: -len(suffix)]
    if table and body.startswith(f"{table}_"):
        return body[len(table) + 1:]
    parts = body.split("_", 1)
    return parts[1] if len(parts) == 2 else None


def _extract_field(message: str, kind: StoreErrorKind) -> Optional[str]:
    match = _PG_KEY_RE.search(message)
    if match:
        return match.group("field")

    match = _SQLITE_UNIQUE_RE.search(message)
    if match:
        first = match.group("cols").split(",")[0].strip()
        return first.split(".")[-1]

    match = _SQLITE_NOT_NULL_RE.search(message)
    if match:
        return match.group("field")

    match = _PG_CONSTRAINT_RE.search(message)
    if match:
        table_match = _PG_TABLE_RE.search(message)
        table = table_match.group("table") if table_match else None
        return _field_from_constraint(match.group("name"), kind, table)

    return None


def normalize_store_error(error: Exception) -> StoreError:
    """
    Convierte una excepción de SQLAlchemy/driver en StoreError.

    Usa el SQLSTATE del driver cuando existe (psycopg2 expone pgcode) y,
    si no, el texto del mensaje (SQLite no tiene códigos).
    """
    if isinstance(error, StoreError):
        return error

    orig = getattr(error, "orig", None)
    message = str(orig) if orig is not None else str(error)
    detail = getattr(getattr(orig, "diag", None), "message_detail", None)
    if detail:
        message = f"{message}\n{detail}"

    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code:
        kind = _CODE_KINDS.get(code, StoreErrorKind.OTHER)
        return StoreError(kind, message, field=_extract_field(message, kind), code=code)

    lowered = message.lower()
    if isinstance(error, NoResultFound):
        return StoreError(StoreErrorKind.NOT_FOUND, message, code="PGRST116")

    if isinstance(error, IntegrityError) or "constraint" in lowered:
        if "foreign key" in lowered:
            kind, code = StoreErrorKind.FOREIGN_KEY, "23503"
        elif "unique" in lowered or "duplicate key" in lowered:
            kind, code = StoreErrorKind.UNIQUE, "23505"
        elif "check constraint" in lowered:
            kind, code = StoreErrorKind.CHECK, "23514"
        else:
            kind, code = StoreErrorKind.OTHER, None
        return StoreError(kind, message, field=_extract_field(message, kind), code=code)

    if "permission denied" in lowered or "row-level security" in lowered:
        return StoreError(StoreErrorKind.PERMISSION, message, code="42501")

    return StoreError(StoreErrorKind.OTHER, message)


# =========================================================
# PROCEDIMIENTOS REMOTOS
# =========================================================

@dataclass
class ProcedureResult:
    """Resultado de call_procedure."""
    success: bool
    data: Any = None
    error: Optional[str] = None
    code: Optional[str] = None


ProcedureHandler = Callable[..., Any]

_PROCEDURE_NAME_RE = re.compile(r"^[a-z_][a-z0-9_]*$")

_procedures: Dict[str, ProcedureHandler] = {}


def register_procedure(name: str, handler: Optional[ProcedureHandler] = None):
    """
    Registra un procedimiento local con el nombre dado.

    Se puede usar como decorador. El handler recibe la sesión y los
    parámetros como kwargs. Sustituye al procedimiento remoto homónimo.
    """
    if not _PROCEDURE_NAME_RE.match(name):
        raise ValueError(f"Nombre de procedimiento no válido: {name}")

    def decorator(fn: ProcedureHandler) -> ProcedureHandler:
        _procedures[name] = fn
        return fn

    if handler is not None:
        return decorator(handler)
    return decorator


def unregister_procedure(name: str) -> None:
    _procedures.pop(name, None)


def registered_procedures() -> List[str]:
    return sorted(_procedures)


# =========================================================
# CLIENTE
# =========================================================

@dataclass
class SelectResult:
    rows: List[Any] = field(default_factory=list)
    total_count: int = 0


class StoreClient:
    """
    Acceso al store con errores normalizados.

    Cada escritura se confirma por sí sola: no hay transacciones que
    abarquen varias llamadas.
    """

    def __init__(self, db: Session, logger: Optional[StructuredLogger] = None):
        self.db = db
        self.logger = logger or get_logger()

    # ---------------------------------------------------------
    # Lecturas
    # ---------------------------------------------------------

    def select(
        self,
        model,
        criteria: Sequence[Any] = (),
        order_by: Sequence[Any] = (),
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> SelectResult:
        """Select paginado con conteo exacto."""
        try:
            count_stmt = select(func.count()).select_from(model)
            stmt = select(model)
            for criterion in criteria:
                count_stmt = count_stmt.where(criterion)
                stmt = stmt.where(criterion)

            total = self.db.execute(count_stmt).scalar_one()

            if order_by:
                stmt = stmt.order_by(*order_by)
            if offset:
                stmt = stmt.offset(offset)
            if limit is not None:
                stmt = stmt.limit(limit)

            rows = list(self.db.execute(stmt).scalars().all())
            return SelectResult(rows=rows, total_count=total)
        except SQLAlchemyError as e:
            raise self._fail(e, "select", model.__tablename__)

    def get(self, model, record_id: Any, criteria: Sequence[Any] = ()) -> Optional[Any]:
        try:
            stmt = select(model).where(model.id == record_id)
            for criterion in criteria:
                stmt = stmt.where(criterion)
            return self.db.execute(stmt).scalars().first()
        except SQLAlchemyError as e:
            raise self._fail(e, "get", model.__tablename__)

    def exists(self, model, criteria: Sequence[Any]) -> bool:
        try:
            stmt = select(model.id)
            for criterion in criteria:
                stmt = stmt.where(criterion)
            return self.db.execute(stmt.limit(1)).first() is not None
        except SQLAlchemyError as e:
            raise self._fail(e, "exists", model.__tablename__)

    def count(self, model, criteria: Sequence[Any] = ()) -> int:
        try:
            stmt = select(func.count()).select_from(model)
            for criterion in criteria:
                stmt = stmt.where(criterion)
            return self.db.execute(stmt).scalar_one()
        except SQLAlchemyError as e:
            raise self._fail(e, "count", model.__tablename__)

    def aggregate(self, stmt) -> List[Tuple[Any, ...]]:
        """Ejecuta un select arbitrario (group by, joins) y devuelve tuplas."""
        try:
            return [tuple(row) for row in self.db.execute(stmt).all()]
        except SQLAlchemyError as e:
            raise self._fail(e, "aggregate", None)

    # ---------------------------------------------------------
    # Escrituras
    # ---------------------------------------------------------

    def insert(self, instance) -> Any:
        try:
            self.db.add(instance)
            self.db.commit()
            self.db.refresh(instance)
            return instance
        except SQLAlchemyError as e:
            raise self._fail(e, "insert", instance.__tablename__)

    def update(self, instance, values: Dict[str, Any]) -> Any:
        try:
            for key, value in values.items():
                setattr(instance, key, value)
            self.db.commit()
            self.db.refresh(instance)
            return instance
        except SQLAlchemyError as e:
            raise self._fail(e, "update", instance.__tablename__)

    def delete(self, instance) -> None:
        try:
            self.db.delete(instance)
            self.db.commit()
        except SQLAlchemyError as e:
            raise self._fail(e, "delete", instance.__tablename__)

    def replace_links(self, link_model, owner_column: str, owner_id: Any, rows: List[Any]) -> None:
        """Sustituye el conjunto de filas de una tabla puente para un propietario."""
        try:
            existing = self.db.execute(
                select(link_model).where(getattr(link_model, owner_column) == owner_id)
            ).scalars().all()
            for link in existing:
                self.db.delete(link)
            self.db.flush()
            self.db.add_all(rows)
            self.db.commit()
        except SQLAlchemyError as e:
            raise self._fail(e, "replace_links", link_model.__tablename__)

    # ---------------------------------------------------------
    # Procedimientos
    # ---------------------------------------------------------

    def call_procedure(self, name: str, params: Optional[Dict[str, Any]] = None) -> ProcedureResult:
        """
        Invoca un procedimiento del servidor por nombre.

        Orden de resolución: registro local y, en PostgreSQL, la función
        SQL homónima. Nunca lanza: el fallo va en ProcedureResult.
        """
        params = params or {}

        if not _PROCEDURE_NAME_RE.match(name):
            return ProcedureResult(success=False, error=f"Nombre de procedimiento no válido: {name}")

        handler = _procedures.get(name)
        try:
            if handler is not None:
                data = handler(self.db, **params)
                self.db.commit()
                return ProcedureResult(success=True, data=data)

            if self.db.get_bind().dialect.name == "postgresql":
                args = ", ".join(f"{key} => :{key}" for key in params)
                row = self.db.execute(text(f"SELECT {name}({args})"), params).first()
                self.db.commit()
                return ProcedureResult(success=True, data=row[0] if row else None)

            return ProcedureResult(
                success=False,
                error=f"Procedimiento no disponible: {name}",
                code="PGRST202",
            )
        except (SQLAlchemyError, StoreError) as e:
            store_error = self._fail(e, "call_procedure", name)
            return ProcedureResult(success=False, error=store_error.message, code=store_error.code)

    # ---------------------------------------------------------

    def _fail(self, error: Exception, operation: str, table: Optional[str]) -> StoreError:
        self.db.rollback()
        store_error = normalize_store_error(error)
        self.logger.warning(
            "Store operation failed",
            action=f"store.{operation}",
            table=table,
            kind=store_error.kind.value,
            field=store_error.field,
            code=store_error.code,
        )
        return store_error
