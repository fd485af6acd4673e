"""
Rastro de auditoría de mutaciones.

CRÍTICO: Tabla append-only. NUNCA se modifica ni borra desde la aplicación.
Cada mutación auditada genera una entrada con snapshot antes/después.
"""
from __future__ import annotations

import hashlib
import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, Integer, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from casetrack.core.database import Base


class AuditOperation(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    SELECT = "SELECT"


class AuditEntry(Base):
    """
    Registro de auditoría persistente.

    Cada entrada registra:
    - Quién: user_id (sin FK: sobrevive al actor)
    - Qué: table_name, operation, record_id
    - Cuándo: timestamp
    - Cómo: ip_address, user_agent
    - Detalles: old_data / new_data (JSON)
    """

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    table_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    operation: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    record_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)

    old_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    new_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    timestamp: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, index=True
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # SHA256 de old_data + new_data para detectar manipulación
    integrity_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    @staticmethod
    def compute_hash(old_data: Optional[dict], new_data: Optional[dict]) -> str:
        payload = json.dumps(
            {"old": old_data, "new": new_data}, sort_keys=True, default=str
        )
        return hashlib.sha256(payload.encode()).hexdigest()

    def verify_integrity(self) -> bool:
        return self.integrity_hash == self.compute_hash(self.old_data, self.new_data)

    def __repr__(self):
        return f"<AuditEntry {self.id}: {self.operation} {self.table_name}/{self.record_id}>"


class AuditImmutableError(RuntimeError):
    """Intento de modificar o borrar una entrada de auditoría."""


@event.listens_for(AuditEntry, "before_update")
def _reject_audit_update(mapper, connection, target):
    raise AuditImmutableError(f"audit_logs es append-only: UPDATE rechazado ({target.id})")


@event.listens_for(AuditEntry, "before_delete")
def _reject_audit_delete(mapper, connection, target):
    raise AuditImmutableError(f"audit_logs es append-only: DELETE rechazado ({target.id})")
