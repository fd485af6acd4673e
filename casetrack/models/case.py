from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from casetrack.core.database import Base


class CaseStatus(str, Enum):
    EN_CURSO = "EN CURSO"
    TERMINADA = "TERMINADA"
    ESCALADA = "ESCALADA"
    PENDIENTE = "PENDIENTE"


class CaseComplexity(str, Enum):
    ALTO = "ALTO"
    MEDIO = "MEDIO"
    BAJO = "BAJO"


# Umbrales de la suma de los cinco criterios de clasificación
HIGH_COMPLEXITY_SCORE = 12
MEDIUM_COMPLEXITY_SCORE = 7


def classify_score(score: int) -> Tuple[CaseComplexity, str]:
    """
    Traduce la puntuación de clasificación a (complejidad, etiqueta).

    >= 12 ALTO, >= 7 MEDIO, resto BAJO.
    """
    if score >= HIGH_COMPLEXITY_SCORE:
        return CaseComplexity.ALTO, "Alta Complejidad"
    if score >= MEDIUM_COMPLEXITY_SCORE:
        return CaseComplexity.MEDIO, "Media Complejidad"
    return CaseComplexity.BAJO, "Baja Complejidad"


class CaseRecord(Base):
    """
    Caso registrado por un actor.

    El propietario (user_id) es siempre quien lo crea.
    """

    __tablename__ = "cases"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    case_number: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False, index=True
    )
    application_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("applications.id"), nullable=True
    )
    origin_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("origins.id"), nullable=True
    )
    priority_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("priorities.id"), nullable=True
    )

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=CaseStatus.PENDIENTE.value
    )
    complexity: Mapped[str] = mapped_column(
        String(10), nullable=False, default=CaseComplexity.BAJO.value
    )
    classification_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    classification: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
