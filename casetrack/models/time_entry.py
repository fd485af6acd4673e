"""
Registros de tiempo.

Cada entrada cuelga exactamente de un padre: un caso o una tarea, nunca
los dos ni ninguno. La tabla lo declara también con un CHECK.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from casetrack.core.database import Base


class TimeEntry(Base):
    __tablename__ = "time_entries"
    __table_args__ = (
        CheckConstraint(
            "(case_id IS NOT NULL AND todo_id IS NULL) OR (case_id IS NULL AND todo_id IS NOT NULL)",
            name="ck_time_entries_single_parent",
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False, index=True
    )
    case_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("cases.id"), nullable=True, index=True
    )
    todo_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("todos.id"), nullable=True, index=True
    )

    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    # Se fija al parar el cronómetro o al registrar tiempo manual
    duration_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    @property
    def is_running(self) -> bool:
        return self.end_time is None
