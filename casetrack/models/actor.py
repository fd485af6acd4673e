"""
Modelo de Actor (usuario) para autenticación y visibilidad.
"""
import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship

from casetrack.core.database import Base
from casetrack.models.role import Role


class Actor(Base):
    """
    Usuario del sistema.

    Tabla: users
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String, nullable=False)
    role_id = Column(String(36), ForeignKey("roles.id"), nullable=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    last_login = Column(DateTime, nullable=True)

    role = relationship(Role, lazy="joined")

    @property
    def role_name(self):
        return self.role.name if self.role is not None else None

    def __repr__(self):
        return f"<Actor(id={self.id}, email={self.email}, role_id={self.role_id})>"
