# npwt/models/user.py
import uuid
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime, Uuid

from npwt.db.base import Base
from npwt.core.roles import normalize_role


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(200), nullable=False)
    role = Column(String(30), nullable=False, default="soporte", comment="cirujano, soporte, administrador, financiero")
    hashed_password = Column(String(255), nullable=False)

    phone = Column(String(30), nullable=True)
    department = Column(String(100), nullable=True)
    license_number = Column(String(100), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    last_login = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def effective_role(self):
        """Rôle normalisé ("enfermera" devient "soporte")"""
        return normalize_role(self.role)

    def __repr__(self):
        return f"<User {self.email} {self.role}>"
