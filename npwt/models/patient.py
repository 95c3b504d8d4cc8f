# npwt/models/patient.py
import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, Integer, DateTime, Uuid
from sqlalchemy.orm import relationship

from npwt.db.base import Base


class PatientStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    INACTIVE = "inactive"


class Patient(Base):
    __tablename__ = "patients"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False)
    identification = Column(String(50), nullable=False, index=True, comment="Número de identificación")
    age = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=PatientStatus.ACTIVE.value, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    procedures = relationship("Procedure", back_populates="patient", lazy="select")

    def __repr__(self):
        return f"<Patient {self.identification} {self.status}>"
