# npwt/models/machine.py
import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, Date, DateTime, Text, Uuid
from sqlalchemy.orm import relationship

from npwt.db.base import Base


class MachineStatus(str, Enum):
    ACTIVE = "active"
    MAINTENANCE = "maintenance"
    INACTIVE = "inactive"


class Machine(Base):
    """
    Équipement NPWT. Le statut décrit l'état de l'appareil ; "en cours
    d'utilisation" n'est pas stocké, il se déduit des procédures actives.
    """
    __tablename__ = "machines"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False)
    serial_number = Column(String(100), nullable=True, index=True)
    model = Column(String(100), nullable=False, default="VAC Therapy Unit")
    lot = Column(String(100), nullable=True)
    status = Column(String(20), nullable=False, default=MachineStatus.ACTIVE.value, index=True)
    location = Column(String(200), nullable=True)
    purchase_date = Column(Date, nullable=True)
    last_maintenance = Column(Date, nullable=True)
    observations = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    procedures = relationship("Procedure", back_populates="machine", lazy="select")

    def __repr__(self):
        return f"<Machine {self.name} {self.status}>"
