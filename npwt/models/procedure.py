# npwt/models/procedure.py
import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, Integer, Date, Time, DateTime, Text, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship

from npwt.db.base import Base


class ProcedureStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Procedure(Base):
    """
    Procédure de thérapie par pression négative.
    Une procédure "active" est ce qui rend une machine "en cours d'utilisation".
    """
    __tablename__ = "procedures"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid(as_uuid=True), ForeignKey("patients.id"), nullable=True, index=True)
    machine_id = Column(Uuid(as_uuid=True), ForeignKey("machines.id"), nullable=True, index=True)

    # Équipe médicale
    surgeon_name = Column(String(200), nullable=False)
    assistant_name = Column(String(200), nullable=True)

    # Date et horaires
    procedure_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=True)

    diagnosis = Column(Text, nullable=False)
    location = Column(String(200), nullable=True)
    status = Column(String(20), nullable=False, default=ProcedureStatus.ACTIVE.value, index=True)

    created_by = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relations
    patient = relationship("Patient", back_populates="procedures")
    machine = relationship("Machine", back_populates="procedures")
    products = relationship(
        "ProcedureProduct",
        back_populates="procedure",
        order_by="ProcedureProduct.created_at",
    )

    __table_args__ = (
        Index("ix_procedures_status_machine", "status", "machine_id"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == ProcedureStatus.ACTIVE.value

    @property
    def total_products_used(self) -> int:
        return sum(usage.quantity_used for usage in self.products)

    def __repr__(self):
        return f"<Procedure {self.id} {self.status}>"


class ProcedureProduct(Base):
    """Insumo consommé pendant une procédure"""
    __tablename__ = "procedure_products"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    procedure_id = Column(Uuid(as_uuid=True), ForeignKey("procedures.id"), nullable=False, index=True)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id"), nullable=False, index=True)
    quantity_used = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    procedure = relationship("Procedure", back_populates="products")
    product = relationship("Product", back_populates="procedure_usages")
