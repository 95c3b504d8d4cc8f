# npwt/models/movement.py
import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy.orm import relationship
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Text, Index, Uuid

from npwt.db.base import Base


class MovementType(str, Enum):
    IN = "in"
    OUT = "out"


class ReferenceType(str, Enum):
    INITIAL_STOCK = "initial_stock"
    MANUAL_EDIT = "manual_edit"
    STOCK_ENTRY = "stock_entry"
    PROCEDURE = "procedure"
    MANUAL_ADJUSTMENT = "manual_adjustment"


class InventoryMovement(Base):
    """
    Ligne du journal des mouvements de stock.
    Écrite uniquement par les services de stock, jamais modifiée ni supprimée.
    """
    __tablename__ = "inventory_movements"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id"), nullable=False, index=True)

    movement_type = Column(String(10), nullable=False, index=True, comment="in, out")

    # Magnitude positive ; d'anciennes lignes "out" peuvent être négatives
    quantity = Column(Integer, nullable=False)

    reference_type = Column(
        String(30),
        nullable=True,
        index=True,
        comment="initial_stock, manual_edit, stock_entry, procedure, manual_adjustment"
    )
    reference_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    notes = Column(Text, nullable=True)

    created_by = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # =======================
    # Relations
    # =======================
    product = relationship("Product", back_populates="movements")
    user = relationship("User", foreign_keys=[created_by])

    __table_args__ = (
        Index("ix_inventory_movements_product_date", "product_id", "created_at"),
        Index("ix_inventory_movements_type_date", "movement_type", "created_at"),
    )

    @property
    def magnitude(self) -> int:
        return abs(self.quantity or 0)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "product_id": str(self.product_id),
            "movement_type": self.movement_type,
            "quantity": self.magnitude,
            "reference_type": self.reference_type,
            "reference_id": str(self.reference_id) if self.reference_id else None,
            "notes": self.notes,
            "created_by": str(self.created_by) if self.created_by else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<InventoryMovement {self.movement_type} {self.quantity} for {self.product_id}>"
