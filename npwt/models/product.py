# npwt/models/product.py
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Dict, Any
from sqlalchemy import Column, String, Integer, DateTime, Numeric, Index, Uuid
from sqlalchemy.orm import relationship, validates

from npwt.db.base import Base


class Product(Base):
    """
    Insumo NPWT (apósito, canister, tubo...).
    Le stock est une valeur en cache : il doit toujours être égal à la somme
    signée des mouvements du produit.
    """
    __tablename__ = "products"

    # =====================================
    # IDENTIFIANT UNIQUE
    # =====================================
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # =====================================
    # IDENTIFICATION DU PRODUIT
    # =====================================
    code = Column(String(50), nullable=False, unique=True, comment="Code interne, en majuscules")
    name = Column(String(200), nullable=False, index=True)
    category = Column(String(100), nullable=False, default="Apósitos")
    lot = Column(String(100), nullable=True, comment="Lote / numéro de lot")

    # =====================================
    # GESTION DU STOCK
    # =====================================
    stock = Column(Integer, default=0, nullable=False)
    minimum_stock = Column(Integer, default=5, nullable=False)

    # =====================================
    # PRIX
    # =====================================
    unit_price = Column(Numeric(12, 2), nullable=False, default=0)

    # =====================================
    # TIMESTAMPS
    # =====================================
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # =====================================
    # RELATIONS
    # =====================================
    movements = relationship(
        "InventoryMovement",
        back_populates="product",
        lazy="select",
    )
    procedure_usages = relationship("ProcedureProduct", back_populates="product", lazy="select")

    __table_args__ = (
        Index('ix_products_category', 'category'),
    )

    # =====================================
    # VALIDATIONS
    # =====================================
    @validates('code')
    def validate_code(self, key, value):
        """Le code est toujours stocké sans espaces et en majuscules"""
        return normalize_code(value)

    @validates('unit_price')
    def validate_price(self, key, value):
        if value is not None and Decimal(str(value)) < 0:
            raise ValueError("Le prix unitaire ne peut pas être négatif")
        return value

    # =====================================
    # PROPRIÉTÉS CALCULÉES
    # =====================================
    @property
    def stock_value(self):
        """Valeur du stock au prix unitaire actuel"""
        return (self.stock or 0) * (self.unit_price or 0)

    @property
    def stock_status(self) -> str:
        return stock_status(self.stock, self.minimum_stock)

    def to_dict(self) -> Dict[str, Any]:
        """Convertit le produit en dictionnaire"""
        return {
            "id": str(self.id),
            "code": self.code,
            "name": self.name,
            "category": self.category,
            "lot": self.lot,
            "stock": self.stock,
            "minimum_stock": self.minimum_stock,
            "unit_price": float(self.unit_price or 0),
            "stock_value": float(self.stock_value),
            "stock_status": self.stock_status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Product {self.code} stock={self.stock}>"


def normalize_code(value) -> str:
    return (value or "").strip().upper()


def stock_status(stock, minimum_stock) -> str:
    """out_of_stock si 0, low_stock si <= minimum, sinon normal"""
    stock = stock or 0
    if stock == 0:
        return "out_of_stock"
    if stock <= (minimum_stock or 0):
        return "low_stock"
    return "normal"
