# npwt/schemas/product.py
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Dict
from datetime import datetime
from uuid import UUID
from decimal import Decimal


# ============================
# PRODUIT
# ============================
class ProductBase(BaseModel):
    name: str = Field(..., max_length=200, description="Nom du produit")
    code: str = Field(..., max_length=50, description="Code interne (normalisé en majuscules)")
    category: str = Field("Apósitos", max_length=100)
    minimum_stock: int = Field(5, ge=0, description="Seuil de stock minimum")
    unit_price: Decimal = Field(Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    lot: Optional[str] = Field(None, max_length=100, description="Numéro de lot")


class ProductCreate(ProductBase):
    stock: int = Field(0, ge=0, description="Stock initial")


class ProductUpdate(ProductBase):
    """Jeu complet d'attributs, y compris le nouveau stock"""
    stock: int = Field(..., ge=0)


class ProductInDB(ProductBase):
    id: UUID
    stock: int
    stock_value: Decimal
    stock_status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ProductResponse(BaseModel):
    message: str
    product: ProductInDB
    movement_id: Optional[UUID] = None


class ProductListResponse(BaseModel):
    total: int
    products: List[ProductInDB]
    summary: Dict[str, float]


# ============================
# AJUSTEMENTS DE STOCK
# ============================
class StockAdjustment(BaseModel):
    adjustment: int = Field(..., description="Variation (+/-) à appliquer au stock")


class StockEntryItem(BaseModel):
    quantity: int = Field(..., description="Quantité reçue ; <= 0 est ignorée")
    reason: Optional[str] = Field(None, max_length=200)


class StockEntryRequest(BaseModel):
    entries: Dict[UUID, StockEntryItem]


class StockEntryResult(BaseModel):
    applied: List[Dict] = []
    skipped: List[str] = []
    failed: List[Dict] = []
