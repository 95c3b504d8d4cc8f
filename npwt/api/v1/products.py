# npwt/api/v1/products.py
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
import logging

from npwt.api.deps import get_authorizer, get_current_active_user, get_db
from npwt.core.permissions import Authorizer
from npwt.models.user import User
from npwt.schemas.movement import MovementHistoryResponse
from npwt.schemas.product import (
    ProductCreate,
    ProductInDB,
    ProductListResponse,
    ProductResponse,
    ProductUpdate,
    StockAdjustment,
    StockEntryRequest,
    StockEntryResult,
)
from npwt.services.movement_history import movement_history
from npwt.services.stock_service import StockService

router = APIRouter(prefix="/products", tags=["Produits"])
logger = logging.getLogger(__name__)


def get_stock_service(
    db: Session = Depends(get_db),
    authorizer: Authorizer = Depends(get_authorizer),
) -> StockService:
    return StockService(db, authorizer)


# -----------------------------
# Catalogue
# -----------------------------
@router.get("", response_model=ProductListResponse)
def list_products(
    search: Optional[str] = Query(None, description="Nom ou code"),
    category: Optional[str] = None,
    stock_status: Optional[str] = Query(None, pattern="^(normal|low_stock|out_of_stock)$"),
    service: StockService = Depends(get_stock_service),
    current_user: User = Depends(get_current_active_user),
):
    products, summary = service.list_products(search=search, category=category, status=stock_status)
    return {"total": len(products), "products": products, "summary": summary}


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
def create_product(
    data: ProductCreate,
    service: StockService = Depends(get_stock_service),
    current_user: User = Depends(get_current_active_user),
):
    """Crée un produit (et son mouvement de stock initial)"""
    product, movement = service.create_product(data, current_user)
    return {
        "message": "Produit créé avec succès",
        "product": product,
        "movement_id": movement.id if movement else None,
    }


@router.post("/stock-entry", response_model=StockEntryResult)
def bulk_stock_entry(
    data: StockEntryRequest,
    service: StockService = Depends(get_stock_service),
    current_user: User = Depends(get_current_active_user),
):
    """Entrée de stock groupée ; chaque produit est appliqué indépendamment"""
    return service.bulk_stock_entry(data.entries, current_user)


@router.get("/{product_id}", response_model=ProductInDB)
def get_product(
    product_id: UUID,
    service: StockService = Depends(get_stock_service),
    current_user: User = Depends(get_current_active_user),
):
    return service.get_product(product_id)


@router.put("/{product_id}", response_model=ProductResponse)
def update_product(
    product_id: UUID,
    data: ProductUpdate,
    service: StockService = Depends(get_stock_service),
    current_user: User = Depends(get_current_active_user),
):
    """Modification manuelle ; un changement de stock est tracé dans le journal"""
    product, movement = service.update_product(product_id, data, current_user)
    return {
        "message": "Produit mis à jour",
        "product": product,
        "movement_id": movement.id if movement else None,
    }


@router.post("/{product_id}/adjust", response_model=ProductResponse)
def adjust_stock(
    product_id: UUID,
    data: StockAdjustment,
    service: StockService = Depends(get_stock_service),
    current_user: User = Depends(get_current_active_user),
):
    product, movement = service.adjust_stock(product_id, data.adjustment, current_user)
    return {
        "message": f"Stock ajusté à {product.stock}",
        "product": product,
        "movement_id": movement.id if movement else None,
    }


@router.get("/{product_id}/movements", response_model=MovementHistoryResponse)
def get_movement_history(
    product_id: UUID,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """Derniers mouvements du produit, du plus récent au plus ancien"""
    return movement_history(db, product_id, limit)
