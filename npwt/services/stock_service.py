# npwt/services/stock_service.py
"""
Mutateurs de stock : création, modification manuelle, ajustement et
entrée groupée.

Chaque mutation met à jour ``products.stock`` et écrit la ligne de
journal correspondante dans la même transaction.
"""
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Tuple
from uuid import UUID

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from npwt.core.config import settings
from npwt.core.exceptions import DuplicateCodeError, NotFoundError, ValidationError
from npwt.core.permissions import (
    INVENTORY_CREATE,
    INVENTORY_EDIT,
    STOCK_ADJUST,
    STOCK_ENTRY,
)
from npwt.core.retry import is_transient, with_db_retry
from npwt.models.movement import InventoryMovement, MovementType, ReferenceType
from npwt.models.product import Product, normalize_code
from npwt.services.base import BaseService, as_dict
from npwt.services.ledger import record_movement

logger = logging.getLogger(__name__)

STOCK_ENTRY_NOTE = "Entrée de stock"
INITIAL_STOCK_NOTE = "Stock initial"


def to_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} doit être un nombre entier", {"field": field})
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} doit être un nombre entier", {"field": field, "value": value})
    if not number.is_finite() or number != number.to_integral_value():
        raise ValidationError(f"{field} doit être un nombre entier", {"field": field, "value": value})
    return int(number)


def _to_price(value: Any) -> Decimal:
    try:
        price = Decimal(str(value if value is not None else 0).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError("Le prix unitaire doit être numérique", {"field": "unit_price", "value": value})
    if not price.is_finite():
        raise ValidationError("Le prix unitaire doit être numérique", {"field": "unit_price", "value": value})
    if price < 0:
        raise ValidationError("Le prix unitaire ne peut pas être négatif", {"field": "unit_price"})
    return price


def clean_product_values(data: Any, require_stock: bool = False) -> Dict[str, Any]:
    """
    Normalise et valide les attributs d'un produit.
    Lève ValidationError avant toute écriture.
    """
    values = as_dict(data)

    name = (values.get("name") or "").strip()
    if not name:
        raise ValidationError("Le nom du produit est requis", {"field": "name"})

    code = normalize_code(values.get("code"))
    if not code:
        raise ValidationError("Le code du produit est requis", {"field": "code"})

    if require_stock and values.get("stock") is None:
        raise ValidationError("Le stock est requis", {"field": "stock"})
    stock = to_int(values.get("stock") or 0, "stock")
    if stock < 0:
        raise ValidationError("Le stock ne peut pas être négatif", {"field": "stock"})

    minimum = values.get("minimum_stock")
    minimum_stock = settings.DEFAULT_MINIMUM_STOCK if minimum is None else to_int(minimum, "minimum_stock")
    if minimum_stock < 0:
        raise ValidationError("Le stock minimum ne peut pas être négatif", {"field": "minimum_stock"})

    lot = (values.get("lot") or "").strip() or None
    category = (values.get("category") or "").strip() or settings.PRODUCT_CATEGORIES[0]

    return {
        "name": name,
        "code": code,
        "category": category,
        "lot": lot,
        "stock": stock,
        "minimum_stock": minimum_stock,
        "unit_price": _to_price(values.get("unit_price")),
    }


class StockService(BaseService):
    """Toutes les écritures sur products.stock passent par ce service ou par ProcedureService"""

    # ============================
    # OUTILS INTERNES
    # ============================
    def _get_product(self, product_id: UUID, for_update: bool = False) -> Product:
        query = self.db.query(Product).filter(Product.id == product_id)
        if for_update:
            query = query.with_for_update()
        product = query.first()
        if not product:
            raise NotFoundError("Produit", product_id)
        return product

    def _code_exists(self, code: str, exclude_id: Optional[UUID] = None) -> bool:
        query = self.db.query(Product.id).filter(Product.code == code)
        if exclude_id is not None:
            query = query.filter(Product.id != exclude_id)
        return query.first() is not None

    # ============================
    # LECTURE
    # ============================
    def get_product(self, product_id: UUID) -> Product:
        return self._get_product(product_id)

    def list_products(
        self,
        search: Optional[str] = None,
        category: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Tuple[List[Product], Dict[str, float]]:
        query = self.db.query(Product)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(Product.name.ilike(pattern), Product.code.ilike(pattern)))
        if category:
            query = query.filter(Product.category == category)

        products = query.order_by(Product.name).all()
        if status:
            products = [p for p in products if p.stock_status == status]

        summary = {
            "total_products": len(products),
            "total_value": float(sum(p.stock_value for p in products)),
            "low_stock": sum(1 for p in products if p.stock_status == "low_stock"),
            "out_of_stock": sum(1 for p in products if p.stock_status == "out_of_stock"),
        }
        return products, summary

    # ============================
    # CRÉATION
    # ============================
    @with_db_retry("création du produit")
    def create_product(self, data: Any, actor=None) -> Tuple[Product, Optional[InventoryMovement]]:
        """
        Crée un produit. Si le stock initial est > 0, un mouvement
        ``in`` / ``initial_stock`` est écrit dans la même transaction.
        """
        self._require(actor, INVENTORY_CREATE)
        values = clean_product_values(data)
        code = values["code"]

        if self._code_exists(code):
            raise DuplicateCodeError(code)

        product = Product(**values)
        self.db.add(product)
        try:
            self.db.flush()
        except IntegrityError:
            # Création concurrente du même code
            self.db.rollback()
            raise DuplicateCodeError(code)

        movement = None
        if product.stock > 0:
            movement = record_movement(
                self.db,
                product.id,
                MovementType.IN,
                product.stock,
                ReferenceType.INITIAL_STOCK,
                notes=INITIAL_STOCK_NOTE,
                actor=actor,
            )

        self.db.commit()
        logger.info(f"Produit créé: {product.code} (stock initial {product.stock})")
        return product, movement

    # ============================
    # MODIFICATION MANUELLE
    # ============================
    @with_db_retry("modification du produit")
    def update_product(self, product_id: UUID, data: Any, actor=None) -> Tuple[Product, Optional[InventoryMovement]]:
        """
        Remplace les attributs du produit. Un changement de stock produit
        un mouvement ``manual_edit`` du delta.
        """
        self._require(actor, INVENTORY_EDIT)
        values = clean_product_values(data, require_stock=True)
        product = self._get_product(product_id, for_update=True)

        if values["code"] != product.code and self._code_exists(values["code"], exclude_id=product.id):
            raise DuplicateCodeError(values["code"])

        old_stock = product.stock or 0
        new_stock = values["stock"]
        delta = new_stock - old_stock

        for field, value in values.items():
            setattr(product, field, value)
        product.updated_at = datetime.utcnow()
        try:
            self.db.flush()
        except IntegrityError:
            # Code pris entre-temps par une autre modification
            self.db.rollback()
            raise DuplicateCodeError(values["code"])

        movement = None
        if delta != 0:
            movement = record_movement(
                self.db,
                product.id,
                MovementType.IN if delta > 0 else MovementType.OUT,
                abs(delta),
                ReferenceType.MANUAL_EDIT,
                notes=f"Modification manuelle : {old_stock} → {new_stock}",
                actor=actor,
            )

        self.db.commit()
        logger.info(f"Produit modifié: {product.code} stock {old_stock} -> {new_stock}")
        return product, movement

    # ============================
    # AJUSTEMENT
    # ============================
    @with_db_retry("ajustement du stock")
    def adjust_stock(self, product_id: UUID, adjustment: Any, actor=None) -> Tuple[Product, Optional[InventoryMovement]]:
        """Ajoute (ou retire) une variation ; le stock ne descend jamais sous zéro"""
        self._require(actor, STOCK_ADJUST)
        adjustment = to_int(adjustment, "adjustment")
        product = self._get_product(product_id, for_update=True)

        old_stock = product.stock or 0
        new_stock = max(0, old_stock + adjustment)
        delta = new_stock - old_stock

        movement = None
        if delta != 0:
            product.stock = new_stock
            product.updated_at = datetime.utcnow()
            movement = record_movement(
                self.db,
                product.id,
                MovementType.IN if delta > 0 else MovementType.OUT,
                abs(delta),
                ReferenceType.MANUAL_ADJUSTMENT,
                notes=f"Ajustement manuel : {old_stock} → {new_stock}",
                actor=actor,
            )

        self.db.commit()
        logger.info(f"Ajustement {adjustment:+d} sur {product.code}: {old_stock} -> {new_stock}")
        return product, movement

    # ============================
    # ENTRÉE GROUPÉE
    # ============================
    @with_db_retry("entrée de stock")
    def bulk_stock_entry(self, entries: Mapping[Any, Any], actor=None) -> Dict[str, list]:
        """
        Ajoute des quantités reçues à plusieurs produits.

        Chaque produit est appliqué dans son propre savepoint : un produit
        en échec n'annule pas les autres. Les quantités <= 0 sont ignorées.
        """
        self._require(actor, STOCK_ENTRY)

        # Validation complète avant toute écriture
        parsed = []
        for raw_id, entry in (entries or {}).items():
            try:
                product_id = raw_id if isinstance(raw_id, UUID) else UUID(str(raw_id))
            except ValueError:
                raise ValidationError("Identifiant de produit invalide", {"product_id": str(raw_id)})
            if isinstance(entry, dict) or hasattr(entry, "model_dump"):
                item = as_dict(entry)
                quantity, reason = item.get("quantity"), item.get("reason")
            else:
                quantity, reason = entry, None
            parsed.append((product_id, to_int(quantity, "quantity"), (reason or "").strip() or STOCK_ENTRY_NOTE))

        result: Dict[str, list] = {"applied": [], "skipped": [], "failed": []}
        for product_id, quantity, note in parsed:
            if quantity <= 0:
                result["skipped"].append(str(product_id))
                continue
            try:
                with self.db.begin_nested():
                    updated = self.db.execute(
                        update(Product)
                        .where(Product.id == product_id)
                        .values(stock=Product.stock + quantity, updated_at=datetime.utcnow())
                    )
                    if updated.rowcount == 0:
                        raise NotFoundError("Produit", product_id)
                    movement = record_movement(
                        self.db,
                        product_id,
                        MovementType.IN,
                        quantity,
                        ReferenceType.STOCK_ENTRY,
                        notes=note,
                        actor=actor,
                    )
                    self.db.flush()
            except NotFoundError as e:
                result["failed"].append({"product_id": str(product_id), "error": e.message})
                continue
            except SQLAlchemyError as e:
                if is_transient(e):
                    raise
                logger.exception(f"Entrée de stock échouée pour {product_id}")
                result["failed"].append({"product_id": str(product_id), "error": str(e.__class__.__name__)})
                continue
            result["applied"].append({
                "product_id": str(product_id),
                "quantity": quantity,
                "movement_id": str(movement.id),
            })

        self.db.commit()
        logger.info(
            f"Entrée de stock: {len(result['applied'])} appliquée(s), "
            f"{len(result['skipped'])} ignorée(s), {len(result['failed'])} en échec"
        )
        return result

