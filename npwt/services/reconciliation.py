# npwt/services/reconciliation.py
import logging
from datetime import datetime
from typing import Any, Dict, List
from uuid import UUID

from sqlalchemy.orm import Session

from npwt.core.exceptions import NotFoundError
from npwt.models.product import Product
from npwt.services.ledger import ledger_balance, ledger_balances

logger = logging.getLogger(__name__)


def _row(product: Product, ledger_stock: int) -> Dict[str, Any]:
    cached = product.stock or 0
    return {
        "product_id": str(product.id),
        "product_code": product.code,
        "product_name": product.name,
        "cached_stock": cached,
        "ledger_stock": ledger_stock,
        "difference": cached - ledger_stock,
    }


def reconcile_product(db: Session, product_id: UUID) -> Dict[str, Any]:
    """Compare products.stock au solde recalculé depuis le journal"""
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise NotFoundError("Produit", product_id)
    return _row(product, ledger_balance(db, product.id))


def reconcile_all(db: Session) -> Dict[str, Any]:
    """Liste les produits dont le stock en cache diverge du journal"""
    balances = ledger_balances(db)
    products = db.query(Product).order_by(Product.code).all()

    discrepancies: List[Dict[str, Any]] = []
    for product in products:
        row = _row(product, balances.get(product.id, 0))
        if row["difference"] != 0:
            discrepancies.append(row)

    if discrepancies:
        logger.warning(
            f"Réconciliation: {len(discrepancies)} produit(s) divergent(s) du journal: "
            + ", ".join(f"{d['product_code']} ({d['difference']:+d})" for d in discrepancies)
        )
    else:
        logger.info(f"Réconciliation: {len(products)} produit(s) cohérent(s)")

    return {
        "checked_products": len(products),
        "consistent": not discrepancies,
        "discrepancies": discrepancies,
        "generated_at": datetime.utcnow(),
    }
