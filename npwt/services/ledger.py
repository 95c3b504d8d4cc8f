# npwt/services/ledger.py
"""
Écriture et lecture du journal des mouvements de stock.

Seuls les services de stock appellent ``record_movement`` ; ils le font
dans la même transaction que la mise à jour de ``products.stock``.
"""
import logging
from typing import Dict, Optional
from uuid import UUID

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from npwt.models.movement import InventoryMovement, MovementType, ReferenceType

logger = logging.getLogger(__name__)


def record_movement(
    db: Session,
    product_id: UUID,
    movement_type: MovementType,
    quantity: int,
    reference_type: ReferenceType,
    notes: Optional[str] = None,
    actor=None,
    reference_id: Optional[UUID] = None,
) -> InventoryMovement:
    """Ajoute une ligne au journal (quantité toujours stockée en valeur absolue)"""
    movement = InventoryMovement(
        product_id=product_id,
        movement_type=movement_type.value,
        quantity=abs(int(quantity)),
        reference_type=reference_type.value,
        reference_id=reference_id,
        notes=notes,
        created_by=getattr(actor, "id", None),
    )
    db.add(movement)
    return movement


def _signed_quantity():
    magnitude = func.abs(InventoryMovement.quantity)
    return case(
        (InventoryMovement.movement_type == MovementType.IN.value, magnitude),
        else_=-magnitude,
    )


def ledger_balance(db: Session, product_id: UUID) -> int:
    """Stock recalculé à partir du journal pour un produit"""
    total = db.query(func.coalesce(func.sum(_signed_quantity()), 0)).filter(
        InventoryMovement.product_id == product_id
    ).scalar()
    return int(total or 0)


def ledger_balances(db: Session) -> Dict[UUID, int]:
    """Stock recalculé à partir du journal, pour tous les produits ayant des mouvements"""
    rows = db.query(
        InventoryMovement.product_id,
        func.sum(_signed_quantity()).label("balance"),
    ).group_by(InventoryMovement.product_id).all()
    return {row.product_id: int(row.balance or 0) for row in rows}
