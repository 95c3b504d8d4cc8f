# npwt/services/movement_history.py
"""
Historique des mouvements d'un produit.

Les notes des lignes ``procedure`` sont réécrites pour l'affichage avec le
nom ACTUEL du patient ; la note stockée dans le journal n'est jamais modifiée.
"""
import logging
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from npwt.core.config import settings
from npwt.core.exceptions import NotFoundError
from npwt.core.retry import run_with_retry
from npwt.models.movement import InventoryMovement, MovementType, ReferenceType
from npwt.models.patient import Patient
from npwt.models.procedure import Procedure
from npwt.models.product import Product
from npwt.services.procedure_service import consumption_note

logger = logging.getLogger(__name__)


def _current_patient_names(db: Session, procedure_ids) -> Dict[UUID, str]:
    if not procedure_ids:
        return {}
    rows = db.query(Procedure.id, Patient.name).join(
        Patient, Patient.id == Procedure.patient_id
    ).filter(Procedure.id.in_(list(procedure_ids))).all()
    return {row.id: row.name for row in rows}


def _load_history(db: Session, product_id: UUID, limit: int) -> Dict[str, Any]:
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise NotFoundError("Produit", product_id)

    movements = db.query(InventoryMovement).filter(
        InventoryMovement.product_id == product_id
    ).order_by(InventoryMovement.created_at.desc()).limit(limit).all()

    procedure_ids = {
        m.reference_id for m in movements
        if m.reference_type == ReferenceType.PROCEDURE.value and m.reference_id
    }
    names = _current_patient_names(db, procedure_ids)

    items = []
    total_in = total_out = 0
    for movement in movements:
        if movement.movement_type == MovementType.IN.value:
            total_in += movement.magnitude
        else:
            total_out += movement.magnitude

        display_notes = movement.notes
        if movement.reference_type == ReferenceType.PROCEDURE.value and movement.reference_id in names:
            display_notes = consumption_note(names[movement.reference_id])

        item = movement.to_dict()
        item["display_notes"] = display_notes
        items.append(item)

    return {
        "product_id": product.id,
        "product_name": product.name,
        "product_code": product.code,
        "movements": items,
        "summary": {
            "total_in": total_in,
            "total_out": total_out,
            # Stock du catalogue : la fenêtre peut ne pas couvrir tout l'historique
            "current_stock": product.stock or 0,
        },
    }


def movement_history(db: Session, product_id: UUID, limit: Optional[int] = None) -> Dict[str, Any]:
    """Les ``limit`` mouvements les plus récents (50 par défaut) et leur résumé"""
    limit = limit or settings.MOVEMENT_HISTORY_LIMIT
    return run_with_retry(db, lambda: _load_history(db, product_id, limit), "historique des mouvements")
