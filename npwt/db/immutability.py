# npwt/db/immutability.py
"""
Le journal des mouvements est en ajout seul.

Des écouteurs ORM refusent toute modification ou suppression d'un
InventoryMovement avant que le SQL ne parte vers la base. Les corrections
passent par un nouveau mouvement, jamais par une réécriture.
"""
import logging

from sqlalchemy import event

from npwt.models.movement import InventoryMovement

logger = logging.getLogger(__name__)


class ImmutableMovementError(Exception):
    """Tentative de modification d'une ligne du journal"""


def _block_update(mapper, connection, target):
    logger.error(f"Modification refusée du mouvement {target.id}")
    raise ImmutableMovementError(
        f"Le mouvement {target.id} est immuable et ne peut pas être modifié"
    )


def _block_delete(mapper, connection, target):
    logger.error(f"Suppression refusée du mouvement {target.id}")
    raise ImmutableMovementError(
        f"Le mouvement {target.id} est immuable et ne peut pas être supprimé"
    )


def register_immutability_listeners() -> None:
    if not event.contains(InventoryMovement, "before_update", _block_update):
        event.listen(InventoryMovement, "before_update", _block_update)
    if not event.contains(InventoryMovement, "before_delete", _block_delete):
        event.listen(InventoryMovement, "before_delete", _block_delete)

