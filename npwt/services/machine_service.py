# npwt/services/machine_service.py
import logging
from datetime import datetime
from typing import Any, List, Optional, Set
from uuid import UUID

from sqlalchemy.orm import Session

from npwt.core.exceptions import MachineUnavailableError, NotFoundError, ValidationError
from npwt.core.permissions import MACHINE_DELETE, MACHINE_EDIT
from npwt.core.retry import with_db_retry
from npwt.models.machine import Machine, MachineStatus
from npwt.models.procedure import Procedure, ProcedureStatus
from npwt.services.base import BaseService, as_dict

logger = logging.getLogger(__name__)

MACHINE_FIELDS = (
    "name", "serial_number", "model", "lot", "status",
    "location", "purchase_date", "last_maintenance", "observations",
)


def machines_in_use(db: Session, exclude_procedure_id: Optional[UUID] = None) -> Set[UUID]:
    """Machines rattachées à une procédure active"""
    query = db.query(Procedure.machine_id).filter(
        Procedure.status == ProcedureStatus.ACTIVE.value,
        Procedure.machine_id.isnot(None),
    )
    if exclude_procedure_id is not None:
        query = query.filter(Procedure.id != exclude_procedure_id)
    return {row.machine_id for row in query.all()}


def _clean_machine_values(values: dict) -> dict:
    cleaned = {}
    for field in MACHINE_FIELDS:
        if field not in values:
            continue
        value = values[field]
        if hasattr(value, "value"):
            value = value.value
        if isinstance(value, str):
            value = value.strip() or None
        cleaned[field] = value

    if "name" in cleaned and not cleaned["name"]:
        raise ValidationError("Le nom de la machine est requis", {"field": "name"})
    status = cleaned.get("status")
    if status is not None and status not in {s.value for s in MachineStatus}:
        raise ValidationError(f"Statut de machine inconnu: {status}", {"field": "status"})
    if "status" in cleaned and status is None:
        cleaned.pop("status")
    if "model" in cleaned and cleaned["model"] is None:
        cleaned.pop("model")
    return cleaned


class MachineService(BaseService):
    """Parc d'équipements NPWT"""

    def get_machine(self, machine_id: UUID, for_update: bool = False) -> Machine:
        query = self.db.query(Machine).filter(Machine.id == machine_id)
        if for_update:
            query = query.with_for_update()
        machine = query.first()
        if not machine:
            raise NotFoundError("Machine", machine_id)
        return machine

    def machine_in_use(self, machine_id: UUID, exclude_procedure_id: Optional[UUID] = None) -> bool:
        return machine_id in machines_in_use(self.db, exclude_procedure_id)

    def list_machines(self, status: Optional[str] = None) -> List[Machine]:
        query = self.db.query(Machine)
        if status:
            query = query.filter(Machine.status == status)
        machines = query.order_by(Machine.name).all()
        used = machines_in_use(self.db)
        for machine in machines:
            machine.in_use = machine.id in used
        return machines

    def available_machines(self, exclude_procedure_id: Optional[UUID] = None) -> List[Machine]:
        """Machines actives qui ne sont utilisées par aucune autre procédure active"""
        used = machines_in_use(self.db, exclude_procedure_id)
        machines = self.db.query(Machine).filter(
            Machine.status == MachineStatus.ACTIVE.value
        ).order_by(Machine.name).all()
        available = [m for m in machines if m.id not in used]
        for machine in available:
            machine.in_use = False
        return available

    def ensure_available(self, machine_id: UUID, exclude_procedure_id: Optional[UUID] = None) -> Machine:
        """Verrouille la machine et vérifie qu'elle peut être affectée"""
        machine = self.get_machine(machine_id, for_update=True)
        if machine.status != MachineStatus.ACTIVE.value:
            raise MachineUnavailableError(machine_id, f"statut {machine.status}")
        if self.machine_in_use(machine_id, exclude_procedure_id):
            raise MachineUnavailableError(machine_id, "déjà utilisée par une procédure active")
        return machine

    @with_db_retry("création de la machine")
    def create_machine(self, data: Any, actor=None) -> Machine:
        self._require(actor, MACHINE_EDIT)
        values = _clean_machine_values(as_dict(data))
        if not values.get("name"):
            raise ValidationError("Le nom de la machine est requis", {"field": "name"})

        machine = Machine(**values)
        self.db.add(machine)
        self.db.commit()
        machine.in_use = False
        logger.info(f"Machine créée: {machine.name}")
        return machine

    @with_db_retry("modification de la machine")
    def update_machine(self, machine_id: UUID, data: Any, actor=None) -> Machine:
        self._require(actor, MACHINE_EDIT)
        values = _clean_machine_values(as_dict(data, exclude_unset=True))
        machine = self.get_machine(machine_id, for_update=True)

        for field, value in values.items():
            setattr(machine, field, value)
        machine.updated_at = datetime.utcnow()

        self.db.commit()
        machine.in_use = self.machine_in_use(machine.id)
        logger.info(f"Machine modifiée: {machine.name}")
        return machine

    @with_db_retry("suppression de la machine")
    def delete_machine(self, machine_id: UUID, actor=None) -> None:
        self._require(actor, MACHINE_DELETE)
        machine = self.get_machine(machine_id, for_update=True)

        if self.machine_in_use(machine.id):
            raise MachineUnavailableError(machine.id, "utilisée par une procédure active")

        history = self.db.query(Procedure.id).filter(Procedure.machine_id == machine.id).first()
        if history:
            raise ValidationError(
                "La machine est liée à des procédures ; passez-la en statut inactive",
                {"machine_id": str(machine.id)},
            )

        self.db.delete(machine)
        self.db.commit()
        logger.info(f"Machine supprimée: {machine.name}")
