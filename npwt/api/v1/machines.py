# npwt/api/v1/machines.py
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from npwt.api.deps import get_authorizer, get_current_active_user, get_db
from npwt.core.permissions import Authorizer
from npwt.models.user import User
from npwt.schemas.machine import MachineCreate, MachineInDB, MachineUpdate
from npwt.services.machine_service import MachineService

router = APIRouter(prefix="/machines", tags=["Machines"])


def get_machine_service(
    db: Session = Depends(get_db),
    authorizer: Authorizer = Depends(get_authorizer),
) -> MachineService:
    return MachineService(db, authorizer)


@router.get("", response_model=List[MachineInDB])
def list_machines(
    status_filter: Optional[str] = Query(None, alias="status"),
    service: MachineService = Depends(get_machine_service),
    current_user: User = Depends(get_current_active_user),
):
    return service.list_machines(status=status_filter)


@router.get("/available", response_model=List[MachineInDB])
def available_machines(
    exclude_procedure_id: Optional[UUID] = Query(None, description="Procédure en cours de changement de machine"),
    service: MachineService = Depends(get_machine_service),
    current_user: User = Depends(get_current_active_user),
):
    """Machines actives non utilisées par une procédure active"""
    return service.available_machines(exclude_procedure_id)


@router.post("", response_model=MachineInDB, status_code=status.HTTP_201_CREATED)
def create_machine(
    data: MachineCreate,
    service: MachineService = Depends(get_machine_service),
    current_user: User = Depends(get_current_active_user),
):
    return service.create_machine(data, current_user)


@router.get("/{machine_id}", response_model=MachineInDB)
def get_machine(
    machine_id: UUID,
    service: MachineService = Depends(get_machine_service),
    current_user: User = Depends(get_current_active_user),
):
    machine = service.get_machine(machine_id)
    machine.in_use = service.machine_in_use(machine.id)
    return machine


@router.put("/{machine_id}", response_model=MachineInDB)
def update_machine(
    machine_id: UUID,
    data: MachineUpdate,
    service: MachineService = Depends(get_machine_service),
    current_user: User = Depends(get_current_active_user),
):
    return service.update_machine(machine_id, data, current_user)


@router.delete("/{machine_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_machine(
    machine_id: UUID,
    service: MachineService = Depends(get_machine_service),
    current_user: User = Depends(get_current_active_user),
):
    service.delete_machine(machine_id, current_user)
