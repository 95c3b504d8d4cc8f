# npwt/api/v1/procedures.py
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
import logging

from npwt.api.deps import get_authorizer, get_current_active_user, get_db
from npwt.core.permissions import Authorizer
from npwt.models.user import User
from npwt.schemas.procedure import (
    ChangeMachineRequest,
    CloseProcedureResponse,
    ConsumptionRequest,
    ConsumptionResponse,
    ProcedureCreate,
    ProcedureDetail,
    ProcedureInDB,
    ProcedureUpdate,
)
from npwt.services.procedure_service import ProcedureService

router = APIRouter(prefix="/procedures", tags=["Procédures"])
logger = logging.getLogger(__name__)


def get_procedure_service(
    db: Session = Depends(get_db),
    authorizer: Authorizer = Depends(get_authorizer),
) -> ProcedureService:
    return ProcedureService(db, authorizer)


@router.get("", response_model=List[ProcedureInDB])
def list_procedures(
    status_filter: Optional[str] = Query(None, alias="status"),
    service: ProcedureService = Depends(get_procedure_service),
    current_user: User = Depends(get_current_active_user),
):
    return service.list_procedures(status=status_filter)


@router.post("", response_model=ProcedureDetail, status_code=status.HTTP_201_CREATED)
def create_procedure(
    data: ProcedureCreate,
    service: ProcedureService = Depends(get_procedure_service),
    current_user: User = Depends(get_current_active_user),
):
    """Nouvelle procédure : patient, machine disponible et insumos initiaux"""
    procedure, _ = service.create_procedure(data, current_user)
    return service.get_procedure(procedure.id)


@router.get("/{procedure_id}", response_model=ProcedureDetail)
def get_procedure(
    procedure_id: UUID,
    service: ProcedureService = Depends(get_procedure_service),
    current_user: User = Depends(get_current_active_user),
):
    return service.get_procedure(procedure_id)


@router.put("/{procedure_id}", response_model=ProcedureInDB)
def update_procedure(
    procedure_id: UUID,
    data: ProcedureUpdate,
    service: ProcedureService = Depends(get_procedure_service),
    current_user: User = Depends(get_current_active_user),
):
    return service.update_procedure_info(procedure_id, data, current_user)


@router.post("/{procedure_id}/products", response_model=ConsumptionResponse)
def add_products(
    procedure_id: UUID,
    data: ConsumptionRequest,
    service: ProcedureService = Depends(get_procedure_service),
    current_user: User = Depends(get_current_active_user),
):
    """Consommation d'insumos : tout le lot ou rien"""
    items = service.consume_for_procedure(procedure_id, data.products, current_user)
    return {
        "message": f"{len(items)} insumo(s) ajouté(s) à la procédure",
        "procedure_id": procedure_id,
        "items": items,
    }


@router.post("/{procedure_id}/close", response_model=CloseProcedureResponse)
def close_procedure(
    procedure_id: UUID,
    service: ProcedureService = Depends(get_procedure_service),
    current_user: User = Depends(get_current_active_user),
):
    procedure = service.close_procedure(procedure_id, current_user)
    return {"message": "Procédure clôturée", "procedure": procedure}


@router.put("/{procedure_id}/machine", response_model=ProcedureInDB)
def change_machine(
    procedure_id: UUID,
    data: ChangeMachineRequest,
    service: ProcedureService = Depends(get_procedure_service),
    current_user: User = Depends(get_current_active_user),
):
    return service.change_machine(procedure_id, data.machine_id, current_user)
