# npwt/api/v1/patients.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from npwt.api.deps import get_authorizer, get_current_active_user, get_db
from npwt.core.permissions import Authorizer
from npwt.models.user import User
from npwt.schemas.patient import PatientInDB, PatientUpdate
from npwt.services.procedure_service import ProcedureService

router = APIRouter(prefix="/patients", tags=["Patients"])


def get_procedure_service(
    db: Session = Depends(get_db),
    authorizer: Authorizer = Depends(get_authorizer),
) -> ProcedureService:
    return ProcedureService(db, authorizer)


@router.get("", response_model=List[PatientInDB])
def list_patients(
    status_filter: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = None,
    service: ProcedureService = Depends(get_procedure_service),
    current_user: User = Depends(get_current_active_user),
):
    return service.list_patients(status=status_filter, search=search)


@router.get("/{patient_id}", response_model=PatientInDB)
def get_patient(
    patient_id: UUID,
    service: ProcedureService = Depends(get_procedure_service),
    current_user: User = Depends(get_current_active_user),
):
    return service.get_patient(patient_id)


@router.put("/{patient_id}", response_model=PatientInDB)
def update_patient(
    patient_id: UUID,
    data: PatientUpdate,
    service: ProcedureService = Depends(get_procedure_service),
    current_user: User = Depends(get_current_active_user),
):
    return service.update_patient(patient_id, data, current_user)
