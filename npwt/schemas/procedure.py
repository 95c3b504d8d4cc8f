# npwt/schemas/procedure.py
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from typing import Optional, List, Dict
from datetime import datetime, date, time
from uuid import UUID

from npwt.schemas.patient import PatientCreate, PatientInDB
from npwt.utils.dates import today_local


# ============================
# CRÉATION
# ============================
class ProcedureCreate(BaseModel):
    patient_id: Optional[UUID] = Field(None, description="Patient existant")
    patient: Optional[PatientCreate] = Field(None, description="Nouveau patient (ou réutilisé par identification)")
    machine_id: UUID
    surgeon_name: str = Field(..., min_length=1, max_length=200)
    assistant_name: Optional[str] = Field(None, max_length=200)
    procedure_date: date = Field(default_factory=today_local)
    start_time: time
    diagnosis: str = Field(..., min_length=1)
    location: Optional[str] = Field(None, max_length=200)
    products: Dict[UUID, int] = Field(default_factory=dict, description="Insumos initiaux : product_id -> quantité")

    @model_validator(mode='after')
    def validate_patient(self):
        if not self.patient_id and not self.patient:
            raise ValueError('patient_id ou patient est requis')
        return self


class ConsumptionRequest(BaseModel):
    products: Dict[UUID, int] = Field(..., description="product_id -> quantité utilisée")

    @field_validator('products')
    def validate_products(cls, v):
        if not v:
            raise ValueError('Il faut sélectionner au moins un produit')
        return v


class ChangeMachineRequest(BaseModel):
    machine_id: UUID


class ProcedureUpdate(BaseModel):
    surgeon_name: Optional[str] = Field(None, min_length=1, max_length=200)
    assistant_name: Optional[str] = Field(None, max_length=200)
    diagnosis: Optional[str] = Field(None, min_length=1)
    location: Optional[str] = Field(None, max_length=200)


# ============================
# RÉPONSES
# ============================
class ProcedureProductInDB(BaseModel):
    id: UUID
    product_id: UUID
    quantity_used: int
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ProcedureInDB(BaseModel):
    id: UUID
    patient_id: Optional[UUID] = None
    machine_id: Optional[UUID] = None
    surgeon_name: str
    assistant_name: Optional[str] = None
    procedure_date: date
    start_time: time
    end_time: Optional[time] = None
    diagnosis: str
    location: Optional[str] = None
    status: str
    created_by: Optional[UUID] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ProcedureDetail(ProcedureInDB):
    patient: Optional[PatientInDB] = None
    products: List[ProcedureProductInDB] = []
    total_products_used: int = 0


class ConsumptionResponse(BaseModel):
    message: str
    procedure_id: UUID
    items: List[Dict]


class CloseProcedureResponse(BaseModel):
    message: str
    procedure: ProcedureInDB
