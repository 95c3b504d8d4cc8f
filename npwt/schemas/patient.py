# npwt/schemas/patient.py
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime
from uuid import UUID


class PatientBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    identification: str = Field(..., min_length=1, max_length=50)
    age: int = Field(..., ge=0, le=130)


class PatientCreate(PatientBase):
    pass


class PatientUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    identification: Optional[str] = Field(None, min_length=1, max_length=50)
    age: Optional[int] = Field(None, ge=0, le=130)


class PatientInDB(PatientBase):
    id: UUID
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
